"""Helpers shared by the blueprints: collaborators, request bodies, paging arguments, responses."""
from typing import Any, Dict, Optional, Sequence, Tuple

from flask import current_app, jsonify, request

from db.query_builder import PageSpec, SortSpec
from exceptions import ValidationError


def get_supabase():
    return current_app.extensions['supabase']


def get_blob_store():
    return current_app.extensions['blob_store']


def get_session_store():
    return current_app.extensions['session_store']


def request_data() -> Dict[str, Any]:
    """JSON body or form fields of the current request."""
    if request.is_json:
        data = request.get_json(silent=True)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValidationError('Request body must be a JSON object')
        return data
    return request.form.to_dict()


def page_args(sort_fields: Sequence[str], default_sort: str) -> Tuple[PageSpec, SortSpec]:
    """page, limit, sortBy and order query parameters."""
    page = PageSpec.from_args(request.args.get('page'), request.args.get('limit'))
    sort = SortSpec.from_args(request.args.get('sortBy'), request.args.get('order'), sort_fields, default_sort)
    return page, sort


def success(data: Any = None, message: Optional[str] = None, status: int = 200, **extra):
    body = {'status': 'success'}
    if message:
        body['message'] = message
    if data is not None:
        body['data'] = data
    body.update(extra)
    return jsonify(body), status
