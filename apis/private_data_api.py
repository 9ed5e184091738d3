from flask import Blueprint, request
import logging

from apis.auth_api import MODERATOR_ROLES, require_role
from apis.request_utils import get_supabase, page_args, success
from db.admin_operations import AdminOperations
from db.author_operations import AUTHOR_DEFAULT_SORT, AUTHOR_SORT_FIELDS, AuthorOperations
from db.department_operations import DepartmentOperations
from db.publication_operations import PublicationOperations
from db.search_operations import SearchOperations
from db.user_operations import UserOperations

logger = logging.getLogger(__name__)

private_data_bp = Blueprint('private_data', __name__, url_prefix='/api')


@private_data_bp.route('/counts', methods=['GET'])
def get_counts():
    supabase = get_supabase()
    return success({
        'publications': PublicationOperations(supabase).count(),
        'users': UserOperations(supabase).count(),
        'departments': DepartmentOperations(supabase).count(),
    })


@private_data_bp.route('/private-data/counts', methods=['GET'])
@require_role(MODERATOR_ROLES)
def get_private_counts():
    supabase = get_supabase()
    return success({
        'departments': DepartmentOperations(supabase).count(),
        'authors': AuthorOperations(supabase).count(),
        'admins': AdminOperations(supabase).count(),
    })


@private_data_bp.route('/private-data/users', methods=['GET'])
@require_role(MODERATOR_ROLES)
def list_authors():
    page, sort = page_args(AUTHOR_SORT_FIELDS, AUTHOR_DEFAULT_SORT)
    return success(SearchOperations(get_supabase()).list_authors(page, sort))


def _search_authors(field: str, param: str):
    term = request.args.get(param)
    page, sort = page_args(AUTHOR_SORT_FIELDS, AUTHOR_DEFAULT_SORT)
    result = SearchOperations(get_supabase()).search_authors(term, field, page, sort)
    return success(result, search_term=term)


@private_data_bp.route('/search/email', methods=['GET'])
@require_role(MODERATOR_ROLES)
def search_by_email():
    return _search_authors('email', 'email')


@private_data_bp.route('/search/employee-id', methods=['GET'])
@require_role(MODERATOR_ROLES)
def search_by_employee_id():
    return _search_authors('employee_id', 'employee_id')


@private_data_bp.route('/search/fullname', methods=['GET'])
@require_role(MODERATOR_ROLES)
def search_by_fullname():
    return _search_authors('name', 'fullname')
