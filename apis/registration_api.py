from flask import Blueprint, request
import logging

from apis.auth_api import ADMIN_ROLES, MODERATOR_ROLES, require_role
from apis.request_utils import get_blob_store, get_supabase, page_args, request_data, success
from config import UPLOAD_CONFIG
from db.author_operations import AUTHOR_DEFAULT_SORT, AUTHOR_SORT_FIELDS, OVERRIDABLE_FIELDS, AuthorOperations
from db.department_operations import DepartmentOperations
from db.publication_operations import PUBLICATION_REQUIRED_FIELDS, PublicationOperations
from db.storage import discard_staged, stage_upload
from db.user_operations import UserOperations
from exceptions import ValidationError
from publication_utils.validators import require_fields

logger = logging.getLogger(__name__)

registration_bp = Blueprint('registration', __name__, url_prefix='/api')


@registration_bp.route('/register', methods=['POST'])
@require_role(ADMIN_ROLES)
def register_user():
    user = UserOperations(get_supabase()).register_user(request_data())
    return success(user, 'User registered successfully', 201)


@registration_bp.route('/author', methods=['POST'])
@registration_bp.route('/register/author', methods=['POST'])
@require_role(MODERATOR_ROLES)
def register_author():
    author = AuthorOperations(get_supabase()).register_author(request_data())
    return success(author, 'Author registered successfully', 201)


@registration_bp.route('/department', methods=['POST'])
@require_role(ADMIN_ROLES)
def register_department():
    department = DepartmentOperations(get_supabase()).register_department(request_data())
    return success(department, 'Department registered successfully', 201)


@registration_bp.route('/departments', methods=['GET'])
def list_departments():
    return success(DepartmentOperations(get_supabase()).list_departments())


@registration_bp.route('/publication', methods=['POST'])
@require_role(MODERATOR_ROLES)
def register_publication():
    """
    Multipart upload: form fields plus one PDF under UPLOAD_CONFIG['file_field']

    The file is staged locally, validated and stored in the blob store before the
    record is created; the staged copy is removed whatever happens.
    """
    data = request.form.to_dict()
    keywords = request.form.getlist('keywords')
    if len(keywords) > 1:
        data['keywords'] = keywords
    require_fields(data, PUBLICATION_REQUIRED_FIELDS)

    file = request.files.get(UPLOAD_CONFIG['file_field'])
    if file is None or not file.filename:
        raise ValidationError('Please upload a PDF file')

    staged_path = stage_upload(file)
    try:
        with open(staged_path, 'rb') as staged:
            content = staged.read()
        publication = PublicationOperations(get_supabase(), get_blob_store()).register_publication(data, content)
    finally:
        discard_staged(staged_path)
    return success(publication, 'Publication registered successfully', 201, file_url=publication['file_url'])


@registration_bp.route('/authors/assign-publication', methods=['POST'])
@require_role(MODERATOR_ROLES)
def assign_author_to_publication():
    data = request_data()
    overrides = {name: data[name] for name in OVERRIDABLE_FIELDS if data.get(name)}
    assignment = AuthorOperations(get_supabase()).assign_author_to_publication(
        data.get('employee_id'),
        data.get('publication_id'),
        data.get('author_order'),
        overrides=overrides,
    )
    return success(assignment, 'Author assigned to publication', 201)


@registration_bp.route('/authors/unassigned', methods=['GET'])
@require_role(MODERATOR_ROLES)
def get_unassigned_authors():
    page, sort = page_args(AUTHOR_SORT_FIELDS, AUTHOR_DEFAULT_SORT)
    return success(AuthorOperations(get_supabase()).get_unassigned_authors(page, sort))


@registration_bp.route('/authors/publications', methods=['GET'])
@require_role(MODERATOR_ROLES)
def get_author_publications():
    employee_id = request.args.get('employee_id')
    if not employee_id:
        raise ValidationError('employee_id query parameter is required')
    return success(AuthorOperations(get_supabase()).get_author_publications(employee_id))


@registration_bp.route('/authors/assignments/<record_id>', methods=['DELETE'])
@require_role(ADMIN_ROLES)
def remove_assignment(record_id):
    removed = AuthorOperations(get_supabase()).remove_assignment(record_id)
    return success(removed, 'Assignment removed')


@registration_bp.route('/delete/author/unassigned', methods=['POST'])
@require_role(ADMIN_ROLES)
def delete_unassigned_author():
    deleted = AuthorOperations(get_supabase()).delete_unassigned_author(request_data().get('employee_id'))
    return success(deleted, 'Unassigned author deleted')


@registration_bp.route('/delete/department', methods=['POST'])
@require_role(ADMIN_ROLES)
def delete_department():
    department_id = request_data().get('department_id')
    if not department_id:
        raise ValidationError('department_id is required')
    deleted = DepartmentOperations(get_supabase()).delete_department(department_id)
    return success(deleted, 'Department deleted')


@registration_bp.route('/delete/publication', methods=['POST'])
@require_role(ADMIN_ROLES)
def delete_publication():
    publication_id = request_data().get('publication_id')
    if not publication_id:
        raise ValidationError('publication_id is required')
    deleted = PublicationOperations(get_supabase(), get_blob_store()).delete_publication(publication_id)
    return success(deleted, 'Publication deleted')
