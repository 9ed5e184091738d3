from functools import wraps
from typing import Any, Dict, Iterable, Tuple
import logging

from flask import Blueprint, g, make_response, request

from apis.request_utils import get_session_store, get_supabase, request_data, success
from config import SESSION_CONFIG
from db.admin_operations import AdminOperations
from exceptions import AuthError

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/api')

# super-admin ⊃ admin ⊃ moderator
MODERATOR_ROLES = frozenset({'moderator', 'admin', 'super-admin'})
ADMIN_ROLES = frozenset({'admin', 'super-admin'})
SUPER_ADMIN_ROLES = frozenset({'super-admin'})


def set_session_cookie(response, sid: str):
    response.set_cookie(
        SESSION_CONFIG['cookie_name'],
        sid,
        max_age=SESSION_CONFIG['ttl_seconds'],
        httponly=True,
        secure=SESSION_CONFIG['secure'],
        samesite=SESSION_CONFIG['samesite'],
    )
    return response


def clear_session_cookie(response):
    response.delete_cookie(
        SESSION_CONFIG['cookie_name'],
        httponly=True,
        secure=SESSION_CONFIG['secure'],
        samesite=SESSION_CONFIG['samesite'],
    )
    return response


def resolve_admin(roles: Iterable[str]) -> Tuple[Dict[str, Any], str]:
    """
    Map the request's session cookie to an active admin holding one of ``roles``

    Returns:
        tuple: (admin without password, session id); the session's expiry is pushed forward

    Raises:
        AuthError: 401 without a live session, 403 for a deactivated admin or a role outside ``roles``
    """
    store = get_session_store()
    sid = request.cookies.get(SESSION_CONFIG['cookie_name'])
    session = store.get(sid) if sid else None
    if not session:
        raise AuthError('Authentication required')

    admin = AdminOperations(get_supabase()).get_admin(session['admin_id'])
    if not admin:
        store.destroy(sid)
        raise AuthError('Session is no longer valid')
    if not admin.get('is_active', True):
        store.destroy(sid)
        logger.warning(f"Deactivated admin {admin['id']} presented a session")
        raise AuthError('Account is deactivated', status_code=403)
    if admin['role'] not in roles:
        logger.warning(f"Admin {admin['id']} ({admin['role']}) denied {request.method} {request.path}")
        raise AuthError('Insufficient permissions', status_code=403)

    store.touch(sid)
    return admin, sid


def require_role(roles: Iterable[str]):
    """Gate a view on a live session whose admin holds one of ``roles``; exposes it as ``g.admin``."""
    roles = frozenset(roles)

    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            g.admin, g.session_id = resolve_admin(roles)
            response = make_response(view(*args, **kwargs))
            # sliding expiry
            return set_session_cookie(response, g.session_id)
        return wrapper
    return decorator


@auth_bp.route('/admin/register', methods=['POST'])
def register_admin():
    """Register an admin; the first one into an empty table becomes super-admin without a session."""
    admins = AdminOperations(get_supabase())
    data = request_data()
    sid = None
    if admins.is_empty():
        admin = admins.register_admin(data, bootstrap=True)
    else:
        _, sid = resolve_admin(SUPER_ADMIN_ROLES)
        admin = admins.register_admin(data)

    response = make_response(success(admin, 'Admin registered successfully', 201))
    if sid:
        set_session_cookie(response, sid)
    return response


@auth_bp.route('/admin/login', methods=['POST'])
def login():
    data = request_data()
    admin = AdminOperations(get_supabase()).authenticate(data.get('email'), data.get('password'))
    sid = get_session_store().set(admin)
    logger.info(f"Admin {admin['id']} logged in")
    return set_session_cookie(make_response(success(admin, 'Login successful')), sid)


@auth_bp.route('/admin/logout', methods=['POST', 'GET'])
def logout():
    sid = request.cookies.get(SESSION_CONFIG['cookie_name'])
    if sid:
        get_session_store().destroy(sid)
    return clear_session_cookie(make_response(success(message='Logged out')))


@auth_bp.route('/admin/me', methods=['GET'])
@require_role(MODERATOR_ROLES)
def current_admin():
    return success(g.admin)


@auth_bp.route('/admin/deactivate', methods=['POST'])
@require_role(SUPER_ADMIN_ROLES)
def deactivate_admin():
    admin = AdminOperations(get_supabase()).deactivate_admin(request_data().get('admin_id'))
    return success(admin, 'Admin deactivated')


@auth_bp.route('/delete/admin', methods=['POST'])
@require_role(SUPER_ADMIN_ROLES)
def delete_admin():
    admin = AdminOperations(get_supabase()).delete_admin(request_data().get('admin_id'))
    return success(admin, 'Admin deleted')
