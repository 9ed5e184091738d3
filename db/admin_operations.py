from typing import Any, Dict, Optional
import logging

from werkzeug.security import check_password_hash, generate_password_hash

from db.base_operations import BaseOperations
from db.query_builder import eq
from exceptions import AuthError, ConflictError, NotFoundError, ValidationError
from publication_utils.validators import (
    clean_text,
    normalize_email,
    normalize_employee_id,
    require_fields,
    validate_choice,
)
from schemas import ADMIN_ROLES, Admin

logger = logging.getLogger(__name__)

ADMINS = 'admins'

ADMIN_PUBLIC_COLUMNS = 'id, employee_id, fullname, email, phone, role, is_active, created_at, updated_at'

SUPER_ADMIN = 'super-admin'


def public_admin(row: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if row is None:
        return None
    return {k: v for k, v in row.items() if k != 'password'}


class AdminOperations(BaseOperations):
    """Admin accounts: registration, credential checks, soft deactivation and guarded deletion"""

    def is_empty(self) -> bool:
        return self.count() == 0

    def register_admin(self, data: Dict[str, Any], bootstrap: bool = False) -> Dict[str, Any]:
        """
        Create an admin account

        Args:
            data: employee_id, fullname, email, password, optional phone and role
            bootstrap: first account of an empty table; always becomes super-admin

        Returns:
            dict: the stored admin without its password

        Raises:
            ValidationError: missing fields or unknown role
            ConflictError: email or employee ID already registered
        """
        require_fields(data, ('employee_id', 'fullname', 'email', 'password'))
        role = SUPER_ADMIN if bootstrap else validate_choice(
            str(data.get('role') or 'admin').strip().lower(), 'role', ADMIN_ROLES)
        password = str(data['password'])
        if len(password) < 6:
            raise ValidationError('Password must be at least 6 characters')

        admin = Admin(
            employee_id=normalize_employee_id(data['employee_id']),
            fullname=clean_text(data['fullname'], 'fullname', max_length=100),
            email=normalize_email(data['email'], required=True),
            password=generate_password_hash(password),
            role=role,
            phone=clean_text(data.get('phone'), 'phone', max_length=20),
            bootstrap=bootstrap,
        )

        if self._find_one(ADMINS, eq('email', admin.email), columns='id'):
            raise ConflictError('An admin with this email already exists')
        if self._find_one(ADMINS, eq('employee_id', admin.employee_id), columns='id'):
            raise ConflictError('An admin with this employee ID already exists')

        row = self._insert(ADMINS, admin.to_record())
        logger.info(f"Admin registered: {row['id']} ({role}{', bootstrap' if bootstrap else ''})")
        return public_admin(row)

    def authenticate(self, email: Any, password: Any) -> Dict[str, Any]:
        """Check credentials; 401 for unknown email or wrong password, 403 for a deactivated account."""
        if not email or not password:
            raise ValidationError('Email and password are required')
        email = str(email).strip().lower()
        admin = self._find_one(ADMINS, eq('email', email))
        if not admin or not check_password_hash(admin['password'], str(password)):
            logger.warning(f"Rejected login for {email}")
            raise AuthError('Invalid email or password')
        if not admin.get('is_active', True):
            logger.warning(f"Rejected login for deactivated admin {admin['id']}")
            raise AuthError('Account is deactivated', status_code=403)
        return public_admin(admin)

    def get_admin(self, admin_id: str) -> Optional[Dict[str, Any]]:
        return self._get(ADMINS, admin_id, columns=ADMIN_PUBLIC_COLUMNS)

    def _require_unprotected(self, admin_id: Any, action: str) -> Dict[str, Any]:
        if not admin_id:
            raise ValidationError('Admin ID is required')
        admin = self.get_admin(str(admin_id))
        if not admin:
            raise NotFoundError('Admin not found')
        if admin['role'] == SUPER_ADMIN:
            raise AuthError(f'Super admin accounts cannot be {action}', status_code=403)
        return admin

    def deactivate_admin(self, admin_id: Any) -> Dict[str, Any]:
        admin = self._require_unprotected(admin_id, 'deactivated')
        row = self._update(ADMINS, admin['id'], {'is_active': False})
        logger.info(f"Admin deactivated: {admin['id']}")
        return public_admin(row) or dict(admin, is_active=False)

    def delete_admin(self, admin_id: Any) -> Dict[str, Any]:
        admin = self._require_unprotected(admin_id, 'deleted')
        self._delete(ADMINS, admin['id'])
        logger.info(f"Admin deleted: {admin['id']}")
        return admin

    def count(self) -> int:
        return self._count(ADMINS)
