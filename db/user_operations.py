from typing import Any, Dict
import logging

from werkzeug.security import generate_password_hash

from db.base_operations import BaseOperations
from db.query_builder import eq
from exceptions import ConflictError
from publication_utils.validators import (
    clean_text,
    normalize_email,
    normalize_employee_id,
    require_fields,
    validate_choice,
)
from schemas import USER_ROLES, User

logger = logging.getLogger(__name__)

USERS = 'users'


class UserOperations(BaseOperations):
    """Institution user identities created through /register"""

    def register_user(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Register a user; duplicates answer 400 like missing fields do

        Args:
            data: employee_id, password, email, optional role and fullname

        Returns:
            dict: the stored user without its password
        """
        require_fields(data, ('employee_id', 'password', 'email'))
        user = User(
            employee_id=normalize_employee_id(data['employee_id']),
            email=normalize_email(data['email'], required=True),
            password=generate_password_hash(str(data['password'])),
            fullname=clean_text(data.get('fullname'), 'fullname', max_length=100),
            role=validate_choice(str(data.get('role') or 'user').strip(), 'role', USER_ROLES),
        )

        if self._find_one(USERS, eq('email', user.email), columns='id') or \
                self._find_one(USERS, eq('employee_id', user.employee_id), columns='id'):
            raise ConflictError('User already exists', status_code=400)

        row = self._insert(USERS, user.to_record(), conflict_status=400)
        logger.info(f"User registered: {row['id']} ({user.role})")
        return {k: v for k, v in row.items() if k != 'password'}

    def count(self) -> int:
        return self._count(USERS)
