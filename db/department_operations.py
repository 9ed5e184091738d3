from typing import Any, Dict, List, Optional
import logging

from config import DEPARTMENT_CODES
from db.base_operations import BaseOperations
from db.query_builder import eq
from exceptions import ConflictError, NotFoundError, ValidationError
from publication_utils.validators import clean_text, require_fields, validate_choice
from schemas import Department

logger = logging.getLogger(__name__)

DEPARTMENTS = 'departments'


class DepartmentOperations(BaseOperations):
    """Department registration and guarded deletion"""

    def register_department(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a department

        Args:
            data: name, code, university, optional head/description

        Returns:
            dict: the stored department

        Raises:
            ValidationError: missing fields or unknown code
            ConflictError: name or code already used (answered as 400)
        """
        require_fields(data, ('name', 'code', 'university'))
        department = Department(
            name=clean_text(data['name'], 'name', max_length=100),
            code=validate_choice(str(data['code']).strip().upper(), 'code', DEPARTMENT_CODES),
            university=clean_text(data['university'], 'university', max_length=200),
            head=clean_text(data.get('head'), 'head', max_length=100),
            description=clean_text(data.get('description'), 'description', max_length=1000),
        )

        if self._find_one(DEPARTMENTS, eq('name', department.name), columns='id'):
            raise ConflictError('A department with this name already exists', status_code=400)
        if self._find_one(DEPARTMENTS, eq('code', department.code), columns='id'):
            raise ConflictError('A department with this code already exists', status_code=400)

        row = self._insert(DEPARTMENTS, department.to_record(), conflict_status=400)
        logger.info(f"Department created: {row['id']} ({department.code})")
        return row

    def get_department(self, department_id: str) -> Optional[Dict[str, Any]]:
        return self._get(DEPARTMENTS, department_id)

    def require_department(self, department_id: Any) -> Dict[str, Any]:
        """Resolve a department reference or fail with ValidationError."""
        if not department_id:
            raise ValidationError('Department is required')
        department = self.get_department(str(department_id))
        if not department:
            raise ValidationError('Department does not exist')
        return department

    def list_departments(self) -> List[Dict[str, Any]]:
        return sorted(self._find(DEPARTMENTS), key=lambda d: d.get('name') or '')

    def delete_department(self, department_id: str) -> Dict[str, Any]:
        """Delete a department nothing references any more."""
        if not self.get_department(department_id):
            raise NotFoundError('Department not found')
        if self._count('authors', eq('department', department_id)):
            raise ConflictError('Department still has authors; remove them first')
        if self._count('publications', eq('department', department_id)):
            raise ConflictError('Department still has publications; remove them first')
        row = self._delete(DEPARTMENTS, department_id)
        logger.info(f"Department deleted: {department_id}")
        return row

    def count(self) -> int:
        return self._count(DEPARTMENTS)
