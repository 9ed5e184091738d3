"""
Author registration and publication assignment.

An author row with ``publication_id`` NULL is a template: a registered person
not yet tied to a publication. Assigning that person to a publication copies
the template into a new row carrying ``publication_id`` and ``author_order``.
Per publication, employee ids and author orders are unique; the pre-checks
below only exit early, the unique indexes on (publication_id, employee_id)
and (publication_id, author_order) are what actually enforce it. Orders are
never renumbered, so gaps are normal.

publications.co_author_count is written only by the authors_co_author_count
trigger in init_tables.sql, in the same transaction as the author change.
"""
from typing import Any, Dict, List, Optional
import logging

from postgrest.exceptions import APIError
from werkzeug.security import generate_password_hash

from db.base_operations import BaseOperations
from db.department_operations import DepartmentOperations
from db.errors import translate_api_error, violated_constraint
from db.query_builder import PageSpec, QuerySpec, SortSpec, eq, is_null, not_null, one_of
from exceptions import ConflictError, NotFoundError, ValidationError
from publication_utils.validators import (
    clean_text,
    normalize_email,
    normalize_employee_id,
    parse_author_order,
    require_fields,
)
from schemas import Author

logger = logging.getLogger(__name__)

AUTHORS = 'authors'
PUBLICATIONS = 'publications'

# everything except the password
AUTHOR_PUBLIC_COLUMNS = (
    'id, employee_id, author_name, email, department, publication_id, '
    'author_order, is_active, created_at, updated_at'
)
AUTHOR_SORT_FIELDS = ('created_at', 'updated_at', 'author_name', 'email', 'employee_id')
AUTHOR_DEFAULT_SORT = 'created_at'

OVERRIDABLE_FIELDS = ('author_name', 'email', 'department')


def public_author(row: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in row.items() if k != 'password'}


class AuthorOperations(BaseOperations):
    """Author templates, assignments and co-author bookkeeping"""

    def __init__(self, supabase):
        super().__init__(supabase)
        self.departments = DepartmentOperations(supabase)

    # ---------- templates ----------

    def register_author(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Register an unassigned author (template record)

        Args:
            data: employee_id, author_name, department, password, optional email

        Returns:
            dict: the stored template without its password

        Raises:
            ValidationError: missing fields or unknown department
            ConflictError: an active template already exists for employee_id
        """
        require_fields(data, ('employee_id', 'author_name', 'department', 'password'))
        employee_id = normalize_employee_id(data['employee_id'])
        department = self.departments.require_department(data['department'])

        author = Author(
            employee_id=employee_id,
            author_name=clean_text(data['author_name'], 'author_name', max_length=100),
            department=department['id'],
            password=generate_password_hash(str(data['password'])),
            email=normalize_email(data.get('email')),
        )

        if self.get_template(employee_id):
            raise ConflictError(f'Author {employee_id} is already registered')

        row = self._insert(AUTHORS, author.to_record())
        logger.info(f"Author template registered: {row['id']} (employee {employee_id})")
        return public_author(row)

    def get_template(self, employee_id: str) -> Optional[Dict[str, Any]]:
        """Active unassigned record for ``employee_id``, password included."""
        return self._find_one(
            AUTHORS,
            eq('employee_id', employee_id),
            is_null('publication_id'),
            eq('is_active', True),
        )

    def get_unassigned_authors(self, page: PageSpec, sort: Optional[SortSpec] = None) -> Dict[str, Any]:
        sort = sort or SortSpec(AUTHOR_DEFAULT_SORT)
        spec = (QuerySpec(AUTHORS, columns=AUTHOR_PUBLIC_COLUMNS)
                .where(is_null('publication_id'))
                .sorted_by(sort)
                .paged(page))
        rows, total = self._page(spec)
        return page.paginate(rows, total)

    def delete_unassigned_author(self, employee_id: Any) -> Dict[str, Any]:
        """
        Delete the template of an author who has no assignments left

        Raises:
            ConflictError: assignments still reference employee_id
            NotFoundError: no template exists
        """
        employee_id = normalize_employee_id(employee_id)
        if self._count(AUTHORS, eq('employee_id', employee_id), not_null('publication_id')):
            raise ConflictError(f'Author {employee_id} has publication assignments; remove assignments first')

        template = self.get_template(employee_id) or self._find_one(
            AUTHORS, eq('employee_id', employee_id), is_null('publication_id'))
        if not template:
            raise NotFoundError(f'No unassigned author found for employee ID {employee_id}')

        row = self._delete(AUTHORS, template['id'])
        logger.info(f"Author template deleted: {template['id']} (employee {employee_id})")
        return public_author(row or template)

    # ---------- assignments ----------

    def assign_author_to_publication(self, employee_id: Any, publication_id: Any, author_order: Any,
                                     overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Put a registered author into one ordered slot of a publication

        Args:
            employee_id: the registered author
            publication_id: target publication
            author_order: positive slot number, 1 is the primary author
            overrides: optional author_name / email / department for this assignment only

        Returns:
            dict: the new assignment record without its password

        Raises:
            NotFoundError: author not registered, or publication missing
            ConflictError: already assigned, or order taken
            ValidationError: order is not a positive integer, bad override
        """
        employee_id = normalize_employee_id(employee_id)
        if not publication_id:
            raise ValidationError('Publication ID is required')
        publication_id = str(publication_id)

        template = self.get_template(employee_id)
        if not template:
            raise NotFoundError(f'Author {employee_id} is not registered; register the author first')
        if not self._get(PUBLICATIONS, publication_id, columns='id'):
            raise NotFoundError('Publication not found')

        if self._find_one(AUTHORS, eq('publication_id', publication_id), eq('employee_id', employee_id),
                          eq('is_active', True), columns='id'):
            raise ConflictError(self._already_assigned_message(employee_id))

        order = parse_author_order(author_order)
        if order is not None and self._find_one(AUTHORS, eq('publication_id', publication_id),
                                                eq('author_order', order), columns='id'):
            raise ConflictError(self._order_taken_message(order))
        if order is None:
            raise ValidationError('Author order must be a positive integer')

        assignment = Author(
            employee_id=employee_id,
            author_name=template['author_name'],
            department=template['department'],
            password=template['password'],
            email=template.get('email'),
            publication_id=publication_id,
            author_order=order,
        )
        self._apply_overrides(assignment, overrides or {})
        if order == 1 and not assignment.email:
            raise ValidationError('Email is required for the primary author')

        try:
            result = self.supabase.table(AUTHORS).insert(assignment.to_record()).execute()
        except APIError as e:
            constraint = violated_constraint(e)
            if constraint == 'authors_publication_order_key':
                raise ConflictError(self._order_taken_message(order)) from e
            if constraint == 'authors_publication_employee_key':
                raise ConflictError(self._already_assigned_message(employee_id)) from e
            raise translate_api_error(e) from e
        row = result.data[0]

        count = self.co_author_count(publication_id)
        logger.info(f"Author {employee_id} assigned to publication {publication_id} at order {order} "
                    f"(co-authors: {count})")
        return public_author(row)

    def remove_assignment(self, author_record_id: str) -> Dict[str, Any]:
        """Delete one assignment record (never a template) and refresh the publication's count."""
        record = self._get(AUTHORS, author_record_id)
        if not record:
            raise NotFoundError('Author assignment not found')
        if record.get('publication_id') is None:
            raise ValidationError('Record is an unassigned author, not an assignment')

        self._delete(AUTHORS, author_record_id)
        count = self.co_author_count(record['publication_id'])
        logger.info(f"Assignment {author_record_id} removed from publication {record['publication_id']} "
                    f"(co-authors: {count})")
        return public_author(record)

    def co_author_count(self, publication_id: str) -> int:
        """Stored co_author_count; the authors_co_author_count trigger keeps it equal to the active assignments."""
        publication = self._get(PUBLICATIONS, publication_id, columns='co_author_count')
        return publication['co_author_count'] if publication else 0

    def get_co_authors(self, publication_id: str, excluding_author_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Active assignments of a publication ordered by author_order, optionally minus one record."""
        spec = (QuerySpec(AUTHORS, columns=AUTHOR_PUBLIC_COLUMNS)
                .where(eq('publication_id', publication_id), eq('is_active', True))
                .sorted_by(SortSpec('author_order', descending=False)))
        rows = self._fetch(spec)
        if excluding_author_id:
            rows = [row for row in rows if row['id'] != excluding_author_id]
        return rows

    def get_primary_author(self, publication_id: str) -> Optional[Dict[str, Any]]:
        return self._find_one(AUTHORS, eq('publication_id', publication_id), eq('author_order', 1),
                              columns=AUTHOR_PUBLIC_COLUMNS)

    def get_author_publications(self, employee_id: Any) -> List[Dict[str, Any]]:
        """Assignments of ``employee_id``, each with the publication it references under 'publication'."""
        employee_id = normalize_employee_id(employee_id)
        spec = (QuerySpec(AUTHORS, columns=AUTHOR_PUBLIC_COLUMNS)
                .where(eq('employee_id', employee_id), not_null('publication_id'))
                .sorted_by(SortSpec('created_at')))
        assignments = self._fetch(spec)
        if not assignments:
            return []

        publication_ids = sorted({a['publication_id'] for a in assignments})
        publications = self._find(
            PUBLICATIONS, one_of('id', publication_ids),
            columns='id, title, publication_date, isbn, journal, department, co_author_count, file_url',
        )
        by_id = {p['id']: p for p in publications}
        return [dict(a, publication=by_id.get(a['publication_id'])) for a in assignments]

    def count(self) -> Dict[str, int]:
        templates = self._count(AUTHORS, is_null('publication_id'))
        assignments = self._count(AUTHORS, not_null('publication_id'))
        return {'total': templates + assignments, 'templates': templates, 'assignments': assignments}

    # ---------- helpers ----------

    def _apply_overrides(self, assignment: Author, overrides: Dict[str, Any]) -> None:
        unknown = set(overrides) - set(OVERRIDABLE_FIELDS)
        if unknown:
            raise ValidationError(f'Cannot override: {", ".join(sorted(unknown))}')
        if overrides.get('author_name'):
            assignment.author_name = clean_text(overrides['author_name'], 'author_name', max_length=100)
        if overrides.get('email'):
            assignment.email = normalize_email(overrides['email'])
        if overrides.get('department'):
            assignment.department = self.departments.require_department(overrides['department'])['id']

    @staticmethod
    def _already_assigned_message(employee_id: str) -> str:
        return f'Author {employee_id} is already assigned to this publication'

    @staticmethod
    def _order_taken_message(order: int) -> str:
        return f'Author order {order} already taken for this publication'
