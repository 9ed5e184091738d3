"""
Translate storage-layer failures into the repository error taxonomy.

The unique indexes in init_tables.sql are the authoritative guard against
duplicate identities and author-slot collisions; a 23505 coming back from
PostgREST is reported exactly like the matching application pre-check.
"""
import logging
from typing import Optional

from postgrest.exceptions import APIError

from exceptions import ConflictError, InternalError, RepositoryError, ValidationError

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = '23505'
FOREIGN_KEY_VIOLATION = '23503'
INVALID_TEXT_REPRESENTATION = '22P02'

# constraint name -> message; compound names come first since matching is by substring
DUPLICATE_KEY_MESSAGES = (
    ('authors_publication_order_key', 'Author order is already taken for this publication'),
    ('authors_publication_employee_key', 'Author is already assigned to this publication'),
    ('authors_active_template_key', 'An unassigned author with this employee ID already exists'),
    ('publications_isbn_key', 'A publication with this ISBN already exists'),
    ('publications_issn_key', 'A publication with this ISSN already exists'),
    ('departments_name_key', 'A department with this name already exists'),
    ('departments_code_key', 'A department with this code already exists'),
    ('admins_email_key', 'An admin with this email already exists'),
    ('admins_employee_id_key', 'An admin with this employee ID already exists'),
    ('admins_bootstrap_key', 'The first admin account has already been registered'),
    ('users_email_key', 'User already exists'),
    ('users_employee_id_key', 'User already exists'),
)


def _error_text(error: APIError) -> str:
    return ' '.join(str(part) for part in (error.message, error.details, error.hint) if part)


def violated_constraint(error: APIError) -> Optional[str]:
    """Name of the unique constraint ``error`` reports, or None if it is not a unique violation."""
    if str(error.code) != UNIQUE_VIOLATION:
        return None
    text = _error_text(error)
    for constraint, _ in DUPLICATE_KEY_MESSAGES:
        if constraint in text:
            return constraint
    return ''


def translate_api_error(error: APIError, conflict_status: Optional[int] = None) -> RepositoryError:
    """
    Map a PostgREST error onto ConflictError / ValidationError / InternalError

    Args:
        error: the APIError raised by the client
        conflict_status: status code for duplicate-key conflicts, when a route answers 400 instead of 409

    Returns:
        RepositoryError: the error to raise
    """
    constraint = violated_constraint(error)
    if constraint is not None:
        message = dict(DUPLICATE_KEY_MESSAGES).get(constraint, 'Duplicate value violates a unique constraint')
        return ConflictError(message, status_code=conflict_status)
    code = str(error.code)
    if code == FOREIGN_KEY_VIOLATION:
        return ValidationError('Referenced record does not exist')
    if code == INVALID_TEXT_REPRESENTATION:
        return ValidationError('Invalid identifier')
    logger.error(f"Unexpected storage error: {code} {_error_text(error)}")
    return InternalError('Storage error')
