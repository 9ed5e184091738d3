"""Field validation and normalisation for incoming registration payloads."""
import re
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from exceptions import ValidationError

ISBN_PATTERN = re.compile(r'^(97(8|9))?\d{9}(\d|X)$')
ISSN_PATTERN = re.compile(r'^\d{4}-?\d{3}[\dX]$')
EMAIL_PATTERN = re.compile(r'^\w+([.-]?\w+)*@\w+([.-]?\w+)*(\.\w{2,3})+$')
URL_PATTERN = re.compile(r'^https?://.+')

KEYWORD_MAX_LENGTH = 50


def require_fields(data: Dict[str, Any], names: Iterable[str]) -> None:
    """Raise ValidationError naming every required field that is absent or blank."""
    missing = []
    for name in names:
        value = data.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(name)
    if missing:
        raise ValidationError(
            'Please provide all required fields',
            details={'missing_fields': missing},
        )


def clean_text(value: Any, field: str, max_length: Optional[int] = None) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f'{field} must be max {max_length} characters')
    return text


def normalize_employee_id(value: Any) -> str:
    employee_id = clean_text(value, 'employee_id', max_length=20)
    if not employee_id:
        raise ValidationError('Employee ID is required')
    return employee_id


def normalize_email(value: Any, required: bool = False) -> Optional[str]:
    email = clean_text(value, 'email')
    if email is None:
        if required:
            raise ValidationError('Email is required')
        return None
    email = email.lower()
    if not EMAIL_PATTERN.match(email):
        raise ValidationError('Please enter a valid email address')
    return email


def normalize_isbn(value: Any) -> str:
    """Strip separators, uppercase, and check ISBN-10/ISBN-13 shape."""
    isbn = re.sub(r'[\s-]', '', str(value or '')).upper()
    if not ISBN_PATTERN.match(isbn):
        raise ValidationError('Invalid ISBN format. Use ISBN-10 or ISBN-13 format')
    return isbn


def normalize_issn(value: Any) -> Optional[str]:
    issn = clean_text(value, 'issn')
    if issn is None:
        return None
    issn = issn.upper()
    if not ISSN_PATTERN.match(issn):
        raise ValidationError('Invalid ISSN format. Use NNNN-NNNC')
    if '-' not in issn:
        issn = f'{issn[:4]}-{issn[4:]}'
    return issn


def normalize_keywords(value: Any) -> List[str]:
    """Accept a list or a comma separated string; lowercase, trim and de-duplicate in order."""
    if value is None:
        return []
    if isinstance(value, str):
        raw = value.split(',')
    else:
        raw = list(value)
    keywords = []
    for item in raw:
        keyword = str(item).strip().lower()
        if not keyword:
            continue
        if len(keyword) > KEYWORD_MAX_LENGTH:
            raise ValidationError(f'Each keyword must be max {KEYWORD_MAX_LENGTH} characters')
        if keyword not in keywords:
            keywords.append(keyword)
    return keywords


def parse_int(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be an integer')
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be an integer')
    return number


def parse_author_order(value: Any) -> Optional[int]:
    """Return the order as a positive int, or None when it is not one."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, float):
        if not value.is_integer():
            return None
        value = int(value)
    try:
        order = int(str(value).strip())
    except ValueError:
        return None
    return order if order >= 1 else None


def parse_publication_date(raw_date: Any = None, month: Any = None, year: Any = None) -> date:
    """Parse an ISO date, or build the first day of ``month``/``year``."""
    if raw_date:
        text = str(raw_date).strip()[:10]
        try:
            return date.fromisoformat(text)
        except ValueError:
            raise ValidationError('Publication date must be an ISO date (YYYY-MM-DD)')
    if year is None:
        raise ValidationError('Publication date is required')
    year_number = parse_int(year, 'year')
    month_number = parse_int(month, 'month') if month not in (None, '') else 1
    if not 1 <= month_number <= 12:
        raise ValidationError('month must be between 1 and 12')
    try:
        return date(year_number, month_number, 1)
    except ValueError:
        raise ValidationError('year is out of range')


def validate_choice(value: Any, field: str, choices: Iterable[str]) -> str:
    choices = tuple(choices)
    if value not in choices:
        raise ValidationError(f'{field} must be one of: {", ".join(choices)}')
    return value


def validate_file_url(value: Any) -> str:
    url = clean_text(value, 'file_url', max_length=500)
    if not url or not URL_PATTERN.match(url):
        raise ValidationError('File URL must be a valid HTTP/HTTPS URL')
    return url
