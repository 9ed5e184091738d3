"""
Database Schema Models for the publication repository.

This module defines the data models that correspond to the database tables
defined in db/er_supabase/init_tables.sql. Operations build these before
inserting so that every record written has the same shape; ``to_record``
drops unset fields so the database defaults (ids, timestamps) apply.
"""

from typing import Optional, List, Dict, Any
from dataclasses import dataclass, field, asdict
from datetime import date, datetime


ADMIN_ROLES = ('admin', 'super-admin', 'moderator')
USER_ROLES = ('admin', 'user', 'HOD', 'author', 'super-admin')
JOURNAL_TYPES = ('journal', 'conference', 'book', 'book-chapter', 'patent', 'other')


class Record:
    """Mixin turning a dataclass into an insertable row."""

    def to_record(self) -> Dict[str, Any]:
        row = {}
        for key, value in asdict(self).items():
            if value is None:
                continue
            if isinstance(value, (date, datetime)):
                value = value.isoformat()
            row[key] = value
        return row


@dataclass
class Department(Record):
    """An academic department; referenced by authors and publications."""
    name: str
    code: str
    university: str
    head: Optional[str] = None
    description: Optional[str] = None
    is_active: bool = True
    id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Author(Record):
    """A template (publication_id is None) or an assignment to one publication slot."""
    employee_id: str
    author_name: str
    department: str
    password: str
    email: Optional[str] = None
    publication_id: Optional[str] = None
    author_order: Optional[int] = None
    is_active: bool = True
    id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Publication(Record):
    """A stored publication; only created once its file has a URL."""
    title: str
    abstract: str
    publication_date: date
    isbn: str
    file_url: str
    department: str
    issn: Optional[str] = None
    journal: Optional[str] = None
    journal_type: Optional[str] = None
    keywords: List[str] = field(default_factory=list)
    co_author_count: int = 0
    file_hash: Optional[str] = None
    page_count: Optional[int] = None
    id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Admin(Record):
    employee_id: str
    fullname: str
    email: str
    password: str
    role: str = 'admin'
    phone: Optional[str] = None
    is_active: bool = True
    bootstrap: bool = False
    id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class User(Record):
    """An institution user identity registered through /register."""
    employee_id: str
    email: str
    password: str
    fullname: Optional[str] = None
    role: str = 'user'
    id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class AdminSession(Record):
    id: str
    admin_id: str
    role: str
    expires_at: datetime
    last_accessed: Optional[datetime] = None
