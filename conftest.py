"""
Shared fixtures: an in-memory stand-in for the Supabase client and a Flask test client.

``FakeSupabase`` implements the slice of the supabase-py / postgrest builder API
the operations use (select with exact count, the filter methods, order, range,
insert, update, delete, execute) and a storage bucket. Unique constraints mirror
db/er_supabase/init_tables.sql and are reported the way PostgREST reports them:
``postgrest.exceptions.APIError`` with code 23505 naming the constraint.
"""
from datetime import datetime, timedelta, timezone
import copy
import re
import uuid

import fitz
import pytest
from postgrest.exceptions import APIError

from config import UPLOAD_CONFIG

# table -> [(constraint, columns, row filter)]; NULLs never collide
UNIQUE_CONSTRAINTS = {
    'departments': [
        ('departments_name_key', ('name',), None),
        ('departments_code_key', ('code',), None),
    ],
    'publications': [
        ('publications_isbn_key', ('isbn',), None),
        ('publications_issn_key', ('issn',), None),
    ],
    'authors': [
        ('authors_publication_employee_key', ('publication_id', 'employee_id'), None),
        ('authors_publication_order_key', ('publication_id', 'author_order'), None),
        ('authors_active_template_key', ('employee_id',),
         lambda row: row.get('publication_id') is None and row.get('is_active', True)),
    ],
    'admins': [
        ('admins_email_key', ('email',), None),
        ('admins_employee_id_key', ('employee_id',), None),
        ('admins_bootstrap_key', ('bootstrap',), lambda row: bool(row.get('bootstrap'))),
    ],
    'users': [
        ('users_email_key', ('email',), None),
        ('users_employee_id_key', ('employee_id',), None),
    ],
}

COLUMN_DEFAULTS = {
    'departments': {'is_active': True},
    'publications': {'keywords': [], 'co_author_count': 0},
    'authors': {'is_active': True, 'publication_id': None, 'author_order': None, 'email': None},
    'admins': {'is_active': True, 'role': 'admin', 'phone': None, 'bootstrap': False},
    'users': {'role': 'user', 'fullname': None},
}

TIMESTAMPED = ('departments', 'publications', 'authors', 'admins', 'users')


def like_to_regex(pattern):
    """PostgREST ilike: ``*`` and ``%`` match any run, ``_`` one character, backslash escapes."""
    parts = []
    chars = iter(pattern)
    for char in chars:
        if char == '\\':
            parts.append(re.escape(next(chars, '\\')))
        elif char in '%*':
            parts.append('.*')
        elif char == '_':
            parts.append('.')
        else:
            parts.append(re.escape(char))
    return '^' + ''.join(parts) + '$'


class FakeResult:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


class FakeQuery:
    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.action = None
        self.columns = '*'
        self.count_mode = None
        self.payload = None
        self.filters = []
        self.orders = []
        self.bounds = None
        self.negate_next = False

    # ---------- actions ----------

    def select(self, columns='*', count=None):
        self.action, self.columns, self.count_mode = 'select', columns, count
        return self

    def insert(self, record):
        self.action, self.payload = 'insert', record
        return self

    def update(self, changes):
        self.action, self.payload = 'update', changes
        return self

    def delete(self):
        self.action = 'delete'
        return self

    # ---------- filters ----------

    def _filter(self, test):
        if self.negate_next:
            self.negate_next = False
            self.filters.append(lambda row: not test(row))
        else:
            self.filters.append(test)
        return self

    @property
    def not_(self):
        self.negate_next = True
        return self

    def eq(self, column, value):
        return self._filter(lambda row: row.get(column) == value)

    def neq(self, column, value):
        return self._filter(lambda row: row.get(column) != value)

    def gte(self, column, value):
        return self._filter(lambda row: row.get(column) is not None and row[column] >= value)

    def lt(self, column, value):
        return self._filter(lambda row: row.get(column) is not None and row[column] < value)

    def ilike(self, column, pattern):
        regex = re.compile(like_to_regex(pattern), re.IGNORECASE | re.DOTALL)
        return self._filter(lambda row: row.get(column) is not None and bool(regex.match(str(row[column]))))

    def in_(self, column, values):
        values = list(values)
        return self._filter(lambda row: row.get(column) in values)

    def ov(self, column, values):
        values = set(values)
        return self._filter(lambda row: bool(set(row.get(column) or []) & values))

    def is_(self, column, value):
        assert value == 'null'
        return self._filter(lambda row: row.get(column) is None)

    def order(self, column, desc=False):
        self.orders.append((column, desc))
        return self

    def range(self, start, end):
        self.bounds = (start, end)
        return self

    def limit(self, size):
        self.bounds = (0, size - 1)
        return self

    # ---------- execution ----------

    def _matching(self):
        return [row for row in self.db.tables.setdefault(self.table, []) if all(f(row) for f in self.filters)]

    def _project(self, row):
        if self.columns.strip() == '*':
            return copy.deepcopy(row)
        names = [name.strip() for name in self.columns.split(',')]
        return {name: copy.deepcopy(row.get(name)) for name in names}

    def execute(self):
        self.db.calls.append((self.table, self.action))
        if self.action == 'select':
            rows = self._matching()
            for column, desc in reversed(self.orders):
                present = [r for r in rows if r.get(column) is not None]
                missing = [r for r in rows if r.get(column) is None]
                present.sort(key=lambda r: r[column], reverse=desc)
                rows = present + missing
            total = len(rows)
            if self.bounds is not None:
                if self.count_mode and self.bounds[0] > total:
                    raise APIError({
                        'code': 'PGRST103',
                        'message': 'Requested range not satisfiable',
                        'details': f'An offset of {self.bounds[0]} was requested, but there are only {total} rows.',
                        'hint': None,
                    })
                rows = rows[self.bounds[0]:self.bounds[1] + 1]
            if self.db.max_rows is not None:
                rows = rows[:self.db.max_rows]
            return FakeResult([self._project(r) for r in rows], total if self.count_mode else None)
        if self.action == 'insert':
            return FakeResult([copy.deepcopy(self.db.insert_row(self.table, self.payload))])
        if self.action == 'update':
            updated = []
            for row in self._matching():
                before = dict(row)
                candidate = dict(row, **copy.deepcopy(self.payload))
                if self.table in TIMESTAMPED:
                    candidate['updated_at'] = self.db.now()
                self.db.check_unique(self.table, candidate, ignore=row)
                row.update(candidate)
                self.db.after_write(self.table, before, row)
                updated.append(copy.deepcopy(row))
            return FakeResult(updated)
        if self.action == 'delete':
            doomed = self._matching()
            self.db.tables[self.table] = [r for r in self.db.tables[self.table] if r not in doomed]
            for row in doomed:
                self.db.after_write(self.table, row, None)
            return FakeResult(copy.deepcopy(doomed))
        raise AssertionError(f'no action on {self.table}')


class FakeBucket:
    def __init__(self, storage, name):
        self.storage = storage
        self.name = name

    def upload(self, path, file, file_options=None):
        if self.storage.fail_uploads:
            raise RuntimeError('storage unavailable')
        self.storage.objects[(self.name, path)] = file
        self.storage.uploads.append(path)
        return {'Key': f'{self.name}/{path}'}

    def get_public_url(self, path):
        return f'https://storage.test/{self.name}/{path}?'

    def remove(self, paths):
        for path in paths:
            self.storage.objects.pop((self.name, path), None)
        return []


class FakeStorage:
    def __init__(self):
        self.objects = {}
        self.uploads = []
        self.fail_uploads = False

    def from_(self, bucket):
        return FakeBucket(self, bucket)


class FakeSupabase:
    def __init__(self):
        self.tables = {}
        self.calls = []
        self.storage = FakeStorage()
        self.before_insert = {}
        # PostgREST max-rows; None for no cap
        self.max_rows = None
        self._clock = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def table(self, name):
        return FakeQuery(self, name)

    def now(self):
        # strictly increasing so created_at orders by insertion
        self._clock += timedelta(seconds=1)
        return self._clock.isoformat()

    def check_unique(self, table, row, ignore=None):
        for constraint, columns, applies in UNIQUE_CONSTRAINTS.get(table, []):
            key = tuple(row.get(c) for c in columns)
            if any(v is None for v in key) or (applies and not applies(row)):
                continue
            for other in self.tables.get(table, []):
                if other is ignore or (applies and not applies(other)):
                    continue
                if tuple(other.get(c) for c in columns) == key:
                    raise APIError({
                        'code': '23505',
                        'message': f'duplicate key value violates unique constraint "{constraint}"',
                        'details': f'Key ({", ".join(columns)})=({", ".join(map(str, key))}) already exists.',
                        'hint': None,
                    })

    def insert_row(self, table, record):
        hook = self.before_insert.pop(table, None)
        if hook:
            hook(record)
        row = dict(COLUMN_DEFAULTS.get(table, {}))
        row.update(copy.deepcopy(record))
        row.setdefault('id', str(uuid.uuid4()))
        if table in TIMESTAMPED:
            row.setdefault('created_at', self.now())
            row.setdefault('updated_at', row['created_at'])
        self.check_unique(table, row)
        self.tables.setdefault(table, []).append(row)
        self.after_write(table, None, row)
        return row

    def after_write(self, table, old, new):
        """The authors_co_author_count trigger of init_tables.sql."""
        if table != 'authors':
            return
        affected = {row.get('publication_id') for row in (old, new) if row is not None} - {None}
        for publication_id in affected:
            count = sum(1 for a in self.tables.get('authors', [])
                        if a.get('publication_id') == publication_id and a.get('is_active', True))
            for publication in self.tables.get('publications', []):
                if publication['id'] == publication_id:
                    publication['co_author_count'] = count

    def rows(self, table):
        return self.tables.get(table, [])


def make_pdf(pages=1, text=None):
    """A real PDF built with PyMuPDF; ``text`` changes the bytes and so the hash."""
    doc = fitz.open()
    for number in range(pages):
        page = doc.new_page()
        page.insert_text((72, 72), text or f'page {number + 1}')
    content = doc.tobytes()
    doc.close()
    return content


@pytest.fixture
def supabase():
    return FakeSupabase()


@pytest.fixture
def department(supabase):
    from db.department_operations import DepartmentOperations
    return DepartmentOperations(supabase).register_department({
        'name': 'Computer Science',
        'code': 'CSE',
        'university': 'State University',
    })


@pytest.fixture
def blob_store(supabase):
    from db.storage import SupabaseBlobStore
    return SupabaseBlobStore(supabase, bucket_name='publications')


@pytest.fixture
def publication_data(department):
    return {
        'title': 'Graph Neural Networks for Traffic Forecasting',
        'abstract': 'We forecast road traffic with spatio-temporal graph networks.',
        'isbn': '9780134190440',
        'department': department['id'],
        'publication_date': '2023-05-10',
        'journal': 'Transportation Research',
        'journal_type': 'journal',
        'keywords': 'Graphs, traffic, deep learning',
    }


@pytest.fixture
def publication(supabase, blob_store, publication_data):
    from db.publication_operations import PublicationOperations
    return PublicationOperations(supabase, blob_store).register_publication(publication_data, make_pdf())


@pytest.fixture
def staging_dir(tmp_path, monkeypatch):
    monkeypatch.setitem(UPLOAD_CONFIG, 'staging_dir', str(tmp_path))
    return tmp_path


@pytest.fixture
def app(supabase, staging_dir):
    from api import create_app
    app = create_app(supabase=supabase)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


SUPER_ADMIN = {
    'employee_id': 'ADM001',
    'fullname': 'Root Admin',
    'email': 'root@univ.edu',
    'password': 'rootpass',
}


@pytest.fixture
def admin_client(client):
    """The ``client`` fixture itself, logged in with a super-admin session cookie."""
    response = client.post('/api/admin/register', json=SUPER_ADMIN)
    assert response.status_code == 201
    response = client.post('/api/admin/login', json={'email': SUPER_ADMIN['email'],
                                                     'password': SUPER_ADMIN['password']})
    assert response.status_code == 200
    return client


@pytest.fixture
def pdf_factory():
    return make_pdf
