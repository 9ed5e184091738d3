"""
Composable query specifications translated onto the Supabase (PostgREST) builder.

A ``QuerySpec`` is a table, a list of ``Predicate`` filters combined with AND,
an optional ``SortSpec`` and an optional ``PageSpec``. Specs are plain values:
search operations build them, tests inspect them, and only ``execute`` talks
to the client.

PostgREST caps every response at its ``max-rows`` setting, so unpaged
fetches are read in ``fetch_batch`` windows until an empty window comes back.
"""
import math
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence, Tuple

from postgrest.exceptions import APIError

from config import PAGINATION_CONFIG

OPERATORS = ('eq', 'neq', 'ilike', 'gte', 'lt', 'in', 'overlaps', 'is_null', 'not_null')

# PostgREST: offset past the end of an exact-counted result
RANGE_NOT_SATISFIABLE = 'PGRST103'

LIKE_SPECIAL = ('\\', '%', '_')


def escape_like(fragment: str) -> str:
    """
    Make ``fragment`` match literally inside an ILIKE pattern

    Backslash, % and _ are escaped. PostgREST rewrites every ``*`` in a like
    pattern to ``%`` and offers no escape for it, so ``*`` becomes the
    single-character wildcard ``_``.
    """
    escaped = str(fragment)
    for char in LIKE_SPECIAL:
        escaped = escaped.replace(char, '\\' + char)
    return escaped.replace('*', '_')


@dataclass(frozen=True)
class Predicate:
    field: str
    op: str
    value: Any = None

    def __post_init__(self):
        if self.op not in OPERATORS:
            raise ValueError(f"unsupported operator: {self.op}")

    def apply(self, query):
        if self.op == 'eq':
            return query.eq(self.field, self.value)
        if self.op == 'neq':
            return query.neq(self.field, self.value)
        if self.op == 'ilike':
            return query.ilike(self.field, f'%{escape_like(self.value)}%')
        if self.op == 'gte':
            return query.gte(self.field, self.value)
        if self.op == 'lt':
            return query.lt(self.field, self.value)
        if self.op == 'in':
            return query.in_(self.field, list(self.value))
        if self.op == 'overlaps':
            return query.ov(self.field, list(self.value))
        if self.op == 'is_null':
            return query.is_(self.field, 'null')
        return query.not_.is_(self.field, 'null')


def eq(name: str, value: Any) -> Predicate:
    return Predicate(name, 'eq', value)


def neq(name: str, value: Any) -> Predicate:
    return Predicate(name, 'neq', value)


def contains_text(name: str, fragment: str) -> Predicate:
    """Case-insensitive substring match."""
    return Predicate(name, 'ilike', fragment)


def one_of(name: str, values: Sequence[Any]) -> Predicate:
    return Predicate(name, 'in', tuple(values))


def overlaps(name: str, values: Sequence[Any]) -> Predicate:
    return Predicate(name, 'overlaps', tuple(values))


def is_null(name: str) -> Predicate:
    return Predicate(name, 'is_null')


def not_null(name: str) -> Predicate:
    return Predicate(name, 'not_null')


def half_open(name: str, start: str, end: str) -> List[Predicate]:
    """``start <= name < end``"""
    return [Predicate(name, 'gte', start), Predicate(name, 'lt', end)]


def year_bounds(year: int) -> Tuple[str, str]:
    return f'{year:04d}-01-01', f'{year + 1:04d}-01-01'


def year_range_bounds(start_year: int, end_year: int) -> Tuple[str, str]:
    return f'{start_year:04d}-01-01', f'{end_year + 1:04d}-01-01'


def month_bounds(year: int, month: int) -> Tuple[str, str]:
    if month == 12:
        return f'{year:04d}-12-01', f'{year + 1:04d}-01-01'
    return f'{year:04d}-{month:02d}-01', f'{year:04d}-{month + 1:02d}-01'


@dataclass(frozen=True)
class SortSpec:
    field: str
    descending: bool = True

    @classmethod
    def from_args(cls, sort_by: Optional[str], order: Optional[str], allowed: Sequence[str], default: str) -> 'SortSpec':
        """Fields outside ``allowed`` silently fall back to ``default``; order defaults to desc."""
        sort_field = sort_by if sort_by in allowed else default
        return cls(sort_field, descending=(order != 'asc'))

    def sort_rows(self, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Sort already fetched rows in memory; NULLs go last in both directions."""
        present = [r for r in rows if r.get(self.field) is not None]
        missing = [r for r in rows if r.get(self.field) is None]
        present.sort(key=lambda r: _sort_key(r.get(self.field)), reverse=self.descending)
        return present + missing


def _sort_key(value):
    if isinstance(value, str):
        return value.lower()
    return value


@dataclass(frozen=True)
class PageSpec:
    page: int = PAGINATION_CONFIG['default_page']
    limit: int = PAGINATION_CONFIG['default_limit']

    @classmethod
    def from_args(cls, page: Any = None, limit: Any = None) -> 'PageSpec':
        """Clamp ``page`` to >= 1 and ``limit`` to 1..max_limit; unparseable values use defaults."""
        page_number = _to_int(page, PAGINATION_CONFIG['default_page'])
        limit_number = _to_int(limit, PAGINATION_CONFIG['default_limit'])
        page_number = max(1, page_number)
        limit_number = max(1, min(PAGINATION_CONFIG['max_limit'], limit_number))
        return cls(page_number, limit_number)

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def end(self) -> int:
        # PostgREST ranges are inclusive
        return self.skip + self.limit - 1

    def slice(self, rows: List[Any]) -> List[Any]:
        return rows[self.skip:self.skip + self.limit]

    def paginate(self, items: List[Any], total_count: int) -> Dict[str, Any]:
        total_pages = math.ceil(total_count / self.limit) if total_count else 0
        return {
            'items': items,
            'page': self.page,
            'limit': self.limit,
            'total_count': total_count,
            'total_pages': total_pages,
            'has_next_page': self.page < total_pages,
            'has_prev_page': self.page > 1,
        }


def _to_int(value: Any, default: int) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(str(value).strip())
    except ValueError:
        return default


@dataclass(frozen=True)
class QuerySpec:
    table: str
    columns: str = '*'
    predicates: Tuple[Predicate, ...] = field(default_factory=tuple)
    sort: Optional[SortSpec] = None
    page: Optional[PageSpec] = None

    def where(self, *predicates: Predicate) -> 'QuerySpec':
        return replace(self, predicates=self.predicates + tuple(predicates))

    def sorted_by(self, sort: SortSpec) -> 'QuerySpec':
        return replace(self, sort=sort)

    def paged(self, page: Optional[PageSpec]) -> 'QuerySpec':
        return replace(self, page=page)

    def build(self, client, count: bool = True):
        query = client.table(self.table).select(self.columns, count='exact' if count else None)
        for predicate in self.predicates:
            query = predicate.apply(query)
        if self.sort is not None:
            query = query.order(self.sort.field, desc=self.sort.descending)
            if self.sort.field != 'id':
                # stable order across pages
                query = query.order('id')
        if self.page is not None:
            query = query.range(self.page.skip, self.page.end)
        return query

    def execute(self, client) -> Tuple[List[Dict[str, Any]], int]:
        """Run the query; returns the rows and the exact count of matching rows (ignoring paging)."""
        try:
            result = self.build(client).execute()
        except APIError as e:
            if self.page is None or str(e.code) != RANGE_NOT_SATISFIABLE:
                raise
            # page past the last row: empty, but the total is still reported
            counted = self.paged(PageSpec(1, 1)).build(client).execute()
            return [], counted.count or 0
        rows = result.data or []
        total = result.count if result.count is not None else len(rows)
        return rows, total

    def fetch_all(self, client, batch_size: Optional[int] = None) -> List[Dict[str, Any]]:
        """Every matching row; a paged spec returns only its page."""
        if self.page is not None:
            return self.build(client, count=False).execute().data or []

        batch_size = batch_size or PAGINATION_CONFIG['fetch_batch']
        spec = self if self.sort is not None else self.sorted_by(SortSpec('id', descending=False))
        rows: List[Dict[str, Any]] = []
        while True:
            query = spec.build(client, count=False).range(len(rows), len(rows) + batch_size - 1)
            try:
                window = query.execute().data or []
            except APIError as e:
                if str(e.code) != RANGE_NOT_SATISFIABLE:
                    raise
                window = []
            if not window:
                return rows
            rows.extend(window)
