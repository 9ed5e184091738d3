from typing import Any, Dict, List, Optional

from postgrest.exceptions import APIError

from db.errors import translate_api_error
from db.query_builder import PageSpec, Predicate, QuerySpec, eq
from exceptions import InternalError


class BaseOperations:
    """Shared table helpers; every storage error leaves here as a RepositoryError."""

    def __init__(self, supabase):
        self.supabase = supabase

    def _run(self, query, conflict_status: Optional[int] = None):
        try:
            return query.execute()
        except APIError as e:
            raise translate_api_error(e, conflict_status=conflict_status) from e

    def _insert(self, table: str, record: Dict[str, Any], conflict_status: Optional[int] = None) -> Dict[str, Any]:
        result = self._run(self.supabase.table(table).insert(record), conflict_status=conflict_status)
        if not result.data:
            raise InternalError(f'Insert into {table} returned no row')
        return result.data[0]

    def _update(self, table: str, record_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        result = self._run(self.supabase.table(table).update(changes).eq('id', record_id))
        return result.data[0] if result.data else None

    def _delete(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        result = self._run(self.supabase.table(table).delete().eq('id', record_id))
        return result.data[0] if result.data else None

    def _find(self, table: str, *predicates: Predicate, columns: str = '*') -> List[Dict[str, Any]]:
        spec = QuerySpec(table, columns=columns).where(*predicates)
        try:
            return spec.fetch_all(self.supabase)
        except APIError as e:
            raise translate_api_error(e) from e

    def _find_one(self, table: str, *predicates: Predicate, columns: str = '*') -> Optional[Dict[str, Any]]:
        rows = self._find(table, *predicates, columns=columns)
        return rows[0] if rows else None

    def _get(self, table: str, record_id: str, columns: str = '*') -> Optional[Dict[str, Any]]:
        return self._find_one(table, eq('id', record_id), columns=columns)

    def _count(self, table: str, *predicates: Predicate) -> int:
        spec = QuerySpec(table, columns='id').where(*predicates).paged(PageSpec(1, 1))
        try:
            _, total = spec.execute(self.supabase)
        except APIError as e:
            raise translate_api_error(e) from e
        return total

    def _page(self, spec: QuerySpec):
        try:
            return spec.execute(self.supabase)
        except APIError as e:
            raise translate_api_error(e) from e

    def _fetch(self, spec: QuerySpec) -> List[Dict[str, Any]]:
        try:
            return spec.fetch_all(self.supabase)
        except APIError as e:
            raise translate_api_error(e) from e
