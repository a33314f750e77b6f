"""Generic data store operations over the Supabase client"""
import re
from typing import Any, Dict, Iterable, List, Optional, Tuple

from postgrest.exceptions import APIError

from config.database import get_supabase
from utils.errors import DuplicateKeyError, UpstreamUnavailable

UNIQUE_VIOLATION = '23505'

# (column, operator, value); operators map onto postgrest filter methods
Condition = Tuple[str, str, Any]

_KEY_PATTERN = re.compile(r'Key \(([^)]+)\)=')
_CONSTRAINT_PATTERN = re.compile(r'unique constraint "[a-z]+_(\w+?)_key"')
# Characters that delimit or wildcard a PostgREST `or` filter
_FILTER_RESERVED = re.compile(r'[,()%*\\"]')


def clean_search_term(term: str) -> str:
    """Search term safe to embed in an `or=(col.ilike.%term%,...)` filter"""
    return ' '.join(_FILTER_RESERVED.sub(' ', term or '').split())


def _duplicate_column(error: APIError) -> Optional[str]:
    """Work out which column a unique violation is about"""
    match = _KEY_PATTERN.search(error.details or '')
    if match:
        return match.group(1)
    match = _CONSTRAINT_PATTERN.search(error.message or '')
    if match:
        return match.group(1)
    return None


class SupabaseDataStore:
    """find_by / count / insert / update plus a listing helper for admin views"""

    def __init__(self, client=None):
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = get_supabase()
        return self._client

    def _execute(self, query, action: str):
        try:
            return query.execute()
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                raise DuplicateKeyError(e.message or 'Duplicate key', column=_duplicate_column(e)) from e
            raise UpstreamUnavailable(f"Data store error during {action}: {e.message}") from e
        except Exception as e:
            raise UpstreamUnavailable(f"Data store unreachable during {action}: {str(e)}") from e

    @staticmethod
    def _apply_filters(query, filters: Dict[str, Any], conditions: Iterable[Condition] = ()):
        for column, value in filters.items():
            query = query.eq(column, value)
        for column, op, value in conditions:
            if op == 'is':
                query = query.is_(column, value)
            elif op == 'not_is':
                query = query.not_.is_(column, value)
            elif op in ('eq', 'neq', 'gt', 'gte', 'lt', 'lte', 'ilike'):
                query = getattr(query, op)(column, value)
            else:
                raise ValueError(f"Unsupported filter operator: {op}")
        return query

    def find_by(self, table: str, **filters) -> Optional[Dict[str, Any]]:
        query = self._apply_filters(self.client.table(table).select('*'), filters).limit(1)
        result = self._execute(query, f"lookup in {table}")
        return result.data[0] if result.data else None

    def count(self, table: str, conditions: Iterable[Condition] = (), **filters) -> int:
        query = self._apply_filters(self.client.table(table).select('id', count='exact'), filters, conditions)
        result = self._execute(query.limit(1), f"count of {table}")
        return result.count or 0

    def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        result = self._execute(self.client.table(table).insert(row), f"insert into {table}")
        if not result.data:
            raise UpstreamUnavailable(f"Insert into {table} returned no row")
        return result.data[0]

    def update(self, table: str, row_id: str, patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        query = self.client.table(table).update(patch).eq('id', row_id)
        result = self._execute(query, f"update of {table}")
        return result.data[0] if result.data else None

    def select(
        self,
        table: str,
        columns: str = '*',
        filters: Optional[Dict[str, Any]] = None,
        conditions: Iterable[Condition] = (),
        search: Optional[Tuple[List[str], str]] = None,
        order: Optional[str] = None,
        desc: bool = False,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        query = self._apply_filters(self.client.table(table).select(columns), filters or {}, conditions)
        if search:
            search_columns, term = search
            term = clean_search_term(term)
            query = query.or_(','.join(f"{col}.ilike.%{term}%" for col in search_columns))
        if order:
            query = query.order(order, desc=desc)
        if limit is not None:
            query = query.range(offset, offset + limit - 1)
        result = self._execute(query, f"listing of {table}")
        return result.data or []


_data_store = None


def get_data_store() -> SupabaseDataStore:
    """Get the process-wide data store"""
    global _data_store
    if _data_store is None:
        _data_store = SupabaseDataStore()
    return _data_store
