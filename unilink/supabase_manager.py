"""
Supabase store for UniLink.
Request/response access to the remote tables with timeouts, read retries and
translation of client errors into the unilink error taxonomy.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import httpx
from supabase import AsyncClient, PostgrestAPIError, acreate_client
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from unilink.config import Config
from unilink.errors import ConflictError, RemoteCallError

logger = logging.getLogger(__name__)

# Postgres unique_violation
UNIQUE_VIOLATION = "23505"


@dataclass(frozen=True)
class Join:
    """One-level join: attach the ``table`` row whose id equals ``foreign_key``."""

    table: str
    foreign_key: str


async def create_supabase_client(url: Optional[str] = None, key: Optional[str] = None) -> AsyncClient:
    """
    Create the async Supabase client shared by the store, realtime hub and session provider.

    Args:
        url: Supabase project URL (defaults to Config / .env)
        key: Supabase anon key (defaults to Config / .env)

    Returns:
        AsyncClient: connected client
    """
    url = url or Config.SUPABASE_URL
    key = key or Config.SUPABASE_ANON_KEY
    if not url or not key:
        raise ValueError("Supabase credentials not found. Set SUPABASE_URL and SUPABASE_ANON_KEY in .env")
    return await acreate_client(url, key)


def select_columns(columns: str, joins: Optional[Dict[str, Join]]) -> str:
    parts = [columns]
    for alias, join in (joins or {}).items():
        parts.append(f"{alias}:{join.table}!{join.foreign_key}(*)")
    return ", ".join(parts)


def or_clause(groups: Sequence[Dict[str, Any]]) -> str:
    """
    Render equality groups as a PostgREST ``or`` filter.

    ``[{"a": 1, "b": 2}, {"a": 2, "b": 1}]`` becomes
    ``and(a.eq.1,b.eq.2),and(a.eq.2,b.eq.1)``.
    """
    rendered = []
    for group in groups:
        terms = [f"{column}.eq.{value}" for column, value in group.items()]
        rendered.append(terms[0] if len(terms) == 1 else f"and({','.join(terms)})")
    return ",".join(rendered)


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, RemoteCallError) and exc.retryable


class SupabaseStore:
    """
    Async access to the UniLink tables.

    Reads are retried on transient failures; writes are issued exactly once and
    any failure is raised to the mutation boundary.
    """

    def __init__(self, client: AsyncClient, timeout: Optional[float] = None,
                 read_attempts: Optional[int] = None, retry_wait=None):
        self.client = client
        self.timeout = timeout if timeout is not None else Config.REMOTE_CALL_TIMEOUT
        self.read_attempts = read_attempts if read_attempts is not None else Config.READ_RETRY_ATTEMPTS
        self.retry_wait = retry_wait or wait_exponential(multiplier=1, min=2, max=10)

    # ============================================================================
    # EXECUTION
    # ============================================================================

    async def _execute(self, query, action: str):
        try:
            return await asyncio.wait_for(query.execute(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise RemoteCallError(f"{action} timed out after {self.timeout}s") from e
        except PostgrestAPIError as e:
            if str(getattr(e, "code", "")) == UNIQUE_VIOLATION:
                raise ConflictError(f"{action}: record already exists") from e
            raise RemoteCallError(f"{action} failed: {getattr(e, 'message', e)}", retryable=False) from e
        except httpx.HTTPError as e:
            raise RemoteCallError(f"{action} failed: {e}") from e

    async def _read(self, build, action: str):
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.read_attempts),
            wait=self.retry_wait,
            retry=retry_if_exception(_is_transient),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(f"Retrying {action} (attempt {attempt.retry_state.attempt_number}/{self.read_attempts})")
                return await self._execute(build(), action)

    @staticmethod
    def _apply_filters(query, filters: Optional[Dict[str, Any]]):
        for column, value in (filters or {}).items():
            query = query.eq(column, value)
        return query

    # ============================================================================
    # OPERATIONS
    # ============================================================================

    async def select(self, table: str, filters: Optional[Dict[str, Any]] = None, columns: str = "*",
                     joins: Optional[Dict[str, Join]] = None,
                     any_of: Optional[Sequence[Dict[str, Any]]] = None,
                     in_: Optional[Dict[str, Sequence[Any]]] = None,
                     order: Optional[str] = None, desc: bool = False,
                     limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Read rows from ``table``.

        Args:
            table: Table name
            filters: Column equality filters (AND-ed)
            columns: Column list for the base table
            joins: Alias -> Join for shallow related records
            any_of: Equality groups OR-ed together
            in_: Column -> allowed values
            order: Column to order by
            desc: Descending order
            limit: Maximum number of rows

        Returns:
            list: Row dictionaries
        """
        if in_ and any(len(values) == 0 for values in in_.values()):
            return []

        def build():
            query = self.client.table(table).select(select_columns(columns, joins))
            query = self._apply_filters(query, filters)
            for column, values in (in_ or {}).items():
                query = query.in_(column, list(values))
            if any_of:
                query = query.or_(or_clause(any_of))
            if order:
                query = query.order(order, desc=desc)
            if limit:
                query = query.limit(limit)
            return query

        response = await self._read(build, f"select {table}")
        return list(response.data or [])

    async def count(self, table: str, filters: Optional[Dict[str, Any]] = None) -> int:
        """Exact number of rows in ``table`` matching ``filters``."""
        def build():
            return self._apply_filters(self.client.table(table).select("id", count="exact"), filters)

        response = await self._read(build, f"count {table}")
        if response.count is not None:
            return int(response.count)
        return len(response.data or [])

    async def insert(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        """Insert one row and return it as stored."""
        response = await self._execute(self.client.table(table).insert(record), f"insert {table}")
        rows = response.data or []
        if not rows:
            raise RemoteCallError(f"insert {table} returned no row", retryable=False)
        logger.debug(f"Inserted into {table}: {rows[0].get('id')}")
        return rows[0]

    async def update(self, table: str, patch: Dict[str, Any], filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Apply ``patch`` to every row matching ``filters``."""
        if not filters:
            raise ValueError("update requires at least one filter")
        query = self._apply_filters(self.client.table(table).update(patch), filters)
        response = await self._execute(query, f"update {table}")
        return list(response.data or [])

    async def delete(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Delete every row matching ``filters``."""
        if not filters:
            raise ValueError("delete requires at least one filter")
        query = self._apply_filters(self.client.table(table).delete(), filters)
        response = await self._execute(query, f"delete {table}")
        return list(response.data or [])
