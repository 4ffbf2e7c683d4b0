"""Supabase-backed remote store for hrsync.

Thin async wrapper over the PostgREST table API. The remote store owns
canonical identifiers and enforces its own integrity constraints; this
module only turns its responses into rows, WriteResults and
StoreReadErrors.
"""

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import httpx
from postgrest.exceptions import APIError
from supabase import AsyncClient, AsyncClientOptions, acreate_client

from .base import StoreReadError, WriteResult

if TYPE_CHECKING:
    from hrsync.config import Settings

logger = logging.getLogger(__name__)

# PostgREST caps a single response at this many rows by default.
PAGE_SIZE = 1000

# Idempotent server-side procedure that creates the tables and indexes.
SCHEMA_RPC = "setup_schema"

# Failures from the PostgREST client or the transport beneath it.
REMOTE_ERRORS = (APIError, httpx.HTTPError)


def _error_code(error: Exception) -> Optional[str]:
    return getattr(error, "code", None) if isinstance(error, APIError) else None


class SupabaseStore:
    """Remote store over a Supabase async client.

    Args:
        client: An authenticated (or authenticating) ``AsyncClient``.
        page_size: Rows requested per listing page.
    """

    def __init__(self, client: AsyncClient, page_size: int = PAGE_SIZE):
        self._client = client
        self.page_size = page_size

    @classmethod
    async def connect(cls, settings: "Settings") -> "SupabaseStore":
        """Build a store from settings. The session lives in memory only."""
        if not settings.supabase_url or not settings.supabase_key:
            raise ValueError("SUPABASE_URL and SUPABASE_KEY must be set")
        client = await acreate_client(
            settings.supabase_url,
            settings.supabase_key,
            options=AsyncClientOptions(persist_session=False),
        )
        return cls(client)

    # === Session ===

    async def sign_in(self, email: str, password: str) -> bool:
        """Open an admin session. Returns False if the credentials are rejected."""
        try:
            await self._client.auth.sign_in_with_password({"email": email, "password": password})
        except Exception as e:
            logger.warning(f"Supabase sign-in failed for {email}: {e}")
            return False
        return True

    async def has_session(self) -> bool:
        """Whether an authenticated session is active.

        Without one, row-level security rejects every table call made with the
        publishable key, so the engine skips the cycle instead.
        """
        session = await self._client.auth.get_session()
        return session is not None

    async def setup_schema(self) -> None:
        await self._client.rpc(SCHEMA_RPC).execute()

    # === Reads ===

    async def list_all(self, table: str) -> List[Dict[str, Any]]:
        """Every row of a remote table, fetched page by page."""
        rows: List[Dict[str, Any]] = []
        start = 0
        while True:
            try:
                response = await (
                    self._client.table(table)
                    .select("*")
                    .range(start, start + self.page_size - 1)
                    .execute()
                )
            except REMOTE_ERRORS as e:
                raise StoreReadError(table, e, code=_error_code(e)) from e

            page = response.data or []
            rows.extend(page)
            if len(page) < self.page_size:
                break
            start += self.page_size

        logger.debug(f"Fetched {len(rows)} rows from remote {table}")
        return rows

    async def list_where(self, table: str, key: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Rows whose columns equal every value in ``key``."""
        query = self._client.table(table).select("*")
        for column, value in key.items():
            query = query.eq(column, value)
        try:
            response = await query.execute()
        except REMOTE_ERRORS as e:
            raise StoreReadError(table, e, code=_error_code(e)) from e
        return response.data or []

    # === Writes ===

    async def insert(self, table: str, record: Dict[str, Any]) -> WriteResult:
        """Insert a row; the stored row (with its canonical id) comes back in ``data``."""
        try:
            response = await self._client.table(table).insert(record).execute()
        except REMOTE_ERRORS as e:
            return WriteResult.failure(e)
        stored = response.data[0] if response.data else None
        return WriteResult.success(stored)

    async def update_by_key(
        self, table: str, key: Dict[str, Any], fields: Dict[str, Any]
    ) -> WriteResult:
        if not key:
            return WriteResult.failure("Key must name at least one column")
        query = self._client.table(table).update(fields)
        for column, value in key.items():
            query = query.eq(column, value)
        try:
            response = await query.execute()
        except REMOTE_ERRORS as e:
            return WriteResult.failure(e)
        if not response.data:
            return WriteResult.failure(f"No {table} row matches {key}")
        return WriteResult.success(response.data[0])
