"""Supabase client wrapper and the RemoteStore implementation built on it."""

import os
import asyncio
from typing import Any, Optional
from ulid import ULID
from supabase import AsyncClient, AsyncClientOptions, acreate_client

from taskboard.models.realtime import ChangeEvent
from taskboard.services.remote_store import ChangeHandler, MutationOp, QueryFilter, Unsubscribe
from taskboard.utils.errors import SupabaseError
from taskboard.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

# Global client instance (singleton pattern)
_client: Optional[AsyncClient] = None


async def get_supabase_client() -> AsyncClient:
    """Get or create the async Supabase client singleton."""
    global _client

    if _client is None:
        url = os.environ.get("SUPABASE_URL")
        key = os.environ.get("SUPABASE_KEY")

        if not url or not key:
            raise SupabaseError("SUPABASE_URL and SUPABASE_KEY must be set")

        options = AsyncClientOptions(
            auto_refresh_token=True,
            persist_session=False,
        )

        _client = await acreate_client(url, key, options=options)
        logger.info("Supabase client initialized", url=url)

    return _client


async def close_supabase_client() -> None:
    """Drop the client singleton."""
    global _client
    if _client:
        _client = None
        logger.info("Supabase client closed")


class SupabaseClient:
    """Async context manager for the Supabase client."""

    def __init__(self, client: Optional[AsyncClient] = None):
        self.client: Optional[AsyncClient] = client

    async def __aenter__(self) -> AsyncClient:
        if self.client is None:
            self.client = await get_supabase_client()
        return self.client

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            logger.error(
                "Supabase operation error",
                error=str(exc_val),
                type=exc_type.__name__
            )
        return False


def apply_filter(builder: Any, filter: QueryFilter) -> Any:
    """Translate a QueryFilter onto a postgrest select builder."""
    for column, value in filter.eq.items():
        builder = builder.eq(column, value)
    for column, value in filter.neq.items():
        builder = builder.neq(column, value)
    for column in filter.is_null:
        builder = builder.is_(column, "null")
    for column in filter.not_null:
        builder = builder.not_.is_(column, "null")
    for column, value in filter.gte.items():
        builder = builder.gte(column, value)
    for column, value in filter.lt.items():
        builder = builder.lt(column, value)
    if filter.search_term and filter.search_columns:
        term = filter.search_term.replace(",", " ").strip()
        builder = builder.or_(",".join(f"{column}.ilike.%{term}%" for column in filter.search_columns))
    if filter.order_by:
        builder = builder.order(filter.order_by, desc=not filter.ascending)
    if filter.limit:
        builder = builder.limit(filter.limit)
    return builder


class SupabaseRemoteStore:
    """RemoteStore over supabase-py: postgrest for reads/writes, realtime for push."""

    def __init__(self, client: Optional[AsyncClient] = None, schema: str = "public"):
        self._client = client
        self.schema = schema
        self._callbacks: set[asyncio.Task] = set()

    async def query(self, table: str, filter: QueryFilter) -> list[dict]:
        async with SupabaseClient(self._client) as client:
            try:
                builder = apply_filter(client.table(table).select(filter.select), filter)
                result = await builder.execute()
                return result.data if result.data else []
            except Exception as e:
                raise SupabaseError(f"Failed to query {table}: {e}")

    async def mutate(
        self,
        table: str,
        op: MutationOp,
        payload: Optional[Any] = None,
        match: Optional[dict[str, Any]] = None,
    ) -> list[dict]:
        if op != "insert" and not match:
            raise SupabaseError(f"Refusing {op} on {table} without a match filter")

        async with SupabaseClient(self._client) as client:
            try:
                if op == "insert":
                    builder = client.table(table).insert(payload)
                elif op == "update":
                    builder = client.table(table).update(payload)
                else:
                    builder = client.table(table).delete()
                for column, value in (match or {}).items():
                    builder = builder.eq(column, value)
                result = await builder.execute()
                return result.data if result.data else []
            except Exception as e:
                raise SupabaseError(f"Failed to {op} {table}: {e}")

    async def rpc(self, function: str, params: dict[str, Any]) -> Any:
        async with SupabaseClient(self._client) as client:
            try:
                result = await client.rpc(function, params).execute()
                return result.data
            except Exception as e:
                raise SupabaseError(f"Failed to call {function}: {e}")

    async def subscribe(
        self,
        table: str,
        filter: Optional[str],
        on_change: ChangeHandler,
    ) -> Unsubscribe:
        async with SupabaseClient(self._client) as client:
            channel_name = f"{table}_{filter or 'all'}_{ULID()}"

            def handle(payload: dict) -> None:
                try:
                    event = ChangeEvent.from_payload(payload)
                except Exception as e:
                    logger.warning("Dropping undecodable realtime payload", table=table, error=str(e))
                    return
                task = asyncio.ensure_future(on_change(event))
                self._callbacks.add(task)
                task.add_done_callback(self._callbacks.discard)

            try:
                channel = client.channel(channel_name)
                channel.on_postgres_changes(
                    "*",
                    callback=handle,
                    table=table,
                    schema=self.schema,
                    filter=filter,
                )
                await channel.subscribe()
            except Exception as e:
                raise SupabaseError(f"Failed to subscribe to {table}: {e}")

            logger.info("Realtime channel subscribed", channel=channel_name, table=table, filter=filter)

            async def unsubscribe() -> None:
                await client.remove_channel(channel)
                logger.info("Realtime channel removed", channel=channel_name)

            return unsubscribe
