"""Sync controller - keeps scoped activity caches consistent with the remote store."""

import asyncio
from functools import partial
from typing import Any, Iterable, Optional

from taskboard.models.activity import Activity, decode_activity_row
from taskboard.models.realtime import ChangeEvent
from taskboard.services.activity_cache import ActivityCache, OptimisticPatch
from taskboard.services.debounce_buffer import DebounceBuffer
from taskboard.services.event_bus import BoardEvent, BoardSignal, EventBus
from taskboard.services.remote_store import RemoteStore, Unsubscribe
from taskboard.services.scopes import PersonalListScope, Scope
from taskboard.utils.errors import DecodeError, TaskboardError
from taskboard.utils.logging import get_structured_logger, log_timing

logger = get_structured_logger(__name__)


class SyncController:
    """Owns the caches, realtime subscriptions and refetch timers of a set of scopes.

    One instance per mounted application context. Every scope key gets exactly
    one cache and at most one realtime subscription, no matter how many boards
    initialize it.

    Signals published on the bus with ``origin`` equal to ``name`` are ignored,
    so a controller never reacts to its own announcements.
    """

    def __init__(
        self,
        store: RemoteStore,
        bus: Optional[EventBus] = None,
        name: str = "sync",
        debounce_seconds: Optional[float] = None,
    ):
        self.store = store
        self.name = name
        self.bus: Optional[EventBus] = None
        self._scopes: dict[str, Scope] = {}
        self._caches: dict[str, ActivityCache] = {}
        self._subscriptions: dict[str, Unsubscribe] = {}
        self._tokens: dict[str, int] = {}
        self._bus_unsubscribers: list = []
        self._debounce = DebounceBuffer(self._on_debounced, window_seconds=debounce_seconds)

        if bus is not None:
            self.attach(bus)

    # -- scope lifecycle ---------------------------------------------------

    async def initialize(self, scope: Scope) -> ActivityCache:
        """Load a scope and subscribe to its changes; known keys short-circuit."""
        key = scope.key
        existing = self._caches.get(key)
        if existing is not None:
            logger.debug("Scope already initialized", scope_key=key)
            return existing

        # Registered before the first await so concurrent callers share it
        cache = ActivityCache(key, accepts=scope.accepts)
        self._scopes[key] = scope
        self._caches[key] = cache

        logger.info("Initializing scope", scope_key=key, realtime=scope.realtime)
        await self._fetch(key)

        if scope.realtime and self._caches.get(key) is cache:
            try:
                unsubscribe = await self.store.subscribe(
                    scope.table,
                    scope.subscription_filter(),
                    partial(self.on_remote_change, key),
                )
            except TaskboardError as e:
                logger.error("Realtime subscription failed", scope_key=key, error=str(e))
                cache.fail(str(e))
            else:
                if self._caches.get(key) is cache:
                    self._subscriptions[key] = unsubscribe
                else:
                    # Released while subscribing
                    await unsubscribe()

        return cache

    async def release(self, key: str) -> bool:
        """Forget one scope so a changed key can be initialized fresh."""
        if key not in self._caches:
            return False

        self._debounce.cancel(key)
        self._caches.pop(key, None)
        self._scopes.pop(key, None)
        self._tokens.pop(key, None)

        unsubscribe = self._subscriptions.pop(key, None)
        if unsubscribe is not None:
            await self._unsubscribe(key, unsubscribe)

        logger.info("Scope released", scope_key=key)
        return True

    async def teardown(self) -> None:
        """Drop every subscription, timer and bus handler."""
        cancelled = self._debounce.cancel_all()
        subscriptions = list(self._subscriptions.items())
        self._subscriptions.clear()

        for key, unsubscribe in subscriptions:
            await self._unsubscribe(key, unsubscribe)

        self.detach()
        logger.info(
            "Sync controller torn down",
            controller=self.name,
            subscriptions_closed=len(subscriptions),
            timers_cancelled=cancelled
        )

    async def _unsubscribe(self, key: str, unsubscribe: Unsubscribe) -> None:
        try:
            await unsubscribe()
        except Exception as e:
            logger.warning("Unsubscribe failed", scope_key=key, error=str(e))

    # -- reads -------------------------------------------------------------

    def cache(self, key: str) -> Optional[ActivityCache]:
        return self._caches.get(key)

    def scope(self, key: str) -> Optional[Scope]:
        return self._scopes.get(key)

    def keys(self) -> list[str]:
        return list(self._caches)

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    def keys_holding(self, activity_id: str) -> list[str]:
        """Scope keys whose cache currently holds the row, hidden or not."""
        return [key for key, cache in self._caches.items() if cache.get(activity_id) is not None]

    # -- fetching ------------------------------------------------------------

    async def _fetch(self, key: str) -> None:
        scope = self._scopes.get(key)
        cache = self._caches.get(key)
        if scope is None or cache is None:
            return

        token = self._tokens.get(key, 0) + 1
        self._tokens[key] = token
        cache.begin_fetch()

        try:
            with log_timing("scope_fetch", logger=logger, scope_key=key, token=token):
                rows = await self.store.query(scope.table, scope.query_filter())
        except TaskboardError as e:
            if self._is_stale(key, cache, token):
                logger.debug("Discarding stale fetch failure", scope_key=key, token=token)
                return
            logger.warning("Scope fetch failed, keeping previous rows", scope_key=key, error=str(e))
            cache.fail(str(e))
            return

        if self._is_stale(key, cache, token):
            logger.debug("Discarding stale fetch result", scope_key=key, token=token)
            return

        cache.set_rows(self._decode(key, rows))
        logger.debug("Scope refreshed", scope_key=key, rows=len(rows), token=token)

    def _is_stale(self, key: str, cache: ActivityCache, token: int) -> bool:
        return self._caches.get(key) is not cache or self._tokens.get(key) != token

    def _invalidate(self, keys: Iterable[str]) -> None:
        """Make fetches already in flight for these scopes land as stale."""
        for key in keys:
            if key in self._caches:
                self._tokens[key] = self._tokens.get(key, 0) + 1

    def _decode(self, key: str, rows: Iterable[Any]) -> list[Activity]:
        activities = []
        for row in rows:
            try:
                activities.append(decode_activity_row(row))
            except DecodeError as e:
                logger.warning("Skipping undecodable row", scope_key=key, row_id=e.row_id, error=str(e))
        return activities

    async def refetch(self, key: Optional[str] = None) -> None:
        """Immediate refetch of one scope, or of every known scope."""
        await self.refetch_many([key] if key else list(self._caches))

    async def refetch_many(self, keys: Iterable[Optional[str]]) -> None:
        """Refetch a deduplicated set of scopes concurrently."""
        unique = []
        for key in keys:
            if key and key in self._caches and key not in unique:
                unique.append(key)
        if not unique:
            return

        for key in unique:
            self._debounce.cancel(key)
        await asyncio.gather(*(self._fetch(key) for key in unique))

    def pending_refetch(self, key: str) -> bool:
        return self._debounce.pending(key) > 0

    async def _on_debounced(self, key: str, items: list) -> None:
        await self._fetch(key)

    # -- realtime --------------------------------------------------------------

    async def on_remote_change(self, key: str, event: ChangeEvent) -> None:
        """Realtime callback; relevant events restart the scope's debounce window."""
        scope = self._scopes.get(key)
        if scope is None:
            return
        if not scope.matches_event(event):
            logger.debug("Ignoring change outside scope", scope_key=key, event_type=event.event_type)
            return
        await self._debounce.enqueue(key, event)

    # -- event bus ---------------------------------------------------------------

    def attach(self, bus: EventBus) -> None:
        self.detach()
        self.bus = bus
        self._bus_unsubscribers = [
            bus.subscribe(BoardEvent.APP_REFETCH, self._on_app_refetch),
            bus.subscribe(BoardEvent.PERSONAL_LIST_UPDATED, self._on_list_updated),
            bus.subscribe(BoardEvent.PERSONAL_LIST_FORCE_RELOAD, self._on_list_force_reload),
            bus.subscribe(BoardEvent.ACTIVITY_UPDATED, self._on_activity_updated),
        ]

    def detach(self) -> None:
        for unsubscribe in self._bus_unsubscribers:
            unsubscribe()
        self._bus_unsubscribers = []

    def _list_keys(self, list_id: Optional[str]) -> list[str]:
        return [
            key for key, scope in self._scopes.items()
            if isinstance(scope, PersonalListScope) and (list_id is None or scope.list_id == list_id)
        ]

    async def _on_app_refetch(self, signal: BoardSignal) -> None:
        if signal.origin == self.name:
            return
        await self.refetch()

    async def _on_list_updated(self, signal: BoardSignal) -> None:
        if signal.origin == self.name:
            return
        for key in self._list_keys(signal.list_id):
            await self._debounce.enqueue(key, signal)

    async def _on_list_force_reload(self, signal: BoardSignal) -> None:
        if signal.origin == self.name:
            return
        await self.refetch_many(self._list_keys(signal.list_id))

    async def _on_activity_updated(self, signal: BoardSignal) -> None:
        if signal.origin == self.name:
            return
        for key in list(self._caches):
            await self._debounce.enqueue(key, signal)

    # -- local mutations -----------------------------------------------------------

    def apply_optimistic_patch(self, activity_id: str, fields: dict[str, Any]) -> list[OptimisticPatch]:
        """Patch the row in every cache that holds it."""
        patches = []
        for cache in self._caches.values():
            patch = cache.apply_optimistic_patch(activity_id, fields)
            if patch is not None:
                patches.append(patch)
        self._invalidate(patch.scope_key for patch in patches)
        return patches

    def revert(self, patches: Iterable[OptimisticPatch]) -> None:
        for patch in reversed(list(patches)):
            cache = self._caches.get(patch.scope_key)
            if cache is not None:
                cache.revert(patch)

    def move_locally(
        self,
        activity_id: str,
        source_key: str,
        dest_key: str,
        fields: dict[str, Any],
    ) -> list[OptimisticPatch]:
        """Move one row between scopes in a single synchronous step."""
        source = self._caches.get(source_key)
        row = source.get(activity_id) if source else None
        if row is None:
            return []

        self._invalidate({source_key, dest_key})
        if source_key == dest_key:
            patch = source.apply_optimistic_patch(activity_id, fields)
            return [patch] if patch else []

        patches = [OptimisticPatch(scope_key=source_key, activity_id=activity_id, fields=fields, previous=row)]
        source.remove_locally(activity_id)

        dest = self._caches.get(dest_key)
        if dest is not None:
            patches.append(OptimisticPatch(
                scope_key=dest_key,
                activity_id=activity_id,
                fields=fields,
                previous=dest.get(activity_id),
            ))
            dest.upsert_locally(row.model_copy(update=fields))

        return patches
