"""Pub/sub channel for cross-board refresh signals."""

import asyncio
from enum import Enum
from typing import Awaitable, Callable, Optional, Sequence
from pydantic import BaseModel

from taskboard.config import SyncConfig
from taskboard.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


class BoardEvent(str, Enum):
    """Signals any mounted board may react to."""
    APP_REFETCH = "app:refetch"
    PERSONAL_LIST_UPDATED = "personal-list-updated"
    PERSONAL_LIST_FORCE_RELOAD = "personal-list-force-reload"
    ACTIVITY_UPDATED = "activity-updated"


class BoardSignal(BaseModel):
    """Payload delivered to subscribers."""
    name: BoardEvent
    list_id: Optional[str] = None
    origin: Optional[str] = None


SignalHandler = Callable[[BoardSignal], Awaitable[None]]


class EventBus:
    """Observer registry; handlers run in subscription order and their failures are contained."""

    def __init__(self):
        self._handlers: dict[BoardEvent, list[SignalHandler]] = {}

    def subscribe(self, name: BoardEvent, handler: SignalHandler) -> Callable[[], None]:
        handlers = self._handlers.setdefault(name, [])
        handlers.append(handler)

        def unsubscribe() -> None:
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def handler_count(self, name: BoardEvent) -> int:
        return len(self._handlers.get(name, []))

    async def publish(
        self,
        name: BoardEvent,
        list_id: Optional[str] = None,
        origin: Optional[str] = None,
    ) -> int:
        """Deliver a signal; returns how many handlers ran without error."""
        signal = BoardSignal(name=name, list_id=list_id, origin=origin)
        delivered = 0
        for handler in list(self._handlers.get(name, [])):
            try:
                await handler(signal)
                delivered += 1
            except Exception as e:
                logger.error(
                    "Board signal handler failed",
                    signal=name.value,
                    list_id=list_id,
                    error=str(e),
                    exc_info=True
                )
        logger.debug("Board signal published", signal=name.value, list_id=list_id, delivered=delivered)
        return delivered


class FocusRefetch:
    """Broadcast ``app:refetch`` as a short burst whenever the app regains focus."""

    def __init__(self, bus: EventBus, burst: Optional[Sequence[float]] = None):
        self.bus = bus
        self.burst = tuple(SyncConfig.FOCUS_REFETCH_BURST_SECONDS if burst is None else burst)
        self._task: Optional[asyncio.Task] = None

    async def _emit_burst(self) -> None:
        elapsed = 0.0
        for offset in self.burst:
            await asyncio.sleep(max(0.0, offset - elapsed))
            elapsed = offset
            await self.bus.publish(BoardEvent.APP_REFETCH, origin="focus")

    def notify_focus(self) -> asyncio.Task:
        """Focus, page show or visibility regained; a newer burst replaces a running one."""
        if self._task and not self._task.done():
            self._task.cancel()
        self._task = asyncio.create_task(self._emit_burst())
        return self._task

    def stop(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
        self._task = None
