"""Debounce buffer service - collapse bursts of changes per scope into one flush."""

import asyncio
from typing import Any, Awaitable, Callable, Optional

from taskboard.config import SyncConfig
from taskboard.utils.logging import get_structured_logger, log_timing

logger = get_structured_logger(__name__)

FlushHandler = Callable[[str, list[Any]], Awaitable[None]]


class DebounceBuffer:
    """Buffer items per key and flush them once the key has been quiet for the window."""

    def __init__(self, on_flush: FlushHandler, window_seconds: Optional[float] = None):
        self.on_flush = on_flush
        self.window_seconds = SyncConfig.REFETCH_DEBOUNCE_SECONDS if window_seconds is None else window_seconds
        self.buffer: dict[str, list[Any]] = {}  # scope_key -> buffered items
        self.timers: dict[str, asyncio.Task] = {}
        logger.debug(
            "DebounceBuffer initialized",
            debounce_window_seconds=self.window_seconds
        )

    async def enqueue(self, key: str, item: Any = None) -> None:
        """Add an item for ``key`` and restart that key's window."""
        self.buffer.setdefault(key, []).append(item)

        if key in self.timers:
            self.timers[key].cancel()
            logger.debug("Debounce timer reset", scope_key=key, buffered=len(self.buffer[key]))

        self.timers[key] = asyncio.create_task(self._flush_after_delay(key))

    async def _flush_after_delay(self, key: str) -> None:
        await asyncio.sleep(self.window_seconds)

        items = self.buffer.pop(key, [])
        self.timers.pop(key, None)

        logger.info(
            "Debounce flush",
            scope_key=key,
            items_coalesced=len(items),
            debounce_window_seconds=self.window_seconds
        )

        try:
            with log_timing("debounced_flush", logger=logger, scope_key=key):
                await self.on_flush(key, items)
        except Exception as e:
            logger.error(
                "Error in debounced flush",
                scope_key=key,
                items_coalesced=len(items),
                error=str(e),
                exc_info=True
            )

    def pending(self, key: str) -> int:
        """Number of items waiting for ``key``."""
        return len(self.buffer.get(key, []))

    def cancel(self, key: str) -> bool:
        """Drop the pending flush for ``key``; True when one was pending."""
        timer = self.timers.pop(key, None)
        self.buffer.pop(key, None)
        if timer is None:
            return False
        timer.cancel()
        return True

    def cancel_all(self) -> int:
        """Drop every pending flush."""
        keys = list(self.timers)
        for key in keys:
            self.cancel(key)
        self.buffer.clear()
        return len(keys)
