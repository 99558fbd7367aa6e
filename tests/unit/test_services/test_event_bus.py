"""Tests for the event bus and focus refetch broadcaster."""

import asyncio
import pytest
from unittest.mock import AsyncMock

from taskboard.services.event_bus import BoardEvent, EventBus, FocusRefetch


@pytest.mark.unit
@pytest.mark.asyncio
async def test_publish_delivers_signal_payload():
    bus = EventBus()
    handler = AsyncMock()
    bus.subscribe(BoardEvent.PERSONAL_LIST_FORCE_RELOAD, handler)

    delivered = await bus.publish(BoardEvent.PERSONAL_LIST_FORCE_RELOAD, list_id="list-1", origin="board-a")

    assert delivered == 1
    signal = handler.await_args.args[0]
    assert signal.name == BoardEvent.PERSONAL_LIST_FORCE_RELOAD
    assert signal.list_id == "list-1"
    assert signal.origin == "board-a"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_handlers_only_receive_their_signal():
    bus = EventBus()
    soft = AsyncMock()
    hard = AsyncMock()
    bus.subscribe(BoardEvent.PERSONAL_LIST_UPDATED, soft)
    bus.subscribe(BoardEvent.PERSONAL_LIST_FORCE_RELOAD, hard)

    await bus.publish(BoardEvent.PERSONAL_LIST_UPDATED)

    soft.assert_awaited_once()
    hard.assert_not_awaited()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unsubscribe_and_failing_handler():
    bus = EventBus()
    failing = AsyncMock(side_effect=RuntimeError("board unmounted"))
    healthy = AsyncMock()
    bus.subscribe(BoardEvent.APP_REFETCH, failing)
    unsubscribe = bus.subscribe(BoardEvent.APP_REFETCH, healthy)

    assert await bus.publish(BoardEvent.APP_REFETCH) == 1
    healthy.assert_awaited_once()

    unsubscribe()
    unsubscribe()
    assert bus.handler_count(BoardEvent.APP_REFETCH) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_focus_refetch_emits_burst():
    bus = EventBus()
    handler = AsyncMock()
    bus.subscribe(BoardEvent.APP_REFETCH, handler)
    focus = FocusRefetch(bus, burst=(0, 0.01, 0.03))

    await focus.notify_focus()

    assert handler.await_count == 3
    assert all(call.args[0].origin == "focus" for call in handler.await_args_list)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_newer_focus_replaces_running_burst():
    bus = EventBus()
    handler = AsyncMock()
    bus.subscribe(BoardEvent.APP_REFETCH, handler)
    focus = FocusRefetch(bus, burst=(0, 0.05))

    first = focus.notify_focus()
    await asyncio.sleep(0.01)
    second = focus.notify_focus()
    await second

    assert first.cancelled()
    assert handler.await_count == 3


@pytest.mark.unit
@pytest.mark.asyncio
async def test_focus_stop_cancels_burst():
    bus = EventBus()
    handler = AsyncMock()
    bus.subscribe(BoardEvent.APP_REFETCH, handler)
    focus = FocusRefetch(bus, burst=(0.05,))

    task = focus.notify_focus()
    focus.stop()
    await asyncio.sleep(0.1)

    assert task.cancelled()
    handler.assert_not_awaited()
