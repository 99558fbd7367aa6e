"""Tests for the personal lists service."""

import pytest

from taskboard.services.boards import PersonalListsBoard
from taskboard.services.personal_lists import PersonalListsService
from taskboard.utils.errors import InvalidInputError
from tests.utils.factories import create_activity_row, create_personal_list_row, timestamp


@pytest.mark.unit
@pytest.mark.asyncio
async def test_fetch_lists_only_owner_oldest_first(store, manager):
    owner = manager.user.id
    store.seed(
        "personal_lists",
        create_personal_list_row(owner, "Later", id="l2", created_at=timestamp(60)),
        create_personal_list_row("someone-else", "Theirs", id="l3"),
        create_personal_list_row(owner, "First", id="l1", created_at=timestamp(0)),
    )
    service = PersonalListsService(store, manager)

    lists = await service.fetch_lists()

    assert [personal_list.name for personal_list in lists] == ["First", "Later"]
    assert service.error is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_fetch_failure_keeps_previous_lists(store, manager):
    store.seed("personal_lists", create_personal_list_row(manager.user.id, "Errands", id="l1"))
    service = PersonalListsService(store, manager)
    await service.fetch_lists()
    store.fail("query", table="personal_lists", message="offline")

    lists = await service.fetch_lists()

    assert [personal_list.id for personal_list in lists] == ["l1"]
    assert service.error == "offline"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_create_list_trims_and_mounts_column(store, controller, manager, notifier):
    board = PersonalListsBoard(controller, manager.user.id)
    service = PersonalListsService(store, manager, notifier, board)

    created = await service.create_list("  Errands  ")

    assert created.name == "Errands"
    assert created.user_id == manager.user.id
    assert board.list_ids == [created.id]
    assert controller.cache(f"list:{created.id}") is not None
    assert notifier.history[-1].title == "List created"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_create_list_requires_name(store, manager):
    service = PersonalListsService(store, manager)

    with pytest.raises(InvalidInputError):
        await service.create_list("   ")

    assert store.mutations == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_rename_and_delete_are_owner_scoped(store, controller, manager, notifier):
    owner = manager.user.id
    store.seed("personal_lists", create_personal_list_row(owner, "Errands", id="l1"))
    board = PersonalListsBoard(controller, owner)
    service = PersonalListsService(store, manager, notifier, board)
    await service.fetch_lists()
    assert board.list_ids == ["l1"]

    renamed = await service.rename_list("l1", "Chores")
    assert renamed.name == "Chores"
    assert store.rows("personal_lists")[0]["name"] == "Chores"
    assert store.mutations_for("personal_lists", "update")[0][3] == {"id": "l1", "user_id": owner}

    assert await service.delete_list("l1") is True
    assert service.lists == []
    assert board.list_ids == []
    assert controller.cache("list:l1") is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_failed_delete_notifies(store, manager, notifier):
    store.seed("personal_lists", create_personal_list_row(manager.user.id, "Errands", id="l1"))
    service = PersonalListsService(store, manager, notifier)
    await service.fetch_lists()
    store.fail("delete", table="personal_lists")

    assert await service.delete_list("l1") is False

    assert [personal_list.id for personal_list in service.lists] == ["l1"]
    assert notifier.failures[0].title == "Could not delete list"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_realtime_change_refetches_lists(store, controller, manager):
    owner = manager.user.id
    board = PersonalListsBoard(controller, owner)
    service = PersonalListsService(store, manager, board=board)
    await service.subscribe()
    await service.subscribe()
    assert len(store.active_subscriptions) == 1

    row = create_personal_list_row(owner, "Groceries", id="l9")
    store.seed("personal_lists", row)
    store.seed("activities", create_activity_row(activity_id="p1", list_id="l9", user_id=owner))
    await store.emit("personal_lists", "INSERT", new=row)

    assert [personal_list.id for personal_list in service.lists] == ["l9"]
    assert [activity.id for activity in board.items("l9")] == ["p1"]

    await service.close()
    assert not [s for s in store.active_subscriptions if s.table == "personal_lists"]
