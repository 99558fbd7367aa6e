"""Tests for the archive service."""

import pytest

from taskboard.models.activity import ActivityStatus
from taskboard.services.activity_operations import ActivityOperations
from taskboard.services.archive import ArchiveService
from taskboard.services.scopes import SectorScope
from taskboard.utils.errors import InvalidInputError
from tests.utils.factories import SECTOR_ID, create_activity_row


@pytest.fixture
def archive(store, controller, bus, notifier, manager):
    operations = ActivityOperations(store, controller, bus, notifier, manager)
    return ArchiveService(controller, operations, notifier, manager)


def seed_rows(store):
    store.seed(
        "activities",
        create_activity_row(activity_id="old", status="archived", created_offset=10),
        create_activity_row(activity_id="older", status="archived", created_offset=0),
        create_activity_row(activity_id="live", status="pending"),
        create_activity_row(activity_id="elsewhere", status="archived", sector_id="sector-2"),
    )


@pytest.mark.unit
@pytest.mark.asyncio
async def test_lists_archived_rows_of_sector_without_realtime(store, controller, archive):
    seed_rows(store)

    await archive.load()

    assert [activity.id for activity in archive.activities()] == ["old", "older"]
    assert controller.subscription_count == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unarchive_moves_row_back_to_board(store, controller, archive, notifier):
    seed_rows(store)
    await archive.load()
    board_cache = await controller.initialize(SectorScope(sector_id=SECTOR_ID))

    assert await archive.unarchive("old", "in_progress") is True

    assert "old" not in [activity.id for activity in archive.activities()]
    assert board_cache.get("old").status == ActivityStatus.IN_PROGRESS
    assert notifier.history[-1].title == "Activity restored"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unarchive_rejects_other_statuses(store, archive):
    seed_rows(store)
    await archive.load()

    with pytest.raises(InvalidInputError):
        await archive.unarchive("old", "completed")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_delete_permanently(store, archive, notifier):
    seed_rows(store)
    await archive.load()

    assert await archive.delete_permanently("older") is True

    assert store.rpcs == [("delete_activity", {"activity_id": "older"})]
    assert [activity.id for activity in archive.activities()] == ["old"]
    assert "older" not in [row["id"] for row in store.rows("activities")]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_delete_reports_rows_that_were_not_removed(store, archive, notifier):
    seed_rows(store)
    await archive.load()
    store.tables["activities"] = [row for row in store.tables["activities"] if row["id"] != "old"]

    assert await archive.delete_permanently("old") is False

    assert notifier.failures[0].title == "Could not delete activity"
    assert [activity.id for activity in archive.activities()] == ["old", "older"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_delete_refuses_active_rows(store, archive):
    seed_rows(store)
    await archive.load()
    cache = archive.cache
    cache.upsert_locally(cache.get("old").model_copy(update={"id": "restored", "status": ActivityStatus.PENDING}))

    with pytest.raises(InvalidInputError):
        await archive.delete_permanently("restored")

    assert store.rpcs == []
