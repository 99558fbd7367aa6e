"""Tests for the debounced activity search."""

import asyncio
import pytest

from taskboard.models.identity import Role
from taskboard.services.search import SearchService
from tests.utils.factories import SUBSECTOR_ID, create_activity_row, create_identity
from tests.utils.helpers import SETTLE_SECONDS, TEST_DEBOUNCE_SECONDS


def seed_rows(store):
    store.seed(
        "activities",
        create_activity_row(activity_id="a1", title="Roof inspection", created_offset=10),
        create_activity_row(activity_id="a2", title="Call plumber", description="Ask about the roof leak"),
        create_activity_row(activity_id="a3", title="Roof repair quote", status="archived"),
        create_activity_row(activity_id="a4", title="Roof shingles", subsector_id="subsector-2"),
    )


@pytest.mark.unit
def test_filter_scoped_by_role():
    manager = SearchService(None, create_identity(role=Role.MANAGER), limit=5)
    collaborator = SearchService(None, create_identity(role=Role.COLLABORATOR))

    manager_filter = manager.build_filter("  roof ")

    assert "subsector_id" not in manager_filter.eq
    assert manager_filter.search_term == "roof"
    assert manager_filter.search_columns == ["title", "description"]
    assert manager_filter.neq == {"status": "archived"}
    assert manager_filter.limit == 5
    assert collaborator.build_filter("roof").eq["subsector_id"] == SUBSECTOR_ID


@pytest.mark.unit
@pytest.mark.asyncio
async def test_search_matches_title_and_description(store, manager):
    seed_rows(store)
    service = SearchService(store, manager)

    results = await service.search("ROOF")

    assert [activity.id for activity in results] == ["a1", "a2", "a4"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_collaborator_search_stays_in_subsector(store, collaborator):
    seed_rows(store)
    service = SearchService(store, collaborator)

    results = await service.search("roof")

    assert [activity.id for activity in results] == ["a1", "a2"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_keystrokes_collapse_into_one_query(store, manager):
    seed_rows(store)
    service = SearchService(store, manager, debounce_seconds=TEST_DEBOUNCE_SECONDS)

    await service.set_query("r")
    await service.set_query("ro")
    await service.set_query("roof ins")
    await asyncio.sleep(SETTLE_SECONDS)

    assert len(store.queries_for("activities")) == 1
    assert [activity.id for activity in service.results] == ["a1"]
    service.close()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_blank_query_clears_immediately(store, manager):
    seed_rows(store)
    service = SearchService(store, manager, debounce_seconds=TEST_DEBOUNCE_SECONDS)
    await service.search("roof")

    await service.set_query("roof")
    await service.set_query("   ")
    await asyncio.sleep(SETTLE_SECONDS)

    assert service.results == []
    assert len(store.queries_for("activities")) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_superseded_search_is_discarded(store, manager):
    seed_rows(store)
    store.defer_queries = True
    service = SearchService(store, manager)

    first = asyncio.create_task(service.search("roof"))
    await asyncio.sleep(0)
    second = asyncio.create_task(service.search("plumber"))
    await asyncio.sleep(0)

    store.resolve(1)
    await second
    store.resolve(0)
    await first

    assert [activity.id for activity in service.results] == ["a2"]
    assert not service.searching
