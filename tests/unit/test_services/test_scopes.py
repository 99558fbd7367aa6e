"""Tests for scope keys, filters and realtime relevance."""

import pytest

from taskboard.models.activity import decode_activity_row
from taskboard.models.identity import Role
from taskboard.models.realtime import ChangeEvent
from taskboard.services.scopes import ArchiveScope, CollaboratorScope, PersonalListScope, SectorScope
from tests.utils.factories import SECTOR_ID, SUBSECTOR_ID, create_activity_row, create_identity


@pytest.mark.unit
def test_sector_scope_for_identity():
    manager_scope = SectorScope.for_identity(create_identity(role=Role.MANAGER))
    collaborator_scope = SectorScope.for_identity(create_identity(role=Role.COLLABORATOR))

    assert manager_scope.key == f"sector:{SECTOR_ID}"
    assert collaborator_scope.key == f"sector:{SECTOR_ID}:subsector:{SUBSECTOR_ID}"
    assert collaborator_scope.query_filter().eq == {"sector_id": SECTOR_ID, "subsector_id": SUBSECTOR_ID}
    assert manager_scope.query_filter().is_null == ["list_id"]


@pytest.mark.unit
def test_equal_scopes_share_a_key():
    assert SectorScope(sector_id="s1") == SectorScope(sector_id="s1")
    assert PersonalListScope(list_id="l1", owner_id="u1").key == "list:l1"
    assert CollaboratorScope(sector_id="s1", subsector_id="ss1", user_id="u1").key == "collaborator:u1:subsector:ss1"


@pytest.mark.unit
def test_sector_scope_event_relevance():
    scope = SectorScope(sector_id=SECTOR_ID)

    ours = ChangeEvent(event_type="UPDATE", new={"id": "a1", "sector_id": SECTOR_ID})
    moved_out = ChangeEvent(event_type="UPDATE", new={"id": "a1", "sector_id": "s2"}, old={"sector_id": SECTOR_ID})
    theirs = ChangeEvent(event_type="INSERT", new={"id": "a2", "sector_id": "s2"})
    bare_delete = ChangeEvent(event_type="DELETE", old={"id": "a3"})

    assert scope.matches_event(ours)
    assert scope.matches_event(moved_out)
    assert not scope.matches_event(theirs)
    assert scope.matches_event(bare_delete)


@pytest.mark.unit
def test_list_scope_hears_rows_leaving_the_list():
    scope = PersonalListScope(list_id="l1", owner_id="u1")

    leaving = ChangeEvent(event_type="UPDATE", new={"id": "p1", "list_id": "l2"}, old={"id": "p1", "list_id": "l1"})
    unrelated = ChangeEvent(event_type="UPDATE", new={"id": "p2", "list_id": "l3"}, old={"id": "p2", "list_id": "l3"})

    assert scope.subscription_filter() == "created_by=eq.u1"
    assert scope.matches_event(leaving)
    assert not scope.matches_event(unrelated)


@pytest.mark.unit
def test_scope_membership():
    team_row = decode_activity_row(create_activity_row(activity_id="t1", user_id="u1"))
    list_row = decode_activity_row(create_activity_row(activity_id="p1", user_id="u1", list_id="l1"))
    archived = decode_activity_row(create_activity_row(activity_id="x1", user_id="u1", status="archived"))

    sector = SectorScope(sector_id=SECTOR_ID)
    collaborator = CollaboratorScope(sector_id=SECTOR_ID, subsector_id=SUBSECTOR_ID, user_id="u1")
    personal = PersonalListScope(list_id="l1", owner_id="u1")
    archive = ArchiveScope(sector_id=SECTOR_ID)

    assert [sector.accepts(row) for row in (team_row, list_row, archived)] == [True, False, False]
    assert [collaborator.accepts(row) for row in (team_row, list_row, archived)] == [True, False, False]
    assert [personal.accepts(row) for row in (team_row, list_row, archived)] == [False, True, False]
    assert [archive.accepts(row) for row in (team_row, list_row, archived)] == [False, False, True]
    assert ArchiveScope.realtime is False
