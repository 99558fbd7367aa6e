"""End-to-end board scenarios against the in-memory store."""

import pytest

from taskboard.context import TaskboardContext
from taskboard.models.drag import DropKind, SortMode
from taskboard.models.identity import Role
from taskboard.services.activity_operations import ActivityDraft
from taskboard.services.checklist_editor import ChecklistEditor
from taskboard.services.event_bus import BoardEvent
from taskboard.services.groupings import by_assignee
from tests.utils.assertions import assert_subtasks_ordered
from tests.utils.factories import create_activity_row, create_identity
from tests.utils.fake_store import InMemoryRemoteStore


def record_signals(bus):
    received = []

    async def handler(signal):
        received.append(signal)

    for name in BoardEvent:
        bus.subscribe(name, handler)
    return received


@pytest.mark.integration
@pytest.mark.asyncio
async def test_sector_grouped_by_assignee_keeps_fetch_order():
    """Collaborator without a subsector sees the whole sector grouped by assignee."""
    store = InMemoryRemoteStore()
    store.seed(
        "activities",
        create_activity_row(activity_id="act1", user_id="U1", created_offset=30),
        create_activity_row(activity_id="act2", user_id="U2", created_offset=20),
        create_activity_row(activity_id="act3", user_id="U1", created_offset=10),
    )
    identity = create_identity(role=Role.COLLABORATOR, subsector_id=None)
    context = TaskboardContext(identity, store=store, name="scenario-a")

    board = context.collaborator_board()
    await board.load()
    cache = context.controller.cache(context.sector_scope.key)
    groups = cache.group_by(by_assignee, SortMode.MANUAL)

    assert {owner: [a.id for a in rows] for owner, rows in groups.items()} == {
        "U1": ["act1", "act3"],
        "U2": ["act2"],
    }
    assert list(board.columns()) == ["collaborator-U1", "collaborator-U2"]
    await context.close()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_drag_between_personal_lists():
    """Move an activity from list L to a newly created list M."""
    store = InMemoryRemoteStore()
    identity = create_identity(role=Role.MANAGER)
    context = TaskboardContext(identity, store=store, name="scenario-b")
    signals = record_signals(context.bus)

    board = context.personal_lists_board()
    lists = context.personal_lists(board)
    errands = await lists.create_list("Errands")
    p1 = await context.operations.create_activity(ActivityDraft(title="Buy stamps", list_id=errands.id))
    assert [a.id for a in board.items(errands.id)] == [p1.id]

    post_office = await lists.create_list("Post office")

    # A second view of the same lists on the shared bus
    other_tab = TaskboardContext(identity, store=store, bus=context.bus, name="other-tab")
    other_board = other_tab.personal_lists_board([errands.id, post_office.id])
    await other_board.load()

    engine = context.drag_engine(board)
    engine.start(p1.id)
    assert engine.drag_over(board.container_id(post_office.id)) == DropKind.MOVE
    outcome = await engine.drop()

    assert outcome.persisted
    assert board.items(errands.id) == []
    moved = board.items(post_office.id)
    assert [a.id for a in moved] == [p1.id]
    assert moved[0].list_id == post_office.id
    assert moved[0].is_private

    force_reloads = [
        s for s in signals
        if s.name == BoardEvent.PERSONAL_LIST_FORCE_RELOAD and s.list_id == post_office.id
    ]
    assert len(force_reloads) == 1

    assert [a.id for a in other_board.items(post_office.id)] == [p1.id]
    assert other_tab.controller.pending_refetch(f"list:{errands.id}")

    await other_tab.close()
    await context.close()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_checklist_persist_then_refetch():
    store = InMemoryRemoteStore()
    identity = create_identity(role=Role.MANAGER)
    context = TaskboardContext(identity, store=store, name="scenario-c")
    await context.controller.initialize(context.sector_scope)
    activity = await context.operations.create_activity({"title": "Publish listing"})

    editor = ChecklistEditor()
    editor.add_group("Docs")
    done = editor.add_item("Docs", "Signed mandate")
    editor.add_item("Docs", "Floor plan")
    editor.toggle_item(done.id)

    assert await context.operations.save_checklist(activity.id, editor.items) is True
    await context.controller.refetch()

    refreshed = context.controller.cache(context.sector_scope.key).get(activity.id)
    assert_subtasks_ordered(refreshed)
    assert [s.title for s in refreshed.subtasks] == ["Signed mandate", "Floor plan"]
    assert refreshed.checklist_progress() == (1, 2)
    assert ChecklistEditor(refreshed.subtasks).progress() == {"Docs": (1, 2)}
    await context.close()
