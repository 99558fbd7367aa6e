"""Tests for Activity and related models."""

import pytest
from datetime import date
from pydantic import ValidationError

from taskboard.models.activity import (
    DEFAULT_CHECKLIST_GROUP,
    Activity,
    ActivityStatus,
    Priority,
    decode_activity_row,
    decode_activity_rows,
)
from taskboard.models.realtime import ChangeEvent
from taskboard.utils.errors import DecodeError
from tests.utils.factories import create_activity_row, create_subtask_row


@pytest.mark.unit
def test_activity_defaults():
    """Test decoding a minimal row."""
    activity = decode_activity_row({
        "id": "a1",
        "title": "Prepare report",
        "created_at": "2024-12-09T09:00:00+00:00",
        "sector_id": "sector-1",
    })

    assert activity.status == ActivityStatus.PENDING
    assert activity.priority == Priority.MEDIUM
    assert activity.subtasks == []
    assert activity.is_private is False
    assert activity.is_archived is False


@pytest.mark.unit
def test_activity_embedded_relations():
    """Test that PostgREST relation names map onto the model."""
    row = create_activity_row(activity_id="a1")
    row["profiles"] = {"full_name": "Ana Souza", "avatar_url": None}
    row["subsectors"] = [{"name": "Finance"}]

    activity = decode_activity_row(row)

    assert activity.profile.full_name == "Ana Souza"
    assert activity.subsector.name == "Finance"


@pytest.mark.unit
def test_activity_due_date_timestamp_truncated():
    row = create_activity_row(due_date="2024-12-15T03:00:00+00:00")

    activity = decode_activity_row(row)

    assert activity.due_date == date(2024, 12, 15)


@pytest.mark.unit
def test_activity_subtasks_sorted_stably():
    """Test subtasks sort by order_index and ties keep array order."""
    row = create_activity_row(activity_id="a1")
    row["subtasks"] = [
        create_subtask_row("a1", order_index=2, id="s-late"),
        create_subtask_row("a1", order_index=0, id="s-first"),
        create_subtask_row("a1", order_index=1, id="s-tie-a"),
        create_subtask_row("a1", order_index=1, id="s-tie-b"),
    ]

    activity = decode_activity_row(row)

    assert [s.id for s in activity.subtasks] == ["s-first", "s-tie-a", "s-tie-b", "s-late"]


@pytest.mark.unit
def test_activity_list_forces_private():
    row = create_activity_row(list_id="list-1", is_private=False)

    activity = decode_activity_row(row)

    assert activity.is_private is True
    assert activity.subsector_id is None


@pytest.mark.unit
def test_activity_list_and_subsector_rejected():
    with pytest.raises(ValidationError):
        Activity(
            id="a1",
            title="Both",
            created_at="2024-12-09T09:00:00+00:00",
            sector_id="sector-1",
            subsector_id="subsector-1",
            list_id="list-1",
        )


@pytest.mark.unit
def test_activity_blank_title_is_decode_error():
    row = create_activity_row(activity_id="bad", title="")

    with pytest.raises(DecodeError) as exc_info:
        decode_activity_row(row)

    assert exc_info.value.row_id == "bad"
    assert exc_info.value.table == "activities"


@pytest.mark.unit
def test_activity_estimated_time_must_be_positive():
    with pytest.raises(DecodeError):
        decode_activity_row(create_activity_row(estimated_time=0))


@pytest.mark.unit
def test_checklist_progress_counts_titled_items_only():
    row = create_activity_row(activity_id="a1")
    row["subtasks"] = [
        create_subtask_row("a1", 0, is_completed=True),
        create_subtask_row("a1", 1, is_completed=False),
        create_subtask_row("a1", 2, title="", is_completed=True),
    ]

    assert decode_activity_row(row).checklist_progress() == (1, 2)


@pytest.mark.unit
def test_subtask_default_group():
    row = create_activity_row(activity_id="a1")
    row["subtasks"] = [create_subtask_row("a1", checklist_group=None)]

    assert decode_activity_row(row).subtasks[0].group == DEFAULT_CHECKLIST_GROUP


@pytest.mark.unit
def test_decode_rows_keeps_server_order():
    rows = [create_activity_row(activity_id=f"a{i}") for i in range(3)]

    assert [a.id for a in decode_activity_rows(rows)] == ["a0", "a1", "a2"]
    assert decode_activity_rows(None) == []


@pytest.mark.unit
def test_change_event_from_realtime_payload():
    payload = {
        "data": {
            "type": "update",
            "table": "activities",
            "record": {"id": "a1", "sector_id": "sector-1"},
            "old_record": {"id": "a1"},
        }
    }

    event = ChangeEvent.from_payload(payload)

    assert event.event_type == "UPDATE"
    assert event.table == "activities"
    assert event.value("sector_id") == "sector-1"
    assert event.has_column("sector_id")


@pytest.mark.unit
def test_change_event_from_legacy_shape():
    event = ChangeEvent.from_payload({"eventType": "DELETE", "new": {}, "old": {"id": "a1"}})

    assert event.event_type == "DELETE"
    assert event.new is None
    assert event.old == {"id": "a1"}
    assert not event.has_column("sector_id")
