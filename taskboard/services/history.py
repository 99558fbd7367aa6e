"""Activity history service - audit trail listing and descriptions."""

from typing import Optional, Union
from datetime import date, datetime, time, timedelta, timezone
from pydantic import ValidationError

from taskboard.models.activity import ActivityStatus
from taskboard.models.history import ActivityHistoryEntry, HistoryAction
from taskboard.models.identity import Identity, Role
from taskboard.services.remote_store import QueryFilter, RemoteStore
from taskboard.utils.errors import TaskboardError
from taskboard.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

TABLE = "activity_history"
HISTORY_SELECT = "*, performer:profiles!performed_by(full_name, avatar_url), subsector:subsectors!subsector_id(name)"

STATUS_LABELS = {
    ActivityStatus.PENDING: "Pending",
    ActivityStatus.IN_PROGRESS: "In progress",
    ActivityStatus.COMPLETED: "Completed",
    ActivityStatus.ARCHIVED: "Archived",
}

CHANGE_LABELS = {
    "title_changed": "title",
    "description_changed": "description",
    "priority_changed": "priority",
    "due_date_changed": "due date",
    "assigned_to_changed": "assignee",
}


def status_label(status: Optional[Union[ActivityStatus, str]]) -> str:
    try:
        return STATUS_LABELS[ActivityStatus(status)]
    except ValueError:
        return "Unknown"


def describe_action(entry: ActivityHistoryEntry) -> str:
    performer = entry.performer.full_name if entry.performer and entry.performer.full_name else "Unknown user"

    if entry.action == HistoryAction.CREATED:
        return f"{performer} created the activity"
    if entry.action == HistoryAction.STATUS_CHANGED:
        return (
            f'{performer} changed the status from "{status_label(entry.old_status)}" '
            f'to "{status_label(entry.new_status)}"'
        )
    if entry.action == HistoryAction.ARCHIVED:
        return f"{performer} archived the activity"
    if entry.action == HistoryAction.UNARCHIVED:
        return f"{performer} unarchived the activity"
    if entry.action == HistoryAction.DELETED:
        return f"{performer} deleted the activity"

    changes = entry.details.get("changes") or {}
    changed = [label for flag, label in CHANGE_LABELS.items() if changes.get(flag)]
    if changed:
        return f"{performer} updated {', '.join(changed)}"
    return f"{performer} updated the activity"


def _day_start(day: date) -> str:
    return datetime.combine(day, time.min, tzinfo=timezone.utc).isoformat()


class HistoryService:
    """Reads the audit trail of the identity's sector."""

    def __init__(self, store: RemoteStore, identity: Identity):
        self.store = store
        self.identity = identity
        self.entries: list[ActivityHistoryEntry] = []
        self.error: Optional[str] = None

    def build_filter(
        self,
        activity_id: Optional[str] = None,
        subsector_id: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: Optional[int] = None,
    ) -> QueryFilter:
        profile = self.identity.profile
        eq = {"sector_id": profile.sector_id}

        # Collaborators only ever see their own subsector
        if profile.role == Role.COLLABORATOR and profile.subsector_id:
            eq["subsector_id"] = profile.subsector_id
        elif subsector_id:
            eq["subsector_id"] = subsector_id
        if activity_id:
            eq["activity_id"] = activity_id

        gte = {"created_at": _day_start(date_from)} if date_from else {}
        # Inclusive end day: exclusive bound at the start of the next day
        lt = {"created_at": _day_start(date_to + timedelta(days=1))} if date_to else {}

        return QueryFilter(
            select=HISTORY_SELECT,
            eq=eq,
            gte=gte,
            lt=lt,
            order_by="created_at",
            ascending=False,
            limit=limit,
        )

    async def fetch(
        self,
        activity_id: Optional[str] = None,
        subsector_id: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        limit: Optional[int] = None,
    ) -> list[ActivityHistoryEntry]:
        query_filter = self.build_filter(activity_id, subsector_id, date_from, date_to, limit)
        try:
            rows = await self.store.query(TABLE, query_filter)
        except TaskboardError as e:
            self.error = str(e)
            logger.warning("Failed to fetch activity history", error=str(e))
            return list(self.entries)

        entries = []
        for row in rows:
            try:
                entries.append(ActivityHistoryEntry.model_validate(row))
            except ValidationError as e:
                logger.warning("Skipping invalid history row", row_id=row.get("id"), error=str(e))

        self.entries = entries
        self.error = None
        return list(entries)
