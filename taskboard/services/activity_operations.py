"""Activity operations - create, edit, status changes and checklist saves with reconciliation."""

from typing import Any, Iterable, Optional, Union
from datetime import date, datetime, timezone
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from taskboard.models.activity import Activity, ActivityStatus, Priority, Subtask, decode_activity_row
from taskboard.models.identity import Identity
from taskboard.services.checklist_editor import ChecklistItem, persist_checklist
from taskboard.services.event_bus import BoardEvent, EventBus
from taskboard.services.notifications import Notifier
from taskboard.services.remote_store import RemoteStore
from taskboard.services.sync_controller import SyncController
from taskboard.utils.errors import ChecklistPersistError, InvalidInputError, TaskboardError
from taskboard.utils.logging import correlation_context, get_structured_logger, sanitize_title

logger = get_structured_logger(__name__)

# Columns an edit may never touch
PROTECTED_FIELDS = {"id", "created_at", "created_by", "subtasks", "profiles", "subsectors"}


class ActivityDraft(BaseModel):
    """User input for a new activity."""
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    status: ActivityStatus = ActivityStatus.PENDING
    priority: Priority = Priority.MEDIUM
    due_date: Optional[date] = None
    estimated_time: Optional[float] = Field(None, gt=0)
    sector_id: Optional[str] = None
    subsector_id: Optional[str] = None
    list_id: Optional[str] = None
    user_id: Optional[str] = None
    checklist: list[ChecklistItem] = Field(default_factory=list)

    @field_validator("title", mode="before")
    @classmethod
    def _strip_title(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("status")
    @classmethod
    def _not_archived(cls, value: ActivityStatus) -> ActivityStatus:
        if value == ActivityStatus.ARCHIVED:
            raise ValueError("activities cannot be created archived")
        return value

    @model_validator(mode="after")
    def _placement(self) -> "ActivityDraft":
        if self.list_id and self.subsector_id:
            raise ValueError("an activity belongs to a personal list or a subsector, not both")
        return self


def status_fields(status: ActivityStatus, now: Optional[datetime] = None) -> dict[str, Any]:
    """Status change with ``completed_at`` stamped on completion and cleared otherwise."""
    completed_at = (now or datetime.now(timezone.utc)) if status == ActivityStatus.COMPLETED else None
    return {"status": status, "completed_at": completed_at}


def to_payload(fields: dict[str, Any]) -> dict[str, Any]:
    payload = {}
    for column, value in fields.items():
        if isinstance(value, (ActivityStatus, Priority)):
            value = value.value
        elif isinstance(value, (datetime, date)):
            value = value.isoformat()
        payload[column] = value
    return payload


class ActivityOperations:
    """Mutations on activities for one signed-in identity.

    Each mutation patches the cached rows first, persists, and always finishes
    with a reconciliation refetch of the scopes that held or now accept the row.
    """

    def __init__(
        self,
        store: RemoteStore,
        controller: SyncController,
        bus: EventBus,
        notifier: Notifier,
        identity: Identity,
    ):
        self.store = store
        self.controller = controller
        self.bus = bus
        self.notifier = notifier
        self.identity = identity

    def _affected_keys(self, activity_id: str, activity: Optional[Activity] = None) -> list[str]:
        keys = self.controller.keys_holding(activity_id)
        if activity is not None:
            for key in self.controller.keys():
                scope = self.controller.scope(key)
                if scope is not None and scope.accepts(activity) and key not in keys:
                    keys.append(key)
        return keys

    def _current(self, activity_id: str) -> Optional[Activity]:
        for key in self.controller.keys_holding(activity_id):
            row = self.controller.cache(key).get(activity_id)
            if row is not None:
                return row
        return None

    async def _announce(self, activity: Optional[Activity], force: bool = False) -> None:
        if activity is not None and activity.list_id:
            name = BoardEvent.PERSONAL_LIST_FORCE_RELOAD if force else BoardEvent.PERSONAL_LIST_UPDATED
            await self.bus.publish(name, list_id=activity.list_id, origin=self.controller.name)
        else:
            await self.bus.publish(BoardEvent.ACTIVITY_UPDATED, origin=self.controller.name)

    # -- create --------------------------------------------------------------

    async def create_activity(self, draft: Union[ActivityDraft, dict]) -> Activity:
        if isinstance(draft, dict):
            try:
                draft = ActivityDraft.model_validate(draft)
            except ValidationError as e:
                raise InvalidInputError(f"Invalid activity: {e}")

        profile = self.identity.profile
        subsector_id = draft.subsector_id
        if not draft.list_id and not subsector_id and not self.identity.is_manager:
            subsector_id = profile.subsector_id

        payload = to_payload({
            "title": draft.title,
            "description": draft.description,
            "status": draft.status,
            "priority": draft.priority,
            "due_date": draft.due_date,
            "estimated_time": draft.estimated_time,
            "sector_id": draft.sector_id or profile.sector_id,
            "subsector_id": None if draft.list_id else subsector_id,
            "list_id": draft.list_id,
            "user_id": draft.user_id or self.identity.user.id,
            "created_by": self.identity.user.id,
            "is_private": bool(draft.list_id),
        })

        with correlation_context(prefix="create"):
            try:
                rows = await self.store.mutate("activities", "insert", payload)
            except TaskboardError as e:
                self.notifier.failure("Could not create activity", str(e))
                raise

            activity = decode_activity_row(rows[0])
            logger.info(
                "Activity created",
                activity_id=activity.id,
                title=sanitize_title(activity.title),
                list_id=activity.list_id
            )

            if draft.checklist:
                try:
                    await persist_checklist(self.store, activity.id, draft.checklist)
                except ChecklistPersistError as e:
                    self.notifier.failure("Activity created, but its checklist was not saved", str(e))

            await self.controller.refetch_many(self._affected_keys(activity.id, activity))
            await self._announce(activity)
            self.notifier.success("Activity created")
            return activity

    # -- updates -------------------------------------------------------------

    async def _patch_and_persist(self, activity_id: str, fields: dict[str, Any], failure_title: str) -> bool:
        before = self._current(activity_id)
        after = before.model_copy(update=fields) if before is not None else None
        keys = self._affected_keys(activity_id, after)
        patches = self.controller.apply_optimistic_patch(activity_id, fields)

        try:
            await self.store.mutate("activities", "update", to_payload(fields), match={"id": activity_id})
        except TaskboardError as e:
            logger.warning("Activity update failed, reverting", activity_id=activity_id, error=str(e))
            self.controller.revert(patches)
            self.notifier.failure(failure_title, str(e))
            return False
        finally:
            await self.controller.refetch_many(keys)

        await self._announce(after or before)
        return True

    async def update_activity(self, activity_id: str, fields: dict[str, Any]) -> bool:
        protected = PROTECTED_FIELDS.intersection(fields)
        if protected:
            raise InvalidInputError(f"Cannot update protected fields: {sorted(protected)}")
        unknown = set(fields) - set(Activity.model_fields)
        if unknown:
            raise InvalidInputError(f"Unknown activity fields: {sorted(unknown)}")
        if "title" in fields and not str(fields["title"] or "").strip():
            raise InvalidInputError("Title is required")
        if "status" in fields:
            fields = {**fields, **status_fields(ActivityStatus(fields["status"]))}

        before = self._current(activity_id)
        if before is not None:
            try:
                checked = Activity.model_validate({**before.model_dump(), **fields})
            except ValidationError as e:
                raise InvalidInputError(f"Invalid activity update: {e}")
            fields = {column: getattr(checked, column) for column in fields}

        with correlation_context(prefix="update"):
            return await self._patch_and_persist(activity_id, fields, "Could not update activity")

    async def update_status(self, activity_id: str, status: Union[ActivityStatus, str]) -> bool:
        status = ActivityStatus(status)
        with correlation_context(prefix="status"):
            logger.info("Changing activity status", activity_id=activity_id, status=status.value)
            return await self._patch_and_persist(activity_id, status_fields(status), "Could not update status")

    async def archive_activity(self, activity_id: str) -> bool:
        return await self.update_status(activity_id, ActivityStatus.ARCHIVED)

    # -- checklist -----------------------------------------------------------

    async def save_checklist(self, activity_id: str, items: Iterable[ChecklistItem]) -> bool:
        """Replace the activity's checklist; False (with a notification) when it did not stick."""
        items = list(items)
        subtasks = [
            Subtask(
                id=item.id,
                activity_id=activity_id,
                title=item.title.strip(),
                description=item.description,
                is_completed=item.is_completed,
                order_index=index,
                checklist_group=item.checklist_group,
            )
            for index, item in enumerate(item for item in items if item.titled)
        ]
        activity = self._current(activity_id)
        keys = self._affected_keys(activity_id)

        with correlation_context(prefix="checklist"):
            self.controller.apply_optimistic_patch(activity_id, {"subtasks": subtasks})
            try:
                await persist_checklist(self.store, activity_id, items)
            except ChecklistPersistError as e:
                description = str(e)
                if e.partial:
                    description += " Some items may be missing; save again."
                self.notifier.failure("Checklist not saved", description)
                return False
            finally:
                await self.controller.refetch_many(keys)

            await self._announce(activity, force=True)
            return True
