"""Checklist editor - grouped subtask editing and full-replace persistence."""

from typing import Iterable, Optional, Union
from ulid import ULID
from pydantic import BaseModel, Field

from taskboard.config import SyncConfig
from taskboard.models.activity import DEFAULT_CHECKLIST_GROUP, Subtask
from taskboard.services.remote_store import RemoteStore
from taskboard.utils.errors import ChecklistPersistError, TaskboardError
from taskboard.utils.logging import get_structured_logger, log_timing

logger = get_structured_logger(__name__)


def new_item_id() -> str:
    """Temporary client id; replaced by the server id after persist."""
    return str(ULID())


class ChecklistItem(BaseModel):
    """Editable checklist entry. Empty titles are group placeholders."""
    id: str = Field(default_factory=new_item_id)
    title: str = ""
    description: Optional[str] = None
    is_completed: bool = False
    checklist_group: Optional[str] = None

    @property
    def group(self) -> str:
        return self.checklist_group or DEFAULT_CHECKLIST_GROUP

    @property
    def titled(self) -> bool:
        return bool(self.title.strip())

    @classmethod
    def from_subtask(cls, subtask: Subtask) -> "ChecklistItem":
        return cls(
            id=subtask.id,
            title=subtask.title,
            description=subtask.description,
            is_completed=subtask.is_completed,
            checklist_group=subtask.checklist_group,
        )


class ChecklistEditor:
    """In-memory checklist; nothing reaches the store until the owner is saved."""

    def __init__(self, items: Iterable[Union[ChecklistItem, Subtask]] = ()):
        self._items: list[ChecklistItem] = [
            ChecklistItem.from_subtask(item) if isinstance(item, Subtask) else item
            for item in items
        ]

    @property
    def items(self) -> list[ChecklistItem]:
        return list(self._items)

    def _find(self, item_id: str) -> Optional[int]:
        for index, item in enumerate(self._items):
            if item.id == item_id:
                return index
        return None

    # -- groups --------------------------------------------------------------

    def add_group(self, name: str) -> Optional[ChecklistItem]:
        """Start a group with a placeholder entry so it renders while empty."""
        name = (name or "").strip()
        if not name:
            return None
        placeholder = ChecklistItem(checklist_group=name)
        self._items.append(placeholder)
        return placeholder

    def rename_group(self, old_name: str, new_name: str) -> int:
        """Re-tag every entry of ``old_name``; a blank name cancels."""
        new_name = (new_name or "").strip()
        if not new_name or new_name == old_name:
            return 0

        renamed = 0
        for index, item in enumerate(self._items):
            if item.group == old_name:
                self._items[index] = item.model_copy(update={"checklist_group": new_name})
                renamed += 1
        return renamed

    def delete_group(self, name: str) -> int:
        before = len(self._items)
        self._items = [item for item in self._items if item.group != name]
        return before - len(self._items)

    def groups(self) -> dict[str, list[ChecklistItem]]:
        """Titled items per group in first-appearance order; placeholder-only groups map to []."""
        grouped: dict[str, list[ChecklistItem]] = {}
        for item in self._items:
            entries = grouped.setdefault(item.group, [])
            if item.titled:
                entries.append(item)
        return grouped

    def progress(self) -> dict[str, tuple[int, int]]:
        return {
            group: (sum(1 for item in entries if item.is_completed), len(entries))
            for group, entries in self.groups().items()
        }

    def total_progress(self) -> tuple[int, int]:
        titled = [item for item in self._items if item.titled]
        return sum(1 for item in titled if item.is_completed), len(titled)

    # -- items ---------------------------------------------------------------

    def add_item(self, group: Optional[str], title: str, description: Optional[str] = None) -> Optional[ChecklistItem]:
        title = (title or "").strip()
        if not title:
            return None
        item = ChecklistItem(title=title, description=description, checklist_group=group or None)
        self._items.append(item)
        return item

    def toggle_item(self, item_id: str) -> Optional[bool]:
        index = self._find(item_id)
        if index is None:
            return None
        item = self._items[index]
        self._items[index] = item.model_copy(update={"is_completed": not item.is_completed})
        return not item.is_completed

    def rename_item(self, item_id: str, title: str) -> bool:
        title = (title or "").strip()
        index = self._find(item_id)
        if index is None or not title:
            return False
        self._items[index] = self._items[index].model_copy(update={"title": title})
        return True

    def delete_item(self, item_id: str) -> bool:
        index = self._find(item_id)
        if index is None:
            return False
        del self._items[index]
        return True

    def paste_multiline(self, group: Optional[str], text: str) -> list[ChecklistItem]:
        """One new item per non-blank pasted line."""
        added = []
        for line in (text or "").splitlines():
            item = self.add_item(group, line)
            if item is not None:
                added.append(item)
        return added


def checklist_rows(activity_id: str, items: Iterable[ChecklistItem]) -> list[dict]:
    """Insert payload: titled items only, ``order_index`` by position."""
    rows = []
    for item in items:
        if not item.titled:
            continue
        row = {
            "activity_id": activity_id,
            "title": item.title.strip(),
            "is_completed": item.is_completed,
            "order_index": len(rows),
            "checklist_group": item.checklist_group or None,
        }
        if item.description:
            row["description"] = item.description
        rows.append(row)
    return rows


async def persist_checklist(
    store: RemoteStore,
    activity_id: str,
    items: Iterable[ChecklistItem],
    retries: Optional[int] = None,
) -> list[dict]:
    """Replace the activity's subtasks: delete all, then insert the titled items.

    The pair is a full replace, so a failed attempt is retried from the delete.
    Raises ChecklistPersistError when every attempt fails.
    """
    rows = checklist_rows(activity_id, items)
    attempts = max(1, 1 + (SyncConfig.CHECKLIST_PERSIST_RETRIES if retries is None else retries))
    deleted_any = False
    failure: Optional[ChecklistPersistError] = None

    for attempt in range(1, attempts + 1):
        stage = "delete"
        try:
            with log_timing("checklist_persist", logger=logger, activity_id=activity_id, attempt=attempt):
                await store.mutate("subtasks", "delete", match={"activity_id": activity_id})
                deleted_any = True
                stage = "insert"
                inserted = await store.mutate("subtasks", "insert", rows) if rows else []
        except TaskboardError as e:
            failure = ChecklistPersistError(
                f"Checklist {stage} failed: {e}",
                activity_id=activity_id,
                stage=stage,
                partial=deleted_any,
            )
            logger.warning(
                "Checklist persist attempt failed",
                activity_id=activity_id,
                attempt=attempt,
                attempts=attempts,
                stage=stage,
                error=str(e)
            )
            continue

        logger.info("Checklist persisted", activity_id=activity_id, items=len(rows), attempt=attempt)
        return inserted

    logger.error("Checklist persist gave up", activity_id=activity_id, stage=failure.stage, partial=failure.partial)
    raise failure
