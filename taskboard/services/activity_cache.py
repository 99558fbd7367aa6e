"""Per-scope activity cache with optimistic patches and memoized groupings."""

from enum import Enum
from typing import Any, Callable, Hashable, Iterable, Optional
from pydantic import BaseModel

from taskboard.models.activity import Activity
from taskboard.models.drag import SortMode
from taskboard.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

KeyFn = Callable[[Activity], Optional[Hashable]]


class ScopeState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    REFRESHING = "refreshing"
    ERROR = "error"


class OptimisticPatch(BaseModel):
    """Undo record for one optimistic change."""
    scope_key: str
    activity_id: str
    fields: dict[str, Any]
    previous: Optional[Activity] = None


def sort_activities(activities: Iterable[Activity], sort_mode: SortMode) -> list[Activity]:
    """Apply an automatic sort mode; MANUAL keeps the given order."""
    activities = list(activities)
    if sort_mode == SortMode.ALPHABETICAL:
        return sorted(activities, key=lambda a: a.title.casefold())
    if sort_mode == SortMode.CREATED_AT:
        return sorted(activities, key=lambda a: a.created_at)
    return activities


class ActivityCache:
    """Rows of one scope in server order.

    Consumers read ``rows`` and ``group_by``; all writes go through the methods
    below so the groupings memo stays valid.
    """

    def __init__(self, scope_key: str, accepts: Optional[Callable[[Activity], bool]] = None):
        self.scope_key = scope_key
        self.state = ScopeState.UNINITIALIZED
        self.error: Optional[str] = None
        self.version = 0
        self.loads = 0
        self._accepts = accepts or (lambda activity: True)
        self._rows: list[Activity] = []
        self._loaded = False
        self._groupings: dict[tuple, tuple[int, dict]] = {}
        self._listeners: list[Callable[["ActivityCache"], None]] = []

    # -- reads -------------------------------------------------------------

    @property
    def rows(self) -> list[Activity]:
        return [row for row in self._rows if self._accepts(row)]

    @property
    def loading(self) -> bool:
        return self.state == ScopeState.LOADING

    @property
    def refreshing(self) -> bool:
        return self.state == ScopeState.REFRESHING

    @property
    def has_data(self) -> bool:
        return self._loaded

    def get(self, activity_id: str) -> Optional[Activity]:
        for row in self._rows:
            if row.id == activity_id:
                return row
        return None

    def __contains__(self, activity_id: str) -> bool:
        return any(row.id == activity_id for row in self.rows)

    def ids(self) -> list[str]:
        return [row.id for row in self.rows]

    def group_by(self, key_fn: KeyFn, sort_mode: SortMode = SortMode.MANUAL) -> dict[Hashable, list[Activity]]:
        """Group visible rows by ``key_fn``; rows keyed ``None`` are left out."""
        memo_key = (key_fn, sort_mode)
        cached = self._groupings.get(memo_key)
        if cached and cached[0] == self.version:
            return cached[1]

        groups: dict[Hashable, list[Activity]] = {}
        for row in sort_activities(self.rows, sort_mode):
            key = key_fn(row)
            if key is None:
                continue
            groups.setdefault(key, []).append(row)

        self._groupings[memo_key] = (self.version, groups)
        return groups

    # -- fetch lifecycle -----------------------------------------------------

    def begin_fetch(self) -> None:
        self.state = ScopeState.REFRESHING if self.has_data else ScopeState.LOADING
        self._notify()

    def set_rows(self, rows: Iterable[Activity]) -> None:
        """Replace the full set; subtasks are already ordered by the decoder."""
        self._rows = list(rows)
        self._loaded = True
        self.loads += 1
        self.error = None
        self.state = ScopeState.READY
        self._changed()

    def fail(self, message: str) -> None:
        """Record a fetch failure; previous rows stay readable."""
        self.error = message
        self.state = ScopeState.ERROR
        self._notify()

    # -- local mutations -------------------------------------------------------

    def apply_optimistic_patch(self, activity_id: str, fields: dict[str, Any]) -> Optional[OptimisticPatch]:
        for index, row in enumerate(self._rows):
            if row.id == activity_id:
                self._rows[index] = row.model_copy(update=fields)
                self._changed()
                return OptimisticPatch(
                    scope_key=self.scope_key,
                    activity_id=activity_id,
                    fields=fields,
                    previous=row,
                )
        return None

    def revert(self, patch: OptimisticPatch) -> bool:
        if patch.previous is None:
            return self.remove_locally(patch.activity_id) is not None
        for index, row in enumerate(self._rows):
            if row.id == patch.activity_id:
                self._rows[index] = patch.previous
                self._changed()
                return True
        self._rows.append(patch.previous)
        self._changed()
        return True

    def remove_locally(self, activity_id: str) -> Optional[Activity]:
        for index, row in enumerate(self._rows):
            if row.id == activity_id:
                del self._rows[index]
                self._changed()
                return row
        return None

    def upsert_locally(self, activity: Activity, at_start: bool = True) -> None:
        for index, row in enumerate(self._rows):
            if row.id == activity.id:
                self._rows[index] = activity
                self._changed()
                return
        # Server order is newest first
        if at_start:
            self._rows.insert(0, activity)
        else:
            self._rows.append(activity)
        self._changed()

    # -- listeners -------------------------------------------------------------

    def subscribe(self, listener: Callable[["ActivityCache"], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _changed(self) -> None:
        self.version += 1
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                logger.error("Cache listener failed", scope_key=self.scope_key, error=str(e), exc_info=True)
