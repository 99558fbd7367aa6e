"""Scope keys: which rows one activity cache tracks and how it hears about changes."""

from typing import ClassVar, Optional
from pydantic import BaseModel, ConfigDict

from taskboard.models.activity import Activity, ActivityStatus
from taskboard.models.identity import Identity, Role
from taskboard.models.realtime import ChangeEvent
from taskboard.services.remote_store import ACTIVITY_SELECT, QueryFilter


class Scope(BaseModel):
    """Base scope. Subclasses define the key, the query and the membership test."""
    model_config = ConfigDict(frozen=True)

    table: ClassVar[str] = "activities"
    realtime: ClassVar[bool] = True

    @property
    def key(self) -> str:
        raise NotImplementedError

    def query_filter(self) -> QueryFilter:
        raise NotImplementedError

    def subscription_filter(self) -> Optional[str]:
        """Single-column realtime filter (``column=eq.value``)."""
        return None

    def matches_event(self, event: ChangeEvent) -> bool:
        """Whether a pushed change may affect this scope."""
        return True

    def accepts(self, activity: Activity) -> bool:
        """Whether a cached row still belongs on this scope's boards."""
        return True


def _column_matches(event: ChangeEvent, column: str, expected: Optional[str]) -> bool:
    # Deletes without replica identity only carry the primary key
    if not event.has_column(column):
        return True
    return any(row and row.get(column) == expected for row in (event.new, event.old))


class SectorScope(Scope):
    """Active, non-private activities of a sector, optionally narrowed to one subsector."""
    sector_id: str
    subsector_id: Optional[str] = None

    @classmethod
    def for_identity(cls, identity: Identity) -> "SectorScope":
        profile = identity.profile
        if profile.role == Role.COLLABORATOR and profile.subsector_id:
            return cls(sector_id=profile.sector_id, subsector_id=profile.subsector_id)
        return cls(sector_id=profile.sector_id)

    @property
    def key(self) -> str:
        if self.subsector_id:
            return f"sector:{self.sector_id}:subsector:{self.subsector_id}"
        return f"sector:{self.sector_id}"

    def query_filter(self) -> QueryFilter:
        eq = {"sector_id": self.sector_id}
        if self.subsector_id:
            eq["subsector_id"] = self.subsector_id
        return QueryFilter(
            select=ACTIVITY_SELECT,
            eq=eq,
            neq={"status": ActivityStatus.ARCHIVED.value},
            is_null=["list_id"],
            order_by="created_at",
            ascending=False,
        )

    def subscription_filter(self) -> Optional[str]:
        return f"sector_id=eq.{self.sector_id}"

    def matches_event(self, event: ChangeEvent) -> bool:
        return _column_matches(event, "sector_id", self.sector_id)

    def accepts(self, activity: Activity) -> bool:
        if activity.sector_id != self.sector_id or activity.list_id or activity.is_archived:
            return False
        return not self.subsector_id or activity.subsector_id == self.subsector_id


class CollaboratorScope(Scope):
    """One collaborator's active activities inside a subsector."""
    sector_id: str
    subsector_id: str
    user_id: str

    @property
    def key(self) -> str:
        return f"collaborator:{self.user_id}:subsector:{self.subsector_id}"

    def query_filter(self) -> QueryFilter:
        return QueryFilter(
            select=ACTIVITY_SELECT,
            eq={"sector_id": self.sector_id, "subsector_id": self.subsector_id, "user_id": self.user_id},
            neq={"status": ActivityStatus.ARCHIVED.value},
            is_null=["list_id"],
            order_by="created_at",
            ascending=False,
        )

    def subscription_filter(self) -> Optional[str]:
        return f"user_id=eq.{self.user_id}"

    def matches_event(self, event: ChangeEvent) -> bool:
        return _column_matches(event, "user_id", self.user_id) and _column_matches(
            event, "subsector_id", self.subsector_id
        )

    def accepts(self, activity: Activity) -> bool:
        return (
            activity.user_id == self.user_id
            and activity.subsector_id == self.subsector_id
            and not activity.list_id
            and not activity.is_archived
        )


class PersonalListScope(Scope):
    """Active activities of one personal list.

    Realtime filters allow a single equality, so the channel listens to
    everything the owner created and relevance is decided client side; this
    also delivers rows moving out of the list.
    """
    list_id: str
    owner_id: str

    @property
    def key(self) -> str:
        return f"list:{self.list_id}"

    def query_filter(self) -> QueryFilter:
        return QueryFilter(
            select=ACTIVITY_SELECT,
            eq={"list_id": self.list_id},
            neq={"status": ActivityStatus.ARCHIVED.value},
            order_by="created_at",
            ascending=False,
        )

    def subscription_filter(self) -> Optional[str]:
        return f"created_by=eq.{self.owner_id}"

    def matches_event(self, event: ChangeEvent) -> bool:
        if not event.has_column("list_id"):
            return True
        return any(row and row.get("list_id") == self.list_id for row in (event.new, event.old))

    def accepts(self, activity: Activity) -> bool:
        return activity.list_id == self.list_id and not activity.is_archived


class ArchiveScope(Scope):
    """Archived activities of a sector. Refreshed on demand only."""
    realtime: ClassVar[bool] = False

    sector_id: str

    @property
    def key(self) -> str:
        return f"archive:{self.sector_id}"

    def query_filter(self) -> QueryFilter:
        return QueryFilter(
            select="*, profiles:user_id(full_name, avatar_url), subsectors(name)",
            eq={"sector_id": self.sector_id, "status": ActivityStatus.ARCHIVED.value},
            order_by="created_at",
            ascending=False,
        )

    def accepts(self, activity: Activity) -> bool:
        return activity.sector_id == self.sector_id and activity.is_archived
