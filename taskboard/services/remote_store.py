"""Remote store contract consumed by the sync engine."""

from typing import Any, Awaitable, Callable, Literal, Optional, Protocol
from pydantic import BaseModel, Field

from taskboard.models.realtime import ChangeEvent


ACTIVITY_SELECT = (
    "*, "
    "profiles:user_id(full_name, avatar_url), "
    "subsectors(name), "
    "subtasks(id, activity_id, title, description, is_completed, order_index, "
    "checklist_group, created_at, updated_at)"
)

MutationOp = Literal["insert", "update", "delete"]
ChangeHandler = Callable[[ChangeEvent], Awaitable[None]]
Unsubscribe = Callable[[], Awaitable[None]]


class QueryFilter(BaseModel):
    """Declarative read filter; adapters translate it to their query language."""
    select: str = "*"
    eq: dict[str, Any] = Field(default_factory=dict)
    neq: dict[str, Any] = Field(default_factory=dict)
    is_null: list[str] = Field(default_factory=list)
    not_null: list[str] = Field(default_factory=list)
    gte: dict[str, Any] = Field(default_factory=dict)
    lt: dict[str, Any] = Field(default_factory=dict)
    search_columns: list[str] = Field(default_factory=list, description="OR of case-insensitive contains")
    search_term: Optional[str] = None
    order_by: Optional[str] = None
    ascending: bool = True
    limit: Optional[int] = None


class RemoteStore(Protocol):
    """Query, mutate and subscribe against the authoritative store.

    Every failure surfaces as ``SupabaseError``; the message is the store's
    error descriptor.
    """

    async def query(self, table: str, filter: QueryFilter) -> list[dict]:
        ...

    async def mutate(
        self,
        table: str,
        op: MutationOp,
        payload: Optional[Any] = None,
        match: Optional[dict[str, Any]] = None,
    ) -> list[dict]:
        ...

    async def rpc(self, function: str, params: dict[str, Any]) -> Any:
        ...

    async def subscribe(
        self,
        table: str,
        filter: Optional[str],
        on_change: ChangeHandler,
    ) -> Unsubscribe:
        ...
