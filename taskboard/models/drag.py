"""Drag-and-drop session models."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class SortMode(str, Enum):
    """Column ordering. Only MANUAL can be changed by dragging."""
    MANUAL = "manual"
    ALPHABETICAL = "alphabetical"
    CREATED_AT = "created_at"


class DragState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"
    DRAGGING = "dragging"


class DropKind(str, Enum):
    """What a completed gesture turned out to be."""
    MOVE = "move"
    REORDER = "reorder"
    NOOP = "noop"
    CLICK = "click"


class DragSession(BaseModel):
    """State of the one in-progress drag gesture."""
    active_id: str = Field(..., description="Dragged activity ID")
    source_container: str = Field(..., description="Container the drag started in")
    over_id: Optional[str] = Field(None, description="Current drop target candidate")
    classification: Optional[DropKind] = None
    origin_x: float = 0.0
    origin_y: float = 0.0
    activated: bool = False


class DropOutcome(BaseModel):
    """Result of a completed gesture."""
    kind: DropKind
    activity_id: Optional[str] = None
    source_container: Optional[str] = None
    target_container: Optional[str] = None
    old_index: Optional[int] = None
    new_index: Optional[int] = None
    persisted: bool = False
    error: Optional[str] = None
