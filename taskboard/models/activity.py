"""Activity model - board cards with their checklist subtasks."""

from enum import Enum
from typing import Any, Iterable, Optional
from datetime import date, datetime
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from taskboard.utils.errors import DecodeError


DEFAULT_CHECKLIST_GROUP = "Checklist"


class ActivityStatus(str, Enum):
    """Activity status values."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class Priority(str, Enum):
    """Activity priority values."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ProfileSummary(BaseModel):
    """Assignee profile embedded in activity rows."""
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None


class SubsectorSummary(BaseModel):
    """Subsector name embedded in activity rows."""
    name: Optional[str] = None


class Subtask(BaseModel):
    """Checklist item owned by one activity."""
    id: str = Field(..., description="Subtask ID")
    activity_id: Optional[str] = Field(None, description="Owning activity ID")
    title: str = Field("", description="Item title")
    description: Optional[str] = None
    is_completed: bool = False
    order_index: int = Field(0, description="Display order within the checklist group")
    checklist_group: Optional[str] = Field(None, description="Group label, absent means the default group")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def group(self) -> str:
        return self.checklist_group or DEFAULT_CHECKLIST_GROUP


class Activity(BaseModel):
    """Activity aggregate as returned by the activities query."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., description="Activity ID (server-assigned)")
    title: str = Field(..., min_length=1, description="Card title")
    description: Optional[str] = None
    status: ActivityStatus = ActivityStatus.PENDING
    priority: Priority = Priority.MEDIUM
    due_date: Optional[date] = None
    estimated_time: Optional[float] = Field(None, gt=0, description="Estimate in hours")
    created_at: datetime
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    is_private: bool = False
    sector_id: str = Field(..., description="Owning sector")
    subsector_id: Optional[str] = None
    list_id: Optional[str] = Field(None, description="Personal list; private activities only")
    user_id: Optional[str] = Field(None, description="Primary assignee")
    created_by: Optional[str] = None
    profile: Optional[ProfileSummary] = Field(None, alias="profiles")
    subsector: Optional[SubsectorSummary] = Field(None, alias="subsectors")
    subtasks: list[Subtask] = Field(default_factory=list)

    @field_validator("due_date", mode="before")
    @classmethod
    def _date_part(cls, value: Any) -> Any:
        if isinstance(value, str) and "T" in value:
            return value.split("T")[0]
        return value

    @field_validator("profile", "subsector", mode="before")
    @classmethod
    def _single_relation(cls, value: Any) -> Any:
        # PostgREST returns a list when it cannot infer a to-one relation
        if isinstance(value, list):
            return value[0] if value else None
        return value

    @field_validator("subtasks", mode="before")
    @classmethod
    def _null_subtasks(cls, value: Any) -> Any:
        return value or []

    @model_validator(mode="after")
    def _placement(self) -> "Activity":
        if self.list_id and self.subsector_id:
            raise ValueError("an activity belongs to a personal list or a subsector, not both")
        if self.list_id:
            self.is_private = True
        # Stable sort keeps array order for duplicate order_index values
        self.subtasks = sorted(self.subtasks, key=lambda subtask: subtask.order_index)
        return self

    @property
    def is_archived(self) -> bool:
        return self.status == ActivityStatus.ARCHIVED

    def checklist_progress(self) -> tuple[int, int]:
        """Completed and total titled subtasks."""
        titled = [subtask for subtask in self.subtasks if subtask.title.strip()]
        return sum(1 for subtask in titled if subtask.is_completed), len(titled)


def decode_activity_row(row: Any) -> Activity:
    """Validate one untrusted activities row."""
    try:
        return Activity.model_validate(row)
    except ValidationError as e:
        row_id = row.get("id") if isinstance(row, dict) else None
        raise DecodeError(f"Invalid activity row: {e}", table="activities", row_id=row_id)


def decode_activity_rows(rows: Optional[Iterable[Any]]) -> list[Activity]:
    """Validate a query result, keeping server order."""
    return [decode_activity_row(row) for row in rows or []]
