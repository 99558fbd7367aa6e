"""Activity history (audit trail) model."""

from enum import Enum
from typing import Any, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field

from taskboard.models.activity import ActivityStatus, ProfileSummary, SubsectorSummary


class HistoryAction(str, Enum):
    """Audit trail actions recorded by the database triggers."""
    CREATED = "created"
    STATUS_CHANGED = "status_changed"
    ARCHIVED = "archived"
    UNARCHIVED = "unarchived"
    DELETED = "deleted"
    UPDATED = "updated"


class ActivityHistoryEntry(BaseModel):
    """One audit trail row."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    activity_id: str
    action: HistoryAction
    old_status: Optional[ActivityStatus] = None
    new_status: Optional[ActivityStatus] = None
    performed_by: str
    activity_title: str
    activity_description: Optional[str] = None
    subsector_id: Optional[str] = None
    sector_id: str
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    performer: Optional[ProfileSummary] = None
    subsector: Optional[SubsectorSummary] = None
