"""Personal list model."""

from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field


class PersonalList(BaseModel):
    """Private board owned by a single user."""
    id: str = Field(..., description="List ID")
    name: str = Field(..., min_length=1, description="List name")
    user_id: str = Field(..., description="Owner user ID")
    sector_id: Optional[str] = Field(None, description="Owner's sector at creation")
    created_at: Optional[datetime] = None
