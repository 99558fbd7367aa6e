"""Identity consumed from the auth layer."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class Role(str, Enum):
    """Profile roles."""
    MANAGER = "manager"
    COLLABORATOR = "collaborator"


class User(BaseModel):
    """Authenticated user."""
    id: str = Field(..., description="Auth user ID")
    email: Optional[str] = None


class Profile(BaseModel):
    """Profile row of the authenticated user."""
    id: str = Field(..., description="Profile ID (same as user ID)")
    full_name: Optional[str] = None
    role: Role = Role.COLLABORATOR
    sector_id: str = Field(..., description="Sector the user works in")
    subsector_id: Optional[str] = Field(None, description="Subsector for collaborators")


class Identity(BaseModel):
    """The `{ profile, user }` pair handed over by authentication."""
    user: User
    profile: Profile

    @property
    def is_manager(self) -> bool:
        return self.profile.role == Role.MANAGER
