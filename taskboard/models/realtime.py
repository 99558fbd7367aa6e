"""Realtime change event model."""

from typing import Any, Literal, Optional
from pydantic import BaseModel, Field


class ChangeEvent(BaseModel):
    """One insert/update/delete pushed by the store."""
    event_type: Literal["INSERT", "UPDATE", "DELETE"] = Field(..., description="Change kind")
    table: Optional[str] = None
    new: Optional[dict[str, Any]] = Field(None, description="Row after the change")
    old: Optional[dict[str, Any]] = Field(None, description="Row before the change")

    @classmethod
    def from_payload(cls, payload: dict) -> "ChangeEvent":
        """Decode either the realtime-py payload or the `{eventType, new, old}` shape."""
        data = payload.get("data") if isinstance(payload.get("data"), dict) else payload
        event_type = data.get("type") or data.get("eventType") or data.get("event_type")
        new = data.get("record", data.get("new"))
        old = data.get("old_record", data.get("old"))
        return cls(
            event_type=str(event_type).upper(),
            table=data.get("table"),
            new=new or None,
            old=old or None,
        )

    def value(self, column: str) -> Any:
        """Column value from the new row, falling back to the old row."""
        for row in (self.new, self.old):
            if row and row.get(column) is not None:
                return row[column]
        return None

    def has_column(self, column: str) -> bool:
        return any(row and column in row for row in (self.new, self.old))
