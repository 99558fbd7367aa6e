"""Error handling utilities."""

from typing import Optional


class TaskboardError(Exception):
    """Base exception for the taskboard sync engine."""
    pass


class SupabaseError(TaskboardError):
    """Supabase operation error."""
    pass


class DecodeError(TaskboardError):
    """A row returned by the store failed schema validation."""

    def __init__(self, message: str, table: Optional[str] = None, row_id: Optional[str] = None):
        self.table = table
        self.row_id = row_id
        super().__init__(message)


class InvalidInputError(TaskboardError):
    """User input rejected before reaching the store."""
    pass


class DragError(TaskboardError):
    """Drag gesture used out of order."""
    pass


class ChecklistPersistError(TaskboardError):
    """Checklist replace (delete then insert) did not complete."""

    def __init__(self, message: str, activity_id: str, stage: str, partial: bool):
        self.activity_id = activity_id
        self.stage = stage
        self.partial = partial
        super().__init__(message)
