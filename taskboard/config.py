"""Environment-derived tuning for the sync engine."""

import os


def _burst(value: str) -> tuple[float, ...]:
    return tuple(float(part) for part in value.split(",") if part.strip())


class SyncConfig:
    """Timing and threshold settings shared by the board services."""

    # Realtime bursts (bulk edits, checklist replace) collapse into one refetch
    REFETCH_DEBOUNCE_SECONDS = float(os.environ.get("REFETCH_DEBOUNCE_SECONDS", "1.0"))
    SEARCH_DEBOUNCE_SECONDS = float(os.environ.get("SEARCH_DEBOUNCE_SECONDS", "0.3"))
    SEARCH_RESULT_LIMIT = int(os.environ.get("SEARCH_RESULT_LIMIT", "20"))

    # Pointer travel before a press becomes a drag instead of a click
    DRAG_ACTIVATION_DISTANCE_PX = float(os.environ.get("DRAG_ACTIVATION_DISTANCE_PX", "8"))

    # Focus/visibility refetch is re-sent to survive token refresh after wake
    FOCUS_REFETCH_BURST_SECONDS = _burst(os.environ.get("FOCUS_REFETCH_BURST_SECONDS", "0,0.3,1.5"))

    CHECKLIST_PERSIST_RETRIES = int(os.environ.get("CHECKLIST_PERSIST_RETRIES", "1"))
