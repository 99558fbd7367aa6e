"""Grouping keys, board visibility rules, stats and quick filters."""

from enum import Enum
from typing import Iterable, Optional
from datetime import date, datetime, timezone
from pydantic import BaseModel

from taskboard.models.activity import Activity, ActivityStatus


# Key functions are module level so cache memoization sees a stable identity

def by_assignee(activity: Activity) -> Optional[str]:
    if activity.list_id:
        return None
    return activity.user_id


def by_subsector(activity: Activity) -> Optional[str]:
    if activity.list_id:
        return None
    return activity.subsector_id


def by_list(activity: Activity) -> Optional[str]:
    if activity.subsector_id:
        return None
    return activity.list_id


def by_due_day(activity: Activity) -> Optional[date]:
    if activity.is_archived:
        return None
    return activity.due_date


def visible_on_team_boards(activity: Activity) -> bool:
    """Collaborator and subsector boards never show private list rows."""
    return not activity.list_id and not activity.is_archived


def visible_on_list_boards(activity: Activity) -> bool:
    return bool(activity.list_id) and not activity.subsector_id and not activity.is_archived


def calendar_buckets(activities: Iterable[Activity]) -> dict[date, list[Activity]]:
    """Activities bucketed by due day, days ascending."""
    buckets: dict[date, list[Activity]] = {}
    for activity in activities:
        day = by_due_day(activity)
        if day is not None:
            buckets.setdefault(day, []).append(activity)
    return dict(sorted(buckets.items()))


class QuickFilter(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    TODAY = "today"
    OVERDUE = "overdue"


class BoardStats(BaseModel):
    """Counters shown above a board."""
    total: int = 0
    pending: int = 0
    in_progress: int = 0
    completed: int = 0
    today: int = 0
    overdue: int = 0


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def created_today(activity: Activity, now: Optional[datetime] = None) -> bool:
    now = _utc(now or datetime.now(timezone.utc))
    return _utc(activity.created_at).date() == now.date()


def is_overdue(activity: Activity, now: Optional[datetime] = None) -> bool:
    """Due on an earlier day and not completed."""
    if activity.due_date is None or activity.status == ActivityStatus.COMPLETED:
        return False
    now = _utc(now or datetime.now(timezone.utc))
    return activity.due_date < now.date()


def matches_quick_filter(activity: Activity, quick_filter: QuickFilter, now: Optional[datetime] = None) -> bool:
    if quick_filter == QuickFilter.TODAY:
        return created_today(activity, now)
    if quick_filter == QuickFilter.OVERDUE:
        return is_overdue(activity, now)
    return activity.status.value == quick_filter.value


def quick_filter(
    activities: Iterable[Activity],
    selected: Optional[QuickFilter],
    now: Optional[datetime] = None,
) -> list[Activity]:
    """Apply a stats-card filter; None keeps everything."""
    activities = [activity for activity in activities if not activity.is_archived]
    if selected is None:
        return activities
    return [activity for activity in activities if matches_quick_filter(activity, selected, now)]


def board_stats(activities: Iterable[Activity], now: Optional[datetime] = None) -> BoardStats:
    now = now or datetime.now(timezone.utc)
    stats = BoardStats()
    for activity in activities:
        if activity.is_archived:
            continue
        stats.total += 1
        if activity.status == ActivityStatus.PENDING:
            stats.pending += 1
        elif activity.status == ActivityStatus.IN_PROGRESS:
            stats.in_progress += 1
        elif activity.status == ActivityStatus.COMPLETED:
            stats.completed += 1
        if created_today(activity, now):
            stats.today += 1
        if is_overdue(activity, now):
            stats.overdue += 1
    return stats
