"""Transient user notifications (toasts)."""

from typing import Callable, Literal, Optional
from pydantic import BaseModel

from taskboard.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


class Notification(BaseModel):
    title: str
    description: Optional[str] = None
    variant: Literal["default", "destructive"] = "default"


class Notifier:
    """Collects notifications for the presentation layer."""

    def __init__(self):
        self.history: list[Notification] = []
        self._listeners: list[Callable[[Notification], None]] = []

    def subscribe(self, listener: Callable[[Notification], None]) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener) if listener in self._listeners else None

    def push(self, title: str, description: Optional[str] = None, destructive: bool = False) -> Notification:
        notification = Notification(
            title=title,
            description=description,
            variant="destructive" if destructive else "default",
        )
        self.history.append(notification)
        if destructive:
            logger.warning("User notified of failure", title=title, description=description)
        for listener in list(self._listeners):
            listener(notification)
        return notification

    def success(self, title: str, description: Optional[str] = None) -> Notification:
        return self.push(title, description)

    def failure(self, title: str, description: Optional[str] = None) -> Notification:
        return self.push(title, description, destructive=True)

    @property
    def failures(self) -> list[Notification]:
        return [n for n in self.history if n.variant == "destructive"]
