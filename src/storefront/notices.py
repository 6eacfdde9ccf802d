"""User-visible notices published by the caches.

The presentation layer drains the board (or registers a listener) and shows
the messages as toasts. Nothing here blocks or raises.
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import structlog

logger = structlog.get_logger(__name__)


class NoticeLevel(Enum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class Notice:
    level: NoticeLevel
    message: str
    code: str | None = None


class NoticeBoard:
    def __init__(self) -> None:
        self._pending: list[Notice] = []
        self._listeners: list[Callable[[Notice], None]] = []

    def publish(self, level: NoticeLevel, message: str, code: str | None = None) -> Notice:
        notice = Notice(level, message, code)
        self._pending.append(notice)
        for listener in list(self._listeners):
            try:
                listener(notice)
            except Exception:
                logger.exception("Notice listener failed", code=code)
        return notice

    def info(self, message: str, code: str | None = None) -> Notice:
        return self.publish(NoticeLevel.INFO, message, code)

    def success(self, message: str, code: str | None = None) -> Notice:
        return self.publish(NoticeLevel.SUCCESS, message, code)

    def error(self, message: str, code: str | None = None) -> Notice:
        return self.publish(NoticeLevel.ERROR, message, code)

    def subscribe(self, listener: Callable[[Notice], None]) -> Callable[[], None]:
        """Register a listener. Returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def drain(self) -> list[Notice]:
        notices, self._pending = self._pending, []
        return notices

    @property
    def pending(self) -> tuple[Notice, ...]:
        return tuple(self._pending)
