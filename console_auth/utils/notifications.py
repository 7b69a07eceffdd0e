import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .. import settings

logger = logging.getLogger(__name__)

SEVERITIES = ("success", "info", "warning", "error")

_LOG_LEVELS = {
    "success": logging.INFO,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


@dataclass
class Notice:
    message: str
    severity: str
    kind: Optional[str]
    created_at: float
    ttl: float

    def expired(self, now: float) -> bool:
        return now - self.created_at >= self.ttl


class Notifier:
    """
    Single transient notification slot, like the console's snackbar:
    a new notice replaces the current one and each one auto-expires.
    """

    def __init__(self, ttl: float = settings.NOTIFICATION_TTL, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._current: Optional[Notice] = None

    def notify(self, message: str, severity: str = "info", kind: Optional[str] = None) -> Notice:
        if severity not in SEVERITIES:
            raise ValueError(f"unknown severity: {severity!r}")
        notice = Notice(message=message, severity=severity, kind=kind, created_at=self._clock(), ttl=self.ttl)
        self._current = notice
        logger.log(_LOG_LEVELS[severity], "[%s] %s", kind or severity, message)
        return notice

    @property
    def current(self) -> Optional[Notice]:
        if self._current is not None and self._current.expired(self._clock()):
            self._current = None
        return self._current

    def dismiss(self):
        self._current = None
