import logging
import uuid
from collections import deque
from datetime import datetime
from typing import Callable, List

from config import LOG_CAPACITY
from core.schemas import LogEntry, Severity

logger = logging.getLogger(__name__)

_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.SUCCESS: logging.INFO,
    Severity.THINKING: logging.INFO,
    Severity.WARNING: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}


class LogChannel:
    """
    Bounded narration log shown next to the matrix.

    Keeps the most recent ``capacity`` entries, oldest evicted first.
    Subscribers are called synchronously on every append so narration
    interleaves with the asynchronous stages it describes.
    """

    def __init__(self, capacity: int = LOG_CAPACITY, clock: Callable[[], datetime] = datetime.now):
        self._entries: deque = deque(maxlen=capacity)
        self._clock = clock
        self._subscribers: List[Callable[[LogEntry], None]] = []

    def append(self, message: str, severity: Severity = Severity.INFO) -> LogEntry:
        severity = Severity(severity)
        entry = LogEntry(
            id=uuid.uuid4().hex[:9],
            timestamp=self._clock().strftime("%H:%M:%S"),
            message=message,
            severity=severity,
        )
        self._entries.append(entry)
        logger.log(_LEVELS[severity], "[%s] %s", severity.value, message)
        for callback in self._subscribers:
            callback(entry)
        return entry

    def snapshot(self) -> List[LogEntry]:
        """Current entries, oldest first."""
        return list(self._entries)

    def subscribe(self, callback: Callable[[LogEntry], None]) -> None:
        self._subscribers.append(callback)

    def clear(self) -> None:
        self._entries.clear()

    # Shorthands used by the pipeline and service layer
    def info(self, message: str) -> LogEntry:
        return self.append(message, Severity.INFO)

    def thinking(self, message: str) -> LogEntry:
        return self.append(message, Severity.THINKING)

    def success(self, message: str) -> LogEntry:
        return self.append(message, Severity.SUCCESS)

    def warning(self, message: str) -> LogEntry:
        return self.append(message, Severity.WARNING)

    def error(self, message: str) -> LogEntry:
        return self.append(message, Severity.ERROR)

    def __len__(self) -> int:
        return len(self._entries)
