"""Bounded record of pipeline failures, passed to the widget explicitly."""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Deque, Dict, List, Optional

from .errors import ErrorKind

log = logging.getLogger(__name__)

MAX_LOG_SIZE = 50
UNHEALTHY_ERRORS_PER_HOUR = 5


@dataclass(frozen=True)
class ErrorRecord:
    timestamp: datetime
    kind: Optional[ErrorKind]
    context: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "kind": self.kind.value if self.kind else None,
            "context": self.context,
            "message": self.message,
        }


def can_retry(kind: Optional[ErrorKind]) -> bool:
    """Whether fetching again could plausibly help."""
    return kind not in (ErrorKind.INVALID_STRUCTURE, ErrorKind.RENDER_FAILURE)


class ErrorLog:
    def __init__(self, max_size: int = MAX_LOG_SIZE, clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc), logger: Optional[logging.Logger] = None):
        self._records: Deque[ErrorRecord] = deque(maxlen=max_size)
        self._lock = threading.Lock()
        self._clock = clock
        self._log = logger or log

    def record(self, error: BaseException, context: str, kind: Optional[ErrorKind] = None) -> ErrorRecord:
        kind = kind or getattr(error, "kind", None)
        entry = ErrorRecord(self._clock(), kind, context, str(error) or type(error).__name__)
        with self._lock:
            self._records.appendleft(entry)
        self._log.error("[TopRiders:%s] %s: %s", context, kind.value if kind else type(error).__name__, entry.message)
        return entry

    def recent(self, count: int = 10) -> List[ErrorRecord]:
        with self._lock:
            return list(self._records)[: max(0, count)]

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def stats(self) -> Dict[str, Any]:
        now = self._clock()
        with self._lock:
            records = list(self._records)
        by_context: Dict[str, int] = {}
        for r in records:
            by_context[r.context] = by_context.get(r.context, 0) + 1
        return {
            "total": len(records),
            "last_hour": sum(1 for r in records if r.timestamp > now - timedelta(hours=1)),
            "last_day": sum(1 for r in records if r.timestamp > now - timedelta(days=1)),
            "by_context": by_context,
            "last_error": records[0].to_dict() if records else None,
        }

    def is_unhealthy(self) -> bool:
        return self.stats()["last_hour"] > UNHEALTHY_ERRORS_PER_HOUR

    def health_status(self) -> str:
        stats = self.stats()
        if stats["last_hour"] > UNHEALTHY_ERRORS_PER_HOUR:
            return "The system is experiencing issues. Some features may not work properly."
        if stats["total"] == 0:
            return "System is running normally."
        return f"System is mostly stable. {stats['last_day']} errors in the last 24 hours."
