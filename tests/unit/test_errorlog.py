import pathlib
import sys
from datetime import datetime, timedelta, timezone

sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))

from topriders.errorlog import ErrorLog, can_retry
from topriders.errors import (
    ErrorKind,
    FetchTimeoutError,
    InvalidStructureError,
    NoDataError,
    RenderError,
    TransportError,
    user_message,
)


class StepClock:
    def __init__(self):
        self.now = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now


def test_record_uses_error_kind_and_logs(caplog):
    caplog.set_level("ERROR")
    log = ErrorLog()
    entry = log.record(FetchTimeoutError("Request timeout after 10000ms"), "data-loading")
    assert entry.kind is ErrorKind.TIMEOUT
    assert entry.context == "data-loading"
    assert "[TopRiders:data-loading] Timeout: Request timeout after 10000ms" in caplog.text


def test_log_is_bounded_newest_first():
    log = ErrorLog(max_size=3)
    for i in range(5):
        log.record(TransportError(f"fail {i}"), "data-loading")
    assert [r.message for r in log.recent()] == ["fail 4", "fail 3", "fail 2"]
    assert log.recent(1)[0].message == "fail 4"


def test_stats_and_health_windows():
    clock = StepClock()
    log = ErrorLog(clock=clock)
    assert log.health_status() == "System is running normally."

    log.record(NoDataError("empty"), "data-loading")
    clock.now += timedelta(hours=2)
    log.record(RenderError("template"), "rendering")
    stats = log.stats()
    assert stats["total"] == 2
    assert stats["last_hour"] == 1
    assert stats["last_day"] == 2
    assert stats["by_context"] == {"data-loading": 1, "rendering": 1}
    assert stats["last_error"]["kind"] == "RenderFailure"
    assert log.health_status().startswith("System is mostly stable. 2 errors")
    assert not log.is_unhealthy()

    for _ in range(6):
        log.record(TransportError("down"), "data-loading")
    assert log.is_unhealthy()

    log.clear()
    assert log.stats()["total"] == 0


def test_plain_exceptions_are_recorded_without_kind():
    entry = ErrorLog().record(KeyError(), "rendering")
    assert entry.kind is None
    assert entry.message == "KeyError"


def test_retry_guidance_and_messages():
    assert can_retry(ErrorKind.TIMEOUT)
    assert can_retry(ErrorKind.NO_DATA)
    assert not can_retry(ErrorKind.INVALID_STRUCTURE)
    assert not can_retry(ErrorKind.RENDER_FAILURE)
    assert user_message(ErrorKind.TRANSPORT) == "Unable to fetch data. Please check your connection."
    assert user_message(InvalidStructureError("x").kind) == "Unable to process standings data."
    assert user_message(ErrorKind.NO_DATA) == "No rider data available."
    assert user_message(ErrorKind.RENDER_FAILURE) == "An error occurred while loading top riders."
