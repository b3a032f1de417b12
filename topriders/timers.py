"""Small timer helpers built on ``threading.Timer``.

Every helper takes a ``timer_factory`` with the ``threading.Timer``
signature so tests can substitute a manually fired timer.
"""

import logging
import threading
from typing import Callable, Optional

log = logging.getLogger(__name__)

TimerFactory = Callable[[float, Callable[[], None]], "threading.Timer"]


def _start(timer_factory: TimerFactory, delay: float, fn: Callable[[], None]):
    timer = timer_factory(delay, fn)
    try:
        timer.daemon = True
    except AttributeError:
        pass
    timer.start()
    return timer


class Repeater:
    """Call ``fn`` every ``interval`` seconds until cancelled."""

    def __init__(self, interval: float, fn: Callable[[], None], timer_factory: TimerFactory = threading.Timer, name: str = "repeater"):
        self.interval = interval
        self.fn = fn
        self.name = name
        self._timer_factory = timer_factory
        self._timer = None
        self._lock = threading.Lock()
        self._cancelled = True

    @property
    def active(self) -> bool:
        return not self._cancelled

    def start(self) -> None:
        with self._lock:
            if not self._cancelled:
                return
            self._cancelled = False
            self._timer = _start(self._timer_factory, self.interval, self._tick)

    def _tick(self) -> None:
        if self._cancelled:
            return
        try:
            self.fn()
        except Exception:  # pylint: disable=broad-except
            log.exception("%s tick failed", self.name)
        with self._lock:
            if not self._cancelled:
                self._timer = _start(self._timer_factory, self.interval, self._tick)

    def cancel(self) -> None:
        with self._lock:
            self._cancelled = True
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None


class Debouncer:
    """Collapse bursts of calls into one call ``delay`` seconds after the last."""

    def __init__(self, delay: float, fn: Callable[[], None], timer_factory: TimerFactory = threading.Timer):
        self.delay = delay
        self.fn = fn
        self._timer_factory = timer_factory
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def __call__(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = _start(self._timer_factory, self.delay, self._fire)

    def _fire(self) -> None:
        with self._lock:
            self._timer = None
        self.fn()

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
