"""Top riders widget: load, fall back to cache, render, schedule the next load.

The widget owns one display target and drives the pipeline

    SheetSource -> parse_csv_text -> extract_all -> top_n -> ResultSet

Pipeline stages report failure through an :class:`~topriders.errors.Outcome`
so this module is the only place that decides what the visitor sees.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional

from .cache import Cache
from .config import WidgetConfig
from .errorlog import ErrorLog, can_retry
from .errors import (
    ConfigurationError,
    ErrorKind,
    InvalidStructureError,
    NoDataError,
    Outcome,
    PipelineError,
    RenderError,
    user_message,
)
from .extractor import extract_all
from .models import Category, FetchedTab, ResultSet, ValidationRules
from .parser import parse_csv_text
from .presenter import DisplayTarget, Presenter
from .ranking import top_n
from .sheets import SheetSource, parse_sheet_url
from .timers import Debouncer, Repeater

log = logging.getLogger(__name__)


class WidgetState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    RENDERED = "rendered"
    ERROR = "error"


class TopRidersWidget:
    def __init__(
        self,
        config: WidgetConfig,
        targets: Mapping[str, DisplayTarget],
        source: Optional[SheetSource] = None,
        cache: Optional[Cache] = None,
        presenter: Optional[Presenter] = None,
        error_log: Optional[ErrorLog] = None,
        rules: ValidationRules = ValidationRules(),
        timer_factory: Callable = threading.Timer,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.config = config
        self.source = source or SheetSource(timeout_ms=config.timeout_ms)
        self.cache = cache or Cache(expiry_ms=config.cache_expiry_ms, enabled=config.cache_enabled)
        self.presenter = presenter or Presenter(limits=config.limits())
        self.error_log = error_log or ErrorLog()
        self.rules = rules
        self._targets = targets
        self._timer_factory = timer_factory
        self._clock = clock

        self._lock = threading.Lock()
        # Held while mounting into the target; always taken before _lock
        self._render_lock = threading.RLock()
        self._state = WidgetState.IDLE
        self._generation = 0
        self._target: Optional[DisplayTarget] = None
        self._initialized = False
        self._hidden = False
        self._auto: Optional[Repeater] = None
        self._debounced_refresh = Debouncer(config.debounce_ms / 1000.0, self.refresh, timer_factory=timer_factory)

        self.current_data: Optional[ResultSet] = None
        self.from_cache = False
        self.error_kind: Optional[ErrorKind] = None
        self.message: Optional[str] = None

    # -- lifecycle -------------------------------------------------------

    @property
    def state(self) -> WidgetState:
        return self._state

    @property
    def target(self) -> Optional[DisplayTarget]:
        return self._target

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> WidgetState:
        """Bind the display target, start timers and run the first load.

        Raises:
            ConfigurationError: the configured container is not registered.
        """
        if self._initialized:
            log.warning("TopRidersWidget already initialized")
            return self._state
        target = self._targets.get(self.config.container_selector)
        if target is None:
            log.error("Container element not found: %s", self.config.container_selector)
            raise ConfigurationError(f"Container element not found: {self.config.container_selector}")
        with self._lock:
            self._target = target
            self._initialized = True
        self.start_auto_refresh()
        if self.cache.enabled:
            self.cache.start_sweeper(self.config.sweep_interval_ms, timer_factory=self._timer_factory)
        log.info("Initializing top riders widget on %s", self.config.container_selector)
        return self.refresh()

    def destroy(self) -> None:
        """Stop timers and release the target. Safe to call repeatedly."""
        self.stop_auto_refresh()
        self._debounced_refresh.cancel()
        self.cache.stop_sweeper()
        with self._render_lock:
            with self._lock:
                self._generation += 1
                target, self._target = self._target, None
                self._initialized = False
                self._state = WidgetState.IDLE
                self.current_data = None
            if target is not None:
                target.clear()

    # -- timers and signals ------------------------------------------------

    def start_auto_refresh(self) -> None:
        self.stop_auto_refresh()
        if self.config.refresh_interval_ms > 0:
            self._auto = Repeater(
                self.config.refresh_interval_ms / 1000.0,
                self.refresh,
                timer_factory=self._timer_factory,
                name="top-riders-refresh",
            )
            self._auto.start()

    def stop_auto_refresh(self) -> None:
        if self._auto is not None:
            self._auto.cancel()
            self._auto = None

    def on_visibility_change(self, hidden: bool) -> None:
        was_hidden = self._hidden
        self._hidden = bool(hidden)
        if was_hidden and not hidden and self._initialized:
            log.debug("Widget visible again; scheduling refresh")
            self._debounced_refresh()

    def on_online(self) -> None:
        if self._initialized:
            log.info("Network connectivity regained; scheduling refresh")
            self._debounced_refresh()

    def on_offline(self) -> None:
        log.info("Network connectivity lost; relying on cache")

    def update_config(self, **changes: Any) -> WidgetConfig:
        old = self.config
        self.config = old.updated(**changes)
        self.source.timeout_ms = self.config.timeout_ms
        self.cache.expiry_ms = self.config.cache_expiry_ms
        self.cache.enabled = self.config.cache_enabled
        self.presenter.limits = self.config.limits()
        self._debounced_refresh.delay = self.config.debounce_ms / 1000.0
        if self._initialized and self.config.refresh_interval_ms != old.refresh_interval_ms:
            self.start_auto_refresh()
        return self.config

    # -- pipeline ----------------------------------------------------------

    def load_live(self) -> Outcome:
        """Run the network pipeline once and return its ResultSet or error."""
        try:
            document = parse_sheet_url(self.config.sheet_url)
            raw_tabs = self.source.fetch_all_tabs(document, self.config.tabs)
            tabs = [FetchedTab(name, parse_csv_text(text)) for name, text in raw_tabs]
            extracted = extract_all(tabs, self.rules)
            limits = self.config.limits()
            ranked = {cat: top_n(extracted.get(cat, []), limits[cat], self.rules) for cat in Category}
            result = ResultSet.from_categories(ranked, computed_at=self._clock())
        except PipelineError as e:
            return Outcome.failure(e)
        except Exception as e:  # pylint: disable=broad-except
            log.exception("Unexpected error while processing sheet data")
            return Outcome.failure(InvalidStructureError(f"Could not process sheet data: {e}"))
        if result.is_empty():
            return Outcome.failure(NoDataError("No usable rider rows in any sheet"))
        return Outcome.success(result)

    def refresh(self) -> WidgetState:
        """Reload the data unless a load is already in flight."""
        with self._lock:
            if self._target is None:
                log.debug("Refresh skipped: widget not bound to a target")
                return self._state
            if self._state is WidgetState.LOADING:
                log.debug("Refresh skipped: load already in flight")
                return self._state
            self._generation += 1
            generation = self._generation
            self._state = WidgetState.LOADING
            target = self._target
        try:
            self._run(generation, target)
        except Exception as e:  # pylint: disable=broad-except
            log.exception("Refresh failed unexpectedly")
            self.error_log.record(e, "data-loading")
            self._fail(generation, target, None)
        return self._state

    def retry(self) -> WidgetState:
        return self.refresh()

    def _is_current(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation

    def _run(self, generation: int, target: DisplayTarget) -> None:
        with self._render_lock:
            if not self._is_current(generation):
                return
            self.presenter.show_loading(target)
        log.info("Refreshing top riders data")

        outcome = self.load_live()

        if not self._is_current(generation):
            log.info("Discarding stale refresh result (generation %d)", generation)
            return

        if outcome.ok:
            result: ResultSet = outcome.value
            log.info("Loaded top riders: %s", result.counts())
            if self._present(generation, target, result, from_cache=False):
                self.cache.set(result)
            return

        self.error_log.record(outcome.error, "data-loading")
        cached = self.cache.get()
        if cached is not None:
            log.warning("Using cached data due to loading error (%s)", outcome.kind.value)
            self._present(generation, target, cached, from_cache=True)
        else:
            self._fail(generation, target, outcome.kind)

    def _present(self, generation: int, target: DisplayTarget, result: ResultSet, from_cache: bool) -> bool:
        """Show ``result``; False when the load was superseded before it committed."""
        with self._render_lock:
            if not self._is_current(generation):
                return False
            render_error = None
            try:
                self.presenter.render(target, result, from_cache=from_cache)
            except RenderError as e:
                render_error = e
            with self._lock:
                current = generation == self._generation
                if current:
                    self.current_data = result
                    self.from_cache = from_cache
                    if render_error is None:
                        self.error_kind = None
                        self.message = None
                        self._state = WidgetState.RENDERED
            if not current:
                target.clear()
                return False
            if render_error is not None:
                # Data was fine; only display failed, so no fallback or re-fetch
                self.error_log.record(render_error, "rendering")
                self._fail(generation, target, ErrorKind.RENDER_FAILURE)
            return True

    def _fail(self, generation: int, target: DisplayTarget, kind: Optional[ErrorKind]) -> None:
        message = user_message(kind)
        with self._render_lock:
            if not self._is_current(generation):
                return
            try:
                self.presenter.show_error(target, message, retry=True)
            except Exception:  # pylint: disable=broad-except
                log.exception("Could not render error placeholder")
            with self._lock:
                current = generation == self._generation
                if current:
                    self.error_kind = kind
                    self.message = message
                    self._state = WidgetState.ERROR
            if not current:
                target.clear()

    # -- reporting ---------------------------------------------------------

    def status(self) -> Dict[str, Any]:
        data = self.current_data
        return {
            "state": self._state.value,
            "message": self.message,
            "error": self.error_kind.value if self.error_kind else None,
            "retry": self._state is WidgetState.ERROR,
            "retryable": can_retry(self.error_kind) if self.error_kind else True,
            "from_cache": self.from_cache,
            "data": data.to_dict() if data is not None else None,
        }
