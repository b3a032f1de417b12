import pathlib
import sys

import pytest
import requests

sys.path.insert(0, str(pathlib.Path(__file__).resolve().parents[1]))

from topriders.cache import Cache, MemoryStore
from topriders.config import WidgetConfig
from topriders.errorlog import ErrorLog
from topriders.presenter import DisplayTarget, Presenter
from topriders.sheets import SheetSource
from topriders.widget import TopRidersWidget


PUBLISHED_URL = "https://docs.google.com/spreadsheets/d/e/2PACX-1vTestLeague_abc-123/pubhtml"

MAIN_LEAGUE_CSV = "First Name,Last Name,Total,CI Club\nJohn,Doe,150,Test Club\nJane,Smith,140,Another Club"
DEV_LEAGUE_CSV = "Pos,Last Name,Total\n1,Alice Walker,90\n2,Bob Stone,85\n3,Cara Lane,60"
ML_PRIMES_CSV = "Rider,Points,Team\nJohn Doe,12,Test Club\nMick Byrne,15,Galway BC"
DL_PRIMES_CSV = "Name,Pts\nAlice Walker,7\nBob Stone,9"

GIDS = {
    "Main League": "2052107479",
    "ML Primes": "394788670",
    "Dev League": "732061928",
    "DL Primes": "1028354950",
}


class FakeTimer:
    """Manually fired stand-in for threading.Timer."""

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.started = False
        self.cancelled = False
        self.daemon = False
        self.finished = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if self.started and not self.cancelled and not self.finished:
            self.finished = True
            self.function()


class TimerRecorder:
    def __init__(self):
        self.timers = []

    def __call__(self, interval, function):
        timer = FakeTimer(interval, function)
        self.timers.append(timer)
        return timer

    def live(self, interval=None):
        return [
            t for t in self.timers
            if t.started and not t.cancelled and not t.finished and (interval is None or t.interval == interval)
        ]


class FakeResponse:
    def __init__(self, text="", status_code=200, chunks=None):
        self.text = text
        self.status_code = status_code
        self.chunks = chunks
        self.closed = False

    def iter_content(self, chunk_size=1):
        if self.chunks is not None:
            yield from self.chunks
            return
        body = self.text.encode("utf-8")
        for start in range(0, len(body), chunk_size):
            yield body[start:start + chunk_size]

    def close(self):
        self.closed = True

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)


class FakeHttp:
    """requests-compatible ``get`` keyed by the ``gid`` query parameter.

    Values may be CSV text, an int status code, a FakeResponse, or an
    exception instance.
    """

    def __init__(self, by_gid=None):
        self.by_gid = dict(by_gid or {})
        self.calls = []

    def get(self, url, headers=None, timeout=None, stream=False):
        self.calls.append((url, timeout))
        gid = url.rsplit("gid=", 1)[-1] if "gid=" in url else ""
        value = self.by_gid.get(gid, requests.ConnectionError("connection refused"))
        if isinstance(value, BaseException):
            raise value
        if isinstance(value, FakeResponse):
            return value
        if isinstance(value, int):
            return FakeResponse("", value)
        return FakeResponse(value)


class ManualClock:
    def __init__(self, start=1_700_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    for name in (
        "DATABASE_URL",
        "TOPRIDERS_SHEET_URL",
        "TOPRIDERS_REFRESH_INTERVAL_MS",
        "TOPRIDERS_CACHE_ENABLED",
        "TOPRIDERS_CACHE_EXPIRY_MS",
        "TOPRIDERS_TOP_ML",
        "TOPRIDERS_TOP_DL",
        "TOPRIDERS_TOP_PRIME",
        "TOPRIDERS_TIMEOUT_MS",
        "TOPRIDERS_CONTAINER",
    ):
        monkeypatch.delenv(name, raising=False)
    # Tests start the widget themselves with fakes in place
    monkeypatch.setenv("TOPRIDERS_AUTOSTART", "0")
    yield


@pytest.fixture()
def timer_factory():
    return TimerRecorder()


@pytest.fixture()
def clock():
    return ManualClock()


@pytest.fixture()
def all_tabs_http():
    return FakeHttp({
        GIDS["Main League"]: MAIN_LEAGUE_CSV,
        GIDS["ML Primes"]: ML_PRIMES_CSV,
        GIDS["Dev League"]: DEV_LEAGUE_CSV,
        GIDS["DL Primes"]: DL_PRIMES_CSV,
    })


@pytest.fixture()
def failing_http():
    return FakeHttp({})


@pytest.fixture()
def make_widget(timer_factory, clock):
    """Build a widget wired to fakes; keyword overrides go to WidgetConfig."""
    created = []

    def _make(http, cache=None, store=None, **config_overrides):
        config = WidgetConfig(**{"sheet_url": PUBLISHED_URL, **config_overrides})
        target = DisplayTarget(config.container_selector)
        cache = cache or Cache(
            store if store is not None else MemoryStore(),
            expiry_ms=config.cache_expiry_ms,
            enabled=config.cache_enabled,
            clock=clock,
        )
        widget = TopRidersWidget(
            config,
            targets={config.container_selector: target},
            source=SheetSource(timeout_ms=config.timeout_ms, http=http),
            cache=cache,
            presenter=Presenter(limits=config.limits()),
            error_log=ErrorLog(),
            timer_factory=timer_factory,
        )
        created.append(widget)
        return widget

    yield _make
    for widget in created:
        widget.destroy()


@pytest.fixture()
def app(monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("TOPRIDERS_USERNAME", "rider")
    monkeypatch.setenv("TOPRIDERS_PASSWORD", "pedal")
    monkeypatch.setenv("TOPRIDERS_SHEET_URL", PUBLISHED_URL)
    monkeypatch.setenv("TOPRIDERS_REFRESH_INTERVAL_MS", "0")
    from topriders import create_app

    application = create_app()
    application.config.update({"TESTING": True})
    yield application
    application.extensions["topriders"].destroy()
