"""Fetch tabs of a published Google spreadsheet as CSV text."""

from __future__ import annotations

import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

import requests

from .constants import DEFAULT_REQUEST_TIMEOUT_MS, DEFAULT_TABS
from .errors import FetchTimeoutError, InvalidSourceError, NoDataError, PipelineError, TransportError
from .models import SheetTab

log = logging.getLogger(__name__)

SHEETS_BASE = "https://docs.google.com/spreadsheets/d"

# Order matters: the published form also contains "/d/".
_PUBLISHED_RE = re.compile(r"/d/e/([a-zA-Z0-9_-]+)/pubhtml")
_DIRECT_RE = re.compile(r"/spreadsheets/d/([a-zA-Z0-9_-]+)")
_SHORT_RE = re.compile(r"/d/([a-zA-Z0-9_-]+)")

_HTTP_HEADERS = {"User-Agent": "TopRiders/1.0", "Cache-Control": "no-cache"}
_CHUNK_SIZE = 16 * 1024


@dataclass(frozen=True)
class SheetDocument:
    document_id: str
    published: bool


def default_tabs() -> List[SheetTab]:
    return [SheetTab(name, gid) for name, gid in DEFAULT_TABS]


def parse_sheet_url(url: str) -> SheetDocument:
    """Derive the document identifier from a shareable spreadsheet URL."""
    text = url or ""
    m = _PUBLISHED_RE.search(text)
    if m:
        return SheetDocument(m.group(1), published=True)
    m = _DIRECT_RE.search(text) or _SHORT_RE.search(text)
    if m:
        return SheetDocument(m.group(1), published=False)
    raise InvalidSourceError(f"Could not extract spreadsheet id from {url!r}")


def document_csv_url(document: SheetDocument) -> str:
    if document.published:
        return f"{SHEETS_BASE}/e/{document.document_id}/pub?output=csv"
    return f"{SHEETS_BASE}/{document.document_id}/export?format=csv"


def tab_csv_url(document: SheetDocument, tab: SheetTab) -> str:
    return f"{document_csv_url(document)}&gid={tab.gid}"


class SheetSource:
    """Network side of the pipeline: no cache, no rendering.

    ``http`` is anything with a ``requests``-compatible ``get``; the module
    itself is used by default so concurrent tab fetches do not share a
    ``Session``.
    """

    def __init__(self, timeout_ms: int = DEFAULT_REQUEST_TIMEOUT_MS, http=None, max_workers: int = 4, clock=time.monotonic):
        self.timeout_ms = timeout_ms
        self._clock = clock
        self.http = http or requests
        self.max_workers = max(1, int(max_workers))

    @property
    def timeout_seconds(self) -> float:
        return max(self.timeout_ms, 1) / 1000.0

    def _get(self, url: str) -> str:
        """Download ``url`` within ``timeout_ms`` of wall-clock time.

        ``requests`` applies its timeout to the connect and to each socket
        read, so the body is streamed and the overall deadline checked
        between chunks.
        """
        deadline = self._clock() + self.timeout_seconds
        chunks: List[bytes] = []
        try:
            resp = self.http.get(url, headers=_HTTP_HEADERS, timeout=self.timeout_seconds, stream=True)
            try:
                resp.raise_for_status()
                for chunk in resp.iter_content(chunk_size=_CHUNK_SIZE):
                    if self._clock() > deadline:
                        raise FetchTimeoutError(f"Request exceeded {self.timeout_ms}ms: {url}")
                    chunks.append(chunk)
            finally:
                resp.close()
        except requests.Timeout as e:
            raise FetchTimeoutError(f"Request timeout after {self.timeout_ms}ms: {url}") from e
        except requests.RequestException as e:
            raise TransportError(f"Request failed for {url}: {e}") from e
        return b"".join(chunks).decode("utf-8", errors="replace")

    def fetch_tab(self, document: SheetDocument, tab: SheetTab) -> str:
        """Return the raw CSV text of one tab."""
        url = tab_csv_url(document, tab)
        log.debug("Fetching %s sheet from %s", tab.name, url)
        return self._get(url)

    def _fetch_or_none(self, document: SheetDocument, tab: SheetTab) -> Optional[str]:
        try:
            text = self.fetch_tab(document, tab)
        except PipelineError as e:
            log.warning("Failed to fetch %s (%s): %s", tab.name, e.kind.value, e)
            return None
        log.debug("%s CSV data (first 200 chars): %s", tab.name, text[:200])
        return text

    def fetch_all_tabs(self, document: SheetDocument, tabs: Optional[Sequence[SheetTab]] = None) -> List[Tuple[str, str]]:
        """Fetch every configured tab; individual failures are skipped.

        Returns ``(tab name, raw text)`` pairs in configuration order. Raises
        :class:`NoDataError` when no tab could be fetched.
        """
        tabs = list(tabs) if tabs is not None else default_tabs()
        if not tabs:
            raise NoDataError("No sheet tabs configured")
        workers = min(self.max_workers, len(tabs))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            texts = list(executor.map(lambda t: self._fetch_or_none(document, t), tabs))
        fetched = [(tab.name, text) for tab, text in zip(tabs, texts) if text is not None]
        log.info("Fetched %d of %d sheets for %s", len(fetched), len(tabs), document.document_id)
        if not fetched:
            raise NoDataError("Failed to fetch any sheet data")
        return fetched

    def test_access(self, url: str, tabs: Optional[Iterable[SheetTab]] = None) -> bool:
        """Return True when the first tab's export responds successfully."""
        try:
            document = parse_sheet_url(url)
            first = next(iter(tabs if tabs is not None else default_tabs()), None)
            target = tab_csv_url(document, first) if first else document_csv_url(document)
            self._get(target)
        except PipelineError as e:
            log.warning("Sheet access test failed: %s", e)
            return False
        return True


__all__ = [
    "SheetDocument",
    "SheetSource",
    "default_tabs",
    "document_csv_url",
    "parse_sheet_url",
    "tab_csv_url",
]
