"""Last-good ResultSet cache over a simple key-value store.

The store is a collaborator with ``get``/``set``/``delete``/``keys``; an
in-process :class:`MemoryStore` is the default and
:class:`topriders.store_pg.PostgresStore` keeps entries across restarts.
Store failures never escape: reads degrade to a miss and writes report
``False``.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from typing import Callable, Dict, List, Optional

from .constants import CACHE_KEY, CACHE_KEY_PREFIX, DEFAULT_CACHE_EXPIRY_MS, DEFAULT_SWEEP_INTERVAL_MS
from .models import ResultSet
from .timers import Repeater

log = logging.getLogger(__name__)

# Raised by envelopes that parse as JSON but hold the wrong shapes or values
_MALFORMED = (ValueError, TypeError, KeyError, AttributeError, OverflowError)


class MemoryStore:
    """Thread-safe dictionary store."""

    def __init__(self):
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self, prefix: str = "") -> List[str]:
        with self._lock:
            return [k for k in self._data if k.startswith(prefix)]


class Cache:
    """Holds exactly one ResultSet under :data:`CACHE_KEY` (last write wins)."""

    def __init__(
        self,
        store=None,
        expiry_ms: int = DEFAULT_CACHE_EXPIRY_MS,
        enabled: bool = True,
        key: str = CACHE_KEY,
        prefix: str = CACHE_KEY_PREFIX,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store if store is not None else MemoryStore()
        self.expiry_ms = int(expiry_ms)
        self.enabled = enabled
        self.key = key
        self.prefix = prefix
        self._clock = clock
        self._sweeper: Optional[Repeater] = None

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _remove(self, key: str) -> None:
        try:
            self.store.delete(key)
        except Exception:  # pylint: disable=broad-except
            log.exception("Failed to remove cache entry %s", key)

    def set(self, result: ResultSet) -> bool:
        if not self.enabled:
            return False
        payload = json.dumps({
            "data": result.to_dict(),
            "timestamp": self._now_ms(),
            "expiry": self.expiry_ms,
        })
        try:
            self.store.set(self.key, payload)
        except Exception as e:  # pylint: disable=broad-except
            log.warning("Failed to cache data: %s", e)
            return False
        log.debug("Cache set: %s (%d bytes)", self.key, len(payload))
        return True

    def _decode(self, key: str, raw: str) -> Optional[dict]:
        """Parsed envelope, or None when ``raw`` is not a well-formed one."""
        try:
            envelope = json.loads(raw)
            if not isinstance(envelope, dict) or not isinstance(envelope.get("data") or {}, dict):
                raise ValueError("unexpected envelope shape")
            int(envelope["timestamp"])
            int(envelope.get("expiry") or self.expiry_ms)
        except _MALFORMED as e:
            log.warning("Discarding corrupt cache entry %s: %s", key, e)
            return None
        return envelope

    def _read_envelope(self, key: str) -> Optional[dict]:
        try:
            raw = self.store.get(key)
        except Exception as e:  # pylint: disable=broad-except
            log.warning("Failed to read cache entry %s: %s", key, e)
            return None
        if not raw:
            return None
        envelope = self._decode(key, raw)
        if envelope is None:
            self._remove(key)
        return envelope

    def _expired(self, envelope: dict) -> bool:
        age = self._now_ms() - int(envelope["timestamp"])
        return age > int(envelope.get("expiry") or self.expiry_ms)

    def get(self) -> Optional[ResultSet]:
        if not self.enabled:
            return None
        envelope = self._read_envelope(self.key)
        if envelope is None:
            log.debug("Cache miss: %s", self.key)
            return None
        if self._expired(envelope):
            log.debug("Cache expired: %s", self.key)
            self._remove(self.key)
            return None
        try:
            result = ResultSet.from_dict(envelope.get("data") or {})
        except _MALFORMED as e:
            log.warning("Discarding unreadable cached result: %s", e)
            self._remove(self.key)
            return None
        log.debug("Cache hit: %s", self.key)
        return result

    def clear(self) -> None:
        try:
            keys = self.store.keys(self.prefix)
        except Exception as e:  # pylint: disable=broad-except
            log.warning("Failed to clear cache: %s", e)
            return
        for key in keys:
            self._remove(key)

    def sweep(self) -> int:
        """Evict every expired prefixed entry; returns how many went."""
        try:
            keys = self.store.keys(self.prefix)
        except Exception as e:  # pylint: disable=broad-except
            log.warning("Cache sweep failed: %s", e)
            return 0
        removed = 0
        for key in keys:
            envelope = self._read_envelope(key)
            if envelope is not None and self._expired(envelope):
                self._remove(key)
                removed += 1
        if removed:
            log.debug("Cache sweep: removed %d expired entries", removed)
        return removed

    def stats(self) -> Dict[str, int]:
        entries = size = expired = 0
        try:
            keys = self.store.keys(self.prefix)
        except Exception as e:  # pylint: disable=broad-except
            log.warning("Failed to get cache stats: %s", e)
            keys = []
        for key in keys:
            try:
                raw = self.store.get(key)
            except Exception:  # pylint: disable=broad-except
                continue
            if not raw:
                continue
            entries += 1
            size += len(raw)
            envelope = self._decode(key, raw)
            if envelope is not None and self._expired(envelope):
                expired += 1
        return {"entries": entries, "size": size, "expired": expired}

    def start_sweeper(self, interval_ms: int = DEFAULT_SWEEP_INTERVAL_MS, timer_factory=None) -> None:
        if self._sweeper is not None and self._sweeper.active:
            return
        kwargs = {"timer_factory": timer_factory} if timer_factory is not None else {}
        self._sweeper = Repeater(interval_ms / 1000.0, self.sweep, name="cache-sweep", **kwargs)
        self._sweeper.start()

    def stop_sweeper(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            self._sweeper = None
