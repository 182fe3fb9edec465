"""
utils/cache.py — Injected key/value cache stores for ComexStat results.

Two scopes share the same store interface:
  - per-code-per-year value/weight pairs  (key: cgim:comex:<flow>:<code>:<year>)
  - basket-level annual series             (key: cgim:basket:annual:<flow>:...)

Stores only move strings. read_cached()/write_cached() wrap payloads in a
{"ts": <epoch seconds>, "data": ...} envelope, enforce the time-to-live and
treat every store failure as a miss (reads) or a no-op (writes).

Usage:
    store = FileCacheStore("./data/cache/cgim_cache.json")
    write_cached(store, key, [p.model_dump() for p in points])
    write_cached_many(store, {key_a: data_a, key_b: data_b})   # one file rewrite
    data = read_cached(store, key, ttl_hours=24)   # None when absent/expired
"""

from __future__ import annotations

import json
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import structlog
from filelock import FileLock

from cgim_shared.config import settings

log = structlog.get_logger(__name__)


class CacheStore(ABC):
    """Minimal string key/value store. Writes replace the whole value."""

    @abstractmethod
    def get(self, key: str) -> str | None: ...

    @abstractmethod
    def set(self, key: str, value: str) -> None: ...

    @abstractmethod
    def delete(self, key: str) -> None: ...

    @abstractmethod
    def clear(self, prefix: str | None = None) -> int: ...

    def set_many(self, items: Mapping[str, str]) -> None:
        """Write several keys; stores with costly writes override this."""
        for key, value in items.items():
            self.set(key, value)


class MemoryCacheStore(CacheStore):
    """Thread-safe in-process store, optionally with its own per-key TTL."""

    def __init__(self, default_ttl: float | None = None) -> None:
        self._store: dict[str, tuple[str, float | None]] = {}
        self._lock = threading.Lock()
        self._default_ttl = default_ttl

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and time.monotonic() > expires_at:
                del self._store[key]
                return None
            return value

    def set(self, key: str, value: str) -> None:
        with self._lock:
            expires_at = (
                time.monotonic() + self._default_ttl
                if self._default_ttl is not None
                else None
            )
            self._store[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        with self._lock:
            self._store.pop(key, None)

    def clear(self, prefix: str | None = None) -> int:
        with self._lock:
            keys = [k for k in self._store if prefix is None or k.startswith(prefix)]
            for k in keys:
                del self._store[k]
            return len(keys)

    def __len__(self) -> int:
        return len(self._store)


def _envelope_ts(raw: Any) -> float | None:
    try:
        envelope = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return None
    ts = envelope.get("ts") if isinstance(envelope, dict) else None
    if isinstance(ts, bool) or not isinstance(ts, (int, float)):
        return None
    return float(ts)


class FileCacheStore(CacheStore):
    """
    JSON-file store shared between CLI runs.

    The whole file is read and rewritten under a file lock on every write,
    so concurrent processes racing on one key end with last-write-wins.
    Each rewrite also drops the other envelopes older than ``max_age_hours``
    (the longest configured TTL by default), which read_cached() would treat
    as misses anyway. Values that are not envelopes are left alone.
    """

    def __init__(self, path: str | Path, max_age_hours: float | None = None) -> None:
        self._path = Path(path)
        self._lock = FileLock(str(self._path) + ".lock")
        self._max_age_hours = (
            max_age_hours
            if max_age_hours is not None
            else max(settings.code_cache_ttl_hours, settings.series_cache_ttl_hours)
        )

    @property
    def path(self) -> Path:
        return self._path

    def _ensure_dir(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def _read_all(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict[str, str]) -> None:
        self._path.write_text(json.dumps(data), encoding="utf-8")

    def _drop_expired(
        self,
        data: dict[str, str],
        max_age_hours: float,
        now: float | None = None,
        keep: Mapping[str, str] | None = None,
    ) -> int:
        cutoff = (time.time() if now is None else now) - max_age_hours * 3600
        expired = []
        for key, value in data.items():
            if keep is not None and key in keep:
                continue
            ts = _envelope_ts(value)
            if ts is not None and ts < cutoff:
                expired.append(key)
        for k in expired:
            del data[k]
        return len(expired)

    def get(self, key: str) -> str | None:
        self._ensure_dir()
        with self._lock:
            value = self._read_all().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        self.set_many({key: value})

    def set_many(self, items: Mapping[str, str]) -> None:
        if not items:
            return
        self._ensure_dir()
        with self._lock:
            data = self._read_all()
            data.update(items)
            self._drop_expired(data, self._max_age_hours, keep=items)
            self._write_all(data)

    def delete(self, key: str) -> None:
        self._ensure_dir()
        with self._lock:
            data = self._read_all()
            if key in data:
                del data[key]
                self._write_all(data)

    def clear(self, prefix: str | None = None) -> int:
        self._ensure_dir()
        with self._lock:
            data = self._read_all()
            keys = [k for k in data if prefix is None or k.startswith(prefix)]
            for k in keys:
                del data[k]
            self._write_all(data)
        log.info("cache_cleared", path=str(self._path), prefix=prefix, removed=len(keys))
        return len(keys)

    def prune(self, max_age_hours: float | None = None, *, now: float | None = None) -> int:
        """Remove envelopes older than max_age_hours; returns how many went."""
        age = self._max_age_hours if max_age_hours is None else max_age_hours
        self._ensure_dir()
        with self._lock:
            data = self._read_all()
            removed = self._drop_expired(data, age, now)
            if removed:
                self._write_all(data)
        log.info("cache_pruned", path=str(self._path), max_age_hours=age, removed=removed)
        return removed


# ---------------------------------------------------------------------------
# Envelope helpers (best effort: never raise)
# ---------------------------------------------------------------------------

def read_cached(
    store: CacheStore | None,
    key: str,
    ttl_hours: float,
    *,
    now: float | None = None,
) -> Any | None:
    """Return the cached payload for key, or None on miss/expiry/error."""
    if store is None:
        return None
    try:
        raw = store.get(key)
    except Exception as exc:
        log.warning("cache_read_failed", key=key, error=str(exc))
        return None
    if not raw:
        return None
    try:
        envelope = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(envelope, dict) or "data" not in envelope:
        return None
    ts = envelope.get("ts")
    if not isinstance(ts, (int, float)) or not ts:
        return None
    current = time.time() if now is None else now
    if current - ts > ttl_hours * 3600:
        return None
    return envelope["data"]


def write_cached(
    store: CacheStore | None,
    key: str,
    data: Any,
    *,
    now: float | None = None,
) -> bool:
    """Store data under key. Returns False (after logging) when the write failed."""
    if store is None:
        return False
    try:
        payload = json.dumps({"ts": time.time() if now is None else now, "data": data})
        store.set(key, payload)
    except Exception as exc:
        log.warning("cache_write_failed", key=key, error=str(exc))
        return False
    return True


def write_cached_many(
    store: CacheStore | None,
    items: Mapping[str, Any],
    *,
    now: float | None = None,
) -> bool:
    """write_cached() for several keys in one store write."""
    if store is None or not items:
        return False
    ts = time.time() if now is None else now
    try:
        payloads = {key: json.dumps({"ts": ts, "data": data}) for key, data in items.items()}
        store.set_many(payloads)
    except Exception as exc:
        log.warning("cache_write_failed", keys=len(items), error=str(exc))
        return False
    return True
