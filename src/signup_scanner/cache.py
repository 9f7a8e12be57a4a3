"""In-memory TTL cache for remote API results."""

from __future__ import annotations

import hashlib
import logging
import re
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Pattern

from signup_scanner.constants import DEFAULT_TTL, SWEEP_INTERVAL

logger = logging.getLogger(__name__)

_MISSING = object()


@dataclass
class CacheEntry:
    value: Any
    expires_at: float  # epoch millis
    created_at: float
    last_accessed_at: float
    hit_count: int = 0


class TTLCache:
    """Thread-safe key/value store with per-entry expiry.

    Expired entries are dropped lazily when read and by a periodic sweep
    running on a daemon thread once ``start()`` has been called.  All keys
    that belong to one user embed the user id, so ``invalidate_pattern``
    can clear a user's namespaces in a single call.
    """

    def __init__(
        self,
        sweep_interval: float = SWEEP_INTERVAL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._stats = {"hits": 0, "misses": 0, "sets": 0, "deletes": 0}
        self._stop = threading.Event()
        self._sweeper: threading.Thread | None = None

    def _now_ms(self) -> float:
        return self._clock() * 1000

    # --- public API ---

    def set(self, key: str, value: Any, ttl_seconds: float = DEFAULT_TTL) -> bool:
        """Store ``value`` under ``key``, replacing any prior entry and its TTL."""
        try:
            now = self._now_ms()
            entry = CacheEntry(
                value=value,
                expires_at=now + ttl_seconds * 1000,
                created_at=now,
                last_accessed_at=now,
            )
            with self._lock:
                self._entries[key] = entry
                self._stats["sets"] += 1
            return True
        except Exception:  # noqa: BLE001
            logger.exception("Cache set failed for key %s", key)
            return False

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value, or ``default`` on a miss or expired entry."""
        with self._lock:
            now = self._now_ms()
            entry = self._entries.get(key)
            if entry is None:
                self._stats["misses"] += 1
                return default
            if now > entry.expires_at:
                del self._entries[key]
                self._stats["deletes"] += 1
                self._stats["misses"] += 1
                return default
            entry.hit_count += 1
            entry.last_accessed_at = now
            self._stats["hits"] += 1
            return entry.value

    def has(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            if self._now_ms() > entry.expires_at:
                del self._entries[key]
                self._stats["deletes"] += 1
                return False
            return True

    def entry(self, key: str) -> CacheEntry | None:
        """Return the raw entry for inspection, without touching counters."""
        with self._lock:
            return self._entries.get(key)

    def delete(self, key: str) -> bool:
        with self._lock:
            if self._entries.pop(key, _MISSING) is _MISSING:
                return False
            self._stats["deletes"] += 1
            return True

    def invalidate_pattern(self, pattern: str | Pattern[str]) -> int:
        """Delete every key matching ``pattern``; return how many were removed."""
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        with self._lock:
            doomed = [k for k in self._entries if regex.search(str(k))]
            for k in doomed:
                del self._entries[k]
            self._stats["deletes"] += len(doomed)
        if doomed:
            logger.debug("Invalidated %d cache entries matching %s", len(doomed), regex.pattern)
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._stats["deletes"] += len(self._entries)
            self._entries.clear()

    def sweep(self) -> int:
        """Remove every entry whose expiry has passed."""
        with self._lock:
            now = self._now_ms()
            expired = [k for k, e in self._entries.items() if now > e.expires_at]
            for k in expired:
                del self._entries[k]
            self._stats["deletes"] += len(expired)
        if expired:
            logger.info("Cleaned up %d expired cache entries", len(expired))
        return len(expired)

    def get_stats(self) -> dict:
        """Return cumulative counters and the derived hit rate."""
        with self._lock:
            stats = dict(self._stats)
            stats["size"] = len(self._entries)
        lookups = stats["hits"] + stats["misses"]
        stats["hit_rate"] = stats["hits"] / lookups if lookups else 0.0
        return stats

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # --- background sweep ---

    def start(self) -> None:
        """Start the periodic sweep thread (no-op if already running)."""
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop.clear()
        self._sweeper = threading.Thread(
            target=self._sweep_loop, name="ttl-cache-sweeper", daemon=True
        )
        self._sweeper.start()

    def stop(self) -> None:
        self._stop.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=1)
            self._sweeper = None

    def _sweep_loop(self) -> None:
        while not self._stop.wait(self.sweep_interval):
            try:
                self.sweep()
            except Exception:  # noqa: BLE001
                logger.exception("Cache sweep failed")

    # --- context manager ---

    def __enter__(self) -> TTLCache:
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        self.stop()


# --- key namespaces (every key embeds the user id) ---


def scan_key(user_id: str, query: str, max_messages: int) -> str:
    """Key for one scan; the query is hashed so it cannot blend into the user id."""
    digest = hashlib.sha256(query.encode("utf-8")).hexdigest()
    return f"scan_{user_id}_{max_messages}_{digest}"


def services_key(user_id: str) -> str:
    return f"user_services_{user_id}"


def invalidate_user(cache: TTLCache, user_id: str) -> int:
    """Drop every cached result that belongs to ``user_id``."""
    uid = re.escape(user_id)
    return cache.invalidate_pattern(rf"^(scan_{uid}_\d+_[0-9a-f]{{64}}|user_services_{uid})$")
