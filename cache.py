"""JSON file cache for computed prayer schedules."""
from __future__ import annotations

import json
import logging
import threading
import time
from datetime import date, timedelta
from pathlib import Path
from typing import Any, Callable, Dict, Optional

LOGGER = logging.getLogger(__name__)

CACHE_PREFIX = "prayer_times_"
DEFAULT_TTL = timedelta(hours=24)


def cache_key(latitude: float, longitude: float, target_date: date) -> str:
    """Key under which a day's schedule for a location is stored."""
    return f"{latitude},{longitude}_{target_date.isoformat()}"


class PrayerTimesCache:
    """Stores opaque JSON-serialisable payloads with an expiry timestamp."""

    def __init__(
        self,
        path: Path,
        ttl: timedelta = DEFAULT_TTL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._path = Path(path)
        self._ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entries = self._load()
            entry = entries.get(CACHE_PREFIX + key)
            if entry is None:
                LOGGER.debug("Cache miss for %s", key)
                return None
            expiry = entry.get("expiry")
            if expiry is not None and self._clock() > expiry:
                LOGGER.debug("Cache entry for %s expired", key)
                del entries[CACHE_PREFIX + key]
                self._save(entries)
                return None
            LOGGER.debug("Cache hit for %s", key)
            return entry.get("data")

    def set(self, key: str, data: Any) -> None:
        with self._lock:
            entries = self._load()
            now = self._clock()
            entries[CACHE_PREFIX + key] = {
                "data": data,
                "timestamp": now,
                "expiry": now + self._ttl.total_seconds(),
            }
            self._save(entries)
            LOGGER.debug("Cached %s (ttl=%s)", key, self._ttl)

    def remove(self, key: str) -> None:
        with self._lock:
            entries = self._load()
            if entries.pop(CACHE_PREFIX + key, None) is not None:
                self._save(entries)

    def clear(self) -> None:
        with self._lock:
            entries = self._load()
            kept = {name: entry for name, entry in entries.items() if not name.startswith(CACHE_PREFIX)}
            self._save(kept)

    def cleanup(self) -> int:
        """Drop every expired entry and return how many were removed."""
        with self._lock:
            entries = self._load()
            now = self._clock()
            expired = [
                name
                for name, entry in entries.items()
                if name.startswith(CACHE_PREFIX) and entry.get("expiry") is not None and now > entry["expiry"]
            ]
            for name in expired:
                del entries[name]
            if expired:
                self._save(entries)
            LOGGER.debug("Removed %d expired cache entries", len(expired))
            return len(expired)

    def _load(self) -> Dict[str, Dict[str, Any]]:
        if not self._path.exists():
            return {}
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except (OSError, ValueError):
            LOGGER.warning("Discarding unreadable cache file %s", self._path, exc_info=True)
            return {}
        return payload if isinstance(payload, dict) else {}

    def _save(self, entries: Dict[str, Dict[str, Any]]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("w", encoding="utf-8") as handle:
            json.dump(entries, handle, indent=2)
