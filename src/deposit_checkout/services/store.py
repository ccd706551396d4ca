"""Expiring keyed storage."""

import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Generic, Protocol, TypeVar

T = TypeVar("T")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


class KeyedStore(Protocol[T]):
    """Keyed storage where every entry carries an absolute expiry."""

    def create(self, key: str, value: T, ttl_seconds: int) -> T:
        """Store a new value under a key that must not already be live."""

    def get(self, key: str) -> T | None:
        """Return a live value, or None when absent or expired."""

    def delete(self, key: str) -> bool:
        """Remove a value and report whether it was present."""

    def list_active(self) -> list[tuple[str, T, datetime]]:
        """Return live entries as (key, value, expires_at)."""


@dataclass
class _StoreEntry(Generic[T]):
    value: T
    expires_at: datetime


class InMemoryExpiringStore(KeyedStore[T]):
    """Process-local store with lazy expiry.

    A single lock guards the map. Expired entries are dropped when read and
    swept on every create, so no background task is needed.
    """

    def __init__(self, clock: Clock = utc_now) -> None:
        self._entries: dict[str, _StoreEntry[T]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def create(self, key: str, value: T, ttl_seconds: int) -> T:
        """Store a value with a TTL in seconds."""
        now = self._clock()
        expires_at = now + timedelta(seconds=ttl_seconds)
        with self._lock:
            self._sweep_locked(now)
            if key in self._entries:
                raise KeyError(f"Key already exists: {key}")
            self._entries[key] = _StoreEntry(value=value, expires_at=expires_at)
        return value

    def get(self, key: str) -> T | None:
        """Return a value if it hasn't expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() > entry.expires_at:
                self._entries.pop(key, None)
                return None
            return entry.value

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def list_active(self) -> list[tuple[str, T, datetime]]:
        now = self._clock()
        with self._lock:
            return [
                (key, entry.value, entry.expires_at)
                for key, entry in self._entries.items()
                if now <= entry.expires_at
            ]

    def sweep(self) -> int:
        """Drop expired entries and return how many were removed."""
        with self._lock:
            return self._sweep_locked(self._clock())

    def _sweep_locked(self, now: datetime) -> int:
        expired = [
            key for key, entry in self._entries.items() if now > entry.expires_at
        ]
        for key in expired:
            del self._entries[key]
        return len(expired)
