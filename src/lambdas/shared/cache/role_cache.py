"""Available-roles cache with TTL and event-driven invalidation.

RoleCache memoizes ``{available_roles, cached_at}`` per user so a role
switcher can be populated without a round trip. It is NEVER a source of
truth for an authorization decision; the route guard and the role-change
authorizer always re-resolve.

Invalidation:
    - eagerly, on any role:* or testmode:* event for the user (an event
      without a user id clears everything)
    - lazily, when an entry is read after its TTL has elapsed
    - on insert into a full cache: stale entries are swept first, then the
      oldest entries are evicted down to ROLE_CACHE_MAX_ENTRIES
"""

from __future__ import annotations

import os
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from src.lambdas.shared.auth.enums import Role
from src.lambdas.shared.events.role_event_bus import RoleEventBus

DEFAULT_TTL_SECONDS = 300
DEFAULT_MAX_ENTRIES = 1024


@dataclass
class CacheStats:
    """Statistics for cache performance monitoring."""

    hits: int = 0
    misses: int = 0
    invalidations: int = 0
    evictions: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate hit rate as hits / total operations."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total


@dataclass(frozen=True)
class CachedRoles:
    """A single cache entry."""

    available_roles: tuple[Role, ...]
    cached_at: float  # time.time() when entry was stored

    def is_fresh(self, ttl_seconds: float, now: float) -> bool:
        return now - self.cached_at < ttl_seconds


class RoleCache:
    """Per-user available-roles memo.

    Example:
        cache = RoleCache(ttl_seconds=300)
        cache.bind(bus)
        roles = cache.get(user_id)
        if roles is None:
            roles = resolver.resolve(user_id).available_roles
            cache.set(user_id, roles)
    """

    def __init__(
        self,
        ttl_seconds: float | None = None,
        time_fn: Callable[[], float] | None = None,
        max_entries: int | None = None,
    ) -> None:
        if ttl_seconds is None:
            ttl_seconds = float(
                os.environ.get("ROLE_CACHE_TTL_SECONDS", DEFAULT_TTL_SECONDS)
            )
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        if max_entries is None:
            max_entries = int(
                os.environ.get("ROLE_CACHE_MAX_ENTRIES", DEFAULT_MAX_ENTRIES)
            )
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries
        self.stats = CacheStats()
        self._time_fn = time_fn
        self._entries: dict[str, CachedRoles] = {}
        self._lock = threading.Lock()
        self._unsubscribe: Callable[[], None] | None = None

    def bind(self, bus: RoleEventBus) -> None:
        """Subscribe to every role and test-mode topic on the bus."""
        self.unbind()
        self._unsubscribe = bus.subscribe_all(self._on_event)

    def unbind(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def get(self, user_id: str) -> list[Role] | None:
        """Return cached roles if fresh, else None (stale entries are dropped)."""
        now = self._now()
        with self._lock:
            entry = self._entries.get(user_id)
            if entry is None:
                self.stats.misses += 1
                return None
            if not entry.is_fresh(self.ttl_seconds, now):
                del self._entries[user_id]
                self.stats.misses += 1
                return None
            self.stats.hits += 1
            return list(entry.available_roles)

    def set(self, user_id: str, available_roles: list[Role] | tuple[Role, ...]) -> None:
        now = self._now()
        with self._lock:
            # Re-insert so dict order stays oldest-first
            self._entries.pop(user_id, None)
            if len(self._entries) >= self.max_entries:
                self._make_room(now)
            self._entries[user_id] = CachedRoles(
                available_roles=tuple(available_roles),
                cached_at=now,
            )

    def invalidate(self, user_id: str | None = None) -> None:
        """Drop one user's entry, or every entry when user_id is None."""
        with self._lock:
            if user_id is None:
                self._entries.clear()
            else:
                self._entries.pop(user_id, None)
            self.stats.invalidations += 1

    def __len__(self) -> int:
        return len(self._entries)

    def _now(self) -> float:
        return self._time_fn() if self._time_fn else time.time()

    def _make_room(self, now: float) -> None:
        """Drop stale entries, then the oldest ones, until one slot is free. Caller holds the lock."""
        stale = [
            uid for uid, entry in self._entries.items()
            if not entry.is_fresh(self.ttl_seconds, now)
        ]
        for uid in stale:
            del self._entries[uid]
        while len(self._entries) >= self.max_entries:
            del self._entries[next(iter(self._entries))]
            self.stats.evictions += 1

    def _on_event(self, payload: dict[str, Any]) -> None:
        self.invalidate(payload.get("userId"))
