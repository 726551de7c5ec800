"""Time-gated single-value cache (world gold quote). One instance per app, kept on app.state."""
import time
from typing import Any, Callable

from fastapi import Request


class TTLCache:
    """Holds {value, expires_at}. No locking: concurrent misses may each refetch."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self.value: Any = None
        self.expires_at: float | None = None

    def get(self):
        if self.expires_at is None or self._clock() >= self.expires_at:
            return None
        return self.value

    def set(self, value) -> None:
        self.value = value
        self.expires_at = self._clock() + self.ttl_seconds

    def invalidate(self) -> None:
        self.value = None
        self.expires_at = None


def get_gold_cache(request: Request) -> TTLCache:
    return request.app.state.gold_cache
