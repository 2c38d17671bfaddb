"""
services/attempt_limiter.py — Per-identity attempt limiting for forgot-password.

`hit(key)` records an attempt and returns False once `limit` attempts have
been seen for `key` inside the rolling `window`.

Two backends:
  - InMemoryAttemptLimiter: per-process. In a multi-instance deployment each
    process counts separately, so the effective limit is limit × instances.
    This is a soft guard, accepted for single-instance deployments.
  - RedisAttemptLimiter: shared sorted-set sliding window, selected when
    RATELIMIT_REDIS_URL is configured.
"""

from __future__ import annotations

import threading
import time
import uuid
from abc import ABC, abstractmethod
from collections import deque
from datetime import timedelta
from typing import Callable


class AttemptLimiter(ABC):

    def __init__(self, limit: int, window: timedelta) -> None:
        self.limit = limit
        self.window = window

    @abstractmethod
    def hit(self, key: str) -> bool:
        """Records an attempt for `key`. Returns False if over the limit."""

    @staticmethod
    def normalise_key(key: str) -> str:
        return key.strip().lower()


class InMemoryAttemptLimiter(AttemptLimiter):

    def __init__(
            self,
            limit: int,
            window: timedelta,
            clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(limit, window)
        self._clock = clock
        self._hits: dict[str, deque] = {}
        self._last_sweep = clock()
        self._lock = threading.Lock()

    @property
    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._hits)

    def hit(self, key: str) -> bool:
        key = self.normalise_key(key)
        now = self._clock()
        horizon = now - self.window.total_seconds()

        with self._lock:
            # Keys are caller-controlled; drop the ones with nothing left in
            # the window at most once per window.
            if now - self._last_sweep >= self.window.total_seconds():
                self._sweep(horizon)
                self._last_sweep = now

            attempts = self._hits.setdefault(key, deque())
            while attempts and attempts[0] <= horizon:
                attempts.popleft()
            if len(attempts) >= self.limit:
                return False
            attempts.append(now)
            return True

    def _sweep(self, horizon: float) -> None:
        stale = [key for key, attempts in self._hits.items()
                 if not attempts or attempts[-1] <= horizon]
        for key in stale:
            del self._hits[key]

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


class RedisAttemptLimiter(AttemptLimiter):

    # Atomic prune + count + add. Rejected attempts are not recorded, matching
    # the in-memory limiter.
    _SLIDING_WINDOW_SCRIPT = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
local member = ARGV[4]

redis.call('ZREMRANGEBYSCORE', key, '-inf', now - window)
if redis.call('ZCARD', key) >= limit then
  return 0
end
redis.call('ZADD', key, now, member)
redis.call('PEXPIRE', key, math.ceil(window * 1000))
return 1
"""

    def __init__(
            self,
            client,
            limit: int,
            window: timedelta,
            prefix: str = "mrgcar:forgot-password:",
    ) -> None:
        super().__init__(limit, window)
        self.client = client
        self.prefix = prefix
        self._script = client.register_script(self._SLIDING_WINDOW_SCRIPT)

    def hit(self, key: str) -> bool:
        allowed = self._script(
            keys=[self.prefix + self.normalise_key(key)],
            args=[
                time.time(),
                self.window.total_seconds(),
                self.limit,
                uuid.uuid4().hex,
            ],
        )
        return int(allowed) == 1


def build_attempt_limiter(config) -> AttemptLimiter:
    """Picks the backend from app config."""
    limit = config["FORGOT_PASSWORD_LIMIT"]
    window = config["FORGOT_PASSWORD_WINDOW"]
    redis_url = config.get("RATELIMIT_REDIS_URL")

    if redis_url:
        from redis import Redis

        client = Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=5.0,
            socket_connect_timeout=5.0,
        )
        return RedisAttemptLimiter(client, limit, window)

    return InMemoryAttemptLimiter(limit, window)
