from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable

import redis

from easytasks.config import settings

logger = logging.getLogger("easytasks.rate_limit")

# Expired windows are dropped at most this often.
SWEEP_INTERVAL_SECONDS = 60.0


@dataclass
class _Window:
  reset_at: float
  count: int


class RateLimiter:
  """
  Fixed-window limiter for the public auth endpoints.

  With REDIS_URL set, counters live in Redis and are shared by every API
  replica. Without it (or while Redis is unreachable) each process counts on
  its own.
  """

  def __init__(
    self,
    redis_url: str | None = None,
    *,
    client: redis.Redis | None = None,
    clock: Callable[[], float] = time.monotonic,
  ) -> None:
    self._lock = Lock()
    self._windows: dict[str, _Window] = {}
    self._clock = clock
    self._next_sweep = clock() + SWEEP_INTERVAL_SECONDS
    self._redis = client
    if self._redis is None and redis_url:
      self._redis = redis.Redis.from_url(redis_url, decode_responses=True)

  def hit(self, key: str, *, limit: int, window_seconds: int) -> tuple[bool, int]:
    """
    Returns (allowed, retry_after_seconds).
    """
    if self._redis is not None:
      try:
        return self._hit_shared(key, limit=limit, window_seconds=window_seconds)
      except redis.RedisError as exc:
        logger.warning("rate limit store unavailable, counting locally: %s", exc)
    return self._hit_local(key, limit=limit, window_seconds=window_seconds)

  def _hit_shared(self, key: str, *, limit: int, window_seconds: int) -> tuple[bool, int]:
    rk = f"rl:{key}"
    pipe = self._redis.pipeline()
    pipe.incr(rk, 1)
    pipe.ttl(rk)
    count, ttl = pipe.execute()
    if int(count) == 1 or int(ttl) < 0:
      self._redis.expire(rk, int(window_seconds))
      ttl = int(window_seconds)
    if int(count) > int(limit):
      return False, max(1, int(ttl))
    return True, 0

  def _hit_local(self, key: str, *, limit: int, window_seconds: int) -> tuple[bool, int]:
    now = self._clock()
    with self._lock:
      if now >= self._next_sweep:
        self._sweep(now)
      w = self._windows.get(key)
      if w is None or now >= w.reset_at:
        self._windows[key] = _Window(reset_at=now + window_seconds, count=1)
        return True, 0
      if w.count >= limit:
        return False, max(1, int(w.reset_at - now))
      w.count += 1
      return True, 0

  def _sweep(self, now: float) -> None:
    for k in [k for k, w in self._windows.items() if now >= w.reset_at]:
      del self._windows[k]
    self._next_sweep = now + SWEEP_INTERVAL_SECONDS

  def tracked_keys(self) -> int:
    with self._lock:
      return len(self._windows)

  def reset_prefix(self, prefix: str) -> None:
    if self._redis is not None:
      try:
        keys = list(self._redis.scan_iter(match=f"rl:{prefix}*"))
        if keys:
          self._redis.delete(*keys)
      except redis.RedisError as exc:
        logger.warning("could not reset shared rate limits for %s: %s", prefix, exc)
    with self._lock:
      for k in [k for k in self._windows if k.startswith(prefix)]:
        del self._windows[k]


limiter = RateLimiter(settings.redis_url)
