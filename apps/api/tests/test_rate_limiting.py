from __future__ import annotations

import pytest
import redis
from httpx import AsyncClient

from easytasks.config import settings
from easytasks.rate_limit import SWEEP_INTERVAL_SECONDS, RateLimiter


class _Clock:
  def __init__(self) -> None:
    self.now = 1000.0

  def __call__(self) -> float:
    return self.now


class _Pipeline:
  def __init__(self, client: "_FakeRedis") -> None:
    self.client = client
    self.ops: list[tuple[str, str]] = []

  def incr(self, key: str, amount: int = 1) -> None:
    self.ops.append(("incr", key))

  def ttl(self, key: str) -> None:
    self.ops.append(("ttl", key))

  def execute(self) -> list[int]:
    out = []
    for op, key in self.ops:
      if op == "incr":
        self.client.counts[key] = self.client.counts.get(key, 0) + 1
        out.append(self.client.counts[key])
      else:
        out.append(self.client.ttls.get(key, -1))
    return out


class _FakeRedis:
  """Just enough of the redis client API for the limiter."""

  def __init__(self) -> None:
    self.counts: dict[str, int] = {}
    self.ttls: dict[str, int] = {}

  def pipeline(self) -> _Pipeline:
    return _Pipeline(self)

  def expire(self, key: str, seconds: int) -> None:
    self.ttls[key] = seconds

  def scan_iter(self, match: str):
    prefix = match.rstrip("*")
    return [k for k in self.counts if k.startswith(prefix)]

  def delete(self, *keys: str) -> None:
    for k in keys:
      self.counts.pop(k, None)
      self.ttls.pop(k, None)


class _DownRedis(_FakeRedis):
  def pipeline(self) -> _Pipeline:
    raise redis.ConnectionError("connection refused")


def test_fixed_window_counts_per_key() -> None:
  rl = RateLimiter()
  assert rl.hit("a", limit=2, window_seconds=60) == (True, 0)
  assert rl.hit("a", limit=2, window_seconds=60) == (True, 0)
  allowed, retry = rl.hit("a", limit=2, window_seconds=60)
  assert allowed is False
  assert 1 <= retry <= 60
  assert rl.hit("b", limit=2, window_seconds=60) == (True, 0)

  rl.reset_prefix("a")
  assert rl.hit("a", limit=2, window_seconds=60) == (True, 0)


def test_expired_windows_are_swept() -> None:
  clock = _Clock()
  rl = RateLimiter(clock=clock)
  for i in range(50):
    rl.hit(f"auth:login:ip:10.0.0.{i}", limit=5, window_seconds=60)
  assert rl.tracked_keys() == 50

  clock.now += SWEEP_INTERVAL_SECONDS + 61
  assert rl.hit("auth:login:ip:10.0.1.1", limit=5, window_seconds=60) == (True, 0)
  assert rl.tracked_keys() == 1


def test_window_reopens_after_it_expires() -> None:
  clock = _Clock()
  rl = RateLimiter(clock=clock)
  assert rl.hit("k", limit=1, window_seconds=10) == (True, 0)
  assert rl.hit("k", limit=1, window_seconds=10) == (False, 10)
  clock.now += 10
  assert rl.hit("k", limit=1, window_seconds=10) == (True, 0)


def test_shared_counters_span_limiter_instances() -> None:
  shared = _FakeRedis()
  first = RateLimiter(client=shared)
  second = RateLimiter(client=shared)
  assert first.hit("auth:register:ip:1", limit=2, window_seconds=60) == (True, 0)
  assert second.hit("auth:register:ip:1", limit=2, window_seconds=60) == (True, 0)
  assert first.hit("auth:register:ip:1", limit=2, window_seconds=60) == (False, 60)
  assert shared.ttls["rl:auth:register:ip:1"] == 60
  assert first.tracked_keys() == 0

  second.reset_prefix("auth:")
  assert first.hit("auth:register:ip:1", limit=2, window_seconds=60) == (True, 0)


def test_unreachable_redis_falls_back_to_local_counts() -> None:
  rl = RateLimiter(client=_DownRedis())
  assert rl.hit("k", limit=1, window_seconds=60) == (True, 0)
  allowed, _ = rl.hit("k", limit=1, window_seconds=60)
  assert allowed is False
  assert rl.tracked_keys() == 1


@pytest.mark.anyio
async def test_login_rate_limited(client: AsyncClient) -> None:
  orig_ip = settings.rate_limit_login_ip_per_minute
  orig_email = settings.rate_limit_login_email_per_minute
  settings.rate_limit_login_ip_per_minute = 3
  settings.rate_limit_login_email_per_minute = 3
  try:
    for _ in range(3):
      r = await client.post("/auth/login", json={"email": "nobody@example.com", "password": "bad"})
      assert r.status_code == 401, r.text
    r = await client.post("/auth/login", json={"email": "nobody@example.com", "password": "bad"})
    assert r.status_code == 429, r.text
    assert r.headers.get("retry-after")
  finally:
    settings.rate_limit_login_ip_per_minute = orig_ip
    settings.rate_limit_login_email_per_minute = orig_email


@pytest.mark.anyio
async def test_register_rate_limited(client: AsyncClient) -> None:
  orig = settings.rate_limit_register_ip_per_minute
  settings.rate_limit_register_ip_per_minute = 2
  try:
    for i in range(2):
      r = await client.post("/auth/register", json={"email": f"burst{i}@example.com", "password": "short"})
      assert r.status_code == 400, r.text
    r = await client.post("/auth/register", json={"email": "burst9@example.com", "password": "short"})
    assert r.status_code == 429, r.text
    assert r.headers.get("retry-after")
  finally:
    settings.rate_limit_register_ip_per_minute = orig
