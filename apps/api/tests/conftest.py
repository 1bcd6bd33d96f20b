from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

_TEST_DB = Path(tempfile.gettempdir()) / f"easytasks_test_{os.getpid()}.db"
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TEST_DB}")
os.environ.setdefault("APP_SECRET", "test-secret-not-for-production")
os.environ.setdefault("PUBLIC_BASE_URL", "http://localhost:3000")
os.environ["STORAGE_BACKEND"] = "sql"
os.environ["REDIS_URL"] = ""

from easytasks.config import settings  # noqa: E402
from easytasks.db import SessionLocal, engine  # noqa: E402
from easytasks.main import app  # noqa: E402
from easytasks.models import Base  # noqa: E402
from easytasks.rate_limit import limiter  # noqa: E402
from easytasks.repositories.sql import SqlRepository  # noqa: E402

DEFAULT_PASSWORD = "correct-horse-1"


@pytest.fixture(scope="session")
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
async def schema() -> None:
  db_name = settings.database_url.rsplit("/", 1)[-1]
  if "test" not in db_name:
    raise RuntimeError(
      "Refusing to run destructive tests against non-test DB. "
      "Set DATABASE_URL to a *_test database (e.g. easytasks_test)."
    )
  limiter.reset_prefix("auth:")
  async with engine.begin() as conn:
    await conn.run_sync(Base.metadata.drop_all)
    await conn.run_sync(Base.metadata.create_all)
  yield
  async with engine.begin() as conn:
    await conn.run_sync(Base.metadata.drop_all)
  await engine.dispose()


@pytest.fixture
async def client(schema) -> AsyncClient:
  transport = ASGITransport(app=app)
  async with AsyncClient(transport=transport, base_url="http://localhost") as c:
    yield c


@pytest.fixture
async def repo(schema) -> SqlRepository:
  async with SessionLocal() as db:
    yield SqlRepository(db)


async def register(
  client: AsyncClient,
  email: str,
  password: str = DEFAULT_PASSWORD,
  *,
  name: str | None = None,
  organizationName: str | None = None,
  organizationType: str | None = None,
) -> dict:
  payload: dict = {"email": email, "password": password}
  if name:
    payload["name"] = name
  if organizationName:
    payload["organizationName"] = organizationName
  if organizationType:
    payload["organizationType"] = organizationType
  res = await client.post("/auth/register", json=payload)
  assert res.status_code == 201, res.text
  return res.json()["user"]


async def login(client: AsyncClient, email: str, password: str = DEFAULT_PASSWORD) -> dict:
  res = await client.post("/auth/login", json={"email": email, "password": password})
  assert res.status_code == 200, res.text
  cookie = res.headers.get("set-cookie")
  assert cookie and "et_session=" in cookie
  return res.json()


async def register_and_login(client: AsyncClient, email: str, **kwargs) -> dict:
  user = await register(client, email, **kwargs)
  await login(client, email)
  return user


async def buckets_by_name(client: AsyncClient) -> dict[str, dict]:
  res = await client.get("/buckets")
  assert res.status_code == 200, res.text
  return {b["name"]: b for b in res.json()}
