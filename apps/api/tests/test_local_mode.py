from __future__ import annotations

import json

import pytest
from httpx import ASGITransport, AsyncClient

from easytasks.boards import service as boards
from easytasks.config import settings
from easytasks.errors import ConflictError
from easytasks.main import app
from easytasks.provisioning.service import BootstrapHints, ensure_bootstrapped
from easytasks.repositories.local import LOCAL_USER_EMAIL, LOCAL_USER_ID, STORAGE_KEYS, KeyValueStore, LocalRepository


@pytest.fixture
async def local_client(tmp_path, monkeypatch: pytest.MonkeyPatch) -> AsyncClient:
  monkeypatch.setattr(settings, "storage_backend", "local")
  monkeypatch.setattr(settings, "local_store_path", str(tmp_path / "easytasks-local.json"))
  transport = ASGITransport(app=app)
  async with AsyncClient(transport=transport, base_url="http://localhost") as c:
    yield c


@pytest.mark.anyio
async def test_store_persists_under_fixed_keys(tmp_path) -> None:
  path = tmp_path / "store.json"
  repo = LocalRepository(KeyValueStore(path))
  result = await ensure_bootstrapped(repo, LOCAL_USER_ID, BootstrapHints(email=LOCAL_USER_EMAIL))
  await boards.create_task(repo, result.membership, title="offline", bucket_id=result.buckets[0].id)

  raw = json.loads(path.read_text(encoding="utf-8"))
  assert raw[STORAGE_KEYS["user"]]["id"] == LOCAL_USER_ID
  assert [b["name"] for b in raw[STORAGE_KEYS["buckets"]]] == ["Today", "Tomorrow", "Backlog"]
  assert [t["title"] for t in raw[STORAGE_KEYS["tasks"]]] == ["offline"]

  reopened = LocalRepository(KeyValueStore(path))
  tasks = await reopened.list_tasks(result.organization.id)
  assert [(t.title, t.bucket_id) for t in tasks] == [("offline", result.buckets[0].id)]
  assert tasks[0].created_at.tzinfo is not None


@pytest.mark.anyio
async def test_local_store_holds_a_single_user(tmp_path) -> None:
  repo = LocalRepository(KeyValueStore(tmp_path / "store.json"))
  await repo.create_profile(email=LOCAL_USER_EMAIL, name=None, user_id=LOCAL_USER_ID)
  with pytest.raises(ConflictError):
    await repo.create_profile(email="other@example.com", name=None)


@pytest.mark.anyio
async def test_rollback_discards_unsaved_changes(tmp_path) -> None:
  repo = LocalRepository(KeyValueStore(tmp_path / "store.json"))
  result = await ensure_bootstrapped(repo, LOCAL_USER_ID, BootstrapHints(email=LOCAL_USER_EMAIL))

  with pytest.raises(RuntimeError):
    async with repo.transaction():
      await repo.reassign_bucket_tasks(result.buckets[0].id, None)
      await repo.delete_bucket(result.buckets[0])
      raise RuntimeError("boom")

  assert len(await repo.list_buckets(result.organization.id)) == 3


@pytest.mark.anyio
async def test_local_mode_bootstraps_lazily_on_first_read(local_client: AsyncClient) -> None:
  me = await local_client.get("/auth/me")
  assert me.status_code == 200, me.text
  assert me.json()["id"] == LOCAL_USER_ID

  buckets = (await local_client.get("/buckets")).json()
  assert [b["name"] for b in buckets] == ["Today", "Tomorrow", "Backlog"]

  renamed = await local_client.patch(f"/buckets/{buckets[2]['id']}", json={"name": "Someday"})
  assert renamed.json()["name"] == "Someday"
  assert [b["name"] for b in (await local_client.get("/buckets")).json()] == ["Today", "Tomorrow", "Someday"]

  created = await local_client.post("/tasks", json={"title": "no backend", "bucketId": buckets[0]["id"]})
  assert created.status_code == 201, created.text
  done = await local_client.patch(f"/tasks/{created.json()['id']}", json={"status": "done"})
  assert done.json()["completedBy"] == LOCAL_USER_ID

  stats = (await local_client.get("/dashboard")).json()["stats"]
  assert stats["completedTasks"] == 1
  assert (await local_client.get("/health/db")).json() == {"ok": True, "storage": "local"}
