from __future__ import annotations

import pytest
from httpx import AsyncClient

from conftest import buckets_by_name, login, register_and_login


@pytest.mark.anyio
async def test_create_bucket_appends_after_highest_order(client: AsyncClient) -> None:
  await register_and_login(client, "orders@example.com")
  res = await client.post("/buckets", json={"name": "Someday"})
  assert res.status_code == 201, res.text
  b = res.json()
  assert b["orderIndex"] == 4
  assert b["type"] == "custom"
  assert b["color"] == "#e5efe9"

  nxt = (await client.post("/buckets", json={"name": "Errands", "type": "day", "color": "#ffffff"})).json()
  assert nxt["orderIndex"] == 5
  assert nxt["type"] == "day"

  names = [x["name"] for x in (await client.get("/buckets")).json()]
  assert names == ["Today", "Tomorrow", "Backlog", "Someday", "Errands"]


@pytest.mark.anyio
async def test_create_bucket_requires_name(client: AsyncClient) -> None:
  await register_and_login(client, "noname@example.com")
  res = await client.post("/buckets", json={"name": "  "})
  assert res.status_code == 400, res.text
  assert res.json()["detail"] == "Bucket name is required"


@pytest.mark.anyio
async def test_delete_bucket_moves_tasks_to_lowest_order_bucket(client: AsyncClient) -> None:
  await register_and_login(client, "reassign@example.com")
  buckets = await buckets_by_name(client)
  t = (await client.post("/tasks", json={"title": "in backlog", "bucketId": buckets["Backlog"]["id"]})).json()

  res = await client.delete(f"/buckets/{buckets['Backlog']['id']}")
  assert res.status_code == 200, res.text
  assert res.json()["movedToBucketId"] == buckets["Today"]["id"]

  task = next(x for x in (await client.get("/tasks")).json() if x["id"] == t["id"])
  assert task["bucketId"] == buckets["Today"]["id"]
  assert "Backlog" not in await buckets_by_name(client)


@pytest.mark.anyio
async def test_deleting_last_bucket_unfiles_its_tasks(client: AsyncClient) -> None:
  await register_and_login(client, "last@example.com")
  buckets = await buckets_by_name(client)
  await client.delete(f"/buckets/{buckets['Today']['id']}")
  await client.delete(f"/buckets/{buckets['Tomorrow']['id']}")
  t = (await client.post("/tasks", json={"title": "orphan", "bucketId": buckets["Backlog"]["id"]})).json()

  res = await client.delete(f"/buckets/{buckets['Backlog']['id']}")
  assert res.status_code == 200, res.text
  assert res.json()["movedToBucketId"] is None

  tasks = (await client.get("/tasks")).json()
  assert [(x["id"], x["bucketId"]) for x in tasks] == [(t["id"], None)]
  assert (await client.get("/buckets")).json() == []


@pytest.mark.anyio
async def test_cannot_delete_another_orgs_bucket(client: AsyncClient) -> None:
  await register_and_login(client, "first-org@example.com")
  foreign = (await buckets_by_name(client))["Today"]

  await register_and_login(client, "second-org@example.com")
  res = await client.delete(f"/buckets/{foreign['id']}")
  assert res.status_code == 404, res.text


@pytest.mark.anyio
async def test_update_bucket_renames_and_reorders(client: AsyncClient) -> None:
  await register_and_login(client, "tidy@example.com")
  backlog = (await buckets_by_name(client))["Backlog"]

  res = await client.patch(f"/buckets/{backlog['id']}", json={"name": " Later ", "color": "#123456", "orderIndex": 0})
  assert res.status_code == 200, res.text
  body = res.json()
  assert body["name"] == "Later"
  assert body["color"] == "#123456"
  assert body["orderIndex"] == 0
  assert body["type"] == backlog["type"]

  names = [x["name"] for x in (await client.get("/buckets")).json()]
  assert names == ["Later", "Today", "Tomorrow"]

  blank = await client.patch(f"/buckets/{backlog['id']}", json={"name": "  "})
  assert blank.status_code == 400, blank.text
  negative = await client.patch(f"/buckets/{backlog['id']}", json={"orderIndex": -1})
  assert negative.status_code == 400, negative.text
  assert (await buckets_by_name(client))["Later"]["orderIndex"] == 0


@pytest.mark.anyio
async def test_cannot_update_another_orgs_bucket(client: AsyncClient) -> None:
  await register_and_login(client, "keeper@example.com")
  foreign = (await buckets_by_name(client))["Today"]

  await register_and_login(client, "intruder@example.com")
  res = await client.patch(f"/buckets/{foreign['id']}", json={"name": "Mine"})
  assert res.status_code == 404, res.text

  await login(client, "keeper@example.com")
  assert "Today" in await buckets_by_name(client)
