from __future__ import annotations

import pytest
from httpx import AsyncClient

from conftest import DEFAULT_PASSWORD, login, register, register_and_login


@pytest.mark.anyio
async def test_registration_provisions_org_membership_and_default_buckets(client: AsyncClient) -> None:
  await register_and_login(client, "ada@example.com", name="Ada")

  buckets = (await client.get("/buckets")).json()
  assert [(b["name"], b["type"], b["color"], b["orderIndex"]) for b in buckets] == [
    ("Today", "day", "#fef3c7", 1),
    ("Tomorrow", "day", "#dbeafe", 2),
    ("Backlog", "custom", "#e5efe9", 3),
  ]
  assert all(b["tasks"] == [] for b in buckets)

  current = await client.get("/organizations/current")
  assert current.status_code == 200, current.text
  assert current.json()["role"] == "owner"
  assert current.json()["organization"]["name"] == "Ada's Team"
  assert current.json()["organization"]["description"] == "Team"

  members = (await client.get("/organizations/current/members")).json()
  assert len(members) == 1
  assert members[0]["user"]["email"] == "ada@example.com"


@pytest.mark.anyio
async def test_registration_uses_organization_hints(client: AsyncClient) -> None:
  await register_and_login(client, "grace@example.com", organizationName="Navy Labs", organizationType="company")
  org = (await client.get("/organizations/current")).json()["organization"]
  assert org["name"] == "Navy Labs"
  assert org["type"] == "company"
  assert org["description"] == "Company"


@pytest.mark.anyio
async def test_register_validation_and_duplicates(client: AsyncClient) -> None:
  r = await client.post("/auth/register", json={"email": "not-an-email", "password": DEFAULT_PASSWORD})
  assert r.status_code == 400, r.text
  r = await client.post("/auth/register", json={"email": "x@example.com", "password": ""})
  assert r.status_code == 400, r.text

  await register(client, "dup@example.com")
  r = await client.post("/auth/register", json={"email": "DUP@example.com", "password": DEFAULT_PASSWORD})
  assert r.status_code == 409, r.text
  assert r.json()["detail"] == "A user with this email already exists"


@pytest.mark.anyio
async def test_login_logout_and_me(client: AsyncClient) -> None:
  assert (await client.get("/auth/me")).status_code == 401

  await register(client, "me@example.com", name="Me")
  bad = await client.post("/auth/login", json={"email": "me@example.com", "password": "wrong-password"})
  assert bad.status_code == 401

  await login(client, "ME@example.com")
  me = await client.get("/auth/me")
  assert me.status_code == 200, me.text
  assert me.json()["email"] == "me@example.com"
  assert me.json()["name"] == "Me"

  out = await client.post("/auth/logout")
  assert out.status_code == 200, out.text
  client.cookies.clear()
  assert (await client.get("/auth/me")).status_code == 401


@pytest.mark.anyio
async def test_repair_is_idempotent(client: AsyncClient) -> None:
  await register_and_login(client, "repair@example.com")
  first = await client.post("/setup/repair")
  assert first.status_code == 200, first.text
  body = first.json()
  assert body["createdOrganization"] is False
  assert body["createdMembership"] is False
  assert body["createdBuckets"] == 0
  assert len(body["buckets"]) == 3

  second = (await client.post("/setup/repair")).json()
  assert second["organization"]["id"] == body["organization"]["id"]
  assert [b["id"] for b in second["buckets"]] == [b["id"] for b in body["buckets"]]


@pytest.mark.anyio
async def test_create_organization_conflicts_when_already_a_member(client: AsyncClient) -> None:
  await register_and_login(client, "owner@example.com")
  r = await client.post("/organizations", json={"name": "Second Org", "type": "team"})
  assert r.status_code == 409, r.text


@pytest.mark.anyio
async def test_health_endpoints(client: AsyncClient) -> None:
  r = await client.get("/health")
  assert r.status_code == 200
  assert r.headers.get("x-content-type-options") == "nosniff"
  db = await client.get("/health/db")
  assert db.status_code == 200, db.text
  assert db.json() == {"ok": True, "storage": "sql"}
