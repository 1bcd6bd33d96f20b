from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy import update

from conftest import DEFAULT_PASSWORD, login, register_and_login
from easytasks.db import SessionLocal
from easytasks.errors import PersistenceError, ProvisioningError
from easytasks.invitations import service as invitations
from easytasks.models import Invitation
from easytasks.provisioning.service import ensure_bootstrapped
from easytasks.repositories.sql import SqlRepository


async def _invite(client: AsyncClient, email: str, role: str = "member") -> dict:
  res = await client.post("/invitations", json={"email": email, "role": role})
  assert res.status_code == 201, res.text
  return res.json()


@pytest.mark.anyio
async def test_invite_accept_and_role_visibility(client: AsyncClient) -> None:
  owner = await register_and_login(client, "owner@example.com", name="Owner")
  org_id = (await client.get("/organizations/current")).json()["organization"]["id"]
  owner_task = (await client.post("/tasks", json={"title": "owner task"})).json()

  issued = await _invite(client, "Member@Example.com")
  assert issued["invitation"]["email"] == "member@example.com"
  assert issued["invitation"]["role"] == "member"
  assert issued["inviteUrl"] == f"http://localhost:3000/auth/accept-invitation?token={issued['token']}"
  expires = datetime.fromisoformat(issued["invitation"]["expiresAt"].replace("Z", "+00:00"))
  assert timedelta(days=6, hours=23) < expires - datetime.now(timezone.utc) <= timedelta(days=7)

  pending = (await client.get("/invitations")).json()
  assert [i["email"] for i in pending] == ["member@example.com"]

  preview = await client.get(f"/invitations/{issued['token']}")
  assert preview.status_code == 200, preview.text
  assert preview.json()["organizationName"] == "Owner's Team"

  accepted = await client.post("/invitations/accept", json={"token": issued["token"], "password": DEFAULT_PASSWORD, "name": "Member"})
  assert accepted.status_code == 201, accepted.text
  body = accepted.json()
  assert body["organization"]["id"] == org_id
  assert body["membership"]["role"] == "member"
  assert body["createdOrganization"] is False
  assert [b["name"] for b in body["buckets"]] == ["Today", "Tomorrow", "Backlog"]

  # The token is single use.
  again = await client.post("/invitations/accept", json={"token": issued["token"], "password": DEFAULT_PASSWORD})
  assert again.status_code == 404, again.text

  await login(client, "member@example.com")
  member_task = (await client.post("/tasks", json={"title": "member task"})).json()
  assert member_task["organizationId"] == org_id
  assert [t["id"] for t in (await client.get("/tasks")).json()] == [member_task["id"]]
  assert (await client.get("/invitations")).status_code == 403
  assert (await client.post("/invitations", json={"email": "x@example.com"})).status_code == 403

  await login(client, "owner@example.com")
  seen = {t["id"] for t in (await client.get("/tasks")).json()}
  assert seen == {owner_task["id"], member_task["id"]}
  members = (await client.get("/organizations/current/members")).json()
  assert {(m["user"]["email"], m["membership"]["role"]) for m in members} == {
    ("owner@example.com", "owner"),
    ("member@example.com", "member"),
  }
  assert (await client.get("/invitations")).json() == []
  assert owner["email"] == "owner@example.com"


@pytest.mark.anyio
async def test_admin_sees_all_tasks(client: AsyncClient) -> None:
  await register_and_login(client, "boss@example.com")
  issued = await _invite(client, "admin@example.com", role="admin")
  res = await client.post("/invitations/accept", json={"token": issued["token"], "password": DEFAULT_PASSWORD})
  assert res.status_code == 201, res.text
  boss_task = (await client.post("/tasks", json={"title": "boss task"})).json()

  await login(client, "admin@example.com")
  assert [t["id"] for t in (await client.get("/tasks")).json()] == [boss_task["id"]]
  # Admins can see every task but only edit their own.
  assert (await client.patch(f"/tasks/{boss_task['id']}", json={"status": "done"})).status_code == 404


@pytest.mark.anyio
async def test_expired_invitation_is_rejected(client: AsyncClient, repo: SqlRepository) -> None:
  await register_and_login(client, "expiry@example.com")
  issued = await _invite(client, "late@example.com")

  async with SessionLocal() as db:
    await db.execute(
      update(Invitation)
      .where(Invitation.id == issued["invitation"]["id"])
      .values(expires_at=datetime.now(timezone.utc) - timedelta(minutes=1))
    )
    await db.commit()

  assert (await client.get(f"/invitations/{issued['token']}")).status_code == 410
  res = await client.post("/invitations/accept", json={"token": issued["token"], "password": DEFAULT_PASSWORD})
  assert res.status_code == 410, res.text
  assert res.json()["detail"] == "Invitation has expired"
  assert (await client.get("/invitations")).json() == []
  assert await repo.get_profile_by_email("late@example.com") is None


@pytest.mark.anyio
async def test_unknown_token_and_existing_email(client: AsyncClient) -> None:
  await register_and_login(client, "inviter@example.com")
  assert (await client.get("/invitations/eti_unknown")).status_code == 404
  r = await client.post("/invitations/accept", json={"token": "eti_unknown", "password": DEFAULT_PASSWORD})
  assert r.status_code == 404

  issued = await _invite(client, "inviter@example.com")
  r = await client.post("/invitations/accept", json={"token": issued["token"], "password": DEFAULT_PASSWORD})
  assert r.status_code == 409, r.text


@pytest.mark.anyio
async def test_invite_rejects_bad_input(client: AsyncClient) -> None:
  await register_and_login(client, "strict@example.com")
  assert (await client.post("/invitations", json={"email": "nope"})).status_code == 400
  assert (await client.post("/invitations", json={"email": "a@example.com", "role": "owner"})).status_code == 422


@pytest.mark.anyio
async def test_failed_provisioning_leaves_invitation_reusable(repo: SqlRepository, monkeypatch: pytest.MonkeyPatch) -> None:
  host = await repo.create_profile(email="host@example.com", name="Host")
  await repo.commit()
  boot = await ensure_bootstrapped(repo, host.id)
  org_id = boot.organization.id
  issued = await invitations.invite(repo, boot.membership, email="guest@example.com")
  original = repo.create_membership

  async def failing_create_membership(**kwargs):
    raise PersistenceError("Could not save Membership")

  monkeypatch.setattr(repo, "create_membership", failing_create_membership)
  with pytest.raises(ProvisioningError) as exc:
    await invitations.accept_invitation(repo, token=issued.token, password=DEFAULT_PASSWORD)
  assert exc.value.step == "create membership"
  assert await repo.get_profile_by_email("guest@example.com") is None

  monkeypatch.setattr(repo, "create_membership", original)
  result = await invitations.accept_invitation(repo, token=issued.token, password=DEFAULT_PASSWORD)
  assert result.organization.id == org_id
  assert result.membership.role == "member"
