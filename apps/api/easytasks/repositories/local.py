from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import Any, TypeVar

from sqlalchemy import DateTime

from easytasks.errors import ConflictError, PersistenceError
from easytasks.models import Base, Bucket, Invitation, Membership, Organization, Profile, Session, Task, new_id, utcnow
from easytasks.repositories.base import Repository

logger = logging.getLogger("easytasks.repositories.local")

M = TypeVar("M", bound=Base)

STORAGE_KEYS = {
  "tasks": "easytasks_tasks",
  "buckets": "easytasks_buckets",
  "user": "easytasks_user",
  "organizations": "easytasks_organizations",
  "memberships": "easytasks_memberships",
  "invitations": "easytasks_invitations",
  "sessions": "easytasks_sessions",
}

LOCAL_USER_ID = "local-user"
LOCAL_USER_EMAIL = "local@easytasks.local"


class KeyValueStore:
  """JSON document on disk holding one value per fixed key."""

  def __init__(self, path: str | Path) -> None:
    self.path = Path(path)
    self._lock = Lock()
    self._data: dict[str, Any] = {}
    self.reload()

  def reload(self) -> None:
    with self._lock:
      if not self.path.exists():
        self._data = {}
        return
      try:
        self._data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
      except (OSError, ValueError) as exc:
        raise PersistenceError(f"Could not read local store {self.path}") from exc

  def get(self, key: str, default: Any = None) -> Any:
    return self._data.get(key, default)

  def set(self, key: str, value: Any) -> None:
    self._data[key] = value

  def flush(self) -> None:
    with self._lock:
      self.path.parent.mkdir(parents=True, exist_ok=True)
      try:
        fd, tmp = tempfile.mkstemp(dir=str(self.path.parent), prefix=".easytasks-", suffix=".json")
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
          json.dump(self._data, fh, indent=2, sort_keys=True)
        os.replace(tmp, self.path)
      except OSError as exc:
        raise PersistenceError(f"Could not write local store {self.path}") from exc


def _to_record(obj: Base) -> dict[str, Any]:
  out: dict[str, Any] = {}
  for col in obj.__table__.columns:
    value = getattr(obj, col.key)
    out[col.key] = value.isoformat() if isinstance(value, datetime) else value
  return out


def _from_record(model: type[M], record: dict[str, Any]) -> M:
  values: dict[str, Any] = {}
  for col in model.__table__.columns:
    if col.key not in record:
      continue
    value = record[col.key]
    if isinstance(col.type, DateTime) and isinstance(value, str):
      value = datetime.fromisoformat(value)
    values[col.key] = value
  return model(**values)


class LocalRepository(Repository):
  """
  Repository over a `KeyValueStore`, used when the app runs without a database.

  There is exactly one user in this mode; its record lives under the
  `easytasks_user` key.
  """

  def __init__(self, store: KeyValueStore) -> None:
    self.store = store

  def _rows(self, name: str) -> list[dict[str, Any]]:
    rows = self.store.get(STORAGE_KEYS[name])
    if rows is None:
      rows = []
      self.store.set(STORAGE_KEYS[name], rows)
    return rows

  def _insert(self, name: str, obj: M) -> M:
    if getattr(obj, "id", None) is None:
      obj.id = new_id()
    for attr in ("created_at", "joined_at", "updated_at"):
      if hasattr(type(obj), attr) and getattr(obj, attr) is None:
        setattr(obj, attr, utcnow())
    self._rows(name).append(_to_record(obj))
    return obj

  def _patch(self, name: str, obj: Base, changes: dict[str, Any]) -> None:
    for field, value in changes.items():
      setattr(obj, field, value)
    for row in self._rows(name):
      if row.get("id") == obj.id:
        row.update(_to_record(obj))
        return

  def _find(self, name: str, model: type[M], **where: Any) -> list[M]:
    return [_from_record(model, r) for r in self._rows(name) if all(r.get(k) == v for k, v in where.items())]

  # profiles

  async def get_profile(self, user_id: str) -> Profile | None:
    rec = self.store.get(STORAGE_KEYS["user"])
    if rec and rec.get("id") == user_id:
      return _from_record(Profile, rec)
    return None

  async def get_profile_by_email(self, email: str) -> Profile | None:
    rec = self.store.get(STORAGE_KEYS["user"])
    if rec and rec.get("email") == email:
      return _from_record(Profile, rec)
    return None

  async def create_profile(
    self, *, email: str, name: str | None, password_hash: str | None = None, user_id: str | None = None
  ) -> Profile:
    if self.store.get(STORAGE_KEYS["user"]):
      raise ConflictError("Local mode holds a single user")
    now = utcnow()
    p = Profile(
      id=user_id or new_id(),
      email=email,
      name=name,
      password_hash=password_hash,
      created_at=now,
      updated_at=now,
    )
    self.store.set(STORAGE_KEYS["user"], _to_record(p))
    return p

  async def update_profile_name(self, profile: Profile, name: str) -> Profile:
    profile.name = name
    profile.updated_at = utcnow()
    self.store.set(STORAGE_KEYS["user"], _to_record(profile))
    return profile

  async def delete_profile(self, user_id: str) -> None:
    rec = self.store.get(STORAGE_KEYS["user"])
    if rec and rec.get("id") == user_id:
      self.store.set(STORAGE_KEYS["user"], None)
    await self.delete_sessions(user_id)

  # sessions

  async def create_session(self, *, user_id: str, expires_at: datetime) -> Session:
    return self._insert("sessions", Session(user_id=user_id, expires_at=expires_at))

  async def get_session(self, session_id: str) -> Session | None:
    found = self._find("sessions", Session, id=session_id)
    return found[0] if found else None

  async def delete_sessions(self, user_id: str) -> None:
    rows = [r for r in self._rows("sessions") if r.get("user_id") != user_id]
    self.store.set(STORAGE_KEYS["sessions"], rows)

  # organizations and memberships

  async def get_organization(self, organization_id: str) -> Organization | None:
    found = self._find("organizations", Organization, id=organization_id)
    return found[0] if found else None

  async def find_organization_created_by(self, user_id: str) -> Organization | None:
    found = self._find("organizations", Organization, created_by=user_id)
    found.sort(key=lambda o: o.created_at)
    return found[0] if found else None

  async def create_organization(self, *, name: str, type: str, description: str | None, created_by: str) -> Organization:
    org = Organization(name=name, type=type, description=description, created_by=created_by)
    return self._insert("organizations", org)

  async def get_active_membership(self, user_id: str) -> Membership | None:
    found = self._find("memberships", Membership, user_id=user_id, active=True)
    found.sort(key=lambda m: m.joined_at)
    return found[0] if found else None

  async def create_membership(self, *, user_id: str, organization_id: str, role: str) -> Membership:
    if self._find("memberships", Membership, user_id=user_id, active=True):
      raise ConflictError("Membership conflicts with an existing row")
    m = Membership(user_id=user_id, organization_id=organization_id, role=role, active=True)
    return self._insert("memberships", m)

  async def list_memberships(self, organization_id: str) -> list[Membership]:
    found = self._find("memberships", Membership, organization_id=organization_id, active=True)
    found.sort(key=lambda m: m.joined_at)
    return found

  async def deactivate_membership(self, membership: Membership) -> Membership:
    self._patch("memberships", membership, {"active": False})
    return membership

  # buckets

  async def list_buckets(self, organization_id: str, user_id: str | None = None) -> list[Bucket]:
    where: dict[str, Any] = {"organization_id": organization_id}
    if user_id:
      where["user_id"] = user_id
    found = self._find("buckets", Bucket, **where)
    found.sort(key=lambda b: (b.order_index, b.created_at))
    return found

  async def get_bucket(self, bucket_id: str) -> Bucket | None:
    found = self._find("buckets", Bucket, id=bucket_id)
    return found[0] if found else None

  async def max_bucket_order(self, organization_id: str, user_id: str) -> int | None:
    found = self._find("buckets", Bucket, organization_id=organization_id, user_id=user_id)
    return max((b.order_index for b in found), default=None)

  async def lowest_order_bucket(self, organization_id: str, *, exclude_id: str | None = None) -> Bucket | None:
    found = [b for b in await self.list_buckets(organization_id) if b.id != exclude_id]
    return found[0] if found else None

  async def create_bucket(
    self,
    *,
    name: str,
    type: str,
    color: str,
    order_index: int,
    organization_id: str,
    user_id: str,
    project_id: str | None = None,
  ) -> Bucket:
    b = Bucket(
      name=name,
      type=type,
      color=color,
      order_index=order_index,
      organization_id=organization_id,
      user_id=user_id,
      project_id=project_id,
    )
    return self._insert("buckets", b)

  async def update_bucket(self, bucket: Bucket, changes: dict[str, Any]) -> Bucket:
    self._patch("buckets", bucket, changes)
    return bucket

  async def delete_bucket(self, bucket: Bucket) -> None:
    rows = [r for r in self._rows("buckets") if r.get("id") != bucket.id]
    self.store.set(STORAGE_KEYS["buckets"], rows)

  # tasks

  async def list_tasks(
    self,
    organization_id: str,
    *,
    status: str | None = None,
    bucket_id: str | None = None,
    user_id: str | None = None,
  ) -> list[Task]:
    where: dict[str, Any] = {"organization_id": organization_id}
    if status:
      where["status"] = status
    if bucket_id:
      where["bucket_id"] = bucket_id
    if user_id:
      where["user_id"] = user_id
    found = self._find("tasks", Task, **where)
    found.sort(key=lambda t: t.created_at, reverse=True)
    return found

  async def get_task(self, task_id: str) -> Task | None:
    found = self._find("tasks", Task, id=task_id)
    return found[0] if found else None

  async def create_task(
    self,
    *,
    title: str,
    description: str | None,
    priority: str,
    due_date: datetime | None,
    bucket_id: str | None,
    project_id: str | None,
    organization_id: str,
    user_id: str,
  ) -> Task:
    t = Task(
      title=title,
      description=description,
      priority=priority,
      status="open",
      due_date=due_date,
      bucket_id=bucket_id,
      project_id=project_id,
      organization_id=organization_id,
      user_id=user_id,
    )
    return self._insert("tasks", t)

  async def update_task(self, task: Task, changes: dict[str, Any]) -> Task:
    self._patch("tasks", task, {**changes, "updated_at": utcnow()})
    return task

  async def delete_task(self, task: Task) -> None:
    rows = [r for r in self._rows("tasks") if r.get("id") != task.id]
    self.store.set(STORAGE_KEYS["tasks"], rows)

  async def reassign_bucket_tasks(self, from_bucket_id: str, to_bucket_id: str | None) -> int:
    moved = 0
    for row in self._rows("tasks"):
      if row.get("bucket_id") == from_bucket_id:
        row["bucket_id"] = to_bucket_id
        row["updated_at"] = utcnow().isoformat()
        moved += 1
    return moved

  # invitations

  async def create_invitation(
    self,
    *,
    email: str,
    organization_id: str,
    role: str,
    token_hash: str,
    invited_by: str,
    expires_at: datetime,
  ) -> Invitation:
    if self._find("invitations", Invitation, token_hash=token_hash):
      raise ConflictError("Invitation conflicts with an existing row")
    inv = Invitation(
      email=email,
      organization_id=organization_id,
      role=role,
      token_hash=token_hash,
      invited_by=invited_by,
      expires_at=expires_at,
    )
    return self._insert("invitations", inv)

  async def get_invitation_by_token_hash(self, token_hash: str) -> Invitation | None:
    found = self._find("invitations", Invitation, token_hash=token_hash)
    return found[0] if found else None

  async def list_pending_invitations(self, organization_id: str, *, now: datetime) -> list[Invitation]:
    found = [
      i
      for i in self._find("invitations", Invitation, organization_id=organization_id)
      if i.accepted_at is None and i.expires_at > now
    ]
    found.sort(key=lambda i: i.created_at, reverse=True)
    return found

  async def mark_invitation_accepted(self, invitation: Invitation, *, accepted_at: datetime) -> Invitation:
    self._patch("invitations", invitation, {"accepted_at": accepted_at})
    return invitation

  # unit of work

  async def commit(self) -> None:
    self.store.flush()

  async def rollback(self) -> None:
    self.store.reload()

  async def ping(self) -> bool:
    return True
