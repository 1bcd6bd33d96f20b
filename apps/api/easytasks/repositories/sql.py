from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from easytasks.errors import ConflictError, PersistenceError
from easytasks.models import Bucket, Invitation, Membership, Organization, Profile, Session, Task
from easytasks.repositories.base import Repository

logger = logging.getLogger("easytasks.repositories.sql")


class SqlRepository(Repository):
  def __init__(self, db: AsyncSession) -> None:
    self.db = db

  async def _flush(self, what: str) -> None:
    try:
      await self.db.flush()
    except IntegrityError as exc:
      await self.db.rollback()
      raise ConflictError(f"{what} conflicts with an existing row") from exc
    except SQLAlchemyError as exc:
      await self.db.rollback()
      logger.exception("flush failed for %s", what)
      raise PersistenceError(f"Could not save {what}") from exc

  async def _add(self, obj: Any) -> Any:
    self.db.add(obj)
    await self._flush(type(obj).__name__)
    return obj

  # profiles

  async def get_profile(self, user_id: str) -> Profile | None:
    res = await self.db.execute(select(Profile).where(Profile.id == user_id))
    return res.scalar_one_or_none()

  async def get_profile_by_email(self, email: str) -> Profile | None:
    res = await self.db.execute(select(Profile).where(Profile.email == email))
    return res.scalar_one_or_none()

  async def create_profile(
    self, *, email: str, name: str | None, password_hash: str | None = None, user_id: str | None = None
  ) -> Profile:
    p = Profile(email=email, name=name, password_hash=password_hash)
    if user_id:
      p.id = user_id
    return await self._add(p)

  async def update_profile_name(self, profile: Profile, name: str) -> Profile:
    profile.name = name
    await self._flush("Profile")
    return profile

  async def delete_profile(self, user_id: str) -> None:
    await self.db.execute(delete(Session).where(Session.user_id == user_id))
    await self.db.execute(delete(Profile).where(Profile.id == user_id))

  # sessions

  async def create_session(self, *, user_id: str, expires_at: datetime) -> Session:
    return await self._add(Session(user_id=user_id, expires_at=expires_at))

  async def get_session(self, session_id: str) -> Session | None:
    res = await self.db.execute(select(Session).where(Session.id == session_id))
    return res.scalar_one_or_none()

  async def delete_sessions(self, user_id: str) -> None:
    await self.db.execute(delete(Session).where(Session.user_id == user_id))

  # organizations and memberships

  async def get_organization(self, organization_id: str) -> Organization | None:
    res = await self.db.execute(select(Organization).where(Organization.id == organization_id))
    return res.scalar_one_or_none()

  async def find_organization_created_by(self, user_id: str) -> Organization | None:
    res = await self.db.execute(
      select(Organization).where(Organization.created_by == user_id).order_by(Organization.created_at.asc()).limit(1)
    )
    return res.scalar_one_or_none()

  async def create_organization(self, *, name: str, type: str, description: str | None, created_by: str) -> Organization:
    return await self._add(Organization(name=name, type=type, description=description, created_by=created_by))

  async def get_active_membership(self, user_id: str) -> Membership | None:
    res = await self.db.execute(
      select(Membership)
      .where(Membership.user_id == user_id, Membership.active.is_(True))
      .order_by(Membership.joined_at.asc())
      .limit(1)
    )
    return res.scalar_one_or_none()

  async def create_membership(self, *, user_id: str, organization_id: str, role: str) -> Membership:
    return await self._add(Membership(user_id=user_id, organization_id=organization_id, role=role, active=True))

  async def list_memberships(self, organization_id: str) -> list[Membership]:
    res = await self.db.execute(
      select(Membership)
      .where(Membership.organization_id == organization_id, Membership.active.is_(True))
      .order_by(Membership.joined_at.asc())
    )
    return list(res.scalars().all())

  async def deactivate_membership(self, membership: Membership) -> Membership:
    membership.active = False
    await self._flush("Membership")
    return membership

  # buckets

  async def list_buckets(self, organization_id: str, user_id: str | None = None) -> list[Bucket]:
    q = select(Bucket).where(Bucket.organization_id == organization_id)
    if user_id:
      q = q.where(Bucket.user_id == user_id)
    res = await self.db.execute(q.order_by(Bucket.order_index.asc(), Bucket.created_at.asc()))
    return list(res.scalars().all())

  async def get_bucket(self, bucket_id: str) -> Bucket | None:
    res = await self.db.execute(select(Bucket).where(Bucket.id == bucket_id))
    return res.scalar_one_or_none()

  async def max_bucket_order(self, organization_id: str, user_id: str) -> int | None:
    res = await self.db.execute(
      select(func.max(Bucket.order_index)).where(Bucket.organization_id == organization_id, Bucket.user_id == user_id)
    )
    return res.scalar_one()

  async def lowest_order_bucket(self, organization_id: str, *, exclude_id: str | None = None) -> Bucket | None:
    q = select(Bucket).where(Bucket.organization_id == organization_id)
    if exclude_id:
      q = q.where(Bucket.id != exclude_id)
    res = await self.db.execute(q.order_by(Bucket.order_index.asc(), Bucket.created_at.asc()).limit(1))
    return res.scalar_one_or_none()

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
    return await self._add(b)

  async def update_bucket(self, bucket: Bucket, changes: dict[str, Any]) -> Bucket:
    for field, value in changes.items():
      setattr(bucket, field, value)
    await self._flush("Bucket")
    return bucket

  async def delete_bucket(self, bucket: Bucket) -> None:
    await self.db.execute(delete(Bucket).where(Bucket.id == bucket.id))

  # tasks

  async def list_tasks(
    self,
    organization_id: str,
    *,
    status: str | None = None,
    bucket_id: str | None = None,
    user_id: str | None = None,
  ) -> list[Task]:
    q = select(Task).where(Task.organization_id == organization_id)
    if status:
      q = q.where(Task.status == status)
    if bucket_id:
      q = q.where(Task.bucket_id == bucket_id)
    if user_id:
      q = q.where(Task.user_id == user_id)
    res = await self.db.execute(q.order_by(Task.created_at.desc()))
    return list(res.scalars().all())

  async def get_task(self, task_id: str) -> Task | None:
    res = await self.db.execute(select(Task).where(Task.id == task_id))
    return res.scalar_one_or_none()

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
    return await self._add(t)

  async def update_task(self, task: Task, changes: dict[str, Any]) -> Task:
    for field, value in changes.items():
      setattr(task, field, value)
    await self._flush("Task")
    return task

  async def delete_task(self, task: Task) -> None:
    await self.db.execute(delete(Task).where(Task.id == task.id))

  async def reassign_bucket_tasks(self, from_bucket_id: str, to_bucket_id: str | None) -> int:
    res = await self.db.execute(
      update(Task).where(Task.bucket_id == from_bucket_id).values(bucket_id=to_bucket_id).execution_options(synchronize_session="fetch")
    )
    return int(res.rowcount or 0)

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
    inv = Invitation(
      email=email,
      organization_id=organization_id,
      role=role,
      token_hash=token_hash,
      invited_by=invited_by,
      expires_at=expires_at,
    )
    return await self._add(inv)

  async def get_invitation_by_token_hash(self, token_hash: str) -> Invitation | None:
    res = await self.db.execute(select(Invitation).where(Invitation.token_hash == token_hash))
    return res.scalar_one_or_none()

  async def list_pending_invitations(self, organization_id: str, *, now: datetime) -> list[Invitation]:
    res = await self.db.execute(
      select(Invitation)
      .where(
        Invitation.organization_id == organization_id,
        Invitation.accepted_at.is_(None),
        Invitation.expires_at > now,
      )
      .order_by(Invitation.created_at.desc())
    )
    return list(res.scalars().all())

  async def mark_invitation_accepted(self, invitation: Invitation, *, accepted_at: datetime) -> Invitation:
    invitation.accepted_at = accepted_at
    await self._flush("Invitation")
    return invitation

  # unit of work

  async def commit(self) -> None:
    try:
      await self.db.commit()
    except IntegrityError as exc:
      await self.db.rollback()
      raise ConflictError("Change conflicts with an existing row") from exc
    except SQLAlchemyError as exc:
      await self.db.rollback()
      logger.exception("commit failed")
      raise PersistenceError("Could not save changes") from exc

  async def rollback(self) -> None:
    await self.db.rollback()

  async def ping(self) -> bool:
    await self.db.execute(text("SELECT 1"))
    return True
