from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator

from easytasks.models import Bucket, Invitation, Membership, Organization, Profile, Session, Task


class Repository(ABC):
  """
  Storage boundary shared by every service.

  Writes are staged until `commit()`; `transaction()` groups several writes
  so they land together or not at all. Uniqueness violations raise
  `ConflictError`, any other store failure raises `PersistenceError`.
  """

  # profiles

  @abstractmethod
  async def get_profile(self, user_id: str) -> Profile | None: ...

  @abstractmethod
  async def get_profile_by_email(self, email: str) -> Profile | None: ...

  @abstractmethod
  async def create_profile(
    self, *, email: str, name: str | None, password_hash: str | None = None, user_id: str | None = None
  ) -> Profile: ...

  @abstractmethod
  async def update_profile_name(self, profile: Profile, name: str) -> Profile: ...

  @abstractmethod
  async def delete_profile(self, user_id: str) -> None: ...

  # sessions

  @abstractmethod
  async def create_session(self, *, user_id: str, expires_at: datetime) -> Session: ...

  @abstractmethod
  async def get_session(self, session_id: str) -> Session | None: ...

  @abstractmethod
  async def delete_sessions(self, user_id: str) -> None: ...

  # organizations and memberships

  @abstractmethod
  async def get_organization(self, organization_id: str) -> Organization | None: ...

  @abstractmethod
  async def find_organization_created_by(self, user_id: str) -> Organization | None: ...

  @abstractmethod
  async def create_organization(
    self, *, name: str, type: str, description: str | None, created_by: str
  ) -> Organization: ...

  @abstractmethod
  async def get_active_membership(self, user_id: str) -> Membership | None: ...

  @abstractmethod
  async def create_membership(self, *, user_id: str, organization_id: str, role: str) -> Membership: ...

  @abstractmethod
  async def list_memberships(self, organization_id: str) -> list[Membership]: ...

  @abstractmethod
  async def deactivate_membership(self, membership: Membership) -> Membership: ...

  # buckets

  @abstractmethod
  async def list_buckets(self, organization_id: str, user_id: str | None = None) -> list[Bucket]: ...

  @abstractmethod
  async def get_bucket(self, bucket_id: str) -> Bucket | None: ...

  @abstractmethod
  async def max_bucket_order(self, organization_id: str, user_id: str) -> int | None: ...

  @abstractmethod
  async def lowest_order_bucket(self, organization_id: str, *, exclude_id: str | None = None) -> Bucket | None: ...

  @abstractmethod
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
  ) -> Bucket: ...

  @abstractmethod
  async def update_bucket(self, bucket: Bucket, changes: dict[str, Any]) -> Bucket: ...

  @abstractmethod
  async def delete_bucket(self, bucket: Bucket) -> None: ...

  # tasks

  @abstractmethod
  async def list_tasks(
    self,
    organization_id: str,
    *,
    status: str | None = None,
    bucket_id: str | None = None,
    user_id: str | None = None,
  ) -> list[Task]:
    """Tasks of the organization, newest created first."""

  @abstractmethod
  async def get_task(self, task_id: str) -> Task | None: ...

  @abstractmethod
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
  ) -> Task: ...

  @abstractmethod
  async def update_task(self, task: Task, changes: dict[str, Any]) -> Task: ...

  @abstractmethod
  async def delete_task(self, task: Task) -> None: ...

  @abstractmethod
  async def reassign_bucket_tasks(self, from_bucket_id: str, to_bucket_id: str | None) -> int: ...

  # invitations

  @abstractmethod
  async def create_invitation(
    self,
    *,
    email: str,
    organization_id: str,
    role: str,
    token_hash: str,
    invited_by: str,
    expires_at: datetime,
  ) -> Invitation: ...

  @abstractmethod
  async def get_invitation_by_token_hash(self, token_hash: str) -> Invitation | None: ...

  @abstractmethod
  async def list_pending_invitations(self, organization_id: str, *, now: datetime) -> list[Invitation]: ...

  @abstractmethod
  async def mark_invitation_accepted(self, invitation: Invitation, *, accepted_at: datetime) -> Invitation: ...

  # unit of work

  @abstractmethod
  async def commit(self) -> None: ...

  @abstractmethod
  async def rollback(self) -> None: ...

  @abstractmethod
  async def ping(self) -> bool: ...

  @asynccontextmanager
  async def transaction(self) -> AsyncIterator[Repository]:
    try:
      yield self
      await self.commit()
    except BaseException:
      await self.rollback()
      raise
