from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from easytasks.errors import NotFoundError, ValidationError
from easytasks.models import Bucket, Membership, Task
from easytasks.repositories.base import Repository

logger = logging.getLogger("easytasks.boards")

UNSET: Any = object()

PRIORITIES = ("low", "med", "high")
STATUSES = ("open", "done")
BUCKET_TYPES = ("day", "custom")
PRIVILEGED_ROLES = ("owner", "admin")


@dataclass
class BucketWithTasks:
  bucket: Bucket
  tasks: list[Task] = field(default_factory=list)


@dataclass
class TaskFilters:
  status: str | None = None
  bucket_id: str | None = None
  hide_completed: bool = False


def _can_see_all(membership: Membership) -> bool:
  return membership.role in PRIVILEGED_ROLES


async def _bucket_in_org(repo: Repository, organization_id: str, bucket_id: str) -> Bucket:
  b = await repo.get_bucket(bucket_id)
  if b is None or b.organization_id != organization_id:
    raise NotFoundError("Bucket not found")
  return b


async def _owned_task(repo: Repository, membership: Membership, task_id: str) -> Task:
  t = await repo.get_task(task_id)
  if t is None or t.organization_id != membership.organization_id or t.user_id != membership.user_id:
    raise NotFoundError("Task not found")
  return t


# buckets


async def list_buckets(repo: Repository, membership: Membership) -> list[BucketWithTasks]:
  org_id = membership.organization_id
  buckets = await repo.list_buckets(org_id, user_id=membership.user_id)
  open_tasks = await repo.list_tasks(org_id, status="open")
  by_bucket: dict[str, list[Task]] = {}
  for t in open_tasks:
    if t.bucket_id:
      by_bucket.setdefault(t.bucket_id, []).append(t)
  return [BucketWithTasks(bucket=b, tasks=by_bucket.get(b.id, [])) for b in buckets]


async def create_bucket(
  repo: Repository,
  membership: Membership,
  *,
  name: str,
  type: str = "custom",
  color: str = "#e5efe9",
  project_id: str | None = None,
) -> Bucket:
  name = (name or "").strip()
  if not name:
    raise ValidationError("Bucket name is required")
  if type not in BUCKET_TYPES:
    raise ValidationError(f"Invalid bucket type {type!r}")
  org_id = membership.organization_id
  max_order = await repo.max_bucket_order(org_id, membership.user_id)
  b = await repo.create_bucket(
    name=name,
    type=type,
    color=color or "#e5efe9",
    order_index=(max_order or 0) + 1,
    organization_id=org_id,
    user_id=membership.user_id,
    project_id=project_id or None,
  )
  await repo.commit()
  return b


async def _editable_bucket(repo: Repository, membership: Membership, bucket_id: str) -> Bucket:
  b = await _bucket_in_org(repo, membership.organization_id, bucket_id)
  if b.user_id != membership.user_id and not _can_see_all(membership):
    raise NotFoundError("Bucket not found")
  return b


async def update_bucket(
  repo: Repository,
  membership: Membership,
  bucket_id: str,
  *,
  name: str | None = UNSET,
  color: str | None = UNSET,
  order_index: int | None = UNSET,
) -> Bucket:
  b = await _editable_bucket(repo, membership, bucket_id)
  changes: dict[str, Any] = {}
  if name is not UNSET:
    name = (name or "").strip()
    if not name:
      raise ValidationError("Bucket name is required")
    changes["name"] = name
  if color is not UNSET:
    changes["color"] = color or "#e5efe9"
  if order_index is not UNSET:
    if order_index is None or order_index < 0:
      raise ValidationError("Bucket order must be zero or more")
    changes["order_index"] = order_index
  if not changes:
    return b
  await repo.update_bucket(b, changes)
  await repo.commit()
  return b


async def delete_bucket(repo: Repository, membership: Membership, bucket_id: str) -> Bucket | None:
  """
  Remove a bucket, moving its tasks to the organization's lowest-order
  remaining bucket (or leaving them unfiled when none is left).

  Returns the bucket that received the tasks.
  """
  org_id = membership.organization_id
  b = await _editable_bucket(repo, membership, bucket_id)
  target = await repo.lowest_order_bucket(org_id, exclude_id=b.id)
  target_id = target.id if target else None
  async with repo.transaction():
    moved = await repo.reassign_bucket_tasks(b.id, target_id)
    await repo.delete_bucket(b)
  logger.info("deleted bucket=%s org=%s moved=%d to=%s", bucket_id, org_id, moved, target_id)
  return target


# tasks


async def list_tasks(repo: Repository, membership: Membership, filters: TaskFilters | None = None) -> list[Task]:
  filters = filters or TaskFilters()
  status = filters.status
  if filters.hide_completed:
    status = "open"
  if status and status not in STATUSES:
    raise ValidationError(f"Invalid status {status!r}")
  return await repo.list_tasks(
    membership.organization_id,
    status=status,
    bucket_id=filters.bucket_id,
    user_id=None if _can_see_all(membership) else membership.user_id,
  )


async def create_task(
  repo: Repository,
  membership: Membership,
  *,
  title: str,
  description: str | None = None,
  priority: str = "med",
  due_date: datetime | None = None,
  bucket_id: str | None = None,
  project_id: str | None = None,
) -> Task:
  title = (title or "").strip()
  if not title:
    raise ValidationError("Title is required")
  if priority not in PRIORITIES:
    raise ValidationError(f"Invalid priority {priority!r}")
  org_id = membership.organization_id
  if bucket_id:
    await _bucket_in_org(repo, org_id, bucket_id)
  t = await repo.create_task(
    title=title,
    description=description or None,
    priority=priority,
    due_date=due_date,
    bucket_id=bucket_id or None,
    project_id=project_id or None,
    organization_id=org_id,
    user_id=membership.user_id,
  )
  await repo.commit()
  return t


def status_changes(
  task: Task,
  user_id: str,
  *,
  status: str | None = UNSET,
  completed_at: datetime | None = UNSET,
  now: datetime | None = None,
) -> dict[str, Any]:
  """
  Field changes for a status/completion update.

  Completing stamps completed_at and completed_by together. Reopening clears
  completed_at but keeps completed_by from the last completion.
  """
  now = now or datetime.now(timezone.utc)
  changes: dict[str, Any] = {}
  if status is not UNSET:
    if status not in STATUSES:
      raise ValidationError(f"Invalid status {status!r}")
    if status == "open" and completed_at not in (UNSET, None):
      raise ValidationError("An open task cannot have completedAt")
    changes["status"] = status
    if status == "done":
      changes["completed_at"] = completed_at if completed_at not in (UNSET, None) else (task.completed_at or now)
      changes["completed_by"] = user_id
    else:
      changes["completed_at"] = None
  elif completed_at is not UNSET:
    if completed_at is None:
      changes["completed_at"] = None
      changes["status"] = "open"
    else:
      changes["completed_at"] = completed_at
      changes["completed_by"] = user_id
      changes["status"] = "done"
  return changes


def edit_changes(
  *,
  title: str | None = UNSET,
  description: str | None = UNSET,
  priority: str | None = UNSET,
  due_date: datetime | None = UNSET,
) -> dict[str, Any]:
  changes: dict[str, Any] = {}
  if title is not UNSET:
    title = (title or "").strip()
    if not title:
      raise ValidationError("Title is required")
    changes["title"] = title
  if description is not UNSET:
    changes["description"] = description or None
  if priority is not UNSET:
    if priority not in PRIORITIES:
      raise ValidationError(f"Invalid priority {priority!r}")
    changes["priority"] = priority
  if due_date is not UNSET:
    changes["due_date"] = due_date
  return changes


async def update_task(
  repo: Repository,
  membership: Membership,
  task_id: str,
  *,
  title: str | None = UNSET,
  description: str | None = UNSET,
  priority: str | None = UNSET,
  due_date: datetime | None = UNSET,
  status: str | None = UNSET,
  bucket_id: str | None = UNSET,
  completed_at: datetime | None = UNSET,
) -> Task:
  """
  Apply a partial update in one write.

  Every field is checked before anything is saved, so a rejected update
  leaves the task untouched.
  """
  t = await _owned_task(repo, membership, task_id)
  changes = edit_changes(title=title, description=description, priority=priority, due_date=due_date)
  changes.update(status_changes(t, membership.user_id, status=status, completed_at=completed_at))
  if bucket_id is not UNSET:
    if bucket_id:
      await _bucket_in_org(repo, membership.organization_id, bucket_id)
    changes["bucket_id"] = bucket_id or None
  if not changes:
    return t
  await repo.update_task(t, changes)
  await repo.commit()
  return t


async def update_task_status(
  repo: Repository,
  membership: Membership,
  task_id: str,
  *,
  status: str | None = UNSET,
  bucket_id: str | None = UNSET,
  completed_at: datetime | None = UNSET,
) -> Task:
  return await update_task(repo, membership, task_id, status=status, bucket_id=bucket_id, completed_at=completed_at)


async def move_task(repo: Repository, membership: Membership, task_id: str, destination_bucket_id: str | None) -> Task:
  """
  Drag-and-drop: re-point the task at another bucket.

  Only bucket membership changes; tasks carry no position of their own and
  boards list them newest first.
  """
  org_id = membership.organization_id
  t = await repo.get_task(task_id)
  if t is None or t.organization_id != org_id:
    raise NotFoundError("Task not found")
  if t.user_id != membership.user_id and not _can_see_all(membership):
    raise NotFoundError("Task not found")
  if destination_bucket_id:
    await _bucket_in_org(repo, org_id, destination_bucket_id)
  if t.bucket_id == (destination_bucket_id or None):
    return t
  await repo.update_task(t, {"bucket_id": destination_bucket_id or None})
  await repo.commit()
  return t


async def delete_task(repo: Repository, membership: Membership, task_id: str) -> None:
  t = await _owned_task(repo, membership, task_id)
  await repo.delete_task(t)
  await repo.commit()
