from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query, status

from easytasks.boards import service as boards
from easytasks.deps import get_membership, get_repository
from easytasks.models import Membership, Task, as_utc
from easytasks.repositories.base import Repository
from easytasks.schemas import TaskCreateIn, TaskMoveIn, TaskOut, TaskStatus, TaskUpdateIn

router = APIRouter(tags=["tasks"])

_UPDATE_FIELDS = {
  "title": "title",
  "description": "description",
  "priority": "priority",
  "dueDate": "due_date",
  "status": "status",
  "bucketId": "bucket_id",
  "completedAt": "completed_at",
}


def task_out(t: Task) -> TaskOut:
  return TaskOut(
    id=t.id,
    title=t.title,
    description=t.description,
    priority=t.priority,
    status=t.status,
    dueDate=as_utc(t.due_date),
    bucketId=t.bucket_id,
    projectId=t.project_id,
    organizationId=t.organization_id,
    userId=t.user_id,
    completedAt=as_utc(t.completed_at),
    completedBy=t.completed_by,
    createdAt=as_utc(t.created_at),
    updatedAt=as_utc(t.updated_at),
  )


@router.get("/tasks", response_model=list[TaskOut])
async def list_tasks(
  status_filter: TaskStatus | None = Query(default=None, alias="status"),
  bucket_id: str | None = Query(default=None, alias="bucketId"),
  hide_completed: bool = Query(default=False, alias="hideCompleted"),
  membership: Membership = Depends(get_membership),
  repo: Repository = Depends(get_repository),
) -> list[TaskOut]:
  filters = boards.TaskFilters(status=status_filter, bucket_id=bucket_id, hide_completed=hide_completed)
  return [task_out(t) for t in await boards.list_tasks(repo, membership, filters)]


@router.post("/tasks", response_model=TaskOut, status_code=status.HTTP_201_CREATED)
async def create_task(
  payload: TaskCreateIn,
  membership: Membership = Depends(get_membership),
  repo: Repository = Depends(get_repository),
) -> TaskOut:
  t = await boards.create_task(
    repo,
    membership,
    title=payload.title,
    description=payload.description,
    priority=payload.priority,
    due_date=payload.dueDate,
    bucket_id=payload.bucketId,
    project_id=payload.projectId,
  )
  return task_out(t)


@router.patch("/tasks/{task_id}", response_model=TaskOut)
async def update_task(
  task_id: str,
  payload: TaskUpdateIn,
  membership: Membership = Depends(get_membership),
  repo: Repository = Depends(get_repository),
) -> TaskOut:
  # Only fields present in the body are applied; an explicit null clears.
  sent = payload.model_fields_set
  kwargs: dict[str, Any] = {attr: getattr(payload, f) for f, attr in _UPDATE_FIELDS.items() if f in sent}
  t = await boards.update_task(repo, membership, task_id, **kwargs)
  return task_out(t)


@router.delete("/tasks/{task_id}")
async def delete_task(
  task_id: str,
  membership: Membership = Depends(get_membership),
  repo: Repository = Depends(get_repository),
) -> dict:
  await boards.delete_task(repo, membership, task_id)
  return {"ok": True}


@router.post("/tasks/{task_id}/move", response_model=TaskOut)
async def move_task(
  task_id: str,
  payload: TaskMoveIn,
  membership: Membership = Depends(get_membership),
  repo: Repository = Depends(get_repository),
) -> TaskOut:
  t = await boards.move_task(repo, membership, task_id, payload.bucketId)
  return task_out(t)
