from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, status

from easytasks.boards import service as boards
from easytasks.deps import get_membership, get_repository
from easytasks.models import Bucket, Membership, Task, as_utc
from easytasks.repositories.base import Repository
from easytasks.routers.tasks import task_out
from easytasks.schemas import BucketCreateIn, BucketDeleteOut, BucketOut, BucketUpdateIn

router = APIRouter(tags=["buckets"])

_UPDATE_FIELDS = {"name": "name", "color": "color", "orderIndex": "order_index"}


def bucket_out(b: Bucket, tasks: list[Task] | None = None) -> BucketOut:
  return BucketOut(
    id=b.id,
    name=b.name,
    type=b.type,
    color=b.color,
    orderIndex=b.order_index,
    organizationId=b.organization_id,
    userId=b.user_id,
    projectId=b.project_id,
    createdAt=as_utc(b.created_at),
    tasks=[task_out(t) for t in tasks or []],
  )


@router.get("/buckets", response_model=list[BucketOut])
async def list_buckets(
  membership: Membership = Depends(get_membership),
  repo: Repository = Depends(get_repository),
) -> list[BucketOut]:
  return [bucket_out(row.bucket, row.tasks) for row in await boards.list_buckets(repo, membership)]


@router.post("/buckets", response_model=BucketOut, status_code=status.HTTP_201_CREATED)
async def create_bucket(
  payload: BucketCreateIn,
  membership: Membership = Depends(get_membership),
  repo: Repository = Depends(get_repository),
) -> BucketOut:
  b = await boards.create_bucket(
    repo,
    membership,
    name=payload.name,
    type=payload.type,
    color=payload.color,
    project_id=payload.projectId,
  )
  return bucket_out(b)


@router.patch("/buckets/{bucket_id}", response_model=BucketOut)
async def update_bucket(
  bucket_id: str,
  payload: BucketUpdateIn,
  membership: Membership = Depends(get_membership),
  repo: Repository = Depends(get_repository),
) -> BucketOut:
  sent = payload.model_fields_set
  kwargs: dict[str, Any] = {attr: getattr(payload, f) for f, attr in _UPDATE_FIELDS.items() if f in sent}
  b = await boards.update_bucket(repo, membership, bucket_id, **kwargs)
  return bucket_out(b)


@router.delete("/buckets/{bucket_id}", response_model=BucketDeleteOut)
async def delete_bucket(
  bucket_id: str,
  membership: Membership = Depends(get_membership),
  repo: Repository = Depends(get_repository),
) -> BucketDeleteOut:
  target = await boards.delete_bucket(repo, membership, bucket_id)
  return BucketDeleteOut(ok=True, movedToBucketId=target.id if target else None)
