from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field
from pydantic import field_validator


_DATE_ONLY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _parse_dt_utc(value: object) -> object:
  if value is None:
    return None
  if isinstance(value, datetime):
    dt = value
  elif isinstance(value, str):
    s = value.strip()
    if not s:
      return None
    if _DATE_ONLY_RE.fullmatch(s):
      dt = datetime.fromisoformat(s)
    else:
      dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
  else:
    return value

  if dt.tzinfo is None:
    return dt.replace(tzinfo=timezone.utc)
  return dt.astimezone(timezone.utc)


Priority = Literal["low", "med", "high"]
TaskStatus = Literal["open", "done"]
BucketType = Literal["day", "custom"]
OrganizationType = Literal["company", "team"]
MemberRole = Literal["owner", "admin", "member"]


class ProfileOut(BaseModel):
  id: str
  email: str
  name: str | None = None


class RegisterIn(BaseModel):
  email: str = Field(max_length=320)
  password: str = Field(max_length=200)
  name: str | None = Field(default=None, max_length=120)
  organizationName: str | None = Field(default=None, max_length=200)
  organizationType: OrganizationType | None = None


class RegisterOut(BaseModel):
  message: str
  user: ProfileOut


class LoginIn(BaseModel):
  email: str
  password: str


class OrganizationOut(BaseModel):
  id: str
  name: str
  type: str
  description: str | None = None
  createdBy: str
  createdAt: datetime


class OrganizationCreateIn(BaseModel):
  name: str = Field(max_length=200)
  type: OrganizationType = "team"
  description: str | None = Field(default=None, max_length=2000)


class MembershipOut(BaseModel):
  userId: str
  organizationId: str
  role: MemberRole
  active: bool
  joinedAt: datetime


class CurrentOrganizationOut(BaseModel):
  organization: OrganizationOut
  role: MemberRole


class MemberOut(BaseModel):
  user: ProfileOut | None = None
  membership: MembershipOut


class TaskOut(BaseModel):
  id: str
  title: str
  description: str | None = None
  priority: Priority
  status: TaskStatus
  dueDate: datetime | None = None
  bucketId: str | None = None
  projectId: str | None = None
  organizationId: str
  userId: str
  completedAt: datetime | None = None
  completedBy: str | None = None
  createdAt: datetime
  updatedAt: datetime


class TaskCreateIn(BaseModel):
  title: str = Field(max_length=500)
  description: str | None = Field(default=None, max_length=20000)
  priority: Priority = "med"
  dueDate: datetime | None = None
  bucketId: str | None = None
  projectId: str | None = None

  @field_validator("dueDate", mode="before")
  @classmethod
  def _due_date_to_utc(cls, v: object) -> object:
    return _parse_dt_utc(v)


class TaskUpdateIn(BaseModel):
  status: TaskStatus | None = None
  bucketId: str | None = None
  completedAt: datetime | None = None
  title: str | None = Field(default=None, max_length=500)
  description: str | None = Field(default=None, max_length=20000)
  priority: Priority | None = None
  dueDate: datetime | None = None

  @field_validator("dueDate", "completedAt", mode="before")
  @classmethod
  def _dt_to_utc(cls, v: object) -> object:
    return _parse_dt_utc(v)


class TaskMoveIn(BaseModel):
  bucketId: str | None = None


class BucketOut(BaseModel):
  id: str
  name: str
  type: BucketType
  color: str
  orderIndex: int
  organizationId: str
  userId: str
  projectId: str | None = None
  createdAt: datetime
  tasks: list[TaskOut] = Field(default_factory=list)


class BucketCreateIn(BaseModel):
  name: str = Field(max_length=200)
  type: BucketType = "custom"
  color: str = Field(default="#e5efe9", max_length=32)
  projectId: str | None = None


class BucketUpdateIn(BaseModel):
  name: str | None = Field(default=None, max_length=200)
  color: str | None = Field(default=None, max_length=32)
  orderIndex: int | None = None


class BucketDeleteOut(BaseModel):
  ok: bool = True
  movedToBucketId: str | None = None


class DashboardStatsOut(BaseModel):
  totalTasks: int
  openTasks: int
  completedTasks: int
  todayTasks: int
  overdueTasks: int
  completedThisWeek: int
  daysSinceOldest: int
  organization: OrganizationOut


class DashboardOut(BaseModel):
  stats: DashboardStatsOut


class InvitationCreateIn(BaseModel):
  email: str = Field(max_length=320)
  role: Literal["admin", "member"] = "member"


class InvitationOut(BaseModel):
  id: str
  email: str
  organizationId: str
  role: str
  invitedBy: str
  expiresAt: datetime
  acceptedAt: datetime | None = None
  createdAt: datetime


class InvitationCreateOut(BaseModel):
  invitation: InvitationOut
  token: str
  inviteUrl: str


class InvitationPreviewOut(BaseModel):
  email: str
  role: str
  organizationName: str
  expiresAt: datetime


class InvitationAcceptIn(BaseModel):
  token: str = Field(min_length=1)
  password: str = Field(max_length=200)
  name: str | None = Field(default=None, max_length=120)


class SetupRepairIn(BaseModel):
  name: str | None = Field(default=None, max_length=120)
  organizationName: str | None = Field(default=None, max_length=200)
  organizationType: OrganizationType | None = None


class SetupOut(BaseModel):
  user: ProfileOut
  organization: OrganizationOut
  membership: MembershipOut
  buckets: list[BucketOut]
  createdProfile: bool = False
  createdOrganization: bool = False
  createdMembership: bool = False
  createdBuckets: int = 0
