from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

ID_LEN = 36


def utcnow() -> datetime:
  return datetime.now(timezone.utc)


def new_id() -> str:
  return str(uuid.uuid4())


def as_utc(dt: datetime | None) -> datetime | None:
  # SQLite hands back naive datetimes even for timezone-aware columns.
  if dt is None:
    return None
  if dt.tzinfo is None:
    return dt.replace(tzinfo=timezone.utc)
  return dt.astimezone(timezone.utc)


class Base(DeclarativeBase):
  pass


class Profile(Base):
  __tablename__ = "profiles"

  id: Mapped[str] = mapped_column(String(ID_LEN), primary_key=True, default=new_id)
  email: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  name: Mapped[str | None] = mapped_column(String, nullable=True)
  password_hash: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Session(Base):
  __tablename__ = "sessions"

  id: Mapped[str] = mapped_column(String(ID_LEN), primary_key=True, default=new_id)
  user_id: Mapped[str] = mapped_column(String(ID_LEN), ForeignKey("profiles.id"), nullable=False, index=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class Organization(Base):
  __tablename__ = "organizations"

  id: Mapped[str] = mapped_column(String(ID_LEN), primary_key=True, default=new_id)
  name: Mapped[str] = mapped_column(String, nullable=False)
  type: Mapped[str] = mapped_column(String, nullable=False, default="team")
  description: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_by: Mapped[str] = mapped_column(String(ID_LEN), ForeignKey("profiles.id"), nullable=False, index=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class Membership(Base):
  __tablename__ = "memberships"
  __table_args__ = (
    Index(
      "ux_memberships_active_user",
      "user_id",
      unique=True,
      postgresql_where=text("active IS TRUE"),
      sqlite_where=text("active = 1"),
    ),
  )

  id: Mapped[str] = mapped_column(String(ID_LEN), primary_key=True, default=new_id)
  user_id: Mapped[str] = mapped_column(String(ID_LEN), ForeignKey("profiles.id"), nullable=False, index=True)
  organization_id: Mapped[str] = mapped_column(String(ID_LEN), ForeignKey("organizations.id"), nullable=False, index=True)
  role: Mapped[str] = mapped_column(String, nullable=False, default="member")
  active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
  joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class Bucket(Base):
  __tablename__ = "buckets"

  id: Mapped[str] = mapped_column(String(ID_LEN), primary_key=True, default=new_id)
  name: Mapped[str] = mapped_column(String, nullable=False)
  type: Mapped[str] = mapped_column(String, nullable=False, default="custom")
  color: Mapped[str] = mapped_column(String, nullable=False, default="#e5efe9")
  order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
  organization_id: Mapped[str] = mapped_column(String(ID_LEN), ForeignKey("organizations.id"), nullable=False, index=True)
  user_id: Mapped[str] = mapped_column(String(ID_LEN), ForeignKey("profiles.id"), nullable=False, index=True)
  project_id: Mapped[str | None] = mapped_column(String(ID_LEN), nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class Task(Base):
  __tablename__ = "tasks"

  id: Mapped[str] = mapped_column(String(ID_LEN), primary_key=True, default=new_id)
  title: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str | None] = mapped_column(Text, nullable=True)
  priority: Mapped[str] = mapped_column(String, nullable=False, default="med")
  status: Mapped[str] = mapped_column(String, nullable=False, default="open")
  due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  bucket_id: Mapped[str | None] = mapped_column(
    String(ID_LEN), ForeignKey("buckets.id", ondelete="SET NULL"), nullable=True, index=True
  )
  project_id: Mapped[str | None] = mapped_column(String(ID_LEN), nullable=True)
  organization_id: Mapped[str] = mapped_column(String(ID_LEN), ForeignKey("organizations.id"), nullable=False, index=True)
  user_id: Mapped[str] = mapped_column(String(ID_LEN), ForeignKey("profiles.id"), nullable=False, index=True)
  completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  completed_by: Mapped[str | None] = mapped_column(String(ID_LEN), nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Invitation(Base):
  __tablename__ = "invitations"

  id: Mapped[str] = mapped_column(String(ID_LEN), primary_key=True, default=new_id)
  email: Mapped[str] = mapped_column(String, nullable=False, index=True)
  organization_id: Mapped[str] = mapped_column(String(ID_LEN), ForeignKey("organizations.id"), nullable=False, index=True)
  role: Mapped[str] = mapped_column(String, nullable=False, default="member")
  token_hash: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  invited_by: Mapped[str] = mapped_column(String(ID_LEN), ForeignKey("profiles.id"), nullable=False)
  expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
  accepted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
