from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Iterable
from zoneinfo import ZoneInfo

from easytasks.config import settings
from easytasks.errors import NotFoundError
from easytasks.models import Membership, Organization, Task, as_utc
from easytasks.repositories.base import Repository


@dataclass
class DashboardStats:
  total_tasks: int = 0
  open_tasks: int = 0
  completed_tasks: int = 0
  today_tasks: int = 0
  overdue_tasks: int = 0
  completed_this_week: int = 0
  days_since_oldest: int = 0


def report_timezone(name: str | None) -> tzinfo:
  if not name or name.strip().upper() == "UTC":
    return timezone.utc
  return ZoneInfo(name.strip())


def day_bounds(now: datetime, tz: tzinfo) -> tuple[datetime, datetime]:
  local = now.astimezone(tz)
  start = local.replace(hour=0, minute=0, second=0, microsecond=0)
  end = start + timedelta(days=1)
  return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def compute_stats(tasks: Iterable[Task], *, now: datetime | None = None, tz: tzinfo | None = None) -> DashboardStats:
  now = as_utc(now) if now else datetime.now(timezone.utc)
  start_today, start_tomorrow = day_bounds(now, tz or timezone.utc)
  week_ago = now - timedelta(days=7)

  stats = DashboardStats()
  oldest_open: datetime | None = None
  for t in tasks:
    stats.total_tasks += 1
    due = as_utc(t.due_date)
    if t.status == "done":
      stats.completed_tasks += 1
      done_at = as_utc(t.completed_at)
      if done_at is not None and done_at >= week_ago:
        stats.completed_this_week += 1
      continue

    stats.open_tasks += 1
    if due is not None:
      if start_today <= due < start_tomorrow:
        stats.today_tasks += 1
      elif due < start_today:
        stats.overdue_tasks += 1
    created = as_utc(t.created_at)
    if created is not None and (oldest_open is None or created < oldest_open):
      oldest_open = created

  if oldest_open is not None:
    stats.days_since_oldest = max(0, int((now - oldest_open).total_seconds() // 86400))
  return stats


async def dashboard_stats(repo: Repository, membership: Membership) -> tuple[DashboardStats, Organization]:
  org = await repo.get_organization(membership.organization_id)
  if org is None:
    raise NotFoundError("Organization not found")
  tasks = await repo.list_tasks(membership.organization_id)
  return compute_stats(tasks, tz=report_timezone(settings.dashboard_timezone)), org
