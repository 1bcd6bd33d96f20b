from __future__ import annotations

from fastapi import APIRouter, Depends

from easytasks.dashboard.service import dashboard_stats
from easytasks.deps import get_membership, get_repository
from easytasks.models import Membership
from easytasks.repositories.base import Repository
from easytasks.routers.organizations import organization_out
from easytasks.schemas import DashboardOut, DashboardStatsOut

router = APIRouter(tags=["dashboard"])


@router.get("/dashboard", response_model=DashboardOut)
async def dashboard(
  membership: Membership = Depends(get_membership),
  repo: Repository = Depends(get_repository),
) -> DashboardOut:
  stats, org = await dashboard_stats(repo, membership)
  return DashboardOut(
    stats=DashboardStatsOut(
      totalTasks=stats.total_tasks,
      openTasks=stats.open_tasks,
      completedTasks=stats.completed_tasks,
      todayTasks=stats.today_tasks,
      overdueTasks=stats.overdue_tasks,
      completedThisWeek=stats.completed_this_week,
      daysSinceOldest=stats.days_since_oldest,
      organization=organization_out(org),
    )
  )
