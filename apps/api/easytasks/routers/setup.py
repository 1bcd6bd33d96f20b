from __future__ import annotations

from fastapi import APIRouter, Depends

from easytasks.deps import get_current_user, get_repository
from easytasks.models import Profile
from easytasks.provisioning.service import BootstrapHints, BootstrapResult, repair_setup
from easytasks.repositories.base import Repository
from easytasks.routers.auth import profile_out
from easytasks.routers.buckets import bucket_out
from easytasks.routers.organizations import membership_out, organization_out
from easytasks.schemas import SetupOut, SetupRepairIn

router = APIRouter(prefix="/setup", tags=["setup"])


def setup_out(r: BootstrapResult) -> SetupOut:
  return SetupOut(
    user=profile_out(r.profile),
    organization=organization_out(r.organization),
    membership=membership_out(r.membership),
    buckets=[bucket_out(b) for b in r.buckets],
    createdProfile=r.created_profile,
    createdOrganization=r.created_organization,
    createdMembership=r.created_membership,
    createdBuckets=r.created_buckets,
  )


@router.post("/repair", response_model=SetupOut)
async def repair(
  payload: SetupRepairIn | None = None,
  user: Profile = Depends(get_current_user),
  repo: Repository = Depends(get_repository),
) -> SetupOut:
  payload = payload or SetupRepairIn()
  hints = BootstrapHints(
    name=payload.name or user.name,
    email=user.email,
    organization_name=payload.organizationName,
    organization_type=payload.organizationType,
  )
  return setup_out(await repair_setup(repo, user.id, hints))
