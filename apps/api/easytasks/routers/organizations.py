from __future__ import annotations

from fastapi import APIRouter, Depends, status

from easytasks.deps import get_current_user, get_membership, get_repository
from easytasks.models import Membership, Organization, Profile, as_utc
from easytasks.organizations import service as organizations
from easytasks.repositories.base import Repository
from easytasks.routers.auth import profile_out
from easytasks.schemas import CurrentOrganizationOut, MemberOut, MembershipOut, OrganizationCreateIn, OrganizationOut

router = APIRouter(prefix="/organizations", tags=["organizations"])


def organization_out(o: Organization) -> OrganizationOut:
  return OrganizationOut(
    id=o.id,
    name=o.name,
    type=o.type,
    description=o.description,
    createdBy=o.created_by,
    createdAt=as_utc(o.created_at),
  )


def membership_out(m: Membership) -> MembershipOut:
  return MembershipOut(
    userId=m.user_id,
    organizationId=m.organization_id,
    role=m.role,
    active=bool(m.active),
    joinedAt=as_utc(m.joined_at),
  )


@router.post("", response_model=CurrentOrganizationOut, status_code=status.HTTP_201_CREATED)
async def create_organization(
  payload: OrganizationCreateIn,
  user: Profile = Depends(get_current_user),
  repo: Repository = Depends(get_repository),
) -> CurrentOrganizationOut:
  org, m = await organizations.create_organization(
    repo,
    user.id,
    name=payload.name,
    type=payload.type,
    description=payload.description,
  )
  return CurrentOrganizationOut(organization=organization_out(org), role=m.role)


@router.get("/current", response_model=CurrentOrganizationOut)
async def current_organization(
  membership: Membership = Depends(get_membership),
  repo: Repository = Depends(get_repository),
) -> CurrentOrganizationOut:
  org = await organizations.current_organization(repo, membership)
  return CurrentOrganizationOut(organization=organization_out(org), role=membership.role)


@router.get("/current/members", response_model=list[MemberOut])
async def list_members(
  membership: Membership = Depends(get_membership),
  repo: Repository = Depends(get_repository),
) -> list[MemberOut]:
  rows = await organizations.list_members(repo, membership)
  return [MemberOut(user=profile_out(p) if p else None, membership=membership_out(m)) for m, p in rows]


@router.delete("/current/members/{user_id}", response_model=MembershipOut)
async def remove_member(
  user_id: str,
  membership: Membership = Depends(get_membership),
  repo: Repository = Depends(get_repository),
) -> MembershipOut:
  return membership_out(await organizations.deactivate_member(repo, membership, user_id))
