from __future__ import annotations

import logging

from easytasks.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from easytasks.models import Membership, Organization, Profile
from easytasks.provisioning.service import ensure_default_buckets
from easytasks.repositories.base import Repository

logger = logging.getLogger("easytasks.organizations")

ORGANIZATION_TYPES = ("company", "team")
MANAGER_ROLES = ("owner", "admin")


async def create_organization(
  repo: Repository,
  user_id: str,
  *,
  name: str,
  type: str = "team",
  description: str | None = None,
) -> tuple[Organization, Membership]:
  name = (name or "").strip()
  if not name:
    raise ValidationError("Organization name is required")
  if type not in ORGANIZATION_TYPES:
    raise ValidationError(f"Invalid organization type {type!r}")
  if await repo.get_active_membership(user_id) is not None:
    raise ConflictError("User already belongs to an organization")

  async with repo.transaction():
    org = await repo.create_organization(name=name, type=type, description=description or None, created_by=user_id)
    membership = await repo.create_membership(user_id=user_id, organization_id=org.id, role="owner")
  org_id = org.id
  logger.info("organization created org=%s owner=%s", org_id, user_id)

  await ensure_default_buckets(repo, user_id, org_id)
  return (await repo.get_organization(org_id)) or org, (await repo.get_active_membership(user_id)) or membership


async def current_organization(repo: Repository, membership: Membership) -> Organization:
  org = await repo.get_organization(membership.organization_id)
  if org is None:
    raise NotFoundError("Organization not found")
  return org


async def list_members(repo: Repository, membership: Membership) -> list[tuple[Membership, Profile | None]]:
  out: list[tuple[Membership, Profile | None]] = []
  for m in await repo.list_memberships(membership.organization_id):
    out.append((m, await repo.get_profile(m.user_id)))
  return out


async def deactivate_member(repo: Repository, membership: Membership, user_id: str) -> Membership:
  """
  Remove a member from the caller's organization.

  The membership row stays with active=false. Owners and admins may remove
  others but not themselves, and only an owner may remove another owner.
  """
  if membership.role not in MANAGER_ROLES:
    raise ForbiddenError("Only owners and admins can remove members")
  if user_id == membership.user_id:
    raise ValidationError("You cannot remove yourself")
  target = next((m for m in await repo.list_memberships(membership.organization_id) if m.user_id == user_id), None)
  if target is None:
    raise NotFoundError("Member not found")
  if target.role == "owner" and membership.role != "owner":
    raise ForbiddenError("Only owners can remove an owner")

  await repo.deactivate_membership(target)
  await repo.commit()
  logger.info("member removed org=%s user=%s by=%s", membership.organization_id, user_id, membership.user_id)
  return target
