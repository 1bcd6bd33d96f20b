from __future__ import annotations

import asyncio
import logging
import weakref
from dataclasses import dataclass, field, replace

from easytasks.errors import ConflictError, EasyTasksError, NotFoundError, ProvisioningError
from easytasks.models import Bucket, Membership, Organization, Profile
from easytasks.repositories.base import Repository

logger = logging.getLogger("easytasks.provisioning")

# (name, type, color, order_index)
DEFAULT_BUCKETS: tuple[tuple[str, str, str, int], ...] = (
  ("Today", "day", "#fef3c7", 1),
  ("Tomorrow", "day", "#dbeafe", 2),
  ("Backlog", "custom", "#e5efe9", 3),
)

_user_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()


def _lock_for(user_id: str) -> asyncio.Lock:
  lock = _user_locks.get(user_id)
  if lock is None:
    lock = asyncio.Lock()
    _user_locks[user_id] = lock
  return lock


@dataclass
class BootstrapHints:
  name: str | None = None
  email: str | None = None
  organization_name: str | None = None
  organization_type: str | None = None
  # Invitation path: join this organization instead of creating one.
  organization_id: str | None = None
  role: str | None = None


@dataclass
class BootstrapResult:
  profile: Profile
  organization: Organization
  membership: Membership
  buckets: list[Bucket] = field(default_factory=list)
  created_profile: bool = False
  created_organization: bool = False
  created_membership: bool = False
  created_buckets: int = 0


def default_organization_name(hints: BootstrapHints) -> str:
  if hints.organization_name and hints.organization_name.strip():
    return hints.organization_name.strip()
  if hints.name and hints.name.strip():
    return f"{hints.name.strip()}'s Team"
  return "My Team"


async def _ensure_profile(repo: Repository, user_id: str, hints: BootstrapHints) -> tuple[Profile, bool]:
  profile = await repo.get_profile(user_id)
  if profile is None:
    if not hints.email:
      raise NotFoundError("Profile not found")
    try:
      profile = await repo.create_profile(user_id=user_id, email=hints.email, name=hints.name or None)
      await repo.commit()
    except EasyTasksError as exc:
      raise ProvisioningError("create profile", exc.message) from exc
    logger.info("created profile user=%s", user_id)
    return profile, True

  name = (hints.name or "").strip()
  if name and name != profile.name:
    try:
      await repo.update_profile_name(profile, name)
      await repo.commit()
    except EasyTasksError:
      logger.warning("profile name update failed user=%s", user_id, exc_info=True)
      profile = await repo.get_profile(user_id) or profile
  return profile, False


async def _ensure_membership(
  repo: Repository, user_id: str, hints: BootstrapHints
) -> tuple[Organization, Membership, bool, bool]:
  membership = await repo.get_active_membership(user_id)
  if membership is not None:
    org = await repo.get_organization(membership.organization_id)
    if org is None:
      raise ProvisioningError("load organization", f"organization {membership.organization_id} is missing")
    return org, membership, False, False

  created_org = False
  if hints.organization_id:
    org = await repo.get_organization(hints.organization_id)
    if org is None:
      raise ProvisioningError("load organization", f"organization {hints.organization_id} is missing")
    role = hints.role or "member"
  else:
    # A previous run may have created the organization and then failed on the membership.
    org = await repo.find_organization_created_by(user_id)
    if org is None:
      org_type = hints.organization_type or "team"
      try:
        org = await repo.create_organization(
          name=default_organization_name(hints),
          type=org_type,
          description="Company" if org_type == "company" else "Team",
          created_by=user_id,
        )
        await repo.commit()
      except EasyTasksError as exc:
        logger.error("organization create failed user=%s: %s", user_id, exc.message)
        raise ProvisioningError("create organization", exc.message) from exc
      created_org = True
      logger.info("created organization org=%s user=%s", org.id, user_id)
    role = "owner"

  org_id = org.id
  try:
    membership = await repo.create_membership(user_id=user_id, organization_id=org_id, role=role)
    await repo.commit()
  except ConflictError:
    # Someone else provisioned this user between our lookup and the insert.
    membership = await repo.get_active_membership(user_id)
    if membership is None:
      raise ProvisioningError("create membership", "conflict without an active membership")
    logger.info("membership already provisioned concurrently user=%s", user_id)
    adopted = await repo.get_organization(membership.organization_id)
    if adopted is None:
      raise ProvisioningError("load organization", f"organization {membership.organization_id} is missing")
    return adopted, membership, created_org, False
  except EasyTasksError as exc:
    logger.error("membership create failed user=%s org=%s: %s", user_id, org_id, exc.message)
    raise ProvisioningError("create membership", exc.message) from exc
  logger.info("created membership user=%s org=%s role=%s", user_id, org_id, role)
  return org, membership, created_org, True


async def ensure_default_buckets(repo: Repository, user_id: str, organization_id: str) -> tuple[list[Bucket], int]:
  existing = await repo.list_buckets(organization_id, user_id=user_id)
  if existing:
    return existing, 0

  created = 0
  for name, btype, color, order_index in DEFAULT_BUCKETS:
    try:
      await repo.create_bucket(
        name=name,
        type=btype,
        color=color,
        order_index=order_index,
        organization_id=organization_id,
        user_id=user_id,
      )
      await repo.commit()
    except EasyTasksError:
      logger.warning("default bucket %r create failed user=%s org=%s", name, user_id, organization_id, exc_info=True)
      continue
    created += 1
  if created < len(DEFAULT_BUCKETS):
    logger.warning("default bucket set incomplete user=%s org=%s created=%d", user_id, organization_id, created)
  return await repo.list_buckets(organization_id, user_id=user_id), created


async def ensure_bootstrapped(repo: Repository, user_id: str, hints: BootstrapHints | None = None) -> BootstrapResult:
  """
  Make sure the user has a profile, exactly one active membership backed by
  an organization, and a default bucket set in that organization.

  Every step looks before it writes, so calling this again (or after a
  partial failure) converges on the same state. The steps are committed one
  by one, not as a single transaction.
  """
  hints = hints or BootstrapHints()
  async with _lock_for(user_id):
    profile, created_profile = await _ensure_profile(repo, user_id, hints)
    if not hints.name and profile.name:
      hints = replace(hints, name=profile.name)
    org, membership, created_org, created_membership = await _ensure_membership(repo, user_id, hints)
    org_id = org.id
    buckets, created_buckets = await ensure_default_buckets(repo, user_id, org_id)
    # A failed write rolls back the unit of work and expires what was loaded; return fresh rows.
    profile = await repo.get_profile(user_id) or profile
    membership = await repo.get_active_membership(user_id) or membership
    org = await repo.get_organization(org_id) or org

  return BootstrapResult(
    profile=profile,
    organization=org,
    membership=membership,
    buckets=buckets,
    created_profile=created_profile,
    created_organization=created_org,
    created_membership=created_membership,
    created_buckets=created_buckets,
  )


async def repair_setup(repo: Repository, user_id: str, hints: BootstrapHints | None = None) -> BootstrapResult:
  result = await ensure_bootstrapped(repo, user_id, hints)
  logger.info(
    "repair user=%s profile_created=%s org_created=%s membership_created=%s buckets_created=%s",
    user_id,
    result.created_profile,
    result.created_organization,
    result.created_membership,
    result.created_buckets,
  )
  return result
