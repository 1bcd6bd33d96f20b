from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from easytasks.config import settings
from easytasks.errors import (
  ConflictError,
  EasyTasksError,
  ExpiredError,
  ForbiddenError,
  NotFoundError,
  ProvisioningError,
  ValidationError,
)
from easytasks.models import Invitation, Membership, Organization, as_utc
from easytasks.provisioning.service import BootstrapHints, BootstrapResult, ensure_bootstrapped
from easytasks.repositories.base import Repository
from easytasks.security import hash_password, invitation_token_hash, invitation_token_new

logger = logging.getLogger("easytasks.invitations")

INVITABLE_ROLES = ("admin", "member")
INVITER_ROLES = ("owner", "admin")


@dataclass
class IssuedInvitation:
  invitation: Invitation
  token: str
  url: str


def normalize_email(email: str | None) -> str:
  e = (email or "").strip().lower()
  if not e or "@" not in e or e.startswith("@") or e.endswith("@"):
    raise ValidationError("Invalid email")
  return e


def invitation_url(token: str) -> str:
  base = (settings.public_base_url or "").strip().rstrip("/") or "http://localhost:3000"
  return f"{base}/auth/accept-invitation?token={token}"


async def invite(repo: Repository, membership: Membership, *, email: str, role: str = "member") -> IssuedInvitation:
  if membership.role not in INVITER_ROLES:
    raise ForbiddenError("Only owners and admins can invite")
  if role not in INVITABLE_ROLES:
    raise ValidationError(f"Invalid role {role!r}")
  email = normalize_email(email)

  token = invitation_token_new()
  expires = datetime.now(timezone.utc) + timedelta(days=max(1, int(settings.invitation_ttl_days)))
  inv = await repo.create_invitation(
    email=email,
    organization_id=membership.organization_id,
    role=role,
    token_hash=invitation_token_hash(token),
    invited_by=membership.user_id,
    expires_at=expires,
  )
  await repo.commit()
  logger.info("invitation issued org=%s role=%s by=%s", membership.organization_id, role, membership.user_id)
  return IssuedInvitation(invitation=inv, token=token, url=invitation_url(token))


async def list_invitations(repo: Repository, membership: Membership) -> list[Invitation]:
  if membership.role not in INVITER_ROLES:
    raise ForbiddenError("Only owners and admins can view invitations")
  return await repo.list_pending_invitations(membership.organization_id, now=datetime.now(timezone.utc))


async def resolve_invitation(repo: Repository, token: str) -> tuple[Invitation, Organization]:
  """The pending invitation behind a token, or NotFoundError/ExpiredError."""
  inv = await repo.get_invitation_by_token_hash(invitation_token_hash(token))
  if inv is None or inv.accepted_at is not None:
    raise NotFoundError("Invitation not found")
  if as_utc(inv.expires_at) <= datetime.now(timezone.utc):
    raise ExpiredError("Invitation has expired")
  org = await repo.get_organization(inv.organization_id)
  if org is None:
    raise NotFoundError("Invitation not found")
  return inv, org


async def accept_invitation(repo: Repository, *, token: str, password: str, name: str | None = None) -> BootstrapResult:
  if not password:
    raise ValidationError("Password is required")
  inv, org = await resolve_invitation(repo, token)
  if await repo.get_profile_by_email(inv.email) is not None:
    raise ConflictError("A user with this email already exists")

  name = (name or "").strip() or None
  profile = await repo.create_profile(email=inv.email, name=name, password_hash=hash_password(password))
  await repo.commit()
  profile_id = profile.id
  try:
    result = await ensure_bootstrapped(
      repo,
      profile_id,
      BootstrapHints(name=name, email=inv.email, organization_id=org.id, role=inv.role),
    )
  except ProvisioningError:
    # Drop the half-made account so the invitation can be accepted again.
    logger.warning("provisioning failed for invited user=%s, removing profile", profile_id)
    await repo.rollback()
    await repo.delete_profile(profile_id)
    await repo.commit()
    raise

  logger.info("invitation accepted org=%s user=%s role=%s", result.organization.id, result.profile.id, result.membership.role)

  # The new account stays usable even if this bookkeeping write fails.
  inv_id, user_id = inv.id, result.profile.id
  try:
    await repo.mark_invitation_accepted(inv, accepted_at=datetime.now(timezone.utc))
    await repo.commit()
  except EasyTasksError:
    logger.warning("could not mark invitation %s accepted", inv_id, exc_info=True)
    result = await ensure_bootstrapped(repo, user_id)
  return result
