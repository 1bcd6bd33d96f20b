from __future__ import annotations

from fastapi import APIRouter, Depends, status

from easytasks.deps import get_membership, get_repository
from easytasks.invitations import service as invitations
from easytasks.models import Invitation, Membership, as_utc
from easytasks.repositories.base import Repository
from easytasks.routers.setup import setup_out
from easytasks.schemas import (
  InvitationAcceptIn,
  InvitationCreateIn,
  InvitationCreateOut,
  InvitationOut,
  InvitationPreviewOut,
  SetupOut,
)

router = APIRouter(prefix="/invitations", tags=["invitations"])


def _invitation_out(i: Invitation) -> InvitationOut:
  return InvitationOut(
    id=i.id,
    email=i.email,
    organizationId=i.organization_id,
    role=i.role,
    invitedBy=i.invited_by,
    expiresAt=as_utc(i.expires_at),
    acceptedAt=as_utc(i.accepted_at),
    createdAt=as_utc(i.created_at),
  )


@router.get("", response_model=list[InvitationOut])
async def list_invitations(
  membership: Membership = Depends(get_membership),
  repo: Repository = Depends(get_repository),
) -> list[InvitationOut]:
  return [_invitation_out(i) for i in await invitations.list_invitations(repo, membership)]


@router.post("", response_model=InvitationCreateOut, status_code=status.HTTP_201_CREATED)
async def create_invitation(
  payload: InvitationCreateIn,
  membership: Membership = Depends(get_membership),
  repo: Repository = Depends(get_repository),
) -> InvitationCreateOut:
  issued = await invitations.invite(repo, membership, email=payload.email, role=payload.role)
  return InvitationCreateOut(invitation=_invitation_out(issued.invitation), token=issued.token, inviteUrl=issued.url)


@router.post("/accept", response_model=SetupOut, status_code=status.HTTP_201_CREATED)
async def accept_invitation(payload: InvitationAcceptIn, repo: Repository = Depends(get_repository)) -> SetupOut:
  result = await invitations.accept_invitation(repo, token=payload.token, password=payload.password, name=payload.name)
  return setup_out(result)


@router.get("/{token}", response_model=InvitationPreviewOut)
async def preview_invitation(token: str, repo: Repository = Depends(get_repository)) -> InvitationPreviewOut:
  inv, org = await invitations.resolve_invitation(repo, token)
  return InvitationPreviewOut(email=inv.email, role=inv.role, organizationName=org.name, expiresAt=as_utc(inv.expires_at))
