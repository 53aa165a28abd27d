"""Invitations API router: admin management plus the invitee's accept/reject."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from taskdesk.api.deps import RequireTeamRole, get_mailer, get_orchestrator, respond
from taskdesk.core.security import Principal, get_current_principal
from taskdesk.db.session import get_db
from taskdesk.models.invitation import Invitation
from taskdesk.models.team import TeamMember
from taskdesk.schemas.schemas import InvitationOut, MessageResponse
from taskdesk.schemas.tools import InviteTeamMemberInput
from taskdesk.services.invitation_service import Mailer, invitation_service
from taskdesk.services.orchestrator import CommandOrchestrator

router = APIRouter(prefix="/teams/{team_id}/invitations", tags=["invitations"])
public_router = APIRouter(prefix="/invitations", tags=["invitations"])


def _invitation_out(invitation: Invitation) -> InvitationOut:
    return InvitationOut(
        id=invitation.id,
        team_id=invitation.team_id,
        email=invitation.email,
        role=invitation.role.value,
        status=invitation.status.value,
        invited_by=invitation.invited_by,
        expires_at=invitation.expires_at,
        created_at=invitation.created_at,
    )


@router.get("", response_model=list[InvitationOut])
async def list_invitations(
    team_id: str,
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    member: TeamMember = Depends(RequireTeamRole("admin")),
):
    return [_invitation_out(i) for i in invitation_service.list_invitations(db, team_id, status)]


@router.post("")
async def invite_member(
    body: InviteTeamMemberInput,
    orchestrator: CommandOrchestrator = Depends(get_orchestrator),
):
    """Invite someone by email; the email is sent in the background."""
    return respond(orchestrator.invoke("inviteTeamMember", body.model_dump(exclude_unset=True)), 201)


@router.post("/{invitation_id}/resend", response_model=InvitationOut)
async def resend_invitation(
    team_id: str,
    invitation_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    mailer: Mailer = Depends(get_mailer),
    member: TeamMember = Depends(RequireTeamRole("admin")),
):
    invitation = invitation_service.resend(db, team_id, invitation_id, principal, mailer)
    return _invitation_out(invitation)


@router.post("/{invitation_id}/accept", response_model=MessageResponse)
async def accept_invitation(
    team_id: str,
    invitation_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """Join the team. The caller's email must match the invitation."""
    created = invitation_service.accept(db, team_id, invitation_id, principal)
    if not created:
        return MessageResponse(message="You are already a member of this team")
    return MessageResponse(message="Invitation accepted")


@router.post("/{invitation_id}/reject", response_model=MessageResponse)
async def reject_invitation(
    team_id: str,
    invitation_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    invitation_service.reject(db, team_id, invitation_id, principal)
    return MessageResponse(message="Invitation rejected")


@router.delete("/{invitation_id}", response_model=MessageResponse)
async def delete_invitation(
    team_id: str,
    invitation_id: str,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(RequireTeamRole("admin")),
):
    invitation_service.delete(db, team_id, invitation_id)
    return MessageResponse(message="Invitation deleted")


@public_router.get("/{invitation_id}", response_model=InvitationOut)
async def get_invitation(invitation_id: str, db: Session = Depends(get_db)):
    """Invitation details for the invite landing page; no login required."""
    return _invitation_out(invitation_service.get_public(db, invitation_id))
