"""Team members API router."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from taskdesk.api.deps import RequireTeamRole
from taskdesk.db.session import get_db
from taskdesk.models.team import TeamMember
from taskdesk.schemas.schemas import MemberOut, MemberRoleUpdate, MessageResponse
from taskdesk.services.member_service import member_service

router = APIRouter(prefix="/teams/{team_id}/members", tags=["members"])


def _member_out(member: TeamMember) -> MemberOut:
    return MemberOut(
        id=member.id,
        user_id=member.user_id,
        user_name=member.user_name,
        user_email=member.user_email,
        role=member.role.value,
        joined_at=member.joined_at,
    )


@router.get("", response_model=list[MemberOut])
async def list_members(
    team_id: str,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(RequireTeamRole()),
):
    return [_member_out(m) for m in member_service.list_members(db, team_id)]


@router.patch("/{member_id}", response_model=MemberOut)
async def update_member_role(
    team_id: str,
    member_id: str,
    body: MemberRoleUpdate,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(RequireTeamRole("admin")),
):
    """Change a member's role (the last admin cannot be demoted)."""
    return _member_out(member_service.update_role(db, team_id, member_id, body.role))


@router.delete("/{member_id}", response_model=MessageResponse)
async def remove_member(
    team_id: str,
    member_id: str,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(RequireTeamRole("admin")),
):
    member_service.remove(db, team_id, member_id)
    return MessageResponse(message="Member removed")
