"""Teams API router: teams, statistics, and the team LLM key."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from taskdesk.api.deps import RequireTeamRole
from taskdesk.core.security import Principal, get_current_principal
from taskdesk.db.session import get_db
from taskdesk.models.team import TeamMember
from taskdesk.schemas.schemas import TeamCreate, TeamOut, ApiKeyUpdate, ApiKeyOut, MessageResponse
from taskdesk.services.team_service import team_service

router = APIRouter(prefix="/teams", tags=["teams"])


@router.post("", response_model=TeamOut, status_code=201)
async def create_team(
    body: TeamCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """Create a team; the caller becomes its admin."""
    team = team_service.create(db, body.name, body.key, principal)
    return TeamOut(id=team.id, name=team.name, key=team.key, role="admin", created_at=team.created_at)


@router.get("", response_model=list[TeamOut])
async def list_teams(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """List teams the caller belongs to."""
    return [
        TeamOut(id=team.id, name=team.name, key=team.key, role=role, created_at=team.created_at)
        for team, role in team_service.list_for_user(db, principal.user_id)
    ]


@router.get("/{team_id}", response_model=TeamOut)
async def get_team(
    team_id: str,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(RequireTeamRole()),
):
    team = team_service.get(db, team_id)
    return TeamOut(id=team.id, name=team.name, key=team.key, role=member.role.value, created_at=team.created_at)


@router.delete("/{team_id}", response_model=MessageResponse)
async def delete_team(
    team_id: str,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(RequireTeamRole("admin")),
):
    """Delete a team and everything in it."""
    team_service.delete(db, team_id)
    return MessageResponse(message="Team deleted")


@router.get("/{team_id}/stats")
async def team_stats(
    team_id: str,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(RequireTeamRole()),
):
    return team_service.stats(db, team_id)


# ---- Team LLM key ----

@router.get("/{team_id}/api-key", response_model=ApiKeyOut)
async def get_api_key(
    team_id: str,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(RequireTeamRole("admin")),
):
    """Show whether the team has its own key (masked)."""
    team = team_service.get(db, team_id)
    return ApiKeyOut(has_key=bool(team.llm_api_key), masked_key=team_service.masked_api_key(team))


@router.put("/{team_id}/api-key", response_model=ApiKeyOut)
async def set_api_key(
    team_id: str,
    body: ApiKeyUpdate,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(RequireTeamRole("admin")),
):
    team = team_service.set_llm_api_key(db, team_id, body.api_key.strip())
    return ApiKeyOut(has_key=True, masked_key=team_service.masked_api_key(team))


@router.delete("/{team_id}/api-key", response_model=ApiKeyOut)
async def delete_api_key(
    team_id: str,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(RequireTeamRole("admin")),
):
    team_service.set_llm_api_key(db, team_id, None)
    return ApiKeyOut(has_key=False)
