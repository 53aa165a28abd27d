"""Workflow states API router."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from taskdesk.api.deps import RequireTeamRole
from taskdesk.db.session import get_db
from taskdesk.models.team import TeamMember
from taskdesk.schemas.schemas import (
    WorkflowStateCreate, WorkflowStateUpdate, WorkflowStateOut, MessageResponse,
)
from taskdesk.services.workflow_state_service import workflow_state_service

router = APIRouter(prefix="/teams/{team_id}/workflow-states", tags=["workflow-states"])


@router.get("", response_model=list[WorkflowStateOut])
async def list_states(
    team_id: str,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(RequireTeamRole()),
):
    """List states in board-column order."""
    return workflow_state_service.list_states(db, team_id)


@router.post("", response_model=WorkflowStateOut, status_code=201)
async def create_state(
    team_id: str,
    body: WorkflowStateCreate,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(RequireTeamRole("developer")),
):
    return workflow_state_service.create(
        db, team_id, body.name, body.type, color=body.color, position=body.position,
    )


@router.patch("/{state_id}", response_model=WorkflowStateOut)
async def update_state(
    team_id: str,
    state_id: str,
    body: WorkflowStateUpdate,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(RequireTeamRole("developer")),
):
    return workflow_state_service.update(db, team_id, state_id, body.model_dump(exclude_unset=True))


@router.delete("/{state_id}", response_model=MessageResponse)
async def delete_state(
    team_id: str,
    state_id: str,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(RequireTeamRole("admin")),
):
    """Delete a state; refused while issues still use it."""
    workflow_state_service.delete(db, team_id, state_id)
    return MessageResponse(message="Workflow state deleted")
