"""Projects API router."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from taskdesk.api.deps import RequireTeamRole, get_orchestrator, respond
from taskdesk.db.session import get_db
from taskdesk.models.team import TeamMember
from taskdesk.schemas.schemas import MessageResponse
from taskdesk.schemas.tools import CreateProjectInput, UpdateProjectInput
from taskdesk.services.orchestrator import CommandOrchestrator, project_view
from taskdesk.services.project_service import project_service

router = APIRouter(prefix="/teams/{team_id}/projects", tags=["projects"])


@router.get("")
async def list_projects(orchestrator: CommandOrchestrator = Depends(get_orchestrator)):
    """List projects with their issue counts."""
    return respond(orchestrator.invoke("listProjects", {}))


@router.post("")
async def create_project(
    body: CreateProjectInput,
    orchestrator: CommandOrchestrator = Depends(get_orchestrator),
):
    return respond(orchestrator.invoke("createProject", body.model_dump(exclude_unset=True)), 201)


@router.get("/{project_id}")
async def get_project(
    team_id: str,
    project_id: str,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(RequireTeamRole()),
):
    return project_view(project_service.get(db, team_id, project_id))


@router.patch("/{project_id}")
async def update_project(
    project_id: str,
    body: UpdateProjectInput,
    orchestrator: CommandOrchestrator = Depends(get_orchestrator),
):
    arguments = body.model_dump(exclude_unset=True)
    arguments["projectId"] = project_id
    return respond(orchestrator.invoke("updateProject", arguments))


@router.delete("/{project_id}", response_model=MessageResponse)
async def delete_project(
    team_id: str,
    project_id: str,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(RequireTeamRole("admin")),
):
    """Delete a project; its issues are kept without a project."""
    project_service.delete(db, team_id, project_id)
    return MessageResponse(message="Project deleted")
