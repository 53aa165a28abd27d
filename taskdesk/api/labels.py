"""Labels API router."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from taskdesk.api.deps import RequireTeamRole
from taskdesk.db.session import get_db
from taskdesk.models.team import TeamMember
from taskdesk.schemas.schemas import LabelCreate, LabelUpdate, LabelOut, MessageResponse
from taskdesk.services.label_service import label_service

router = APIRouter(prefix="/teams/{team_id}/labels", tags=["labels"])


@router.get("", response_model=list[LabelOut])
async def list_labels(
    team_id: str,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(RequireTeamRole()),
):
    return label_service.list_labels(db, team_id)


@router.post("", response_model=LabelOut, status_code=201)
async def create_label(
    team_id: str,
    body: LabelCreate,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(RequireTeamRole("developer")),
):
    return label_service.create(db, team_id, body.name, body.color)


@router.patch("/{label_id}", response_model=LabelOut)
async def update_label(
    team_id: str,
    label_id: str,
    body: LabelUpdate,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(RequireTeamRole("developer")),
):
    return label_service.update(db, team_id, label_id, body.model_dump(exclude_unset=True))


@router.delete("/{label_id}", response_model=MessageResponse)
async def delete_label(
    team_id: str,
    label_id: str,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(RequireTeamRole("developer")),
):
    """Delete a label and detach it from every issue."""
    label_service.delete(db, team_id, label_id)
    return MessageResponse(message="Label deleted")
