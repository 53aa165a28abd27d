"""Workflow state service: board columns of a team."""

from typing import Optional, List, Dict, Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from taskdesk.core.config import settings
from taskdesk.core.exceptions import ConflictError, ValidationError
from taskdesk.models.issue import Issue
from taskdesk.models.workflow_state import WorkflowState, StateTypeEnum
from taskdesk.services.scoping import get_scoped, apply_patch


def parse_state_type(value: str) -> StateTypeEnum:
    try:
        return StateTypeEnum(str(value).strip().lower())
    except ValueError:
        raise ValidationError(
            f"Invalid workflow state type '{value}'. "
            "Use one of: backlog, unstarted, started, completed, canceled"
        )


class WorkflowStateService:
    """CRUD for workflow states; names are unique per team."""

    @staticmethod
    def list_states(db: Session, team_id: str) -> List[WorkflowState]:
        """List states in board order (position, then name, then id)."""
        return (
            db.query(WorkflowState)
            .filter(WorkflowState.team_id == team_id)
            .order_by(WorkflowState.position.asc(), WorkflowState.name.asc(), WorkflowState.id.asc())
            .all()
        )

    @staticmethod
    def get(db: Session, team_id: str, state_id: str) -> WorkflowState:
        return get_scoped(db, WorkflowState, team_id, state_id, "Workflow state")

    @staticmethod
    def create(
        db: Session,
        team_id: str,
        name: str,
        type: str,
        color: Optional[str] = None,
        position: Optional[int] = None,
    ) -> WorkflowState:
        """Create a state; without a position it is appended after the last column."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("Workflow state name is required")
        if position is None:
            states = WorkflowStateService.list_states(db, team_id)
            position = (max(s.position for s in states) + 1) if states else 0
        state = WorkflowState(
            team_id=team_id,
            name=name,
            type=parse_state_type(type),
            color=color or settings.DEFAULT_STATE_COLOR,
            position=position,
        )
        db.add(state)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ConflictError(f"A workflow state named '{name}' already exists")
        db.refresh(state)
        return state

    @staticmethod
    def update(db: Session, team_id: str, state_id: str, changes: Dict[str, Any]) -> WorkflowState:
        state = WorkflowStateService.get(db, team_id, state_id)
        changes = dict(changes)
        if "type" in changes:
            changes["type"] = parse_state_type(changes["type"])
        if "name" in changes and not (changes["name"] or "").strip():
            raise ValidationError("Workflow state name cannot be empty")
        apply_patch(state, changes, ("name", "type", "color", "position"))
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ConflictError(f"A workflow state named '{changes.get('name')}' already exists")
        db.refresh(state)
        return state

    @staticmethod
    def delete(db: Session, team_id: str, state_id: str) -> None:
        """Delete a state; refused while any issue still occupies it."""
        state = WorkflowStateService.get(db, team_id, state_id)
        in_use = db.query(Issue).filter(Issue.workflow_state_id == state.id).count()
        if in_use:
            raise ConflictError(
                f"Workflow state '{state.name}' still has {in_use} issue(s). Move them first."
            )
        db.delete(state)
        db.commit()


workflow_state_service = WorkflowStateService()
