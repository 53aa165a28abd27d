"""Label service: team labels and their issue links."""

from typing import Optional, List, Dict, Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from taskdesk.core.config import settings
from taskdesk.core.exceptions import ConflictError, ValidationError
from taskdesk.models.label import Label, IssueLabel
from taskdesk.services.scoping import get_scoped, apply_patch


class LabelService:
    """CRUD for labels; names are unique per team."""

    @staticmethod
    def list_labels(db: Session, team_id: str) -> List[Label]:
        return (
            db.query(Label)
            .filter(Label.team_id == team_id)
            .order_by(Label.name.asc(), Label.id.asc())
            .all()
        )

    @staticmethod
    def get(db: Session, team_id: str, label_id: str) -> Label:
        return get_scoped(db, Label, team_id, label_id, "Label")

    @staticmethod
    def create(db: Session, team_id: str, name: str, color: Optional[str] = None) -> Label:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Label name is required")
        label = Label(team_id=team_id, name=name, color=color or settings.DEFAULT_LABEL_COLOR)
        db.add(label)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ConflictError(f"A label named '{name}' already exists")
        db.refresh(label)
        return label

    @staticmethod
    def update(db: Session, team_id: str, label_id: str, changes: Dict[str, Any]) -> Label:
        label = LabelService.get(db, team_id, label_id)
        if "name" in changes and not (changes["name"] or "").strip():
            raise ValidationError("Label name cannot be empty")
        apply_patch(label, changes, ("name", "color"))
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ConflictError(f"A label named '{changes.get('name')}' already exists")
        db.refresh(label)
        return label

    @staticmethod
    def delete(db: Session, team_id: str, label_id: str) -> None:
        """Delete a label together with every issue link pointing at it."""
        label = LabelService.get(db, team_id, label_id)
        db.query(IssueLabel).filter(IssueLabel.label_id == label.id).delete(synchronize_session=False)
        db.delete(label)
        db.commit()


label_service = LabelService()
