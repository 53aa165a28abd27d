"""Project service: CRUD for team projects."""

import re
from typing import Optional, List, Dict, Any, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from taskdesk.core.config import settings
from taskdesk.core.exceptions import ConflictError, ValidationError
from taskdesk.models.issue import Issue
from taskdesk.models.project import Project, ProjectStatusEnum
from taskdesk.services.scoping import get_scoped, apply_patch

PROJECT_KEY_RE = re.compile(r"^[A-Z0-9]{1,10}$")


def normalize_project_key(key: str) -> str:
    """Uppercase a project key and check it is 1-10 letters/digits."""
    normalized = (key or "").strip().upper()
    if not PROJECT_KEY_RE.match(normalized):
        raise ValidationError("Project key must be 1-10 uppercase letters or digits")
    return normalized


def parse_project_status(status: Optional[str]) -> ProjectStatusEnum:
    if status is None:
        return ProjectStatusEnum.active
    try:
        return ProjectStatusEnum(str(status).strip().lower())
    except ValueError:
        raise ValidationError(f"Invalid project status '{status}'. Use one of: active, completed, canceled")


class ProjectService:
    """Projects group issues; keys are unique per team."""

    @staticmethod
    def list_projects(db: Session, team_id: str) -> List[Project]:
        return (
            db.query(Project)
            .filter(Project.team_id == team_id)
            .order_by(Project.name.asc(), Project.id.asc())
            .all()
        )

    @staticmethod
    def list_with_issue_counts(db: Session, team_id: str) -> List[Tuple[Project, int]]:
        """List projects paired with the number of issues in each."""
        counts = dict(
            db.query(Issue.project_id, func.count(Issue.id))
            .filter(Issue.team_id == team_id, Issue.project_id.isnot(None))
            .group_by(Issue.project_id)
            .all()
        )
        return [(p, counts.get(p.id, 0)) for p in ProjectService.list_projects(db, team_id)]

    @staticmethod
    def get(db: Session, team_id: str, project_id: str) -> Project:
        return get_scoped(db, Project, team_id, project_id, "Project")

    @staticmethod
    def find_in_team(db: Session, team_id: str, project_id: Optional[str]) -> Optional[Project]:
        """Return the project only if it belongs to ``team_id``; no error otherwise."""
        if not project_id:
            return None
        return (
            db.query(Project)
            .filter(Project.id == project_id, Project.team_id == team_id)
            .first()
        )

    @staticmethod
    def create(
        db: Session,
        team_id: str,
        name: str,
        key: str,
        description: Optional[str] = None,
        color: Optional[str] = None,
        icon: Optional[str] = None,
        status: Optional[str] = None,
        lead_id: Optional[str] = None,
        lead_name: Optional[str] = None,
    ) -> Project:
        """Create a project; color and status fall back to the team defaults."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("Project name is required")
        project = Project(
            team_id=team_id,
            name=name,
            key=normalize_project_key(key),
            description=description,
            color=color or settings.DEFAULT_PROJECT_COLOR,
            icon=icon,
            status=parse_project_status(status),
            lead_id=lead_id,
            lead_name=lead_name if lead_id else None,
        )
        db.add(project)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ConflictError(f"A project with key '{project.key}' already exists")
        db.refresh(project)
        return project

    @staticmethod
    def update(db: Session, team_id: str, project_id: str, changes: Dict[str, Any]) -> Project:
        """Patch a project; ``lead_id=None`` clears the lead."""
        project = ProjectService.get(db, team_id, project_id)
        changes = dict(changes)
        if "name" in changes and not (changes["name"] or "").strip():
            raise ValidationError("Project name cannot be empty")
        if "key" in changes:
            changes["key"] = normalize_project_key(changes["key"])
        if "status" in changes:
            changes["status"] = parse_project_status(changes["status"])
        if "lead_id" in changes and not changes["lead_id"]:
            changes["lead_id"] = None
            changes["lead_name"] = None
        apply_patch(
            project, changes,
            ("name", "key", "description", "color", "icon", "status", "lead_id", "lead_name"),
        )
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ConflictError(f"A project with key '{changes.get('key')}' already exists")
        db.refresh(project)
        return project

    @staticmethod
    def delete(db: Session, team_id: str, project_id: str) -> None:
        """Delete a project; its issues stay and lose their project reference."""
        project = ProjectService.get(db, team_id, project_id)
        db.query(Issue).filter(
            Issue.team_id == team_id, Issue.project_id == project.id,
        ).update({Issue.project_id: None}, synchronize_session=False)
        db.delete(project)
        db.commit()


project_service = ProjectService()
