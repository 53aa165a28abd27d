"""Issue service: team-scoped issue writes, label links, and comments."""

import logging
from typing import Optional, List, Dict, Any, Iterable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from taskdesk.core.exceptions import (
    ConflictError, EntityNotFoundError, UnauthorizedError, ValidationError,
)
from taskdesk.core.security import Principal
from taskdesk.db.base import utcnow
from taskdesk.models.issue import Issue, Comment, PriorityEnum
from taskdesk.models.label import Label, IssueLabel
from taskdesk.models.team import TeamMember
from taskdesk.models.workflow_state import WorkflowState, StateTypeEnum
from taskdesk.services.issue_numbering import IssueNumberAllocator, get_allocator
from taskdesk.services.project_service import ProjectService
from taskdesk.services.scoping import get_scoped

logger = logging.getLogger("taskdesk.issues")

MAX_TITLE_LENGTH = 255
UNASSIGNED = "unassigned"


def parse_priority(value: Optional[str]) -> PriorityEnum:
    if value is None or value == "":
        return PriorityEnum.none
    try:
        return PriorityEnum(str(value).strip().lower())
    except ValueError:
        raise ValidationError(
            f"Invalid priority '{value}'. Use one of: none, low, medium, high, urgent"
        )


def normalize_assignee(value: Optional[str]) -> Optional[str]:
    """Map the "unassigned" sentinel (and blanks) to no assignee."""
    if value is None:
        return None
    value = str(value).strip()
    if not value or value.lower() == UNASSIGNED:
        return None
    return value


def _validate_title(title: Optional[str]) -> str:
    title = (title or "").strip()
    if not title:
        raise ValidationError("Issue title is required")
    if len(title) > MAX_TITLE_LENGTH:
        raise ValidationError(f"Issue title must be at most {MAX_TITLE_LENGTH} characters")
    return title


class IssueService:
    """Writes issues while enforcing the team boundary on every reference."""

    @staticmethod
    def get(db: Session, team_id: str, issue_id: str) -> Issue:
        return get_scoped(db, Issue, team_id, issue_id, "Issue")

    @staticmethod
    def count(db: Session, team_id: str) -> int:
        return db.query(Issue).filter(Issue.team_id == team_id).count()

    @staticmethod
    def _assignee_name(db: Session, team_id: str, assignee_id: Optional[str],
                       assignee_name: Optional[str]) -> Optional[str]:
        if assignee_id is None:
            return None
        if assignee_name:
            return assignee_name
        member = (
            db.query(TeamMember)
            .filter(TeamMember.team_id == team_id, TeamMember.user_id == assignee_id)
            .first()
        )
        return member.user_name if member else None

    @staticmethod
    def _team_label_ids(db: Session, team_id: str, label_ids: Iterable[str]) -> List[str]:
        """Keep only label ids owned by the team, preserving order, without duplicates."""
        wanted = list(dict.fromkeys(label_ids or []))
        if not wanted:
            return []
        owned = {
            row.id for row in
            db.query(Label.id).filter(Label.team_id == team_id, Label.id.in_(wanted)).all()
        }
        dropped = [label_id for label_id in wanted if label_id not in owned]
        if dropped:
            logger.warning("Dropping out-of-team label references %s for team %s", dropped, team_id)
        return [label_id for label_id in wanted if label_id in owned]

    @staticmethod
    def _set_labels(db: Session, issue: Issue, label_ids: List[str]) -> None:
        db.query(IssueLabel).filter(IssueLabel.issue_id == issue.id).delete(synchronize_session=False)
        db.add_all([IssueLabel(issue_id=issue.id, label_id=label_id) for label_id in label_ids])

    @staticmethod
    def _project_in_team(db: Session, team_id: str, project_id: Optional[str]) -> Optional[str]:
        """Out-of-team project references are dropped, not rejected."""
        if not project_id:
            return None
        project = ProjectService.find_in_team(db, team_id, project_id)
        if project is None:
            logger.warning("Dropping out-of-team project reference %s for team %s", project_id, team_id)
            return None
        return project.id

    @staticmethod
    def create(
        db: Session,
        team_id: str,
        creator: Principal,
        title: str,
        workflow_state_id: str,
        description: Optional[str] = None,
        priority: Optional[str] = None,
        estimate: Optional[float] = None,
        project_id: Optional[str] = None,
        assignee_id: Optional[str] = None,
        assignee_name: Optional[str] = None,
        label_ids: Optional[List[str]] = None,
        allocator: Optional[IssueNumberAllocator] = None,
    ) -> Issue:
        """Create an issue with the next per-team number.

        Raises:
            ValidationError: On a missing/oversized title or bad priority.
            EntityNotFoundError: If the workflow state is not in the team.
            ConflictError: If the number was taken concurrently.
        """
        title = _validate_title(title)
        state = get_scoped(db, WorkflowState, team_id, workflow_state_id, "Workflow state")
        assignee_id = normalize_assignee(assignee_id)
        parsed_priority = parse_priority(priority)
        allocator = allocator or get_allocator()

        issue = Issue(
            team_id=team_id,
            number=allocator.next_number(db, team_id),
            title=title,
            description=description,
            priority=parsed_priority,
            estimate=estimate,
            project_id=IssueService._project_in_team(db, team_id, project_id),
            workflow_state_id=state.id,
            assignee_id=assignee_id,
            assignee_name=IssueService._assignee_name(db, team_id, assignee_id, assignee_name),
            creator_id=creator.user_id,
            creator_name=creator.label,
            completed_at=utcnow() if state.type == StateTypeEnum.completed else None,
        )
        db.add(issue)
        try:
            db.flush()
            IssueService._set_labels(db, issue, IssueService._team_label_ids(db, team_id, label_ids))
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ConflictError("Another issue took the same number. Please retry.")
        db.refresh(issue)
        logger.info("Created issue %s #%s in team %s", issue.id, issue.number, team_id)
        return issue

    @staticmethod
    def update(db: Session, team_id: str, issue_id: str, changes: Dict[str, Any]) -> Issue:
        """Patch an issue. Keys absent from ``changes`` are left untouched.

        Recognised keys: title, description, priority, estimate, project_id,
        workflow_state_id, assignee_id, assignee_name, label_ids.
        """
        issue = IssueService.get(db, team_id, issue_id)

        if "title" in changes:
            issue.title = _validate_title(changes["title"])
        if "description" in changes:
            issue.description = changes["description"]
        if "priority" in changes:
            issue.priority = parse_priority(changes["priority"])
        if "estimate" in changes:
            issue.estimate = changes["estimate"]
        if "project_id" in changes:
            issue.project_id = IssueService._project_in_team(db, team_id, changes["project_id"])
        if "workflow_state_id" in changes:
            state = get_scoped(db, WorkflowState, team_id, changes["workflow_state_id"], "Workflow state")
            was_completed = issue.completed_at is not None
            issue.workflow_state_id = state.id
            if state.type == StateTypeEnum.completed and not was_completed:
                issue.completed_at = utcnow()
            elif state.type != StateTypeEnum.completed:
                issue.completed_at = None
        if "assignee_id" in changes:
            assignee_id = normalize_assignee(changes["assignee_id"])
            issue.assignee_id = assignee_id
            issue.assignee_name = IssueService._assignee_name(
                db, team_id, assignee_id, changes.get("assignee_name"),
            )
        if "label_ids" in changes:
            IssueService._set_labels(
                db, issue, IssueService._team_label_ids(db, team_id, changes["label_ids"]),
            )

        issue.updated_at = utcnow()
        db.commit()
        db.refresh(issue)
        return issue

    @staticmethod
    def delete(db: Session, team_id: str, issue_id: str) -> Issue:
        """Delete an issue with its label links and comments; returns the detached row."""
        issue = IssueService.get(db, team_id, issue_id)
        db.query(IssueLabel).filter(IssueLabel.issue_id == issue.id).delete(synchronize_session=False)
        db.query(Comment).filter(Comment.issue_id == issue.id).delete(synchronize_session=False)
        db.delete(issue)
        db.commit()
        logger.info("Deleted issue %s #%s in team %s", issue.id, issue.number, team_id)
        return issue

    # ---- Comments ----

    @staticmethod
    def list_comments(db: Session, team_id: str, issue_id: str) -> List[Comment]:
        issue = IssueService.get(db, team_id, issue_id)
        return (
            db.query(Comment)
            .filter(Comment.issue_id == issue.id)
            .order_by(Comment.created_at.asc(), Comment.id.asc())
            .all()
        )

    @staticmethod
    def add_comment(db: Session, team_id: str, issue_id: str, author: Principal, content: str) -> Comment:
        issue = IssueService.get(db, team_id, issue_id)
        content = (content or "").strip()
        if not content:
            raise ValidationError("Comment content is required")
        comment = Comment(
            issue_id=issue.id,
            user_id=author.user_id,
            user_name=author.label,
            content=content,
        )
        db.add(comment)
        db.commit()
        db.refresh(comment)
        return comment

    @staticmethod
    def delete_comment(db: Session, team_id: str, issue_id: str, comment_id: str, user_id: str) -> None:
        """Delete a comment; only its author may do so."""
        issue = IssueService.get(db, team_id, issue_id)
        comment = (
            db.query(Comment)
            .filter(Comment.id == comment_id, Comment.issue_id == issue.id)
            .first()
        )
        if comment is None:
            raise EntityNotFoundError(f"Comment {comment_id} not found", reference=comment_id)
        if comment.user_id != user_id:
            raise UnauthorizedError("Only the author can delete this comment")
        db.delete(comment)
        db.commit()


issue_service = IssueService()
