"""Team service: create, look up, delete teams and compute team statistics."""

import logging
import re
from datetime import timedelta
from typing import Optional, List, Dict, Any, Set, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from taskdesk.core.exceptions import EntityNotFoundError, ValidationError
from taskdesk.core.security import Principal
from taskdesk.db.base import utcnow
from taskdesk.db.seeds.seed_workflow_states import seed_workflow_states
from taskdesk.models import (
    Team, TeamMember, TeamRoleEnum, WorkflowState, StateTypeEnum, Label, IssueLabel,
    Project, ProjectStatusEnum, Issue, Comment, Invitation, ChatConversation,
)

logger = logging.getLogger("taskdesk.teams")

TEAM_KEY_RE = re.compile(r"^[A-Z0-9]{2,10}$")

# Teams known to exist; populated on first successful lookup, never invalidated
_known_teams: Set[str] = set()


class TeamService:
    """Manages teams, the tenant boundary for every other entity."""

    @staticmethod
    def create(db: Session, name: str, key: str, creator: Principal) -> Team:
        """Create a team, seed its default workflow states and make the creator admin."""
        name = (name or "").strip()
        key = (key or "").strip().upper()
        if not name:
            raise ValidationError("Team name is required")
        if not TEAM_KEY_RE.match(key):
            raise ValidationError("Team key must be 2-10 uppercase letters or digits")

        team = Team(name=name, key=key)
        db.add(team)
        db.flush()

        seed_workflow_states(db, team.id)
        db.add(TeamMember(
            team_id=team.id,
            user_id=creator.user_id,
            user_name=creator.label,
            user_email=creator.email,
            role=TeamRoleEnum.admin,
        ))
        db.commit()
        db.refresh(team)
        _known_teams.add(team.id)
        logger.info("Created team %s (%s)", team.id, team.key)
        return team

    @staticmethod
    def get(db: Session, team_id: str) -> Team:
        """Get a team by id."""
        team = db.query(Team).filter(Team.id == team_id).first()
        if not team:
            raise EntityNotFoundError(f"Team {team_id} not found", reference=team_id)
        _known_teams.add(team.id)
        return team

    @staticmethod
    def ensure_exists(db: Session, team_id: str) -> None:
        """Cheap existence check backed by the process-wide known-teams cache."""
        if team_id in _known_teams:
            return
        TeamService.get(db, team_id)

    @staticmethod
    def list_for_user(db: Session, user_id: str) -> List[Tuple[Team, str]]:
        """List (team, role) pairs for every team the user belongs to."""
        rows = (
            db.query(Team, TeamMember.role)
            .join(TeamMember, TeamMember.team_id == Team.id)
            .filter(TeamMember.user_id == user_id)
            .order_by(Team.name.asc(), Team.id.asc())
            .all()
        )
        return [(team, role.value) for team, role in rows]

    @staticmethod
    def delete(db: Session, team_id: str) -> None:
        """Delete a team and every row partitioned under it."""
        team = TeamService.get(db, team_id)
        issue_ids = select(Issue.id).where(Issue.team_id == team_id)
        db.query(IssueLabel).filter(IssueLabel.issue_id.in_(issue_ids)).delete(synchronize_session=False)
        db.query(Comment).filter(Comment.issue_id.in_(issue_ids)).delete(synchronize_session=False)
        db.query(Issue).filter(Issue.team_id == team_id).delete(synchronize_session=False)
        for model in (Project, WorkflowState, Label, Invitation):
            db.query(model).filter(model.team_id == team_id).delete(synchronize_session=False)
        for conversation in db.query(ChatConversation).filter(ChatConversation.team_id == team_id):
            db.delete(conversation)
        db.delete(team)
        db.commit()
        logger.info("Deleted team %s", team_id)

    @staticmethod
    def set_llm_api_key(db: Session, team_id: str, api_key: Optional[str]) -> Team:
        """Store (or clear, with ``None``) the team's own completion API key."""
        team = TeamService.get(db, team_id)
        team.llm_api_key = api_key or None
        db.commit()
        db.refresh(team)
        return team

    @staticmethod
    def masked_api_key(team: Team) -> Optional[str]:
        key = team.llm_api_key
        if not key:
            return None
        if len(key) <= 12:
            return "*" * len(key)
        return f"{key[:8]}...{key[-4:]}"

    @staticmethod
    def stats(db: Session, team_id: str) -> Dict[str, Any]:
        """Team dashboard statistics: counts, completion rate, breakdowns, recent issues."""
        TeamService.ensure_exists(db, team_id)

        members = db.query(func.count(TeamMember.id)).filter(TeamMember.team_id == team_id).scalar()
        projects = db.query(func.count(Project.id)).filter(Project.team_id == team_id).scalar()
        active_projects = (
            db.query(func.count(Project.id))
            .filter(Project.team_id == team_id, Project.status == ProjectStatusEnum.active)
            .scalar()
        )
        labels = db.query(func.count(Label.id)).filter(Label.team_id == team_id).scalar()

        status_rows = (
            db.query(WorkflowState.name, WorkflowState.type, func.count(Issue.id))
            .join(Issue, Issue.workflow_state_id == WorkflowState.id)
            .filter(Issue.team_id == team_id)
            .group_by(WorkflowState.id, WorkflowState.name, WorkflowState.type, WorkflowState.position)
            .order_by(WorkflowState.position.asc(), WorkflowState.name.asc())
            .all()
        )
        priority_rows = (
            db.query(Issue.priority, func.count(Issue.id))
            .filter(Issue.team_id == team_id)
            .group_by(Issue.priority)
            .all()
        )

        total = sum(count for _, _, count in status_rows)
        completed = sum(count for _, state_type, count in status_rows if state_type == StateTypeEnum.completed)
        completion_rate = round(completed * 100 / total) if total else 0

        recent = (
            db.query(Issue.id, Issue.number, Issue.title, Issue.created_at)
            .filter(Issue.team_id == team_id, Issue.created_at >= utcnow() - timedelta(days=7))
            .order_by(Issue.created_at.desc(), Issue.id.asc())
            .limit(5)
            .all()
        )

        return {
            "stats": {
                "members": members,
                "projects": projects,
                "activeProjects": active_projects,
                "labels": labels,
                "totalIssues": total,
                "completedIssues": completed,
                "activeIssues": total - completed,
                "completionRate": completion_rate,
            },
            "priorityBreakdown": [
                {"priority": priority.value, "count": count} for priority, count in priority_rows
            ],
            "statusBreakdown": [
                {"status": name, "count": count} for name, _, count in status_rows
            ],
            "recentIssues": [
                {"id": row.id, "number": row.number, "title": row.title, "createdAt": row.created_at}
                for row in recent
            ],
        }


team_service = TeamService()
