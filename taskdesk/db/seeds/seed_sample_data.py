"""Seed a demo team for local development."""

import logging

from sqlalchemy.orm import Session

from taskdesk.core.security import Principal
from taskdesk.models.team import Team
from taskdesk.services.issue_service import IssueService
from taskdesk.services.label_service import LabelService
from taskdesk.services.project_service import ProjectService
from taskdesk.services.team_service import TeamService
from taskdesk.services.workflow_state_service import WorkflowStateService

logger = logging.getLogger("taskdesk.seeds")

DEMO_TEAM_KEY = "DEMO"
DEMO_ADMIN = Principal(user_id="demo-admin", display_name="Demo Admin", email="admin@taskdesk.local")

SAMPLE_LABELS = [("Bug", "#ef4444"), ("Feature", "#3b82f6"), ("Docs", "#a855f7")]

SAMPLE_ISSUES = [
    # title, state position, priority, label names
    ("Login button does nothing on Safari", 1, "urgent", ["Bug"]),
    ("Add dark mode", 0, "low", ["Feature"]),
    ("Document the public API", 2, "medium", ["Docs"]),
    ("Paginate the issue list", 3, "high", ["Feature"]),
]


def seed_sample_data(db: Session) -> Team:
    """Create the demo team once; returns the existing team on later runs."""
    existing = db.query(Team).filter(Team.key == DEMO_TEAM_KEY).first()
    if existing:
        logger.info("Demo team already exists (%s)", existing.id)
        return existing

    team = TeamService.create(db, "Demo Team", DEMO_TEAM_KEY, DEMO_ADMIN)
    labels = {name: LabelService.create(db, team.id, name, color) for name, color in SAMPLE_LABELS}
    project = ProjectService.create(
        db, team.id, "Web App", "WEB",
        description="Customer-facing web application",
        lead_id=DEMO_ADMIN.user_id, lead_name=DEMO_ADMIN.display_name,
    )
    states = WorkflowStateService.list_states(db, team.id)

    for title, position, priority, label_names in SAMPLE_ISSUES:
        IssueService.create(
            db, team.id, DEMO_ADMIN, title,
            workflow_state_id=states[position].id,
            priority=priority,
            project_id=project.id,
            assignee_id=DEMO_ADMIN.user_id,
            label_ids=[labels[name].id for name in label_names],
        )
    logger.info("Seeded demo team %s with %d issues", team.id, len(SAMPLE_ISSUES))
    return team
