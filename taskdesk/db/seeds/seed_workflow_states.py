"""Default workflow states seeded into every new team."""

from typing import List

from sqlalchemy.orm import Session

from taskdesk.models.workflow_state import WorkflowState, StateTypeEnum

DEFAULT_WORKFLOW_STATES = [
    {"name": "Backlog", "type": StateTypeEnum.backlog, "color": "#94a3b8", "position": 0},
    {"name": "Todo", "type": StateTypeEnum.unstarted, "color": "#64748b", "position": 1},
    {"name": "In Progress", "type": StateTypeEnum.started, "color": "#f59e0b", "position": 2},
    {"name": "Done", "type": StateTypeEnum.completed, "color": "#22c55e", "position": 3},
]


def seed_workflow_states(db: Session, team_id: str) -> List[WorkflowState]:
    """Add the default states for ``team_id`` (caller commits)."""
    states = [WorkflowState(team_id=team_id, **data) for data in DEFAULT_WORKFLOW_STATES]
    db.add_all(states)
    return states
