"""Workflow state model."""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum, UniqueConstraint
from taskdesk.db.base import Base, new_id, utcnow
import enum


class StateTypeEnum(str, enum.Enum):
    backlog = "backlog"
    unstarted = "unstarted"
    started = "started"
    completed = "completed"
    canceled = "canceled"


class WorkflowState(Base):
    """A named, ordered pipeline stage an issue occupies (board column)."""
    __tablename__ = "workflow_states"
    __table_args__ = (UniqueConstraint("team_id", "name", name="uq_state_team_name"),)

    id = Column(String(36), primary_key=True, default=new_id)
    team_id = Column(String(36), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    type = Column(Enum(StateTypeEnum), nullable=False)
    color = Column(String(20), nullable=False, default="#64748b")
    position = Column(Integer, nullable=False, default=0)  # ascending, not unique
    created_at = Column(DateTime, default=utcnow, nullable=False)
