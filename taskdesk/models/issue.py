"""Issue and Comment models."""

from sqlalchemy import (
    Column, Integer, Float, String, Text, DateTime, ForeignKey, Enum, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from taskdesk.db.base import Base, new_id, utcnow
import enum


class PriorityEnum(str, enum.Enum):
    none = "none"
    low = "low"
    medium = "medium"
    high = "high"
    urgent = "urgent"


# Semantic ordering used when sorting by priority
PRIORITY_RANK = {
    PriorityEnum.none: 0,
    PriorityEnum.low: 1,
    PriorityEnum.medium: 2,
    PriorityEnum.high: 3,
    PriorityEnum.urgent: 4,
}


class Issue(Base):
    """Unit of work; ``number`` is a per-team sequence starting at 1."""
    __tablename__ = "issues"
    __table_args__ = (UniqueConstraint("team_id", "number", name="uq_issue_team_number"),)

    id = Column(String(36), primary_key=True, default=new_id)
    team_id = Column(String(36), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    number = Column(Integer, nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    priority = Column(Enum(PriorityEnum), default=PriorityEnum.none, nullable=False)
    estimate = Column(Float, nullable=True)
    project_id = Column(String(36), ForeignKey("projects.id", ondelete="SET NULL"), nullable=True, index=True)
    workflow_state_id = Column(String(36), ForeignKey("workflow_states.id"), nullable=False, index=True)
    assignee_id = Column(String(255), nullable=True, index=True)
    assignee_name = Column(String(255), nullable=True)
    creator_id = Column(String(255), nullable=False)
    creator_name = Column(String(255), nullable=False)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    project = relationship("Project", lazy="joined")
    workflow_state = relationship("WorkflowState", lazy="joined")
    labels = relationship(
        "Label", secondary="issue_labels", lazy="selectin", order_by="Label.name", viewonly=True,
    )


class Comment(Base):
    """Discussion entry on an issue."""
    __tablename__ = "comments"

    id = Column(String(36), primary_key=True, default=new_id)
    issue_id = Column(String(36), ForeignKey("issues.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(255), nullable=False)
    user_name = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
