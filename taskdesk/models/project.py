"""Project model."""

from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Enum, UniqueConstraint
from taskdesk.db.base import Base, new_id, utcnow
import enum


class ProjectStatusEnum(str, enum.Enum):
    active = "active"
    completed = "completed"
    canceled = "canceled"


class Project(Base):
    """Team-scoped grouping of issues with a short unique key (e.g. WEB)."""
    __tablename__ = "projects"
    __table_args__ = (UniqueConstraint("team_id", "key", name="uq_project_team_key"),)

    id = Column(String(36), primary_key=True, default=new_id)
    team_id = Column(String(36), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    key = Column(String(10), nullable=False)
    color = Column(String(20), nullable=False, default="#6366f1")
    icon = Column(String(50), nullable=True)
    status = Column(Enum(ProjectStatusEnum), default=ProjectStatusEnum.active, nullable=False)
    lead_id = Column(String(255), nullable=True)
    lead_name = Column(String(255), nullable=True)  # cached display name
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
