"""Label model and the issue-label link table."""

from sqlalchemy import Column, String, DateTime, ForeignKey, UniqueConstraint
from taskdesk.db.base import Base, new_id, utcnow


class Label(Base):
    """Team-scoped colored tag attached to issues."""
    __tablename__ = "labels"
    __table_args__ = (UniqueConstraint("team_id", "name", name="uq_label_team_name"),)

    id = Column(String(36), primary_key=True, default=new_id)
    team_id = Column(String(36), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    color = Column(String(20), nullable=False, default="#64748b")
    created_at = Column(DateTime, default=utcnow, nullable=False)


class IssueLabel(Base):
    """Explicit many-to-many link between issues and labels."""
    __tablename__ = "issue_labels"
    __table_args__ = (UniqueConstraint("issue_id", "label_id", name="uq_issue_label"),)

    id = Column(String(36), primary_key=True, default=new_id)
    issue_id = Column(String(36), ForeignKey("issues.id", ondelete="CASCADE"), nullable=False, index=True)
    label_id = Column(String(36), ForeignKey("labels.id", ondelete="CASCADE"), nullable=False, index=True)
