"""Invitation model."""

from sqlalchemy import Column, String, DateTime, ForeignKey, Enum, UniqueConstraint
from taskdesk.db.base import Base, new_id, utcnow
from taskdesk.models.team import TeamRoleEnum
import enum


class InvitationStatusEnum(str, enum.Enum):
    pending = "pending"
    accepted = "accepted"
    rejected = "rejected"


class Invitation(Base):
    """Email invitation to join a team with a given role."""
    __tablename__ = "invitations"
    __table_args__ = (UniqueConstraint("team_id", "email", name="uq_invitation_team_email"),)

    id = Column(String(36), primary_key=True, default=new_id)
    team_id = Column(String(36), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    email = Column(String(255), nullable=False, index=True)
    role = Column(Enum(TeamRoleEnum), default=TeamRoleEnum.developer, nullable=False)
    status = Column(Enum(InvitationStatusEnum), default=InvitationStatusEnum.pending, nullable=False)
    invited_by = Column(String(255), nullable=False)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
