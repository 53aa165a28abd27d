"""Team and TeamMember models."""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Enum, UniqueConstraint
from sqlalchemy.orm import relationship
from taskdesk.db.base import Base, new_id, utcnow
import enum


class TeamRoleEnum(str, enum.Enum):
    admin = "admin"
    developer = "developer"
    viewer = "viewer"


class Team(Base):
    """Tenant boundary; every other entity belongs to exactly one team."""
    __tablename__ = "teams"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    key = Column(String(10), nullable=False, index=True)  # e.g. "ENG", used in issue codes
    llm_api_key = Column(String(255), nullable=True)  # bring-your-own completion key
    last_issue_number = Column(Integer, nullable=True)  # issue counter, seeded lazily
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    members = relationship(
        "TeamMember", back_populates="team", cascade="all, delete-orphan", lazy="selectin",
    )


class TeamMember(Base):
    """Membership of a user in a team with a team-level role."""
    __tablename__ = "team_members"
    __table_args__ = (UniqueConstraint("team_id", "user_id", name="uq_team_member"),)

    id = Column(String(36), primary_key=True, default=new_id)
    team_id = Column(String(36), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(255), nullable=False, index=True)
    user_name = Column(String(255), nullable=False)  # snapshot at join time
    user_email = Column(String(255), nullable=False, default="")
    role = Column(Enum(TeamRoleEnum), default=TeamRoleEnum.developer, nullable=False)
    joined_at = Column(DateTime, default=utcnow, nullable=False)

    team = relationship("Team", back_populates="members")
