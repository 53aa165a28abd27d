"""Member service: team memberships, roles, and access checks."""

import logging
from typing import Optional, List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from taskdesk.core.exceptions import (
    ConflictError, UnauthorizedError, ValidationError,
)
from taskdesk.core.security import Principal, role_allows
from taskdesk.models.team import TeamMember, TeamRoleEnum
from taskdesk.services.scoping import get_scoped
from taskdesk.services.team_service import TeamService

logger = logging.getLogger("taskdesk.members")


def parse_role(role: Optional[str]) -> TeamRoleEnum:
    """Validate a role name; ``None`` means the default developer role."""
    if role is None:
        return TeamRoleEnum.developer
    try:
        return TeamRoleEnum(str(role).strip().lower())
    except ValueError:
        raise ValidationError(f"Invalid role '{role}'. Use one of: admin, developer, viewer")


class MemberService:
    """Manages who belongs to a team and with which role."""

    @staticmethod
    def list_members(db: Session, team_id: str) -> List[TeamMember]:
        """List members ordered by join time."""
        return (
            db.query(TeamMember)
            .filter(TeamMember.team_id == team_id)
            .order_by(TeamMember.joined_at.asc(), TeamMember.id.asc())
            .all()
        )

    @staticmethod
    def get_membership(db: Session, team_id: str, user_id: str) -> Optional[TeamMember]:
        return (
            db.query(TeamMember)
            .filter(TeamMember.team_id == team_id, TeamMember.user_id == user_id)
            .first()
        )

    @staticmethod
    def require_membership(
        db: Session, team_id: str, principal: Principal, min_role: str = "viewer",
    ) -> TeamMember:
        """Return the caller's membership, auto-provisioning an admin for an empty team.

        Raises:
            EntityNotFoundError: If the team does not exist.
            UnauthorizedError: If the caller is not a member or lacks ``min_role``.
        """
        TeamService.ensure_exists(db, team_id)
        member = MemberService.get_membership(db, team_id, principal.user_id)
        if member is None:
            has_members = db.query(TeamMember.id).filter(TeamMember.team_id == team_id).first()
            if has_members:
                raise UnauthorizedError("You are not a member of this team")
            # The known-teams cache can be stale after a delete
            TeamService.get(db, team_id)
            member = MemberService.add(
                db, team_id, principal.user_id, principal.label, principal.email, TeamRoleEnum.admin,
            )
            logger.info("Auto-provisioned %s as admin of empty team %s", principal.user_id, team_id)
        if not role_allows(member.role.value, min_role):
            raise UnauthorizedError(
                f"Role '{member.role.value}' is not allowed to do this (requires {min_role})"
            )
        return member

    @staticmethod
    def add(
        db: Session,
        team_id: str,
        user_id: str,
        user_name: str,
        user_email: str = "",
        role: TeamRoleEnum = TeamRoleEnum.developer,
    ) -> TeamMember:
        """Add a member; a (team, user) pair may only exist once."""
        member = TeamMember(
            team_id=team_id,
            user_id=user_id,
            user_name=user_name,
            user_email=user_email or "",
            role=role,
        )
        db.add(member)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ConflictError("User is already a member of this team")
        db.refresh(member)
        return member

    @staticmethod
    def _admin_count(db: Session, team_id: str) -> int:
        return (
            db.query(TeamMember)
            .filter(TeamMember.team_id == team_id, TeamMember.role == TeamRoleEnum.admin)
            .count()
        )

    @staticmethod
    def update_role(db: Session, team_id: str, member_id: str, role: str) -> TeamMember:
        """Change a member's role, keeping at least one admin in the team."""
        new_role = parse_role(role)
        member = get_scoped(db, TeamMember, team_id, member_id, "Member")
        if (
            member.role == TeamRoleEnum.admin
            and new_role != TeamRoleEnum.admin
            and MemberService._admin_count(db, team_id) <= 1
        ):
            raise ConflictError("A team must keep at least one admin")
        member.role = new_role
        db.commit()
        db.refresh(member)
        return member

    @staticmethod
    def remove(db: Session, team_id: str, member_id: str) -> None:
        """Remove a member, refusing to remove the last admin."""
        member = get_scoped(db, TeamMember, team_id, member_id, "Member")
        if member.role == TeamRoleEnum.admin and MemberService._admin_count(db, team_id) <= 1:
            raise ConflictError("A team must keep at least one admin")
        db.delete(member)
        db.commit()

    @staticmethod
    def count(db: Session, team_id: str) -> int:
        return db.query(TeamMember).filter(TeamMember.team_id == team_id).count()


member_service = MemberService()
