"""Invitation service: invite, resend, accept, reject, and delete."""

import logging
import re
from datetime import timedelta
from typing import Callable, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from taskdesk.core.config import settings
from taskdesk.core.exceptions import (
    ConflictError, EntityNotFoundError, ValidationError,
)
from taskdesk.core.security import Principal
from taskdesk.db.base import utcnow
from taskdesk.models.invitation import Invitation, InvitationStatusEnum
from taskdesk.models.team import TeamMember
from taskdesk.services.member_service import MemberService, parse_role
from taskdesk.services.scoping import get_scoped
from taskdesk.services.team_service import TeamService

logger = logging.getLogger("taskdesk.invitations")

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# (email, team_name, inviter_name, role, invitation_id)
Mailer = Callable[[str, str, str, str, str], None]


def normalize_email(email: Optional[str]) -> str:
    email = (email or "").strip().lower()
    if not EMAIL_RE.match(email):
        raise ValidationError(f"Invalid email address '{email}'")
    return email


def _dispatch(mailer: Optional[Mailer], invitation: Invitation, team_name: str, inviter_name: str) -> bool:
    """Best-effort email dispatch; failures are logged, never raised."""
    if mailer is None:
        return False
    try:
        mailer(invitation.email, team_name, inviter_name, invitation.role.value, invitation.id)
        return True
    except Exception as e:
        logger.warning("Could not dispatch invitation email for %s: %s", invitation.id, e)
        return False


class InvitationService:
    """Team invitations expire after ``INVITATION_TTL_DAYS`` and can be renewed."""

    @staticmethod
    def _expiry():
        return utcnow() + timedelta(days=settings.INVITATION_TTL_DAYS)

    @staticmethod
    def list_invitations(db: Session, team_id: str, status: Optional[str] = None) -> List[Invitation]:
        query = db.query(Invitation).filter(Invitation.team_id == team_id)
        if status:
            try:
                wanted = InvitationStatusEnum(status)
            except ValueError:
                raise ValidationError(f"Invalid invitation status '{status}'")
            query = query.filter(Invitation.status == wanted)
            if wanted == InvitationStatusEnum.pending:
                # Expired invitations can no longer be accepted
                query = query.filter(Invitation.expires_at > utcnow())
        return query.order_by(Invitation.created_at.desc(), Invitation.id.asc()).all()

    @staticmethod
    def get(db: Session, team_id: str, invitation_id: str) -> Invitation:
        return get_scoped(db, Invitation, team_id, invitation_id, "Invitation")

    @staticmethod
    def get_public(db: Session, invitation_id: str) -> Invitation:
        """Look an invitation up by id alone (invite landing page)."""
        invitation = db.query(Invitation).filter(Invitation.id == invitation_id).first()
        if invitation is None:
            raise EntityNotFoundError("Invitation not found", reference=invitation_id)
        return invitation

    @staticmethod
    def create(
        db: Session,
        team_id: str,
        email: str,
        inviter: Principal,
        role: Optional[str] = None,
        mailer: Optional[Mailer] = None,
    ) -> Invitation:
        """Invite ``email`` to the team.

        A pending invitation for the same address is a conflict. An accepted
        or rejected one is re-opened with a fresh expiry instead of duplicated.
        """
        email = normalize_email(email)
        invited_role = parse_role(role)
        team = TeamService.get(db, team_id)

        already_member = (
            db.query(TeamMember.id)
            .filter(TeamMember.team_id == team_id, func.lower(TeamMember.user_email) == email)
            .first()
        )
        if already_member is not None:
            raise ConflictError("User is already a team member")

        invitation = (
            db.query(Invitation)
            .filter(Invitation.team_id == team_id, Invitation.email == email)
            .first()
        )
        if invitation is not None and invitation.status == InvitationStatusEnum.pending:
            raise ConflictError("Invitation already sent to this email")

        if invitation is None:
            invitation = Invitation(team_id=team_id, email=email)
            db.add(invitation)
        invitation.role = invited_role
        invitation.status = InvitationStatusEnum.pending
        invitation.invited_by = inviter.user_id
        invitation.expires_at = InvitationService._expiry()
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ConflictError("Invitation already sent to this email")
        db.refresh(invitation)
        logger.info("Invited %s to team %s as %s", email, team_id, invited_role.value)

        _dispatch(mailer, invitation, team.name, inviter.label)
        return invitation

    @staticmethod
    def resend(
        db: Session, team_id: str, invitation_id: str, inviter: Principal,
        mailer: Optional[Mailer] = None,
    ) -> Invitation:
        """Extend a pending invitation by another TTL from now and re-send it."""
        invitation = InvitationService.get(db, team_id, invitation_id)
        if invitation.status != InvitationStatusEnum.pending:
            raise ConflictError("Only pending invitations can be resent")
        invitation.expires_at = InvitationService._expiry()
        db.commit()
        db.refresh(invitation)
        _dispatch(mailer, invitation, TeamService.get(db, team_id).name, inviter.label)
        return invitation

    @staticmethod
    def accept(db: Session, team_id: str, invitation_id: str, principal: Principal) -> bool:
        """Accept an invitation as ``principal``.

        Returns False when the caller was already a member, True when a new
        membership was created.
        """
        invitation = InvitationService.get(db, team_id, invitation_id)
        if invitation.status != InvitationStatusEnum.pending:
            raise ValidationError("Invitation is no longer valid")
        if invitation.expires_at < utcnow():
            raise ValidationError("Invitation has expired")
        if (principal.email or "").strip().lower() != invitation.email:
            raise ValidationError("Invitation email does not match your account")

        created = False
        if MemberService.get_membership(db, team_id, principal.user_id) is None:
            MemberService.add(
                db, team_id, principal.user_id, principal.label, invitation.email, invitation.role,
            )
            created = True
        invitation.status = InvitationStatusEnum.accepted
        db.commit()
        logger.info("Invitation %s accepted by %s", invitation.id, principal.user_id)
        return created

    @staticmethod
    def reject(db: Session, team_id: str, invitation_id: str, principal: Principal) -> Invitation:
        invitation = InvitationService.get(db, team_id, invitation_id)
        if invitation.status != InvitationStatusEnum.pending:
            raise ValidationError("Invitation is no longer valid")
        if (principal.email or "").strip().lower() != invitation.email:
            raise ValidationError("Invitation email does not match your account")
        invitation.status = InvitationStatusEnum.rejected
        db.commit()
        db.refresh(invitation)
        return invitation

    @staticmethod
    def delete(db: Session, team_id: str, invitation_id: str) -> None:
        invitation = InvitationService.get(db, team_id, invitation_id)
        db.delete(invitation)
        db.commit()


invitation_service = InvitationService()
