from datetime import timedelta

import httpx
import pytest

from taskdesk.core.config import settings
from taskdesk.core.exceptions import ConflictError, DependencyFailure, ValidationError
from taskdesk.core.security import Principal
from taskdesk.db.base import utcnow
from taskdesk.models import InvitationStatusEnum, TeamRoleEnum
from taskdesk.services import email_service
from taskdesk.services.invitation_service import InvitationService, normalize_email
from taskdesk.services.member_service import MemberService
from taskdesk.tasks.celery_app import send_invitation_email

from conftest import ADMIN, DEVELOPER

NEWCOMER = Principal(user_id="user-new", display_name="Nina New", email="Nina@Example.com")


def _invite(db, team, email="nina@example.com", role="viewer", mailer=None):
    return InvitationService.create(db, team.id, email, ADMIN, role=role, mailer=mailer)


def test_normalize_email():
    assert normalize_email("  Nina@Example.COM ") == "nina@example.com"
    for bad in ["", None, "nina", "nina@example", "a b@example.com"]:
        with pytest.raises(ValidationError):
            normalize_email(bad)


def test_invitation_defaults(db, team, mailer):
    invitation = InvitationService.create(db, team.id, "Nina@Example.com", ADMIN, mailer=mailer)

    assert invitation.email == "nina@example.com"
    assert invitation.role == TeamRoleEnum.developer
    assert invitation.status == InvitationStatusEnum.pending
    assert invitation.invited_by == ADMIN.user_id
    remaining = invitation.expires_at - utcnow()
    assert timedelta(days=6, hours=23) < remaining <= timedelta(days=7)
    assert mailer.sent[0]["team_name"] == "Engineering"
    assert mailer.sent[0]["inviter_name"] == "Alice Admin"


def test_invalid_role_is_rejected(db, team):
    with pytest.raises(ValidationError):
        _invite(db, team, role="owner")


def test_accept_creates_membership_with_invited_role(db, team):
    invitation = _invite(db, team)

    assert InvitationService.accept(db, team.id, invitation.id, NEWCOMER) is True

    membership = MemberService.get_membership(db, team.id, NEWCOMER.user_id)
    assert membership.role == TeamRoleEnum.viewer
    assert membership.user_name == "Nina New"
    db.refresh(invitation)
    assert invitation.status == InvitationStatusEnum.accepted


def test_accept_requires_matching_email(db, team):
    invitation = _invite(db, team)
    with pytest.raises(ValidationError):
        InvitationService.accept(db, team.id, invitation.id, DEVELOPER)
    assert MemberService.get_membership(db, team.id, NEWCOMER.user_id) is None


def test_expired_invitation_cannot_be_accepted(db, team):
    invitation = _invite(db, team)
    invitation.expires_at = utcnow() - timedelta(minutes=1)
    db.commit()

    with pytest.raises(ValidationError, match="expired"):
        InvitationService.accept(db, team.id, invitation.id, NEWCOMER)


def test_invitation_can_only_be_used_once(db, team):
    invitation = _invite(db, team)
    InvitationService.accept(db, team.id, invitation.id, NEWCOMER)

    with pytest.raises(ValidationError):
        InvitationService.accept(db, team.id, invitation.id, NEWCOMER)
    with pytest.raises(ValidationError):
        InvitationService.reject(db, team.id, invitation.id, NEWCOMER)


def test_existing_member_cannot_be_invited(db, team, mailer):
    with pytest.raises(ConflictError, match="already a team member"):
        InvitationService.create(db, team.id, "DAN@example.com", ADMIN, mailer=mailer)

    assert InvitationService.list_invitations(db, team.id) == []
    assert mailer.sent == []


def test_existing_member_accepting_keeps_their_role(db, team):
    invitation = InvitationService.create(db, team.id, "dan.work@example.com", ADMIN, role="admin")
    work_account = Principal(user_id=DEVELOPER.user_id, display_name="Dev Dan", email="dan.work@example.com")

    assert InvitationService.accept(db, team.id, invitation.id, work_account) is False
    assert MemberService.get_membership(db, team.id, DEVELOPER.user_id).role == TeamRoleEnum.developer


def test_reject_then_reinvite_reopens_the_same_row(db, team):
    invitation = _invite(db, team)
    rejected = InvitationService.reject(db, team.id, invitation.id, NEWCOMER)
    assert rejected.status == InvitationStatusEnum.rejected

    again = _invite(db, team, role="developer")
    assert again.id == invitation.id
    assert again.status == InvitationStatusEnum.pending
    assert again.role == TeamRoleEnum.developer
    assert len(InvitationService.list_invitations(db, team.id)) == 1


def test_duplicate_pending_invitation_is_a_conflict(db, team):
    _invite(db, team)
    with pytest.raises(ConflictError):
        _invite(db, team, email="NINA@example.com")


def test_resend_extends_expiry(db, team, mailer):
    invitation = _invite(db, team)
    invitation.expires_at = utcnow() + timedelta(days=1)
    db.commit()

    resent = InvitationService.resend(db, team.id, invitation.id, ADMIN, mailer=mailer)

    assert resent.expires_at - utcnow() > timedelta(days=6)
    assert len(mailer.sent) == 1


def test_only_pending_invitations_can_be_resent(db, team):
    invitation = _invite(db, team)
    InvitationService.reject(db, team.id, invitation.id, NEWCOMER)
    with pytest.raises(ConflictError):
        InvitationService.resend(db, team.id, invitation.id, ADMIN)


def test_list_by_status_and_delete(db, team):
    first = _invite(db, team)
    _invite(db, team, email="other@example.com")
    InvitationService.reject(db, team.id, first.id, NEWCOMER)

    assert [i.email for i in InvitationService.list_invitations(db, team.id, "pending")] == ["other@example.com"]
    with pytest.raises(ValidationError):
        InvitationService.list_invitations(db, team.id, "lost")

    InvitationService.delete(db, team.id, first.id)
    assert len(InvitationService.list_invitations(db, team.id)) == 1


def test_expired_invitations_are_not_listed_as_pending(db, team):
    stale = _invite(db, team)
    _invite(db, team, email="other@example.com")
    stale.expires_at = utcnow() - timedelta(minutes=1)
    db.commit()

    assert [i.email for i in InvitationService.list_invitations(db, team.id, "pending")] == ["other@example.com"]
    assert len(InvitationService.list_invitations(db, team.id)) == 2


def test_mailer_failure_does_not_undo_the_invitation(db, team, mailer):
    mailer.fail = True
    invitation = _invite(db, team, mailer=mailer)
    assert InvitationService.get(db, team.id, invitation.id).status == InvitationStatusEnum.pending


# ---- Email delivery ----

def test_email_is_skipped_without_a_sendgrid_key(monkeypatch):
    monkeypatch.setattr(settings, "SENDGRID_API_KEY", "")
    result = email_service.send_invitation_email("nina@example.com", "Engineering", "Alice", "viewer", "inv-1")
    assert result["skipped"] is True
    assert result["url"].endswith("/invite/inv-1")


def test_email_is_posted_to_sendgrid(monkeypatch):
    seen = {}

    def fake_post(url, json, headers, timeout):
        seen.update(url=url, json=json, headers=headers)
        return httpx.Response(202, request=httpx.Request("POST", url))

    monkeypatch.setattr(settings, "SENDGRID_API_KEY", "sg-key")
    monkeypatch.setattr(email_service.httpx, "post", fake_post)

    result = email_service.send_invitation_email("nina@example.com", "Engineering", "Alice", "viewer", "inv-1")

    assert result["sent"] is True
    assert seen["headers"]["Authorization"] == "Bearer sg-key"
    assert seen["json"]["personalizations"][0]["to"] == [{"email": "nina@example.com"}]
    assert "Engineering" in seen["json"]["subject"]


def test_invitation_html_escapes_user_supplied_names():
    content = email_service.render_invitation(
        "<b>Ops</b>", "Eve <script>alert(1)</script>", "viewer", "https://app.example.com/invite/inv-1?a=1&b=2",
    )

    assert "&lt;b&gt;Ops&lt;/b&gt;" in content["html"]
    assert "<script>" not in content["html"]
    assert "Eve &lt;script&gt;" in content["html"]
    assert 'href="https://app.example.com/invite/inv-1?a=1&amp;b=2"' in content["html"]
    assert "Eve <script>" in content["text"]


def test_sendgrid_errors_are_dependency_failures(monkeypatch):
    def fake_post(url, json, headers, timeout):
        return httpx.Response(401, request=httpx.Request("POST", url))

    monkeypatch.setattr(settings, "SENDGRID_API_KEY", "sg-key")
    monkeypatch.setattr(email_service.httpx, "post", fake_post)

    with pytest.raises(DependencyFailure):
        email_service.send_invitation_email("nina@example.com", "Engineering", "Alice", "viewer", "inv-1")


def test_celery_task_runs_locally(monkeypatch):
    monkeypatch.setattr(settings, "SENDGRID_API_KEY", "")
    result = send_invitation_email.apply(
        args=["nina@example.com", "Engineering", "Alice", "viewer", "inv-1"],
    ).get()
    assert result["skipped"] is True
