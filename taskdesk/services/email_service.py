"""Outbound email through the SendGrid v3 HTTP API."""

import html
import logging
from typing import Dict, Any

import httpx

from taskdesk.core.config import settings
from taskdesk.core.exceptions import DependencyFailure

logger = logging.getLogger("taskdesk.email")


def invite_url(invitation_id: str) -> str:
    return f"{settings.APP_URL.rstrip('/')}/invite/{invitation_id}"


def render_invitation(team_name: str, inviter_name: str, role: str, url: str) -> Dict[str, str]:
    subject = f"You've been invited to join {team_name} on {settings.APP_NAME}"
    text = (
        f"{inviter_name} has invited you to join the {team_name} team as a {role}.\n\n"
        f"Accept the invitation here:\n{url}\n\n"
        "If you didn't expect this invitation, you can safely ignore this email."
    )
    team, inviter, safe_role, safe_url = (html.escape(v or "") for v in (team_name, inviter_name, role, url))
    body = (
        f"<h1>You've been invited to join {team}</h1>"
        f"<p>{inviter} has invited you to join the <strong>{team}</strong> "
        f"team as a <strong>{safe_role}</strong>.</p>"
        f'<p><a href="{safe_url}">Accept Invitation</a></p>'
        f"<p>Or copy and paste this URL into your browser:<br>{safe_url}</p>"
    )
    return {"subject": subject, "text": text, "html": body}


def send_invitation_email(
    email: str, team_name: str, inviter_name: str, role: str, invitation_id: str,
) -> Dict[str, Any]:
    """Send an invitation email; without a SendGrid key the link is only logged."""
    url = invite_url(invitation_id)
    if not settings.SENDGRID_API_KEY:
        logger.info("Email disabled; invitation URL for %s: %s", email, url)
        return {"sent": False, "skipped": True, "url": url}

    content = render_invitation(team_name, inviter_name, role, url)
    payload = {
        "personalizations": [{"to": [{"email": email}]}],
        "from": {"email": settings.SENDGRID_FROM_EMAIL},
        "subject": content["subject"],
        "content": [
            {"type": "text/plain", "value": content["text"]},
            {"type": "text/html", "value": content["html"]},
        ],
    }
    try:
        resp = httpx.post(
            settings.SENDGRID_API_URL,
            json=payload,
            headers={"Authorization": f"Bearer {settings.SENDGRID_API_KEY}"},
            timeout=15,
        )
        resp.raise_for_status()
    except httpx.HTTPError as e:
        logger.warning("SendGrid rejected invitation email for %s: %s (URL: %s)", email, e, url)
        raise DependencyFailure("Failed to send invitation email")

    logger.info("Invitation email sent to %s", email)
    return {"sent": True, "skipped": False, "url": url}
