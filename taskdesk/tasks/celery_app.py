"""Celery app and tasks for fire-and-forget side effects."""

from celery import Celery
from taskdesk.core.config import settings

celery_app = Celery(
    "taskdesk",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_always_eager=settings.CELERY_TASK_ALWAYS_EAGER,
    task_soft_time_limit=60,
    task_time_limit=120,
)


@celery_app.task(
    bind=True,
    name="send_invitation_email",
    max_retries=3,
    default_retry_delay=30,
)
def send_invitation_email(
    self, email: str, team_name: str, inviter_name: str, role: str, invitation_id: str,
) -> dict:
    """Deliver an invitation email, retrying transient provider failures."""
    from taskdesk.core.exceptions import DependencyFailure
    from taskdesk.services.email_service import send_invitation_email as deliver

    try:
        return deliver(email, team_name, inviter_name, role, invitation_id)
    except DependencyFailure as e:
        raise self.retry(exc=e)


def enqueue_invitation_email(
    email: str, team_name: str, inviter_name: str, role: str, invitation_id: str,
) -> None:
    """Default mailer used by the command layer: hand the send to a worker."""
    send_invitation_email.delay(email, team_name, inviter_name, role, invitation_id)
