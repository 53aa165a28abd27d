"""Shared FastAPI dependencies for team-scoped routers."""

from typing import Callable

from fastapi import Depends
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from taskdesk.core.exceptions import HTTP_STATUS_BY_KIND
from taskdesk.core.security import Principal, get_current_principal
from taskdesk.db.session import get_db
from taskdesk.models.team import TeamMember
from taskdesk.services.invitation_service import Mailer
from taskdesk.services.llm_client import CompletionProvider, OpenAICompatibleProvider
from taskdesk.services.member_service import member_service
from taskdesk.services.orchestrator import CommandOrchestrator, ToolResult
from taskdesk.tasks.celery_app import enqueue_invitation_email


class RequireTeamRole:
    """Dependency that resolves the caller's membership in ``team_id``.

    Usage: ``member: TeamMember = Depends(RequireTeamRole("admin"))``
    """

    def __init__(self, min_role: str = "viewer"):
        self.min_role = min_role

    async def __call__(
        self,
        team_id: str,
        db: Session = Depends(get_db),
        principal: Principal = Depends(get_current_principal),
    ) -> TeamMember:
        return member_service.require_membership(db, team_id, principal, self.min_role)


def get_mailer() -> Mailer:
    return enqueue_invitation_email


def get_provider_factory() -> Callable[[str], CompletionProvider]:
    return OpenAICompatibleProvider


async def get_orchestrator(
    team_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    mailer: Mailer = Depends(get_mailer),
) -> CommandOrchestrator:
    return CommandOrchestrator(db, team_id, principal, mailer=mailer)


def respond(result: ToolResult, status_code: int = 200) -> JSONResponse:
    """Render an orchestrator result as an HTTP response."""
    payload = result.to_dict()
    if result.success:
        return JSONResponse(status_code=status_code, content=jsonable_encoder(payload))
    body = {"detail": payload.pop("error"), **{k: v for k, v in payload.items() if k != "success"}}
    return JSONResponse(
        status_code=HTTP_STATUS_BY_KIND.get(result.error_kind, 400),
        content=jsonable_encoder(body),
    )
