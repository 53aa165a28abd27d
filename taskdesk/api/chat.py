"""Chat API router: assistant turns and the caller's conversations."""

from typing import Callable

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from taskdesk.api.deps import RequireTeamRole, get_mailer, get_provider_factory
from taskdesk.core.security import Principal, get_current_principal
from taskdesk.db.session import get_db
from taskdesk.models.team import TeamMember
from taskdesk.schemas.schemas import (
    ChatRequest, ChatResponse, ConversationCreate, ConversationRename,
    ConversationOut, ConversationDetail, MessageResponse,
)
from taskdesk.services.agent import AgentDriver
from taskdesk.services.conversation_service import conversation_service
from taskdesk.services.invitation_service import Mailer
from taskdesk.services.llm_client import CompletionProvider, resolve_api_key
from taskdesk.services.orchestrator import CommandOrchestrator
from taskdesk.services.team_service import team_service

router = APIRouter(prefix="/teams/{team_id}", tags=["chat"])


# Plain def: runs in the threadpool while the provider call blocks
@router.post("/chat", response_model=ChatResponse)
def chat(
    team_id: str,
    body: ChatRequest,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    mailer: Mailer = Depends(get_mailer),
    provider_factory: Callable[[str], CompletionProvider] = Depends(get_provider_factory),
    member: TeamMember = Depends(RequireTeamRole()),
):
    """Run one assistant turn, starting a conversation when none is given."""
    team = team_service.get(db, team_id)
    api_key = resolve_api_key(body.api_key, team.llm_api_key)
    driver = AgentDriver(
        provider_factory(api_key),
        CommandOrchestrator(db, team_id, principal, mailer=mailer),
    )
    result = conversation_service.run_turn(
        db, team_id, principal, body.message, driver, body.conversation_id,
    )
    return ChatResponse(
        conversation_id=result["conversationId"],
        title=result["title"],
        reply=result["reply"],
        steps=result["steps"],
        truncated=result["truncated"],
        results=result["results"],
    )


# ---- Conversations ----

@router.get("/chat/conversations", response_model=list[ConversationOut])
async def list_conversations(
    team_id: str,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(RequireTeamRole()),
):
    """The caller's conversations, most recently active first."""
    return conversation_service.list_conversations(db, team_id, member.user_id)


@router.post("/chat/conversations", response_model=ConversationOut, status_code=201)
async def create_conversation(
    team_id: str,
    body: ConversationCreate,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(RequireTeamRole()),
):
    return conversation_service.create(db, team_id, member.user_id, body.title)


@router.get("/chat/conversations/{conversation_id}", response_model=ConversationDetail)
async def get_conversation(
    team_id: str,
    conversation_id: str,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(RequireTeamRole()),
):
    return conversation_service.get(db, team_id, conversation_id, member.user_id)


@router.patch("/chat/conversations/{conversation_id}", response_model=ConversationOut)
async def rename_conversation(
    team_id: str,
    conversation_id: str,
    body: ConversationRename,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(RequireTeamRole()),
):
    return conversation_service.rename(db, team_id, conversation_id, member.user_id, body.title)


@router.delete("/chat/conversations/{conversation_id}", response_model=MessageResponse)
async def delete_conversation(
    team_id: str,
    conversation_id: str,
    db: Session = Depends(get_db),
    member: TeamMember = Depends(RequireTeamRole()),
):
    conversation_service.delete(db, team_id, conversation_id, member.user_id)
    return MessageResponse(message="Conversation deleted")
