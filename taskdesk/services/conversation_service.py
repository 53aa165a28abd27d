"""Conversation session manager: owner-only transcripts replayed into agent turns."""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from taskdesk.core.config import settings
from taskdesk.core.exceptions import EntityNotFoundError, UnauthorizedError
from taskdesk.core.security import Principal
from taskdesk.db.base import utcnow
from taskdesk.models.conversation import ChatConversation, ChatMessage
from taskdesk.services.agent import AgentDriver, to_jsonable

logger = logging.getLogger("taskdesk.conversations")

REPLAYED_ROLES = ("user", "assistant")


def generate_title(text: Optional[str], max_length: Optional[int] = None) -> Optional[str]:
    """Derive a title from the first user message, with an ellipsis when cut."""
    max_length = max_length or settings.CONVERSATION_TITLE_MAX_LENGTH
    text = (text or "").strip()
    if not text:
        return None
    if len(text) <= max_length:
        return text
    return text[: max_length - 3].rstrip() + "..."


class ConversationService:
    """Sessions belong to exactly one (team, user); nobody else may touch them."""

    @staticmethod
    def create(db: Session, team_id: str, user_id: str, title: Optional[str] = None) -> ChatConversation:
        conversation = ChatConversation(
            team_id=team_id, user_id=user_id, title=(title or "").strip() or None,
        )
        db.add(conversation)
        db.commit()
        db.refresh(conversation)
        return conversation

    @staticmethod
    def list_conversations(db: Session, team_id: str, user_id: str) -> List[ChatConversation]:
        return (
            db.query(ChatConversation)
            .filter(ChatConversation.team_id == team_id, ChatConversation.user_id == user_id)
            .order_by(ChatConversation.updated_at.desc(), ChatConversation.id.asc())
            .all()
        )

    @staticmethod
    def get(db: Session, team_id: str, conversation_id: str, user_id: str) -> ChatConversation:
        conversation = (
            db.query(ChatConversation)
            .filter(ChatConversation.id == conversation_id, ChatConversation.team_id == team_id)
            .first()
        )
        if conversation is None:
            raise EntityNotFoundError(f"Conversation {conversation_id} not found", reference=conversation_id)
        if conversation.user_id != user_id:
            raise UnauthorizedError("This conversation belongs to another user")
        return conversation

    @staticmethod
    def rename(db: Session, team_id: str, conversation_id: str, user_id: str, title: str) -> ChatConversation:
        conversation = ConversationService.get(db, team_id, conversation_id, user_id)
        conversation.title = generate_title(title, max_length=255)
        db.commit()
        db.refresh(conversation)
        return conversation

    @staticmethod
    def delete(db: Session, team_id: str, conversation_id: str, user_id: str) -> None:
        conversation = ConversationService.get(db, team_id, conversation_id, user_id)
        db.delete(conversation)
        db.commit()

    @staticmethod
    def replayable_history(conversation: ChatConversation) -> List[Dict[str, str]]:
        """User/assistant messages with text; tool records are kept but not replayed."""
        return [
            {"role": m.role, "content": m.content}
            for m in conversation.messages
            if m.role in REPLAYED_ROLES and (m.content or "").strip()
        ]

    @staticmethod
    def replace_transcript(db: Session, conversation: ChatConversation, records: List[Dict[str, Any]]) -> None:
        """Store ``records`` as the whole transcript, keeping only the newest ones."""
        records = records[-settings.CONVERSATION_MAX_MESSAGES:]
        conversation.messages = [
            ChatMessage(
                position=position,
                role=record["role"],
                content=record.get("content") or "",
                tool_calls=to_jsonable(record["tool_calls"]) if record.get("tool_calls") else None,
            )
            for position, record in enumerate(records)
        ]
        conversation.updated_at = utcnow()
        db.commit()

    @staticmethod
    def run_turn(
        db: Session,
        team_id: str,
        principal: Principal,
        message: str,
        driver: AgentDriver,
        conversation_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Load (or start) a session, run one agent turn, then persist the transcript.

        Persistence after the turn is best-effort: a failure is logged and the
        reply is still returned.
        """
        if conversation_id:
            conversation = ConversationService.get(db, team_id, conversation_id, principal.user_id)
            if not conversation.title:
                conversation.title = generate_title(message)
                db.commit()
        else:
            conversation = ConversationService.create(db, team_id, principal.user_id, generate_title(message))

        history = ConversationService.replayable_history(conversation)
        existing = [
            {"role": m.role, "content": m.content, "tool_calls": m.tool_calls}
            for m in conversation.messages
        ]
        conversation_id, title = conversation.id, conversation.title

        turn = driver.run(history, message)

        records = [*existing, {"role": "user", "content": message}, *turn.records]
        try:
            ConversationService.replace_transcript(db, conversation, records)
        except Exception:
            db.rollback()
            logger.warning("Could not save transcript for conversation %s", conversation_id, exc_info=True)

        return {
            "conversationId": conversation_id,
            "title": title,
            "reply": turn.reply,
            "results": turn.results,
            "steps": turn.steps,
            "truncated": turn.truncated,
        }


conversation_service = ConversationService()
