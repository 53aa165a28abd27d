"""Chat conversation and message models."""

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from taskdesk.db.base import Base, new_id, utcnow


class ChatConversation(Base):
    """Per (team, user) assistant conversation."""
    __tablename__ = "chat_conversations"

    id = Column(String(36), primary_key=True, default=new_id)
    team_id = Column(String(36), ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(255), nullable=False, index=True)
    title = Column(String(255), nullable=True)  # derived from the first user message
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    messages = relationship(
        "ChatMessage",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="ChatMessage.position",
        lazy="selectin",
    )


class ChatMessage(Base):
    """One transcript entry; ``position`` keeps replay order stable."""
    __tablename__ = "chat_messages"

    id = Column(String(36), primary_key=True, default=new_id)
    conversation_id = Column(
        String(36), ForeignKey("chat_conversations.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    position = Column(Integer, nullable=False, default=0)
    role = Column(String(20), nullable=False)  # user / assistant / tool
    content = Column(Text, nullable=False, default="")
    tool_calls = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    conversation = relationship("ChatConversation", back_populates="messages")
