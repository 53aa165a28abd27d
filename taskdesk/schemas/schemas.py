"""Pydantic schemas for API request/response serialization."""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime


# ---- Teams ----
class TeamCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    key: str = Field(..., min_length=2, max_length=10)

class TeamOut(BaseModel):
    id: str
    name: str
    key: str
    role: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class ApiKeyUpdate(BaseModel):
    api_key: str = Field(..., min_length=1)

class ApiKeyOut(BaseModel):
    has_key: bool
    masked_key: Optional[str] = None


# ---- Members ----
class MemberOut(BaseModel):
    id: str
    user_id: str
    user_name: str
    user_email: str
    role: str
    joined_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class MemberRoleUpdate(BaseModel):
    role: str


# ---- Workflow states ----
class WorkflowStateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: str
    color: Optional[str] = None
    position: Optional[int] = None

class WorkflowStateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    type: Optional[str] = None
    color: Optional[str] = None
    position: Optional[int] = None

class WorkflowStateOut(BaseModel):
    id: str
    name: str
    type: str
    color: str
    position: int

    class Config:
        from_attributes = True


# ---- Labels ----
class LabelCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    color: Optional[str] = None

class LabelUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    color: Optional[str] = None

class LabelOut(BaseModel):
    id: str
    name: str
    color: str

    class Config:
        from_attributes = True


# ---- Comments ----
class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1)

class CommentOut(BaseModel):
    id: str
    issue_id: str
    user_id: str
    user_name: str
    content: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ---- Invitations ----
class InvitationOut(BaseModel):
    id: str
    team_id: str
    email: str
    role: str
    status: str
    invited_by: str
    expires_at: datetime
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# ---- Chat ----
class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1)
    conversation_id: Optional[str] = None
    api_key: Optional[str] = None

class ChatResponse(BaseModel):
    conversation_id: str
    title: Optional[str] = None
    reply: str
    steps: int
    truncated: bool = False
    results: List[Dict[str, Any]] = []

class ConversationCreate(BaseModel):
    title: Optional[str] = None

class ConversationRename(BaseModel):
    title: str = Field(..., min_length=1)

class ChatMessageOut(BaseModel):
    id: str
    position: int
    role: str
    content: str
    tool_calls: Optional[Any] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class ConversationOut(BaseModel):
    id: str
    team_id: str
    title: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class ConversationDetail(ConversationOut):
    messages: List[ChatMessageOut] = []


# ---- Common ----
class MessageResponse(BaseModel):
    message: str
    success: bool = True
