"""Conversation endpoints: open a tutor thread and read its message log."""

from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict

from ..core.context import AuthContext
from ..db.base import get_session
from ..services import conversations as conversation_service
from .auth import get_auth_context

router = APIRouter(prefix="/conversations", tags=["Conversations"])


# ==============================================================================
# Pydantic Models
# ==============================================================================

class ConversationCreate(BaseModel):
    assignment_id: int


class ConversationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    student_id: int
    course_id: int
    assignment_id: int
    created_at: str


class MessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    conversation_id: int
    sender: str
    text: str
    created_at: str
    question_number: Optional[int] = None
    topic_tag: Optional[str] = None
    confusion_flag: Optional[bool] = None
    grounded_flag: Optional[bool] = None


class MessageListResponse(BaseModel):
    conversation_id: int
    messages: List[MessageResponse]


# ==============================================================================
# Endpoints
# ==============================================================================

@router.post("", response_model=ConversationResponse)
async def open_conversation(
    request: ConversationCreate,
    ctx: AuthContext = Depends(get_auth_context),
):
    """Return the caller's conversation for an assignment, creating it once."""
    async with get_session() as session:
        conversation = await conversation_service.get_or_create_conversation(
            session, ctx, request.assignment_id
        )
        return ConversationResponse.model_validate(conversation)


@router.get("/{conversation_id}/messages", response_model=MessageListResponse)
async def get_messages(conversation_id: int, ctx: AuthContext = Depends(get_auth_context)):
    async with get_session() as session:
        await conversation_service.ensure_conversation_reader(session, ctx, conversation_id)
        messages = await conversation_service.list_messages(session, conversation_id)
        return MessageListResponse(
            conversation_id=conversation_id,
            messages=[MessageResponse.model_validate(m) for m in messages],
        )
