"""Tutor API endpoint: one Socratic tutoring turn per request."""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from langchain_core.language_models import BaseChatModel
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..agents.base.llm import get_tutor_llm
from ..agents.tutor.graph import respond
from ..core.context import AuthContext
from ..db.base import get_session
from .auth import get_auth_context

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tutor", tags=["Tutor"])


# ==============================================================================
# Pydantic Models
# ==============================================================================

class TutorRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    message: str
    conversation_id: int
    question_number: Optional[int] = None
    allow_direct_answers: Optional[bool] = None


class CitationResponse(BaseModel):
    material_title: str
    kind: str
    snippet: str


class TutorMetadata(BaseModel):
    question_number: Optional[int] = None
    topic_tag: Optional[str] = None
    confusion_flag: bool
    confidence: float = Field(ge=0.0, le=1.0)
    grounded: bool
    citations: List[CitationResponse] = []


class TutorResponse(BaseModel):
    tutor_reply: str
    metadata: TutorMetadata


# ==============================================================================
# Endpoints
# ==============================================================================

@router.post("/respond", response_model=TutorResponse)
async def tutor_respond(
    request: TutorRequest,
    ctx: AuthContext = Depends(get_auth_context),
    llm: BaseChatModel = Depends(get_tutor_llm),
):
    """
    Record the student's message, ask the tutor model and store its reply.

    Provider failures come back as 429/402/503/502 with a ``retryable`` hint;
    the student's message stays in the log either way.
    """
    async with get_session() as session:
        result: Dict[str, Any] = await respond(
            session,
            ctx,
            llm,
            conversation_id=request.conversation_id,
            student_message=request.message,
            question_number=request.question_number,
            allow_direct_answers=request.allow_direct_answers,
        )
    return TutorResponse(**result)
