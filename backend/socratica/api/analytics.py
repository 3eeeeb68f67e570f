"""Teacher analytics endpoint."""

from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..core.context import AuthContext
from ..db.base import get_session
from ..services.analytics import aggregate
from .auth import get_auth_context

router = APIRouter(prefix="/analytics", tags=["Analytics"])


class AnalyticsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    course_id: int
    assignment_id: int
    from_ts: Optional[datetime] = Field(default=None, alias="from")
    to_ts: Optional[datetime] = Field(default=None, alias="to")


class Kpis(BaseModel):
    confused_pct: int
    students_needing_help: int
    top_question: Optional[int] = None
    top_topic: Optional[str] = None
    grounded_rate: int


class QuestionStat(BaseModel):
    question: int
    confused: int


class TopicStat(BaseModel):
    topic: str
    confused: int


class StudentStat(BaseModel):
    student_id: int
    student_name: str
    question: Optional[int] = None
    topic: Optional[str] = None
    last_ts: str
    conversation_id: int
    last_message: str


class RecentMessage(BaseModel):
    id: int
    student_id: int
    student_name: str
    text: str
    question_number: Optional[int] = None
    topic_tag: Optional[str] = None
    confusion_flag: bool
    created_at: str
    conversation_id: int


class AnalyticsResponse(BaseModel):
    kpis: Kpis
    by_question: List[QuestionStat]
    topics: List[TopicStat]
    students: List[StudentStat]
    totals: Dict[str, int]
    recent_messages: List[RecentMessage]


@router.post("", response_model=AnalyticsResponse)
async def get_analytics(
    request: AnalyticsRequest,
    ctx: AuthContext = Depends(get_auth_context),
):
    """Confusion, grounding and topic statistics for one assignment."""
    async with get_session() as session:
        snapshot = await aggregate(
            session,
            ctx,
            request.course_id,
            request.assignment_id,
            from_ts=request.from_ts,
            to_ts=request.to_ts,
        )
    return snapshot
