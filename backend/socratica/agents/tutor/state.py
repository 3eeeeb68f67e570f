"""State definitions for one tutoring turn."""

from typing import Any, Dict, List, Optional

from langchain_core.messages import BaseMessage
from pydantic import BaseModel, Field, field_validator
from typing_extensions import TypedDict


class Citation(TypedDict):
    """A material excerpt the tutor was given for this turn."""

    material_title: str
    kind: str
    snippet: str


class TutorReply(BaseModel):
    """Structured JSON object the model must return."""

    tutor_reply: str = Field(min_length=1)
    question_number: Optional[int] = None
    topic_tag: Optional[str] = None
    confusion_flag: bool
    confidence: float = 0.7

    @field_validator("tutor_reply")
    @classmethod
    def _reply_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("tutor_reply is blank")
        return value.strip()

    @field_validator("confidence")
    @classmethod
    def _clamp_confidence(cls, value: float) -> float:
        return min(max(value, 0.0), 1.0)

    @field_validator("topic_tag")
    @classmethod
    def _blank_topic_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value.strip()


class TutorTurnState(TypedDict, total=False):
    """State flowing through the tutor turn graph."""

    # Request
    conversation_id: int
    student_message: str
    question_number: Optional[int]
    allow_direct_answers: Optional[bool]
    conversation: Dict[str, Any]

    # Filled by nodes
    student_message_id: int
    history: List[BaseMessage]
    materials: List[Dict[str, Any]]
    context_block: str
    citations: List[Citation]
    grounded: bool
    raw_reply: str
    tutor_reply: str
    metadata: Dict[str, Any]
    tutor_message_id: int


def create_initial_turn_state(
    conversation: Dict[str, Any],
    student_message: str,
    question_number: Optional[int] = None,
    allow_direct_answers: Optional[bool] = None,
) -> TutorTurnState:
    return TutorTurnState(
        conversation_id=conversation["conversation_id"],
        student_message=student_message,
        question_number=question_number,
        allow_direct_answers=allow_direct_answers,
        conversation=conversation,
    )
