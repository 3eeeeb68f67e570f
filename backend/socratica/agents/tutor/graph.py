"""Tutor turn graph.

One tutoring turn runs as a linear LangGraph:

    record_student_message -> load_history -> load_materials -> call_model
        -> parse_reply -> apply_policy -> record_tutor_reply

The student message is committed before the model is called, no
transaction is held open while waiting on the model, and the tutor
reply only after a valid structured reply, so readers of the log never see a
reply without the message it answers. Nothing is retried; a failed model
call leaves the student message unanswered.
"""

import logging
from typing import Any, Dict, Optional

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from langgraph.graph import END, StateGraph
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ...core.config import get_settings
from ...core.context import AuthContext
from ...core.errors import AuthorizationError, PersistenceError, UpstreamError, ValidationError
from ...db.models import Message
from ...observability.langsmith import build_trace_config
from ...services import conversations
from ...services.materials import load_tutor_context
from ..base.llm import classify_llm_error
from ..base.message_utils import extract_json_object, history_to_langchain, message_content
from .policy import enforce_socratic_policy
from .prompts import build_context_block, build_system_prompt
from .state import TutorReply, TutorTurnState, create_initial_turn_state

logger = logging.getLogger(__name__)


class TutorGraph:
    """
    Request-scoped graph for a single tutoring turn.

    Holds the database session and chat model the nodes use; nothing is
    shared between turns.
    """

    def __init__(self, session: AsyncSession, llm: BaseChatModel):
        self.session = session
        self.llm = llm
        self.settings = get_settings()
        self.graph = self._build_graph()

    def _build_graph(self):
        graph = StateGraph(TutorTurnState)

        graph.add_node("record_student_message", self.record_student_message)
        graph.add_node("load_history", self.load_history)
        graph.add_node("load_materials", self.load_materials)
        graph.add_node("call_model", self.call_model)
        graph.add_node("parse_reply", self.parse_reply)
        graph.add_node("apply_policy", self.apply_policy)
        graph.add_node("record_tutor_reply", self.record_tutor_reply)

        graph.set_entry_point("record_student_message")
        graph.add_edge("record_student_message", "load_history")
        graph.add_edge("load_history", "load_materials")
        graph.add_edge("load_materials", "call_model")
        graph.add_edge("call_model", "parse_reply")
        graph.add_edge("parse_reply", "apply_policy")
        graph.add_edge("apply_policy", "record_tutor_reply")
        graph.add_edge("record_tutor_reply", END)

        return graph.compile()

    async def invoke(
        self,
        state: TutorTurnState,
        config: Optional[Dict[str, Any]] = None,
    ) -> TutorTurnState:
        config = config or build_trace_config(
            thread_id=f"conversation-{state['conversation_id']}",
            tags=["socratic-tutor"],
        )
        return await self.graph.ainvoke(state, config=config)

    # =========================================================================
    # Nodes
    # =========================================================================

    async def record_student_message(self, state: TutorTurnState) -> Dict[str, Any]:
        try:
            message = await conversations.append_message(
                self.session,
                state["conversation_id"],
                "student",
                state["student_message"],
                question_number=state.get("question_number"),
            )
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Could not store student message: {e}")
            raise PersistenceError("Error sending message") from e
        return {"student_message_id": message.id}

    async def load_history(self, state: TutorTurnState) -> Dict[str, Any]:
        messages = await conversations.list_messages(
            self.session,
            state["conversation_id"],
            limit=self.settings.TUTOR_HISTORY_WINDOW,
            exclude_id=state["student_message_id"],
        )
        return {"history": history_to_langchain(messages)}

    async def load_materials(self, state: TutorTurnState) -> Dict[str, Any]:
        conversation = state["conversation"]
        rows = await load_tutor_context(
            self.session,
            conversation["course_id"],
            conversation["assignment_id"],
            state["student_message"],
        )
        rows = rows[: self.settings.TUTOR_CONTEXT_ROWS]
        context_block, citations = build_context_block(
            rows,
            max_rows=self.settings.TUTOR_CONTEXT_ROWS,
            snippet_chars=self.settings.TUTOR_SNIPPET_CHARS,
        )
        logger.debug(
            "Conversation %s: %d material chunks in context",
            state["conversation_id"], len(rows),
        )
        # End the read transaction so the pool connection is free during the model call
        await self.session.commit()
        return {
            "materials": rows,
            "context_block": context_block,
            "citations": citations,
            "grounded": bool(rows),
        }

    async def call_model(self, state: TutorTurnState) -> Dict[str, Any]:
        system = build_system_prompt(
            state["conversation"],
            state["context_block"],
            self._allow_direct_answers(state),
        )
        messages = [
            SystemMessage(content=system),
            *state.get("history", []),
            HumanMessage(content=state["student_message"]),
        ]
        try:
            response = await self.llm.ainvoke(messages)
        except Exception as e:
            logger.error(f"LLM call failed for conversation {state['conversation_id']}: {e}")
            raise classify_llm_error(e) from e
        return {"raw_reply": message_content(response)}

    async def parse_reply(self, state: TutorTurnState) -> Dict[str, Any]:
        payload = extract_json_object(state.get("raw_reply", ""))
        if payload is None:
            logger.warning("Model reply was not a JSON object: %.200r", state.get("raw_reply"))
            raise UpstreamError(
                "The tutor returned an unreadable response. Please resubmit your message.",
                UpstreamError.MALFORMED,
            )
        try:
            reply = TutorReply.model_validate(payload)
        except PydanticValidationError as e:
            logger.warning(f"Model reply failed validation: {e}")
            raise UpstreamError(
                "The tutor returned an unreadable response. Please resubmit your message.",
                UpstreamError.MALFORMED,
            ) from e

        conversation = state["conversation"]
        caller_question = state.get("question_number")
        metadata = {
            "question_number": caller_question if caller_question is not None else reply.question_number,
            "topic_tag": reply.topic_tag or conversation.get("assignment_title") or None,
            "confusion_flag": reply.confusion_flag,
            "confidence": reply.confidence,
            "grounded": state.get("grounded", False),
            "citations": state.get("citations", []),
        }
        return {"tutor_reply": reply.tutor_reply, "metadata": metadata}

    async def apply_policy(self, state: TutorTurnState) -> Dict[str, Any]:
        if self._allow_direct_answers(state):
            return {}
        return {"tutor_reply": enforce_socratic_policy(state["tutor_reply"])}

    async def record_tutor_reply(self, state: TutorTurnState) -> Dict[str, Any]:
        metadata = state["metadata"]
        try:
            student_message = await self.session.get(Message, state["student_message_id"])
            reply = await conversations.record_tutor_reply(
                self.session,
                student_message,
                state["tutor_reply"],
                question_number=metadata["question_number"],
                topic_tag=metadata["topic_tag"],
                confusion_flag=metadata["confusion_flag"],
                grounded=metadata["grounded"],
            )
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Could not store tutor reply: {e}")
            raise PersistenceError("Could not save the tutor reply") from e
        return {"tutor_message_id": reply.id}

    @staticmethod
    def _allow_direct_answers(state: TutorTurnState) -> bool:
        requested = state.get("allow_direct_answers")
        if isinstance(requested, bool):
            return requested
        return bool(state["conversation"].get("assignment_allow_direct_answers", False))


async def respond(
    session: AsyncSession,
    ctx: AuthContext,
    llm: BaseChatModel,
    conversation_id: int,
    student_message: str,
    question_number: Optional[int] = None,
    allow_direct_answers: Optional[bool] = None,
) -> Dict[str, Any]:
    """
    Run one tutoring turn for the conversation's own student.

    Returns:
        ``{"tutor_reply": str, "metadata": {...}}``
    """
    if not student_message or not student_message.strip():
        raise ValidationError("message and conversationId required")

    conversation = await conversations.load_conversation_context(session, conversation_id)
    if not ctx.is_student or conversation["student_id"] != ctx.user_id:
        raise AuthorizationError("Forbidden")

    state = create_initial_turn_state(
        conversation,
        student_message.strip(),
        question_number=question_number,
        allow_direct_answers=allow_direct_answers,
    )
    result = await TutorGraph(session, llm).invoke(
        state,
        config=build_trace_config(
            thread_id=f"conversation-{conversation_id}",
            tags=["socratic-tutor"],
            metadata={"course_id": conversation["course_id"], "assignment_id": conversation["assignment_id"]},
        ),
    )
    logger.info(
        "Tutor turn complete: conversation=%s confusion=%s grounded=%s",
        conversation_id, result["metadata"]["confusion_flag"], result["metadata"]["grounded"],
    )
    return {"tutor_reply": result["tutor_reply"], "metadata": result["metadata"]}
