"""Conversation store: one append-only message log per student and assignment."""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.context import AuthContext
from ..core.errors import AuthorizationError, NotFoundError, ValidationError
from ..db.base import insert_or_fetch
from ..db.models import Assignment, Conversation, Course, Message
from .courses import ensure_course_member, get_assignment

logger = logging.getLogger(__name__)

SENDERS = ("student", "tutor")


async def get_or_create_conversation(
    session: AsyncSession,
    ctx: AuthContext,
    assignment_id: int,
) -> Conversation:
    """Open the caller's conversation for an assignment, creating it on first use.

    The unique (student_id, assignment_id) index makes this an atomic
    insert-or-fetch; concurrent opens resolve to the same row.
    """
    if not ctx.is_student:
        raise AuthorizationError("Only students can open tutor conversations")

    assignment = await get_assignment(session, assignment_id)
    course_id = assignment.course_id
    await ensure_course_member(session, ctx, course_id)

    conversation, created = await insert_or_fetch(
        session,
        Conversation(student_id=ctx.user_id, course_id=course_id, assignment_id=assignment_id),
        select(Conversation).where(
            Conversation.student_id == ctx.user_id,
            Conversation.assignment_id == assignment_id,
        ),
    )
    if created:
        logger.info(
            "Conversation %s created for student %s, assignment %s",
            conversation.id, ctx.user_id, assignment_id,
        )
    return conversation


async def get_conversation(session: AsyncSession, conversation_id: int) -> Conversation:
    conversation = await session.get(Conversation, conversation_id)
    if conversation is None:
        raise NotFoundError("Conversation not found")
    return conversation


async def ensure_conversation_reader(
    session: AsyncSession, ctx: AuthContext, conversation_id: int
) -> Conversation:
    """The conversation's student and the course's teacher may read it."""
    conversation = await get_conversation(session, conversation_id)
    if ctx.is_student and conversation.student_id == ctx.user_id:
        return conversation
    if ctx.is_teacher:
        course = await session.get(Course, conversation.course_id)
        if course is not None and course.teacher_id == ctx.user_id:
            return conversation
    raise AuthorizationError("Not authorized for this conversation")


async def load_conversation_context(session: AsyncSession, conversation_id: int) -> Dict[str, Any]:
    """Conversation plus the assignment and course fields the tutor needs."""
    result = await session.execute(
        select(Conversation, Assignment, Course)
        .join(Assignment, Assignment.id == Conversation.assignment_id)
        .join(Course, Course.id == Conversation.course_id)
        .where(Conversation.id == conversation_id)
    )
    row = result.first()
    if row is None:
        raise NotFoundError("Conversation not found")
    conversation, assignment, course = row
    return {
        "conversation_id": conversation.id,
        "student_id": conversation.student_id,
        "course_id": conversation.course_id,
        "assignment_id": conversation.assignment_id,
        "assignment_title": assignment.title or "",
        "assignment_description": assignment.description or "",
        "assignment_allow_direct_answers": bool(assignment.allow_direct_answers),
        "course_code": course.code,
        "course_title": course.title,
    }


# =============================================================================
# Messages
# =============================================================================

async def list_messages(
    session: AsyncSession,
    conversation_id: int,
    limit: Optional[int] = None,
    exclude_id: Optional[int] = None,
) -> List[Message]:
    """Messages in conversation order.

    With ``limit``, only the most recent ``limit`` messages are returned,
    still oldest first.
    """
    stmt = select(Message).where(Message.conversation_id == conversation_id)
    if exclude_id is not None:
        stmt = stmt.where(Message.id != exclude_id)

    if limit is None:
        result = await session.execute(stmt.order_by(Message.created_at, Message.id))
        return list(result.scalars().all())

    result = await session.execute(
        stmt.order_by(Message.created_at.desc(), Message.id.desc()).limit(limit)
    )
    return list(reversed(result.scalars().all()))


async def append_message(
    session: AsyncSession,
    conversation_id: int,
    sender: str,
    text: str,
    question_number: Optional[int] = None,
    topic_tag: Optional[str] = None,
    confusion_flag: Optional[bool] = None,
    grounded_flag: Optional[bool] = None,
) -> Message:
    """Durably append one message."""
    if sender not in SENDERS:
        raise ValidationError(f"Unknown sender: {sender}")
    if not text or not text.strip():
        raise ValidationError("Message text is required")

    message = Message(
        conversation_id=conversation_id,
        sender=sender,
        text=text,
        question_number=question_number,
        topic_tag=topic_tag,
        confusion_flag=confusion_flag,
        grounded_flag=grounded_flag,
    )
    session.add(message)
    await session.commit()
    return message


async def record_tutor_reply(
    session: AsyncSession,
    student_message: Message,
    reply_text: str,
    question_number: Optional[int],
    topic_tag: Optional[str],
    confusion_flag: bool,
    grounded: bool,
) -> Message:
    """Insert the tutor reply and tag the student message it answers.

    Both writes share one commit so analytics never sees a reply whose
    student message is still untagged.
    """
    student_message.question_number = question_number
    student_message.topic_tag = topic_tag
    student_message.confusion_flag = confusion_flag

    reply = Message(
        conversation_id=student_message.conversation_id,
        sender="tutor",
        text=reply_text,
        question_number=question_number,
        topic_tag=topic_tag,
        grounded_flag=grounded,
    )
    session.add(reply)
    await session.commit()
    return reply
