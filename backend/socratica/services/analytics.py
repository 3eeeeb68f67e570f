"""Classroom analytics recomputed from stored conversation messages.

``build_snapshot`` is a pure function of the loaded rows, so repeated
requests over unchanged data return identical snapshots. ``aggregate`` only
loads rows and resolves student names around it.
"""

import logging
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.context import AuthContext
from ..core.errors import ValidationError
from ..db.models import Conversation, Message, User
from .courses import ensure_course_owner, get_assignment

logger = logging.getLogger(__name__)

TOP_TOPICS = 5
PREVIEW_CHARS = 100
RECENT_MESSAGES = 50
RECENT_PREVIEW_CHARS = 200
UNKNOWN_STUDENT = "Unknown"


def _pct(part: int, whole: int) -> int:
    # Half-up rounding, matching the dashboard's Math.round
    return int(100 * part / whole + 0.5)


def _ranked(counter: Counter) -> List[tuple]:
    """Descending by count; ties by ascending key."""
    return sorted(counter.items(), key=lambda item: (-item[1], item[0]))


def build_snapshot(
    rows: Iterable[Mapping[str, Any]],
    student_names: Mapping[int, Optional[str]],
) -> Dict[str, Any]:
    """
    Compute dashboard KPIs from message rows.

    Args:
        rows: Message dicts with ``id, conversation_id, student_id, sender,
            text, created_at, question_number, topic_tag, confusion_flag,
            grounded_flag``
        student_names: Profile names keyed by student id

    Returns:
        Snapshot dict: ``kpis``, ``by_question``, ``topics``, ``students``,
        ``totals`` and ``recent_messages``
    """
    rows = list(rows)
    student_msgs = [r for r in rows if r["sender"] == "student"]
    tutor_msgs = [r for r in rows if r["sender"] == "tutor"]
    confused = [r for r in student_msgs if r.get("confusion_flag")]

    confused_pct = _pct(len(confused), len(student_msgs)) if student_msgs else 0
    grounded = sum(1 for r in tutor_msgs if r.get("grounded_flag") is not False)
    grounded_rate = _pct(grounded, len(tutor_msgs)) if tutor_msgs else 100

    by_question = _ranked(Counter(
        r["question_number"] for r in confused if r.get("question_number") is not None
    ))
    topics = _ranked(Counter(
        r["topic_tag"] for r in confused if r.get("topic_tag")
    ))[:TOP_TOPICS]

    latest: Dict[int, Mapping[str, Any]] = {}
    for r in confused:
        current = latest.get(r["student_id"])
        if current is None or (r["created_at"], r["id"]) > (current["created_at"], current["id"]):
            latest[r["student_id"]] = r
    students = [
        {
            "student_id": r["student_id"],
            "student_name": student_names.get(r["student_id"]) or UNKNOWN_STUDENT,
            "question": r.get("question_number"),
            "topic": r.get("topic_tag"),
            "last_ts": r["created_at"],
            "conversation_id": r["conversation_id"],
            "last_message": (r.get("text") or "")[:PREVIEW_CHARS],
        }
        for r in sorted(latest.values(), key=lambda r: (r["created_at"], r["id"]), reverse=True)
    ]

    recent = sorted(student_msgs, key=lambda r: (r["created_at"], r["id"]), reverse=True)
    recent_messages = [
        {
            "id": r["id"],
            "student_id": r["student_id"],
            "student_name": student_names.get(r["student_id"]) or UNKNOWN_STUDENT,
            "text": (r.get("text") or "")[:RECENT_PREVIEW_CHARS],
            "question_number": r.get("question_number"),
            "topic_tag": r.get("topic_tag"),
            "confusion_flag": bool(r.get("confusion_flag")),
            "created_at": r["created_at"],
            "conversation_id": r["conversation_id"],
        }
        for r in recent[:RECENT_MESSAGES]
    ]

    return {
        "kpis": {
            "confused_pct": confused_pct,
            "students_needing_help": len(latest),
            "top_question": by_question[0][0] if by_question else None,
            "top_topic": topics[0][0] if topics else None,
            "grounded_rate": grounded_rate,
        },
        "by_question": [{"question": q, "confused": n} for q, n in by_question],
        "topics": [{"topic": t, "confused": n} for t, n in topics],
        "students": students,
        "totals": {
            "messages": len(rows),
            "student_messages": len(student_msgs),
            "tutor_messages": len(tutor_msgs),
            "confused_messages": len(confused),
        },
        "recent_messages": recent_messages,
    }


def empty_snapshot() -> Dict[str, Any]:
    return build_snapshot([], {})


def _to_stored_ts(value: Optional[datetime]) -> Optional[str]:
    """Convert a filter bound to the naive-UTC ISO form messages are stored in."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat()


async def aggregate(
    session: AsyncSession,
    ctx: AuthContext,
    course_id: int,
    assignment_id: int,
    from_ts: Optional[datetime] = None,
    to_ts: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Analytics snapshot for one assignment, optionally limited to a time range."""
    await ensure_course_owner(session, ctx, course_id)
    assignment = await get_assignment(session, assignment_id)
    if assignment.course_id != course_id:
        raise ValidationError("Assignment does not belong to this course")
    lower, upper = _to_stored_ts(from_ts), _to_stored_ts(to_ts)
    if lower is not None and upper is not None and lower > upper:
        raise ValidationError("'from' must not be after 'to'")

    result = await session.execute(
        select(Conversation.id, Conversation.student_id).where(
            Conversation.course_id == course_id,
            Conversation.assignment_id == assignment_id,
        )
    )
    owners = {conversation_id: student_id for conversation_id, student_id in result.all()}
    if not owners:
        return empty_snapshot()

    stmt = select(Message).where(Message.conversation_id.in_(list(owners)))
    if lower is not None:
        stmt = stmt.where(Message.created_at >= lower)
    if upper is not None:
        stmt = stmt.where(Message.created_at <= upper)
    messages = (await session.execute(stmt)).scalars().all()

    rows = [
        {
            "id": m.id,
            "conversation_id": m.conversation_id,
            "student_id": owners[m.conversation_id],
            "sender": m.sender,
            "text": m.text,
            "created_at": m.created_at,
            "question_number": m.question_number,
            "topic_tag": m.topic_tag,
            "confusion_flag": m.confusion_flag,
            "grounded_flag": m.grounded_flag,
        }
        for m in messages
    ]

    student_ids = sorted({r["student_id"] for r in rows})
    names: Dict[int, Optional[str]] = {}
    if student_ids:
        result = await session.execute(
            select(User.id, User.name).where(User.id.in_(student_ids))
        )
        names = {user_id: name for user_id, name in result.all()}

    logger.info(
        "Analytics for course %s assignment %s: %d conversations, %d messages",
        course_id, assignment_id, len(owners), len(rows),
    )
    return build_snapshot(rows, names)
