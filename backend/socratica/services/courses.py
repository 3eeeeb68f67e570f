"""Courses, assignments, enrollment and course-level access checks."""

import logging
import secrets
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.context import AuthContext, Role
from ..core.errors import (
    AuthorizationError,
    InvalidJoinCodeError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from ..db.base import insert_or_fetch
from ..db.models import Assignment, Course, Enrollment

logger = logging.getLogger(__name__)

JOIN_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
JOIN_CODE_LENGTH = 6


def generate_join_code(length: int = JOIN_CODE_LENGTH) -> str:
    return "".join(secrets.choice(JOIN_CODE_ALPHABET) for _ in range(length))


def normalize_join_code(join_code: Optional[str]) -> str:
    """Join codes are case-insensitive; stored and looked up upper-case."""
    if not isinstance(join_code, str) or not join_code.strip():
        raise ValidationError("Join code required")
    return join_code.strip().upper()


# =============================================================================
# Access checks
# =============================================================================

async def get_course(session: AsyncSession, course_id: int) -> Course:
    course = await session.get(Course, course_id)
    if course is None:
        raise NotFoundError("Course not found")
    return course


async def is_enrolled(session: AsyncSession, student_id: int, course_id: int) -> bool:
    result = await session.execute(
        select(Enrollment.id).where(
            Enrollment.student_id == student_id,
            Enrollment.course_id == course_id,
        )
    )
    return result.first() is not None


async def ensure_course_owner(session: AsyncSession, ctx: AuthContext, course_id: int) -> Course:
    """Return the course if ``ctx`` is the teacher who owns it."""
    course = await get_course(session, course_id)
    if not ctx.is_teacher or course.teacher_id != ctx.user_id:
        raise AuthorizationError("Not authorized for this course")
    return course


async def ensure_course_member(session: AsyncSession, ctx: AuthContext, course_id: int) -> Course:
    """Return the course if ``ctx`` owns it or is enrolled in it."""
    course = await get_course(session, course_id)
    if ctx.is_teacher and course.teacher_id == ctx.user_id:
        return course
    if ctx.is_student and await is_enrolled(session, ctx.user_id, course_id):
        return course
    raise AuthorizationError("Not a member of this course")


# =============================================================================
# Courses
# =============================================================================

async def create_course(session: AsyncSession, ctx: AuthContext, code: str, title: str) -> Course:
    if not ctx.is_teacher:
        raise AuthorizationError("Only teachers can create courses")
    if not code.strip() or not title.strip():
        raise ValidationError("Course code and title are required")

    # Join codes are random; retry the rare collision on the unique index
    for _ in range(5):
        course = Course(
            teacher_id=ctx.user_id,
            code=code.strip(),
            title=title.strip(),
            join_code=generate_join_code(),
        )
        session.add(course)
        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            logger.warning("Join code collision, regenerating")
            continue
        logger.info("Course %s created by teacher %s", course.id, ctx.user_id)
        return course

    raise PersistenceError("Could not allocate a unique join code")


async def list_courses(session: AsyncSession, ctx: AuthContext) -> List[Course]:
    if ctx.is_teacher:
        stmt = select(Course).where(Course.teacher_id == ctx.user_id)
    else:
        stmt = (
            select(Course)
            .join(Enrollment, Enrollment.course_id == Course.id)
            .where(Enrollment.student_id == ctx.user_id)
        )
    result = await session.execute(stmt.order_by(Course.created_at.desc(), Course.id.desc()))
    return list(result.scalars().all())


async def join_course(session: AsyncSession, ctx: AuthContext, join_code: Optional[str]) -> Tuple[Course, bool]:
    """Enroll a student by join code.

    Returns ``(course, created)``; joining twice keeps a single enrollment.
    """
    normalized = normalize_join_code(join_code)
    if ctx.role is not Role.STUDENT:
        raise AuthorizationError("Only students can join courses")

    result = await session.execute(select(Course).where(Course.join_code == normalized))
    course = result.scalar_one_or_none()
    if course is None:
        raise InvalidJoinCodeError()

    course_id = course.id
    _, created = await insert_or_fetch(
        session,
        Enrollment(student_id=ctx.user_id, course_id=course_id),
        select(Enrollment).where(
            Enrollment.student_id == ctx.user_id,
            Enrollment.course_id == course_id,
        ),
    )
    if created:
        logger.info("Student %s enrolled in course %s", ctx.user_id, course_id)
    return await get_course(session, course_id), created


# =============================================================================
# Assignments
# =============================================================================

async def get_assignment(session: AsyncSession, assignment_id: int) -> Assignment:
    assignment = await session.get(Assignment, assignment_id)
    if assignment is None:
        raise NotFoundError("Assignment not found")
    return assignment


async def create_assignment(
    session: AsyncSession,
    ctx: AuthContext,
    course_id: int,
    title: str,
    description: Optional[str] = None,
    allow_direct_answers: bool = False,
    due_date: Optional[str] = None,
) -> Assignment:
    await ensure_course_owner(session, ctx, course_id)
    if not title.strip():
        raise ValidationError("Assignment title is required")

    assignment = Assignment(
        course_id=course_id,
        title=title.strip(),
        description=description,
        allow_direct_answers=allow_direct_answers,
        due_date=due_date,
    )
    session.add(assignment)
    await session.commit()
    return assignment


async def list_assignments(session: AsyncSession, ctx: AuthContext, course_id: int) -> List[Assignment]:
    await ensure_course_member(session, ctx, course_id)
    result = await session.execute(
        select(Assignment)
        .where(Assignment.course_id == course_id)
        .order_by(Assignment.created_at, Assignment.id)
    )
    return list(result.scalars().all())
