"""Course, enrollment and assignment endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..core.context import AuthContext
from ..db.base import get_session
from ..services import courses as course_service
from .auth import get_auth_context

router = APIRouter(prefix="/courses", tags=["Courses"])


# ==============================================================================
# Pydantic Models
# ==============================================================================

class CourseCreate(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    title: str = Field(min_length=1, max_length=255)


class CourseResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    teacher_id: int
    code: str
    title: str
    join_code: str
    created_at: str


class JoinRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    join_code: Optional[str] = None


class JoinResponse(BaseModel):
    ok: bool = True
    course: CourseResponse
    enrolled: bool


class AssignmentCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    allow_direct_answers: bool = False
    due_date: Optional[str] = None


class AssignmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    course_id: int
    title: str
    description: Optional[str] = None
    allow_direct_answers: bool
    due_date: Optional[str] = None
    created_at: str


# ==============================================================================
# Courses
# ==============================================================================

@router.post("", response_model=CourseResponse, status_code=status.HTTP_201_CREATED)
async def create_course(
    request: CourseCreate,
    ctx: AuthContext = Depends(get_auth_context),
):
    async with get_session() as session:
        course = await course_service.create_course(session, ctx, request.code, request.title)
        return CourseResponse.model_validate(course)


@router.get("", response_model=List[CourseResponse])
async def list_courses(ctx: AuthContext = Depends(get_auth_context)):
    """Courses the teacher owns, or the student is enrolled in."""
    async with get_session() as session:
        courses = await course_service.list_courses(session, ctx)
        return [CourseResponse.model_validate(c) for c in courses]


@router.post("/join", response_model=JoinResponse)
async def join_course(
    request: JoinRequest,
    ctx: AuthContext = Depends(get_auth_context),
):
    """Enroll by join code. Joining twice is a no-op that still succeeds."""
    async with get_session() as session:
        course, created = await course_service.join_course(session, ctx, request.join_code)
        return JoinResponse(course=CourseResponse.model_validate(course), enrolled=created)


# ==============================================================================
# Assignments
# ==============================================================================

@router.post(
    "/{course_id}/assignments",
    response_model=AssignmentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_assignment(
    course_id: int,
    request: AssignmentCreate,
    ctx: AuthContext = Depends(get_auth_context),
):
    async with get_session() as session:
        assignment = await course_service.create_assignment(
            session,
            ctx,
            course_id,
            request.title,
            description=request.description,
            allow_direct_answers=request.allow_direct_answers,
            due_date=request.due_date,
        )
        return AssignmentResponse.model_validate(assignment)


@router.get("/{course_id}/assignments", response_model=List[AssignmentResponse])
async def list_assignments(course_id: int, ctx: AuthContext = Depends(get_auth_context)):
    async with get_session() as session:
        assignments = await course_service.list_assignments(session, ctx, course_id)
        return [AssignmentResponse.model_validate(a) for a in assignments]
