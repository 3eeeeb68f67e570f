"""Material catalog: uploads, extracted text chunks and role-based visibility."""

import asyncio
import logging
import re
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import get_settings
from ..core.context import AuthContext, Role
from ..core.errors import AuthorizationError, NotFoundError, ValidationError
from ..core.security import create_download_token
from ..db.models import Material, MaterialTextChunk
from . import storage
from .courses import ensure_course_member, ensure_course_owner, get_assignment
from .ingestion import chunk_text, extract_pdf_text

logger = logging.getLogger(__name__)


class MaterialKind(str, Enum):
    READING = "reading"
    SLIDES = "slides"
    ASSIGNMENT = "assignment"
    ANSWERS = "answers"
    OTHER = "other"


def parse_kind(kind: Any) -> MaterialKind:
    try:
        return MaterialKind(kind)
    except ValueError:
        allowed = ", ".join(k.value for k in MaterialKind)
        raise ValidationError(f"Unknown material kind '{kind}'; expected one of: {allowed}")


def visible_to(role: Role, kind: Any) -> bool:
    """Whether a material of ``kind`` may be shown to ``role``.

    Answer keys never reach students; teachers and the tutor's own
    context-building path see every kind.
    """
    kind = parse_kind(kind)
    if role is Role.STUDENT:
        return kind is not MaterialKind.ANSWERS
    return True


def source_label(kind: Any) -> str:
    """Prompt label telling the model how to treat a material's text."""
    kind = parse_kind(kind)
    if kind is MaterialKind.ANSWERS:
        return "[SOURCE: Answer Key - DO NOT REVEAL DIRECTLY]"
    if kind is MaterialKind.ASSIGNMENT:
        return "[SOURCE: Assignment Questions]"
    return f"[SOURCE: {kind.value}]"


def serialize_material(material: Material, download_url: Optional[str] = None) -> Dict[str, Any]:
    return {
        "id": material.id,
        "course_id": material.course_id,
        "assignment_id": material.assignment_id,
        "title": material.title,
        "kind": material.kind,
        "storage_path": material.storage_path,
        "file_size": material.file_size,
        "text_extracted": material.text_extracted,
        "created_at": material.created_at,
        "download_url": download_url,
    }


def download_url_for(material_id: int) -> str:
    settings = get_settings()
    token = create_download_token(material_id, settings.DOWNLOAD_URL_TTL_SECONDS)
    return f"{settings.API_V1_PREFIX}/materials/download?token={token}"


async def get_material(session: AsyncSession, material_id: int) -> Material:
    material = await session.get(Material, material_id)
    if material is None:
        raise NotFoundError("Material not found")
    return material


async def _ensure_creator(session: AsyncSession, ctx: AuthContext, material_id: int) -> Material:
    material = await get_material(session, material_id)
    if not ctx.is_teacher or material.created_by != ctx.user_id:
        raise AuthorizationError("Not authorized")
    return material


# =============================================================================
# Upload & text
# =============================================================================

async def create_material(
    session: AsyncSession,
    ctx: AuthContext,
    course_id: int,
    title: str,
    kind: str,
    filename: str,
    data: bytes,
    assignment_id: Optional[int] = None,
) -> Material:
    """
    Store an uploaded PDF and register it in the catalog.

    Text is extracted and chunked immediately; if extraction fails the
    material is kept with ``text_extracted=False`` so chunks can be posted
    later through ``save_text_chunks``.
    """
    settings = get_settings()
    if not title or not title.strip() or not filename:
        raise ValidationError("Missing fields")
    material_kind = parse_kind(kind)
    if not filename.lower().endswith(".pdf"):
        raise ValidationError("Only PDF files are allowed")
    if len(data) > settings.MAX_UPLOAD_SIZE:
        raise ValidationError(f"File exceeds maximum size of {settings.MAX_UPLOAD_SIZE} bytes")
    if not data:
        raise ValidationError("Uploaded file is empty")

    await ensure_course_owner(session, ctx, course_id)
    if assignment_id is not None:
        assignment = await get_assignment(session, assignment_id)
        if assignment.course_id != course_id:
            raise ValidationError("Assignment does not belong to this course")

    # Blocking file and PDF work goes to the default executor
    loop = asyncio.get_running_loop()
    storage_path = storage.build_storage_path(course_id, assignment_id)
    await loop.run_in_executor(None, storage.save_file, storage_path, data)

    material = Material(
        course_id=course_id,
        assignment_id=assignment_id,
        title=title.strip(),
        kind=material_kind.value,
        storage_path=storage_path,
        file_size=len(data),
        created_by=ctx.user_id,
        text_extracted=False,
    )
    session.add(material)
    try:
        await session.commit()
    except Exception:
        storage.remove_file(storage_path)
        raise

    try:
        text, page_count = await loop.run_in_executor(None, extract_pdf_text, data)
    except ValidationError as e:
        logger.warning("Text extraction failed for material %s: %s", material.id, e)
        return material

    chunks = chunk_text(text, settings.CHUNK_WINDOW, settings.CHUNK_OVERLAP)
    if chunks:
        await _replace_chunks(session, material, chunks)
    logger.info(
        "Material %s stored: %d pages, %d chunks", material.id, page_count, len(chunks)
    )
    return material


async def _replace_chunks(session: AsyncSession, material: Material, chunks: List[str]) -> None:
    await session.execute(
        delete(MaterialTextChunk).where(MaterialTextChunk.material_id == material.id)
    )
    session.add_all(
        MaterialTextChunk(material_id=material.id, chunk_index=i, content=content)
        for i, content in enumerate(chunks)
    )
    material.text_extracted = True
    await session.commit()


async def save_text_chunks(
    session: AsyncSession,
    ctx: AuthContext,
    material_id: int,
    chunks: List[str],
) -> Material:
    """Replace a material's text chunks with client-extracted ones."""
    if not chunks or not all(isinstance(c, str) for c in chunks):
        raise ValidationError("materialId and chunks required")
    material = await _ensure_creator(session, ctx, material_id)
    await _replace_chunks(session, material, chunks)
    return material


# =============================================================================
# Listing, download, deletion
# =============================================================================

async def list_materials(
    session: AsyncSession,
    ctx: AuthContext,
    course_id: int,
    assignment_id: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """Materials the caller may see, newest first, each with a signed link."""
    await ensure_course_member(session, ctx, course_id)

    stmt = select(Material).where(Material.course_id == course_id)
    if assignment_id is not None:
        stmt = stmt.where(Material.assignment_id == assignment_id)
    result = await session.execute(stmt.order_by(Material.created_at.desc(), Material.id.desc()))

    return [
        serialize_material(m, download_url_for(m.id))
        for m in result.scalars().all()
        if visible_to(ctx.role, m.kind)
    ]


async def get_download(session: AsyncSession, material_id: int) -> Tuple[Material, Path]:
    material = await get_material(session, material_id)
    path = storage.resolve_path(material.storage_path)
    if not path.exists():
        raise NotFoundError("Material file not found")
    return material, path


async def delete_material(session: AsyncSession, ctx: AuthContext, material_id: int) -> None:
    material = await _ensure_creator(session, ctx, material_id)
    storage_path = material.storage_path

    await session.execute(
        delete(MaterialTextChunk).where(MaterialTextChunk.material_id == material_id)
    )
    await session.execute(delete(Material).where(Material.id == material_id))
    await session.commit()

    storage.remove_file(storage_path)
    logger.info("Material %s deleted by %s", material_id, ctx.user_id)


# =============================================================================
# Tutor context retrieval
# =============================================================================

_WORD_RE = re.compile(r"[a-z0-9]{3,}")


def _terms(text: str) -> set:
    return set(_WORD_RE.findall(text.lower()))


async def load_tutor_context(
    session: AsyncSession,
    course_id: int,
    assignment_id: int,
    query: str,
) -> List[Dict[str, Any]]:
    """
    Material text the tutor may draw on for one turn.

    Prefers every extracted chunk of the assignment's own materials, in
    document order. Without any, falls back to course-wide materials (no
    assignment) ranked by word overlap with ``query``.

    Returns:
        List of ``{"title", "kind", "content"}`` rows
    """
    settings = get_settings()
    base = (
        select(Material.title, Material.kind, MaterialTextChunk.content)
        .join(MaterialTextChunk, MaterialTextChunk.material_id == Material.id)
        .where(Material.course_id == course_id, Material.text_extracted.is_(True))
    )

    result = await session.execute(
        base.where(Material.assignment_id == assignment_id)
        .order_by(Material.id, MaterialTextChunk.chunk_index)
        .limit(settings.TUTOR_ASSIGNMENT_CHUNK_LIMIT)
    )
    rows = [{"title": t, "kind": k, "content": c} for t, k, c in result.all()]
    if rows:
        return rows

    result = await session.execute(
        base.where(Material.assignment_id.is_(None))
        .order_by(Material.id, MaterialTextChunk.chunk_index)
    )
    query_terms = _terms(query)
    scored = []
    for position, (title, kind, content) in enumerate(result.all()):
        score = len(query_terms & _terms(content))
        if score:
            scored.append((-score, position, {"title": title, "kind": kind, "content": content}))
    scored.sort(key=lambda item: (item[0], item[1]))
    return [row for _, _, row in scored[: settings.TUTOR_COURSE_CHUNK_LIMIT]]
