"""Material catalog endpoints: upload, text chunks, listing and downloads."""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from fastapi.responses import FileResponse
from pydantic import BaseModel

from ..core.config import get_settings
from ..core.context import AuthContext
from ..core.errors import AuthenticationError
from ..core.security import verify_download_token
from ..db.base import get_session
from ..services import materials as material_service
from ..services.storage import read_upload
from .auth import get_auth_context

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/materials", tags=["Materials"])


# ==============================================================================
# Pydantic Models
# ==============================================================================

class MaterialResponse(BaseModel):
    id: int
    course_id: int
    assignment_id: Optional[int] = None
    title: str
    kind: str
    storage_path: str
    file_size: Optional[int] = None
    text_extracted: bool
    created_at: Optional[str] = None
    download_url: Optional[str] = None


class MaterialListResponse(BaseModel):
    items: List[MaterialResponse]


class TextChunksRequest(BaseModel):
    chunks: List[str]


class OkResponse(BaseModel):
    ok: bool = True


# ==============================================================================
# Endpoints
# ==============================================================================

@router.post("/upload", response_model=MaterialResponse, status_code=status.HTTP_201_CREATED)
async def upload_material(
    course_id: int = Form(...),
    title: str = Form(...),
    kind: str = Form(...),
    assignment_id: Optional[int] = Form(None),
    file: UploadFile = File(...),
    ctx: AuthContext = Depends(get_auth_context),
):
    """
    Upload a PDF for a course (optionally scoped to an assignment).

    The file is stored and its text extracted and chunked for the tutor.
    """
    settings = get_settings()
    data = await read_upload(file, settings.MAX_UPLOAD_SIZE)

    async with get_session() as session:
        material = await material_service.create_material(
            session,
            ctx,
            course_id=course_id,
            title=title,
            kind=kind,
            filename=file.filename or "",
            data=data,
            assignment_id=assignment_id,
        )
        return MaterialResponse(
            **material_service.serialize_material(
                material, material_service.download_url_for(material.id)
            )
        )


@router.post("/{material_id}/text", response_model=MaterialResponse)
async def save_material_text(
    material_id: int,
    request: TextChunksRequest,
    ctx: AuthContext = Depends(get_auth_context),
):
    """Replace a material's text chunks with client-extracted text."""
    async with get_session() as session:
        material = await material_service.save_text_chunks(session, ctx, material_id, request.chunks)
        return MaterialResponse(**material_service.serialize_material(material))


@router.get("", response_model=MaterialListResponse)
async def list_materials(
    course_id: int = Query(...),
    assignment_id: Optional[int] = Query(None),
    ctx: AuthContext = Depends(get_auth_context),
):
    """Materials visible to the caller. Students never see answer keys."""
    async with get_session() as session:
        items: List[Dict[str, Any]] = await material_service.list_materials(
            session, ctx, course_id, assignment_id
        )
    return MaterialListResponse(items=[MaterialResponse(**item) for item in items])


@router.get("/download")
async def download_material(token: str = Query(...)):
    """Serve a material file for a signed, time-limited download token."""
    material_id = verify_download_token(token)
    if material_id is None:
        raise AuthenticationError("Invalid or expired download link")

    async with get_session() as session:
        material, path = await material_service.get_download(session, material_id)
        filename = f"{material.title}.pdf"

    return FileResponse(path, media_type="application/pdf", filename=filename)


@router.delete("/{material_id}", response_model=OkResponse)
async def delete_material(material_id: int, ctx: AuthContext = Depends(get_auth_context)):
    async with get_session() as session:
        await material_service.delete_material(session, ctx, material_id)
    return OkResponse()
