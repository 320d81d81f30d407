"""
Compyy Backend — Media Route Handlers
=======================================

What:  POST /api/media stores an uploaded image; GET /api/files/{path}
       serves it back.
Who:   The board editor (question images, backgrounds, display images)
       and the profile page.

Security Checks:
    - Upload requires a signed-in user
    - File type and size are validated by FileService (extension + MIME)
    - Served paths cannot escape STORAGE_ROOT
"""

import logging
import mimetypes
import uuid

from fastapi import APIRouter, Depends, File, UploadFile, status
from fastapi.responses import FileResponse

from compyy.dependencies import get_current_user_id
from compyy.schemas.common import ErrorResponse
from compyy.schemas.community import MediaUploadResponse
from compyy.services.file_service import file_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Media"])


@router.post(
    "/media",
    status_code=status.HTTP_201_CREATED,
    response_model=MediaUploadResponse,
    responses={
        400: {"description": "Invalid file type or size", "model": ErrorResponse},
        401: {"description": "Not signed in", "model": ErrorResponse},
    },
    summary="Upload an image",
    description="PNG, JPG, GIF or WebP up to MAX_FILE_SIZE bytes.",
)
async def upload_media(
    file: UploadFile = File(..., description="Image file"),
    user_id: uuid.UUID = Depends(get_current_user_id),
) -> MediaUploadResponse:
    try:
        content = await file.read()
        logger.info(
            "Media upload by user %s: filename=%s, size=%d bytes",
            user_id, file.filename or "unknown", len(content),
        )
        _, relative_path, mime_type = await file_service.validate_and_store(
            filename=file.filename or "upload.png",
            content=content,
            content_length=file.size,
        )
    finally:
        await file.close()

    return MediaUploadResponse(
        path=relative_path,
        url=f"/api/files/{relative_path}",
        content_type=mime_type,
        size=len(content),
    )


@router.get(
    "/files/{file_path:path}",
    summary="Serve an uploaded file",
    responses={
        200: {"description": "Image file"},
        404: {"description": "File not found", "model": ErrorResponse},
    },
)
async def serve_file(file_path: str) -> FileResponse:
    full_path = file_service.resolve_path(file_path)
    media_type, _ = mimetypes.guess_type(full_path.name)
    # stored names are random UUIDs, so content never changes under a path
    return FileResponse(
        path=str(full_path),
        media_type=media_type or "application/octet-stream",
        headers={"Cache-Control": "public, max-age=86400"},
    )
