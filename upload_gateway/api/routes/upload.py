"""
Upload API endpoints.

Thin HTTP layer over the storage client:
1. POST /upload (or /upload/doc) with a multipart `file` field
2. GET /upload/list to enumerate the bucket
3. GET /upload/files/{filename} to fetch contents
4. DELETE /upload/{filename} to remove a file

Storage failures are reported as a generic 500. The caller is not told
whether the cause was a missing object, bad credentials or an outage,
unless UPLOAD_NOT_FOUND_AS_404 is enabled, in which case a missing
object on download/delete becomes a 404.
"""

import logging
from typing import Annotated, NoReturn, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from pydantic import BaseModel, Field
from starlette.datastructures import UploadFile

from ...config.settings import Settings
from ...core.errors import NotFoundError, UploadGatewayError
from ..dependencies import SettingsDep, StorageClientDep

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Response Models
# ---------------------------------------------------------------------------

class UploadResponse(BaseModel):
    """Response after a successful upload."""
    url: str = Field(description="Public-style URL of the stored object")


class FileListResponse(BaseModel):
    """Filenames currently in the bucket."""
    files: list[str] = Field(description="Filenames in storage listing order")


class DeleteResponse(BaseModel):
    message: str


# ---------------------------------------------------------------------------
# Helper Functions
# ---------------------------------------------------------------------------

def _raise_storage_failure(
    error: UploadGatewayError,
    settings: Settings,
    detail: str,
) -> NoReturn:
    if isinstance(error, NotFoundError) and settings.upload_not_found_as_404:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(error),
        )
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=detail,
    )


async def _store_upload(
    file: Optional[UploadFile],
    storage: StorageClientDep,
    settings: Settings,
) -> UploadResponse:
    if file is None or not file.filename:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No file uploaded",
        )

    content = await file.read()

    if len(content) > settings.max_upload_size_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File too large. Maximum size: {settings.max_upload_size_mb}MB",
        )

    try:
        url = await storage.upload(
            content,
            file.filename,
            content_type=file.content_type,
        )
    except UploadGatewayError as e:
        logger.error(
            "Upload failed",
            extra={"upload_filename": file.filename, "error": str(e)}
        )
        _raise_storage_failure(e, settings, "Upload failed")

    return UploadResponse(url=url)


async def get_form_file(request: Request) -> Optional[UploadFile]:
    """
    Pull the `file` part out of the request body.

    Anything that is not a file part (no body, a JSON body, a plain text
    form field) yields None so the endpoint can answer 400 itself.
    """
    content_type = request.headers.get("content-type", "")
    if not content_type.startswith(
        ("multipart/form-data", "application/x-www-form-urlencoded")
    ):
        return None

    form = await request.form()
    value = form.get("file")
    return value if isinstance(value, UploadFile) else None


FormFileDep = Annotated[Optional[UploadFile], Depends(get_form_file)]

# Documents the multipart body; parsing is done by get_form_file.
UPLOAD_REQUEST_BODY = {
    "requestBody": {
        "content": {
            "multipart/form-data": {
                "schema": {
                    "type": "object",
                    "properties": {
                        "file": {"type": "string", "format": "binary"},
                    },
                    "required": ["file"],
                }
            }
        },
        "required": True,
    }
}


def content_disposition(filename: str) -> str:
    """
    Attachment header for a stored object name.

    Non-ASCII names go in the RFC 5987 `filename*` parameter. The plain
    `filename` parameter carries an ASCII approximation for old clients.
    """
    basename = filename.rsplit("/", 1)[-1]
    fallback = "".join(
        char if char.isprintable() and char not in '"\\' else "_"
        for char in basename.encode("ascii", "replace").decode("ascii")
    )
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(basename, safe='')}"


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "/doc",
    response_model=UploadResponse,
    summary="Upload a document",
    description="Upload a document (max size configured via MAX_UPLOAD_SIZE_MB)",
    openapi_extra=UPLOAD_REQUEST_BODY,
)
async def upload_document(
    storage: StorageClientDep,
    settings: SettingsDep,
    file: FormFileDep,
) -> UploadResponse:
    return await _store_upload(file, storage, settings)


@router.post(
    "",
    response_model=UploadResponse,
    summary="Upload a file",
    openapi_extra=UPLOAD_REQUEST_BODY,
)
async def upload_file(
    storage: StorageClientDep,
    settings: SettingsDep,
    file: FormFileDep,
) -> UploadResponse:
    return await _store_upload(file, storage, settings)


@router.get(
    "/list",
    response_model=FileListResponse,
    summary="List uploaded files",
)
async def list_files(
    storage: StorageClientDep,
    settings: SettingsDep,
    prefix: Annotated[Optional[str], Query(description="Only names starting with this")] = None,
) -> FileListResponse:
    try:
        files = await storage.list(prefix)
    except UploadGatewayError as e:
        logger.error("Listing failed", extra={"prefix": prefix, "error": str(e)})
        _raise_storage_failure(e, settings, "Failed to list files")

    return FileListResponse(files=files)


@router.get(
    "/files/{filename:path}",
    summary="Download a file",
    response_class=Response,
)
async def download_file(
    filename: str,
    storage: StorageClientDep,
    settings: SettingsDep,
) -> Response:
    try:
        content = await storage.download(filename)
    except UploadGatewayError as e:
        logger.error(
            "Download failed",
            extra={"upload_filename": filename, "error": str(e)}
        )
        _raise_storage_failure(e, settings, "Download failed")

    return Response(
        content=content,
        media_type="application/octet-stream",
        headers={"Content-Disposition": content_disposition(filename)},
    )


@router.delete(
    "/{filename:path}",
    response_model=DeleteResponse,
    summary="Delete a file",
)
async def delete_file(
    filename: str,
    storage: StorageClientDep,
    settings: SettingsDep,
) -> DeleteResponse:
    try:
        await storage.delete(filename)
    except UploadGatewayError as e:
        logger.error(
            "Delete failed",
            extra={"upload_filename": filename, "error": str(e)}
        )
        _raise_storage_failure(e, settings, "Delete failed")

    return DeleteResponse(message="File deleted successfully")
