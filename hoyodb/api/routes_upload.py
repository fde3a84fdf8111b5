"""Admin API routes for raw object store access.

These upload, list and delete files without touching the catalog.
"""

import logging

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile

from hoyodb.api._helpers import _get_store, format_bytes, success
from hoyodb.config import settings
from hoyodb.exceptions import ValidationError
from hoyodb.models.schemas import FileDeleteRequest
from hoyodb.services.auth import require_admin
from hoyodb.services.uploads import derive_remote_path, generate_filename

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/upload",
    tags=["upload"],
    dependencies=[Depends(require_admin)],
)


async def _read_checked(file: UploadFile) -> bytes:
    """Read an upload after checking its MIME type, then its size."""
    content_type = file.content_type or "application/octet-stream"
    if content_type not in settings.ALLOWED_UPLOAD_TYPES:
        raise ValidationError(f"Unsupported file type: {content_type}")
    content = await file.read()
    if len(content) > settings.MAX_UPLOAD_SIZE:
        raise ValidationError(
            f"{file.filename} exceeds the {format_bytes(settings.MAX_UPLOAD_SIZE)} upload limit"
        )
    return content


async def _store_one(store, file: UploadFile, content: bytes, remote_path: str) -> dict:
    filename = generate_filename(file.filename)
    url = await store.upload_file(content, remote_path, filename)
    return {
        "url": url,
        "filename": filename,
        "originalName": file.filename,
        "size": len(content),
        "mimeType": file.content_type,
        "path": "/" + remote_path,
    }


# ---------------------------------------------------------------------------
# Uploads
# ---------------------------------------------------------------------------


@router.post("/upload")
async def upload_file(
    request: Request,
    file: UploadFile | None = File(None),
    game_slug: str | None = Form(None, alias="gameSlug"),
    category_slug: str | None = Form(None, alias="categorySlug"),
):
    """Store one file under ``{gameSlug}/{categorySlug?}``."""
    if file is None or not file.filename:
        raise ValidationError("No file uploaded")
    if not game_slug:
        raise ValidationError("gameSlug is required")
    remote_path = derive_remote_path(game_slug, category_slug)
    content = await _read_checked(file)

    data = await _store_one(_get_store(request), file, content, remote_path)
    return success(data)


@router.post("/upload/batch")
async def upload_batch(
    request: Request,
    files: list[UploadFile] | None = File(None),
    game_slug: str | None = Form(None, alias="gameSlug"),
    category_slug: str | None = Form(None, alias="categorySlug"),
):
    """Store several files; a file that fails to upload is reported, not fatal."""
    if not files:
        raise ValidationError("No file uploaded")
    if len(files) > settings.MAX_BATCH_FILES:
        raise ValidationError(f"At most {settings.MAX_BATCH_FILES} files per batch")
    if not game_slug:
        raise ValidationError("gameSlug is required")
    remote_path = derive_remote_path(game_slug, category_slug)
    contents = [await _read_checked(f) for f in files]

    store = _get_store(request)
    uploaded = []
    failed = []
    for file, content in zip(files, contents):
        try:
            uploaded.append(await _store_one(store, file, content, remote_path))
        except Exception as e:
            logger.warning("Batch upload of %s failed: %s", file.filename, e)
            failed.append({"originalName": file.filename, "error": str(e)})

    return success(
        {
            "uploaded": uploaded,
            "failed": failed,
            "total": len(files),
            "successCount": len(uploaded),
            "failedCount": len(failed),
        }
    )


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------


@router.delete("/delete")
async def delete_file(request: Request, body: FileDeleteRequest):
    if not body.path or not body.filename:
        raise ValidationError("path and filename are required")
    if "/" in body.filename or body.filename in (".", ".."):
        raise ValidationError("filename must not contain a path")
    await _get_store(request).delete_file(body.path, body.filename)
    return success(message="File deleted")


@router.get("/list")
async def list_files(request: Request, path: str = "/"):
    """Direct children of a store directory."""
    entries = await _get_store(request).list_directory(path)
    return success(entries)


@router.get("/storage")
async def storage_info(request: Request):
    info = await _get_store(request).get_storage_info()
    if info is None:
        return {"success": True, "data": None, "message": "Storage information unavailable"}
    return success(
        {
            "used": info["used"],
            "available": info["available"],
            "usedFormatted": format_bytes(info["used"]),
            "availableFormatted": format_bytes(info["available"]),
        }
    )


@router.get("/status")
async def store_status(request: Request):
    """Whether the WebDAV server answers at all."""
    try:
        connected = await _get_store(request).check_connection()
    except Exception as e:
        logger.warning("WebDAV connection check failed: %s", e)
        connected = False
    return success({"connected": connected, "webdavUrl": settings.WEBDAV_URL})
