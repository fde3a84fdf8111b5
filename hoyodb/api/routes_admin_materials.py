"""Admin API routes for material management.

Unlike the public routes these see every status.  ``/with-upload`` stores
the file in the object store and creates the record in one request.
"""

import logging

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile

from hoyodb.api._helpers import _get_db_path, _get_store, pagination, success
from hoyodb.config import settings
from hoyodb.database import fetch_one, get_db, update_row
from hoyodb.database_schema import MATERIAL_STATUSES
from hoyodb.exceptions import NotFoundError, ValidationError
from hoyodb.models.schemas import MaterialCreate, MaterialOut, MaterialUpdate, dump
from hoyodb.services.auth import require_admin
from hoyodb.services.catalog import (
    create_material,
    fetch_material_with_relations,
    list_materials,
    replace_material_tags,
)
from hoyodb.services.uploads import MaterialForm, MaterialUploader, UploadedFile

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/admin/materials",
    tags=["admin"],
    dependencies=[Depends(require_admin)],
)

# Columns that may be cleared with an explicit null
_NULLABLE = {"description", "duration", "resolution", "version"}


# ---------------------------------------------------------------------------
# List / get
# ---------------------------------------------------------------------------


@router.get("")
async def list_admin_materials(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    game_id: int | None = Query(None, alias="gameId"),
    category_id: int | None = Query(None, alias="categoryId"),
    tag_id: int | None = Query(None, alias="tagId"),
    status: str | None = None,
    search: str | None = None,
):
    """All materials, newest first, with an optional ``status`` filter."""
    if status is not None and status not in MATERIAL_STATUSES:
        raise ValidationError(f"'status' must be one of {', '.join(MATERIAL_STATUSES)}")

    async with get_db(_get_db_path(request)) as db:
        result = await list_materials(
            db,
            page=page,
            limit=limit,
            sort="created",
            game_id=game_id,
            category_id=category_id,
            tag_id=tag_id,
            status=status,
            search=search,
        )

    return success(
        [dump(MaterialOut, m) for m in result["items"]],
        pagination=pagination(page, limit, result["total_count"]),
    )


@router.get("/{material_id}")
async def get_admin_material(request: Request, material_id: int):
    async with get_db(_get_db_path(request)) as db:
        material = await fetch_material_with_relations(db, material_id)
    if material is None:
        raise NotFoundError(f"Material {material_id} not found")
    return success(dump(MaterialOut, material))


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


@router.post("", status_code=201)
async def create_admin_material(request: Request, body: MaterialCreate):
    """Create a material whose file is already in the object store."""
    fields = body.model_dump(exclude={"game_id", "category_id", "tag_ids"})
    material = await create_material(
        _get_db_path(request), body.game_id, body.category_id, fields, body.tag_ids
    )
    logger.info("Created material %s (%s)", material["id"], material["title"])
    return success(dump(MaterialOut, material))


@router.post("/with-upload", status_code=201)
async def create_material_with_upload(
    request: Request,
    file: UploadFile | None = File(None),
    game_id: str | None = Form(None, alias="gameId"),
    game_slug: str | None = Form(None, alias="gameSlug"),
    category_id: str | None = Form(None, alias="categoryId"),
    category_slug: str | None = Form(None, alias="categorySlug"),
    title: str | None = Form(None),
    description: str | None = Form(None),
    duration: str | None = Form(None),
    resolution: str | None = Form(None),
    version: str | None = Form(None),
    is_featured: str | None = Form(None, alias="isFeatured"),
    status: str | None = Form(None),
    tag_ids: str | None = Form(None, alias="tagIds"),
    file_path: str | None = Form(None, alias="filePath"),
    file_size: str | None = Form(None, alias="fileSize"),
    file_type: str | None = Form(None, alias="fileType"),
):
    """Upload a file and create its material; the file is removed again
    if the record cannot be written.

    Without a ``file`` part, ``filePath``, ``fileSize`` and ``fileType``
    describe a file that is already stored.
    """
    form = MaterialForm(
        game_id=game_id,
        game_slug=game_slug,
        category_id=category_id,
        category_slug=category_slug,
        title=title,
        description=description,
        duration=duration,
        resolution=resolution,
        version=version,
        is_featured=is_featured,
        status=status,
        tag_ids=tag_ids,
        file_path=file_path,
        file_size=file_size,
        file_type=file_type,
    )

    upload = None
    if file is not None and file.filename:
        content = await file.read()
        if len(content) > settings.MAX_UPLOAD_SIZE:
            raise ValidationError(
                f"File exceeds the {settings.MAX_UPLOAD_SIZE} byte upload limit"
            )
        upload = UploadedFile(
            filename=file.filename,
            content=content,
            content_type=file.content_type or "application/octet-stream",
        )

    uploader = MaterialUploader(_get_db_path(request), _get_store(request))
    material = await uploader.create(form, upload)
    return success(dump(MaterialOut, material))


# ---------------------------------------------------------------------------
# Update / delete
# ---------------------------------------------------------------------------


@router.put("/{material_id}")
async def update_admin_material(request: Request, material_id: int, body: MaterialUpdate):
    """Partial update.

    A ``tagIds`` list replaces the material's whole tag set; the row update
    and the tag replacement commit together.
    """
    changes = body.model_dump(exclude_unset=True)
    tag_ids = changes.pop("tag_ids", None)
    values = {k: v for k, v in changes.items() if v is not None or k in _NULLABLE}
    if "is_featured" in values:
        values["is_featured"] = int(values["is_featured"])

    async with get_db(_get_db_path(request)) as db:
        existing = await fetch_one(db, "SELECT id FROM materials WHERE id = ?", (material_id,))
        if existing is None:
            raise NotFoundError(f"Material {material_id} not found")

        await update_row(db, "materials", material_id, values)
        if tag_ids is not None:
            await replace_material_tags(db, material_id, tag_ids)
        await db.commit()

        material = await fetch_material_with_relations(db, material_id)

    return success(dump(MaterialOut, material))


@router.delete("/{material_id}")
async def delete_admin_material(request: Request, material_id: int):
    """Delete a material; its tag links and download logs cascade."""
    async with get_db(_get_db_path(request)) as db:
        existing = await fetch_one(
            db, "SELECT id, title FROM materials WHERE id = ?", (material_id,)
        )
        if existing is None:
            raise NotFoundError(f"Material {material_id} not found")
        await db.execute("DELETE FROM materials WHERE id = ?", (material_id,))
        await db.commit()

    logger.info("Deleted material %s (%s)", material_id, existing["title"])
    return success(message="Material deleted")
