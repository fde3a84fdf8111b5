"""Admin API routes for tag management."""

import logging

import aiosqlite
from fastapi import APIRouter, Depends, Request

from hoyodb.api._helpers import _get_db_path, success
from hoyodb.database import fetch_all, fetch_one, get_db, update_row
from hoyodb.database_schema import TAG_TYPES
from hoyodb.exceptions import ConflictError, InUseError, NotFoundError, ValidationError
from hoyodb.models.schemas import TagCreate, TagOut, TagUpdate, dump
from hoyodb.services.auth import require_admin

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/admin/tags",
    tags=["admin"],
    dependencies=[Depends(require_admin)],
)


async def _get_tag_or_404(db: aiosqlite.Connection, tag_id: int) -> dict:
    tag = await fetch_one(db, "SELECT * FROM tags WHERE id = ?", (tag_id,))
    if tag is None:
        raise NotFoundError(f"Tag {tag_id} not found")
    return tag


@router.get("")
async def list_tags(request: Request, type: str | None = None):
    """List tags with the number of materials carrying each."""
    where_sql = ""
    params: list = []
    if type:
        if type not in TAG_TYPES:
            raise ValidationError(f"'type' must be one of {', '.join(TAG_TYPES)}")
        where_sql = "WHERE t.type = ?"
        params.append(type)

    async with get_db(_get_db_path(request)) as db:
        rows = await fetch_all(
            db,
            f"""
            SELECT t.*, COUNT(mt.material_id) AS material_count
            FROM tags t
            LEFT JOIN material_tags mt ON mt.tag_id = t.id
            {where_sql}
            GROUP BY t.id
            ORDER BY t.type, t.name
            """,
            params,
        )
    return success([dump(TagOut, r) for r in rows])


@router.post("", status_code=201)
async def create_tag(request: Request, body: TagCreate):
    async with get_db(_get_db_path(request)) as db:
        try:
            cursor = await db.execute(
                "INSERT INTO tags (name, slug, type) VALUES (?, ?, ?)",
                (body.name, body.slug, body.type),
            )
        except aiosqlite.IntegrityError:
            raise ConflictError(f"Tag slug '{body.slug}' already exists")
        await db.commit()
        tag = await _get_tag_or_404(db, cursor.lastrowid)

    logger.info("Created tag %s (%s)", tag["id"], tag["slug"])
    return success(dump(TagOut, tag))


@router.put("/{tag_id}")
async def update_tag(request: Request, tag_id: int, body: TagUpdate):
    values = {k: v for k, v in body.model_dump(exclude_unset=True).items() if v is not None}

    async with get_db(_get_db_path(request)) as db:
        await _get_tag_or_404(db, tag_id)
        try:
            # tags have no updated_at column
            await update_row(db, "tags", tag_id, values, touch=False)
        except aiosqlite.IntegrityError:
            raise ConflictError(f"Tag slug '{values.get('slug')}' already exists")
        await db.commit()
        tag = await _get_tag_or_404(db, tag_id)

    return success(dump(TagOut, tag))


@router.delete("/{tag_id}")
async def delete_tag(request: Request, tag_id: int):
    """Delete a tag that no material carries."""
    async with get_db(_get_db_path(request)) as db:
        tag = await _get_tag_or_404(db, tag_id)
        usage = await fetch_one(
            db, "SELECT COUNT(*) AS cnt FROM material_tags WHERE tag_id = ?", (tag_id,)
        )
        if usage["cnt"]:
            raise InUseError(f"Tag '{tag['slug']}' is used by {usage['cnt']} materials")
        try:
            await db.execute("DELETE FROM tags WHERE id = ?", (tag_id,))
        except aiosqlite.IntegrityError:
            raise InUseError(f"Tag '{tag['slug']}' is still referenced")
        await db.commit()

    logger.info("Deleted tag %s (%s)", tag_id, tag["slug"])
    return success(message="Tag deleted")
