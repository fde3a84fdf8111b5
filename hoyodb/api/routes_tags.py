"""Public API routes for tags."""

from fastapi import APIRouter, Request

from hoyodb.api._helpers import _get_db_path, success
from hoyodb.database import fetch_all, fetch_one, get_db
from hoyodb.database_schema import TAG_TYPES
from hoyodb.exceptions import NotFoundError, ValidationError
from hoyodb.models.schemas import MaterialOut, TagOut, dump
from hoyodb.services.catalog import attach_relations

router = APIRouter(prefix="/api/tags", tags=["tags"])

TAG_MATERIAL_LIMIT = 20


@router.get("")
async def list_tags(request: Request, type: str | None = None):
    """List tags alphabetically, optionally of a single type."""
    sql = "SELECT * FROM tags"
    params: list = []
    if type:
        if type not in TAG_TYPES:
            raise ValidationError(f"'type' must be one of {', '.join(TAG_TYPES)}")
        sql += " WHERE type = ?"
        params.append(type)
    sql += " ORDER BY name"

    async with get_db(_get_db_path(request)) as db:
        rows = await fetch_all(db, sql, params)
    return success([dump(TagOut, r) for r in rows])


@router.get("/{slug}")
async def get_tag(request: Request, slug: str):
    """One tag with up to 20 of its published materials."""
    async with get_db(_get_db_path(request)) as db:
        tag = await fetch_one(db, "SELECT * FROM tags WHERE slug = ?", (slug,))
        if tag is None:
            raise NotFoundError(f"Tag '{slug}' not found")

        materials = await fetch_all(
            db,
            """
            SELECT m.* FROM materials m
            JOIN material_tags mt ON mt.material_id = m.id
            WHERE mt.tag_id = ? AND m.status = 'PUBLISHED'
            ORDER BY m.upload_time DESC, m.id DESC
            LIMIT ?
            """,
            (tag["id"], TAG_MATERIAL_LIMIT),
        )
        await attach_relations(db, materials, include_tags=False)

    data = dump(TagOut, tag)
    data["materials"] = [dump(MaterialOut, m) for m in materials]
    return success(data)
