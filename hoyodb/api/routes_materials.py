"""Public API routes for browsing and downloading materials.

Only PUBLISHED materials are ever visible here.
"""

import logging
from typing import Literal

from fastapi import APIRouter, Query, Request

from hoyodb.api._helpers import _get_db_path, pagination, success
from hoyodb.database import get_db
from hoyodb.exceptions import NotFoundError
from hoyodb.models.schemas import MaterialOut, dump
from hoyodb.services.catalog import fetch_material_with_relations, list_materials, record_download

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/materials", tags=["materials"])


@router.get("")
async def list_public_materials(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    game_id: int | None = Query(None, alias="gameId"),
    category_id: int | None = Query(None, alias="categoryId"),
    tag_id: int | None = Query(None, alias="tagId"),
    search: str | None = None,
    featured: bool | None = None,
    sort: Literal["latest", "popular"] = "latest",
):
    """Filtered, paginated material list.

    A ``status`` query parameter is not accepted; the status filter is
    always PUBLISHED.
    """
    async with get_db(_get_db_path(request)) as db:
        result = await list_materials(
            db,
            page=page,
            limit=limit,
            sort=sort,
            game_id=game_id,
            category_id=category_id,
            tag_id=tag_id,
            search=search,
            featured=featured,
            status="PUBLISHED",
        )

    return success(
        [dump(MaterialOut, m) for m in result["items"]],
        pagination=pagination(page, limit, result["total_count"]),
    )


@router.get("/{material_id}")
async def get_public_material(request: Request, material_id: int):
    async with get_db(_get_db_path(request)) as db:
        material = await fetch_material_with_relations(db, material_id, published_only=True)
    if material is None:
        raise NotFoundError(f"Material {material_id} not found")
    return success(dump(MaterialOut, material))


@router.post("/{material_id}/download")
async def download_material(request: Request, material_id: int):
    """Count a download and append it to the download log."""
    ip = request.client.host if request.client else "unknown"
    user_agent = request.headers.get("user-agent", "")
    count = await record_download(_get_db_path(request), material_id, ip, user_agent)
    return success({"downloadCount": count}, message="Download recorded")
