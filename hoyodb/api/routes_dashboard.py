"""Admin dashboard statistics."""

from fastapi import APIRouter, Depends, Request

from hoyodb.api._helpers import _get_db_path, success
from hoyodb.database import fetch_all, fetch_one, get_db
from hoyodb.models.schemas import MaterialOut, dump
from hoyodb.services.auth import require_admin
from hoyodb.services.catalog import attach_relations

router = APIRouter(
    prefix="/api/admin/dashboard",
    tags=["admin"],
    dependencies=[Depends(require_admin)],
)

TOP_N = 5


@router.get("/stats")
async def dashboard_stats(request: Request):
    """Aggregate counts plus the newest and most downloaded materials."""
    async with get_db(_get_db_path(request)) as db:
        totals = await fetch_one(
            db,
            """
            SELECT
                (SELECT COUNT(*) FROM materials) AS total_materials,
                (SELECT COALESCE(SUM(download_count), 0) FROM materials) AS total_downloads,
                (SELECT COUNT(*) FROM games) AS total_games,
                (SELECT COUNT(*) FROM categories) AS total_categories,
                (SELECT COUNT(*) FROM tags) AS total_tags
            """,
        )
        recent = await fetch_all(
            db,
            "SELECT * FROM materials ORDER BY created_at DESC, id DESC LIMIT ?",
            (TOP_N,),
        )
        popular = await fetch_all(
            db,
            "SELECT * FROM materials ORDER BY download_count DESC, id DESC LIMIT ?",
            (TOP_N,),
        )
        await attach_relations(db, recent, include_tags=False)
        await attach_relations(db, popular, include_tags=False)

    return success(
        {
            "stats": {
                "totalMaterials": totals["total_materials"],
                "totalDownloads": totals["total_downloads"],
                "totalGames": totals["total_games"],
                "totalCategories": totals["total_categories"],
                "totalTags": totals["total_tags"],
            },
            "recentMaterials": [dump(MaterialOut, m) for m in recent],
            "popularMaterials": [dump(MaterialOut, m) for m in popular],
        }
    )
