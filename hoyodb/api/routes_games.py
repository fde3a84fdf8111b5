"""Public API routes for games."""

from fastapi import APIRouter, Request

from hoyodb.api._helpers import _get_db_path, success
from hoyodb.database import fetch_all, fetch_one, get_db
from hoyodb.exceptions import NotFoundError
from hoyodb.models.schemas import CategoryOut, GameOut, dump

router = APIRouter(prefix="/api/games", tags=["games"])


@router.get("")
async def list_games(request: Request):
    """List active games in display order."""
    async with get_db(_get_db_path(request)) as db:
        rows = await fetch_all(
            db, "SELECT * FROM games WHERE is_active = 1 ORDER BY sort_order, id"
        )
    return success([dump(GameOut, r) for r in rows])


@router.get("/{slug}")
async def get_game(request: Request, slug: str):
    """One game with its top-level categories."""
    async with get_db(_get_db_path(request)) as db:
        game = await fetch_one(db, "SELECT * FROM games WHERE slug = ?", (slug,))
        if game is None:
            raise NotFoundError(f"Game '{slug}' not found")
        categories = await fetch_all(
            db,
            """
            SELECT * FROM categories
            WHERE game_id = ? AND parent_id IS NULL
            ORDER BY sort_order, id
            """,
            (game["id"],),
        )

    data = dump(GameOut, game)
    data["categories"] = [dump(CategoryOut, c) for c in categories]
    return success(data)
