"""Admin API routes for game management."""

import logging

import aiosqlite
from fastapi import APIRouter, Depends, Request

from hoyodb.api._helpers import _get_db_path, success
from hoyodb.database import fetch_all, fetch_one, get_db, update_row
from hoyodb.exceptions import ConflictError, InUseError, NotFoundError
from hoyodb.models.schemas import GameCreate, GameOut, GameUpdate, dump
from hoyodb.services.auth import require_admin

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/admin/games",
    tags=["admin"],
    dependencies=[Depends(require_admin)],
)


async def _get_game_or_404(db: aiosqlite.Connection, game_id: int) -> dict:
    game = await fetch_one(db, "SELECT * FROM games WHERE id = ?", (game_id,))
    if game is None:
        raise NotFoundError(f"Game {game_id} not found")
    return game


# ---------------------------------------------------------------------------
# List games (including inactive)
# ---------------------------------------------------------------------------


@router.get("")
async def list_games(request: Request):
    """Every game with its material and category counts."""
    async with get_db(_get_db_path(request)) as db:
        rows = await fetch_all(
            db,
            """
            SELECT g.*,
                (SELECT COUNT(*) FROM materials m WHERE m.game_id = g.id) AS material_count,
                (SELECT COUNT(*) FROM categories c WHERE c.game_id = g.id) AS category_count
            FROM games g
            ORDER BY g.sort_order, g.id
            """,
        )
    return success([dump(GameOut, r) for r in rows])


# ---------------------------------------------------------------------------
# Create / update / delete
# ---------------------------------------------------------------------------


@router.post("", status_code=201)
async def create_game(request: Request, body: GameCreate):
    async with get_db(_get_db_path(request)) as db:
        try:
            cursor = await db.execute(
                """
                INSERT INTO games (name, slug, icon, sort_order, is_active)
                VALUES (?, ?, ?, ?, ?)
                """,
                (body.name, body.slug, body.icon, body.sort_order, int(body.is_active)),
            )
        except aiosqlite.IntegrityError:
            raise ConflictError(f"Game slug '{body.slug}' already exists")
        await db.commit()
        game = await _get_game_or_404(db, cursor.lastrowid)

    logger.info("Created game %s (%s)", game["id"], game["slug"])
    return success(dump(GameOut, game))


@router.put("/{game_id}")
async def update_game(request: Request, game_id: int, body: GameUpdate):
    """Partial update; fields missing from the body are left alone."""
    values = {k: v for k, v in body.model_dump(exclude_unset=True).items() if v is not None}
    if "is_active" in values:
        values["is_active"] = int(values["is_active"])

    async with get_db(_get_db_path(request)) as db:
        await _get_game_or_404(db, game_id)
        try:
            await update_row(db, "games", game_id, values)
        except aiosqlite.IntegrityError:
            raise ConflictError(f"Game slug '{values.get('slug')}' already exists")
        await db.commit()
        game = await _get_game_or_404(db, game_id)

    return success(dump(GameOut, game))


@router.delete("/{game_id}")
async def delete_game(request: Request, game_id: int):
    """Delete a game that no category or material references."""
    async with get_db(_get_db_path(request)) as db:
        game = await _get_game_or_404(db, game_id)
        usage = await fetch_one(
            db,
            """
            SELECT
                (SELECT COUNT(*) FROM categories WHERE game_id = ?) AS categories,
                (SELECT COUNT(*) FROM materials WHERE game_id = ?) AS materials
            """,
            (game_id, game_id),
        )
        if usage["categories"] or usage["materials"]:
            raise InUseError(
                f"Game '{game['slug']}' still has {usage['categories']} categories "
                f"and {usage['materials']} materials"
            )
        try:
            await db.execute("DELETE FROM games WHERE id = ?", (game_id,))
        except aiosqlite.IntegrityError:
            raise InUseError(f"Game '{game['slug']}' is still referenced")
        await db.commit()

    logger.info("Deleted game %s (%s)", game_id, game["slug"])
    return success(message="Game deleted")
