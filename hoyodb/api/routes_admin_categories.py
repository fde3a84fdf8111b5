"""Admin API routes for category management.

Categories form a single-level hierarchy: a parent must be a top-level
category of the same game.
"""

import logging

import aiosqlite
from fastapi import APIRouter, Depends, Query, Request

from hoyodb.api._helpers import _get_db_path, success
from hoyodb.database import fetch_all, fetch_one, get_db, update_row
from hoyodb.exceptions import ConflictError, InUseError, NotFoundError, ValidationError
from hoyodb.models.schemas import CategoryCreate, CategoryOut, CategoryUpdate, GameOut, dump
from hoyodb.services.auth import require_admin

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/admin/categories",
    tags=["admin"],
    dependencies=[Depends(require_admin)],
)


async def _get_category_or_404(db: aiosqlite.Connection, category_id: int) -> dict:
    category = await fetch_one(db, "SELECT * FROM categories WHERE id = ?", (category_id,))
    if category is None:
        raise NotFoundError(f"Category {category_id} not found")
    return category


async def _check_parent(
    db: aiosqlite.Connection,
    parent_id: int,
    game_id: int,
    category_id: int | None = None,
) -> None:
    if category_id is not None and parent_id == category_id:
        raise ValidationError("A category cannot be its own parent")
    parent = await fetch_one(db, "SELECT * FROM categories WHERE id = ?", (parent_id,))
    if parent is None:
        raise NotFoundError(f"Parent category {parent_id} not found")
    if parent["game_id"] != game_id:
        raise ValidationError("Parent category belongs to a different game")
    if parent["parent_id"] is not None:
        raise ValidationError("Parent category must be a top-level category")
    if category_id is not None:
        child = await fetch_one(
            db, "SELECT id FROM categories WHERE parent_id = ? LIMIT 1", (category_id,)
        )
        if child is not None:
            raise ValidationError("A category with subcategories cannot get a parent")


# ---------------------------------------------------------------------------
# List categories
# ---------------------------------------------------------------------------


@router.get("")
async def list_categories(
    request: Request,
    game_id: int | None = Query(None, alias="gameId"),
):
    """List categories with their game, parent and material count."""
    where_sql = ""
    params: list = []
    if game_id is not None:
        where_sql = "WHERE c.game_id = ?"
        params.append(game_id)

    async with get_db(_get_db_path(request)) as db:
        rows = await fetch_all(
            db,
            f"""
            SELECT c.*,
                (SELECT COUNT(*) FROM materials m WHERE m.category_id = c.id) AS material_count
            FROM categories c
            {where_sql}
            ORDER BY c.game_id, c.sort_order, c.id
            """,
            params,
        )
        games = {g["id"]: g for g in await fetch_all(db, "SELECT * FROM games")}
        by_id = {r["id"]: r for r in rows}
        missing_parents = {
            r["parent_id"] for r in rows
            if r["parent_id"] is not None and r["parent_id"] not in by_id
        }
        for parent_id in missing_parents:
            by_id[parent_id] = await fetch_one(
                db, "SELECT * FROM categories WHERE id = ?", (parent_id,)
            )

    data = []
    for r in rows:
        item = dump(CategoryOut, r)
        game = games.get(r["game_id"])
        item["game"] = dump(GameOut, game) if game else None
        parent = by_id.get(r["parent_id"]) if r["parent_id"] is not None else None
        item["parent"] = dump(CategoryOut, _plain(parent)) if parent else None
        data.append(item)
    return success(data)


def _plain(category: dict) -> dict:
    """Drop aggregate columns so a nested parent stays a bare row."""
    return {k: v for k, v in category.items() if k != "material_count"}


# ---------------------------------------------------------------------------
# Create / update / delete
# ---------------------------------------------------------------------------


@router.post("", status_code=201)
async def create_category(request: Request, body: CategoryCreate):
    async with get_db(_get_db_path(request)) as db:
        game = await fetch_one(db, "SELECT id FROM games WHERE id = ?", (body.game_id,))
        if game is None:
            raise NotFoundError(f"Game {body.game_id} not found")
        if body.parent_id is not None:
            await _check_parent(db, body.parent_id, body.game_id)

        try:
            cursor = await db.execute(
                """
                INSERT INTO categories (game_id, name, slug, parent_id, sort_order)
                VALUES (?, ?, ?, ?, ?)
                """,
                (body.game_id, body.name, body.slug, body.parent_id, body.sort_order),
            )
        except aiosqlite.IntegrityError:
            raise ConflictError(f"Category slug '{body.slug}' already exists in this game")
        await db.commit()
        category = await _get_category_or_404(db, cursor.lastrowid)

    logger.info("Created category %s (%s)", category["id"], category["slug"])
    return success(dump(CategoryOut, category))


@router.put("/{category_id}")
async def update_category(request: Request, category_id: int, body: CategoryUpdate):
    """Partial update.  ``parentId: null`` makes the category top-level."""
    values = body.model_dump(exclude_unset=True)
    values = {k: v for k, v in values.items() if v is not None or k == "parent_id"}

    async with get_db(_get_db_path(request)) as db:
        category = await _get_category_or_404(db, category_id)
        if values.get("parent_id") is not None:
            await _check_parent(db, values["parent_id"], category["game_id"], category_id)
        try:
            await update_row(db, "categories", category_id, values)
        except aiosqlite.IntegrityError:
            raise ConflictError(f"Category slug '{values.get('slug')}' already exists in this game")
        await db.commit()
        category = await _get_category_or_404(db, category_id)

    return success(dump(CategoryOut, category))


@router.delete("/{category_id}")
async def delete_category(request: Request, category_id: int):
    """Delete a category with no materials and no subcategories."""
    async with get_db(_get_db_path(request)) as db:
        category = await _get_category_or_404(db, category_id)
        usage = await fetch_one(
            db,
            """
            SELECT
                (SELECT COUNT(*) FROM materials WHERE category_id = ?) AS materials,
                (SELECT COUNT(*) FROM categories WHERE parent_id = ?) AS children
            """,
            (category_id, category_id),
        )
        if usage["materials"] or usage["children"]:
            raise InUseError(
                f"Category '{category['slug']}' still has {usage['materials']} materials "
                f"and {usage['children']} subcategories"
            )
        try:
            await db.execute("DELETE FROM categories WHERE id = ?", (category_id,))
        except aiosqlite.IntegrityError:
            raise InUseError(f"Category '{category['slug']}' is still referenced")
        await db.commit()

    logger.info("Deleted category %s (%s)", category_id, category["slug"])
    return success(message="Category deleted")
