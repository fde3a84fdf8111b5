"""Material persistence and filtered queries shared by public and admin routes."""

import logging
import math
from pathlib import Path

import aiosqlite

from hoyodb.database import fetch_all, fetch_one, get_db
from hoyodb.exceptions import ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

# Fixed orderings; ``id`` breaks ties so pages stay stable
MATERIAL_SORTS: dict[str, str] = {
    "latest": "m.upload_time DESC, m.id DESC",
    "popular": "m.download_count DESC, m.id DESC",
    "created": "m.created_at DESC, m.id DESC",
}

MATERIAL_COLUMNS = (
    "title", "description", "file_path", "file_size", "file_type",
    "duration", "resolution", "version", "is_featured", "status",
)


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit > 0 else 0


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _unique(ids: list[int]) -> list[int]:
    return list(dict.fromkeys(ids))


# ---------------------------------------------------------------------------
# Relations
# ---------------------------------------------------------------------------


async def attach_relations(
    db: aiosqlite.Connection,
    materials: list[dict],
    include_tags: bool = True,
) -> list[dict]:
    """Populate ``game``, ``category`` and (optionally) ``tags`` in place."""
    if not materials:
        return materials

    game_ids = _unique([m["game_id"] for m in materials])
    cat_ids = _unique([m["category_id"] for m in materials])
    mat_ids = [m["id"] for m in materials]

    placeholders = ", ".join("?" for _ in game_ids)
    games = {
        g["id"]: g
        for g in await fetch_all(
            db, f"SELECT * FROM games WHERE id IN ({placeholders})", game_ids
        )
    }
    placeholders = ", ".join("?" for _ in cat_ids)
    categories = {
        c["id"]: c
        for c in await fetch_all(
            db, f"SELECT * FROM categories WHERE id IN ({placeholders})", cat_ids
        )
    }

    tags_by_material: dict[int, list[dict]] = {}
    if include_tags:
        placeholders = ", ".join("?" for _ in mat_ids)
        rows = await fetch_all(
            db,
            f"""
            SELECT mt.material_id, t.* FROM tags t
            JOIN material_tags mt ON mt.tag_id = t.id
            WHERE mt.material_id IN ({placeholders})
            ORDER BY t.name
            """,
            mat_ids,
        )
        for row in rows:
            material_id = row.pop("material_id")
            tags_by_material.setdefault(material_id, []).append(row)

    for m in materials:
        m["game"] = games.get(m["game_id"])
        m["category"] = categories.get(m["category_id"])
        if include_tags:
            m["tags"] = tags_by_material.get(m["id"], [])
    return materials


async def fetch_material_with_relations(
    db: aiosqlite.Connection,
    material_id: int,
    published_only: bool = False,
) -> dict | None:
    """Load one material with its game, category and tags, or None."""
    sql = "SELECT * FROM materials WHERE id = ?"
    if published_only:
        sql += " AND status = 'PUBLISHED'"
    row = await fetch_one(db, sql, (material_id,))
    if row is None:
        return None
    await attach_relations(db, [row])
    return row


# ---------------------------------------------------------------------------
# Filtered listing
# ---------------------------------------------------------------------------


def build_material_filters(
    game_id: int | None = None,
    category_id: int | None = None,
    tag_id: int | None = None,
    search: str | None = None,
    status: str | None = None,
    featured: bool | None = None,
) -> tuple[str, list]:
    """Return a ``WHERE`` clause (possibly empty) and its parameters."""
    where_clauses: list[str] = []
    params: list = []

    if game_id is not None:
        where_clauses.append("m.game_id = ?")
        params.append(game_id)

    if category_id is not None:
        where_clauses.append("m.category_id = ?")
        params.append(category_id)

    if tag_id is not None:
        where_clauses.append(
            "m.id IN (SELECT mt.material_id FROM material_tags mt WHERE mt.tag_id = ?)"
        )
        params.append(tag_id)

    if status is not None:
        where_clauses.append("m.status = ?")
        params.append(status)

    if featured is not None:
        where_clauses.append("m.is_featured = ?")
        params.append(1 if featured else 0)

    search = (search or "").strip()
    if search:
        pattern = _like_pattern(search.casefold())
        where_clauses.append(
            "(casefold(m.title) LIKE ? ESCAPE '\\'"
            " OR casefold(COALESCE(m.description, '')) LIKE ? ESCAPE '\\')"
        )
        params.extend([pattern, pattern])

    where_sql = ""
    if where_clauses:
        where_sql = "WHERE " + " AND ".join(where_clauses)
    return where_sql, params


async def list_materials(
    db: aiosqlite.Connection,
    page: int = 1,
    limit: int = 20,
    sort: str = "latest",
    **filters,
) -> dict:
    """Return one page of materials plus totals.

    A page past the end yields an empty ``items`` list, not an error.
    """
    where_sql, params = build_material_filters(**filters)
    order_sql = MATERIAL_SORTS.get(sort, MATERIAL_SORTS["latest"])

    row = await fetch_one(db, f"SELECT COUNT(*) AS cnt FROM materials m {where_sql}", params)
    total = row["cnt"]

    rows = await fetch_all(
        db,
        f"""
        SELECT m.* FROM materials m
        {where_sql}
        ORDER BY {order_sql}
        LIMIT ? OFFSET ?
        """,
        params + [limit, (page - 1) * limit],
    )
    await attach_relations(db, rows)

    return {
        "items": rows,
        "page": page,
        "page_size": limit,
        "total_count": total,
        "total_pages": total_pages(total, limit),
    }


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


async def _check_tags_exist(db: aiosqlite.Connection, tag_ids: list[int]) -> None:
    if not tag_ids:
        return
    placeholders = ", ".join("?" for _ in tag_ids)
    rows = await fetch_all(db, f"SELECT id FROM tags WHERE id IN ({placeholders})", tag_ids)
    missing = set(tag_ids) - {r["id"] for r in rows}
    if missing:
        raise NotFoundError(f"Tag(s) not found: {', '.join(str(i) for i in sorted(missing))}")


async def replace_material_tags(
    db: aiosqlite.Connection,
    material_id: int,
    tag_ids: list[int],
) -> None:
    """Drop every tag link of a material, then link exactly *tag_ids*.

    Not committed; the caller owns the transaction.
    """
    tag_ids = _unique(tag_ids)
    await _check_tags_exist(db, tag_ids)
    await db.execute("DELETE FROM material_tags WHERE material_id = ?", (material_id,))
    await db.executemany(
        "INSERT INTO material_tags (material_id, tag_id) VALUES (?, ?)",
        [(material_id, tag_id) for tag_id in tag_ids],
    )


async def insert_material(
    db: aiosqlite.Connection,
    game_id: int,
    category_id: int,
    fields: dict,
    tag_ids: list[int] | None = None,
) -> int:
    """Insert a material and its tag links, then commit.

    *fields* holds the optional columns from MATERIAL_COLUMNS.  The game,
    the category (which must belong to that game) and every tag must exist.
    """
    game = await fetch_one(db, "SELECT id FROM games WHERE id = ?", (game_id,))
    if game is None:
        raise NotFoundError(f"Game {game_id} not found")

    category = await fetch_one(
        db, "SELECT id, game_id FROM categories WHERE id = ?", (category_id,)
    )
    if category is None:
        raise NotFoundError(f"Category {category_id} not found")
    if category["game_id"] != game_id:
        raise ValidationError(f"Category {category_id} does not belong to game {game_id}")

    columns = ["game_id", "category_id"]
    values: list = [game_id, category_id]
    for col in MATERIAL_COLUMNS:
        if col in fields and fields[col] is not None:
            columns.append(col)
            values.append(int(fields[col]) if col == "is_featured" else fields[col])

    placeholders = ", ".join("?" for _ in columns)
    try:
        cursor = await db.execute(
            f"INSERT INTO materials ({', '.join(columns)}) VALUES ({placeholders})",
            values,
        )
        material_id = cursor.lastrowid
        if tag_ids:
            await replace_material_tags(db, material_id, tag_ids)
    except aiosqlite.IntegrityError as e:
        raise ConflictError(f"Material could not be saved: {e}") from e

    await db.commit()
    return material_id


async def create_material(
    db_path: str | Path,
    game_id: int,
    category_id: int,
    fields: dict,
    tag_ids: list[int] | None = None,
) -> dict:
    """Insert a material in its own transaction and return it with relations."""
    async with get_db(db_path) as db:
        material_id = await insert_material(db, game_id, category_id, fields, tag_ids)
        return await fetch_material_with_relations(db, material_id)


async def record_download(
    db_path: str | Path,
    material_id: int,
    ip: str,
    user_agent: str,
) -> int:
    """Bump the download counter and append a log row in one transaction.

    Only published materials count.  Returns the new counter value.
    """
    async with get_db(db_path) as db:
        cursor = await db.execute(
            "UPDATE materials SET download_count = download_count + 1 "
            "WHERE id = ? AND status = 'PUBLISHED'",
            (material_id,),
        )
        if cursor.rowcount == 0:
            raise NotFoundError(f"Material {material_id} not found")

        await db.execute(
            "INSERT INTO download_logs (material_id, ip, user_agent) VALUES (?, ?, ?)",
            (material_id, ip, user_agent),
        )
        await db.commit()

        row = await fetch_one(
            db, "SELECT download_count FROM materials WHERE id = ?", (material_id,)
        )
    return row["download_count"]
