"""Tests for hoyodb.database module."""

import aiosqlite
import pytest

from hoyodb.database import fetch_all, fetch_one, get_db, init_db, update_row
from tests.conftest import insert_category, insert_game, insert_material, insert_tag


@pytest.mark.asyncio
async def test_init_db_creates_tables(db_path):
    """init_db should create all required tables."""
    await init_db(db_path)

    async with aiosqlite.connect(db_path) as conn:
        cursor = await conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
        )
        tables = [row[0] for row in await cursor.fetchall()]

    for table in ("games", "categories", "tags", "materials", "material_tags",
                  "download_logs", "admins"):
        assert table in tables


@pytest.mark.asyncio
async def test_init_db_creates_parent_directory(tmp_path):
    """init_db should create parent directories if they don't exist."""
    nested_path = str(tmp_path / "a" / "b" / "test.db")
    await init_db(nested_path)

    async with aiosqlite.connect(nested_path) as conn:
        cursor = await conn.execute("SELECT COUNT(*) FROM games")
        row = await cursor.fetchone()
    assert row[0] == 0


@pytest.mark.asyncio
async def test_init_db_is_idempotent(db_path):
    await init_db(db_path)
    await init_db(db_path)

    async with get_db(db_path) as conn:
        row = await fetch_one(conn, "SELECT COUNT(*) AS cnt FROM materials")
    assert row["cnt"] == 0


@pytest.mark.asyncio
async def test_get_db_returns_dict_rows(db):
    async with get_db(db) as conn:
        row = await fetch_one(conn, "SELECT 1 AS one")
    assert row == {"one": 1}


@pytest.mark.asyncio
async def test_get_db_enables_foreign_keys(db):
    async with get_db(db) as conn:
        row = await fetch_one(conn, "PRAGMA foreign_keys")
    assert row["foreign_keys"] == 1


@pytest.mark.asyncio
async def test_uncommitted_work_is_discarded(db):
    async with get_db(db) as conn:
        await conn.execute("INSERT INTO games (name, slug) VALUES ('x', 'x')")

    async with get_db(db) as conn:
        assert await fetch_all(conn, "SELECT * FROM games") == []


@pytest.mark.asyncio
class TestConstraints:
    async def test_game_slug_unique(self, db):
        await insert_game(db, slug="starrail")
        with pytest.raises(aiosqlite.IntegrityError):
            await insert_game(db, name="Other", slug="starrail")

    async def test_category_slug_unique_per_game(self, db):
        starrail = await insert_game(db, slug="starrail")
        genshin = await insert_game(db, name="Genshin", slug="genshin")
        await insert_category(db, starrail, slug="bgm")
        # Same slug under another game is fine
        await insert_category(db, genshin, slug="bgm")
        with pytest.raises(aiosqlite.IntegrityError):
            await insert_category(db, starrail, name="BGM 2", slug="bgm")

    async def test_tag_slug_globally_unique(self, db):
        await insert_tag(db, slug="fire")
        with pytest.raises(aiosqlite.IntegrityError):
            await insert_tag(db, name="Fire 2", slug="fire")

    async def test_tag_type_checked(self, db):
        with pytest.raises(aiosqlite.IntegrityError):
            await insert_tag(db, slug="bad", type="WEAPON")

    async def test_large_file_size_kept_exactly(self, db):
        game_id = await insert_game(db)
        category_id = await insert_category(db, game_id)
        size = 2 ** 53 + 1
        material_id = await insert_material(db, game_id, category_id, file_size=size)

        async with get_db(db) as conn:
            row = await fetch_one(
                conn, "SELECT file_size FROM materials WHERE id = ?", (material_id,)
            )
        assert row["file_size"] == size

    async def test_referenced_game_cannot_be_deleted(self, db):
        game_id = await insert_game(db)
        await insert_category(db, game_id)

        async with get_db(db) as conn:
            with pytest.raises(aiosqlite.IntegrityError):
                await conn.execute("DELETE FROM games WHERE id = ?", (game_id,))

    async def test_material_delete_cascades(self, db):
        game_id = await insert_game(db)
        category_id = await insert_category(db, game_id)
        tag_id = await insert_tag(db)
        material_id = await insert_material(db, game_id, category_id, tag_ids=[tag_id])

        async with get_db(db) as conn:
            await conn.execute(
                "INSERT INTO download_logs (material_id, ip) VALUES (?, '127.0.0.1')",
                (material_id,),
            )
            await conn.execute("DELETE FROM materials WHERE id = ?", (material_id,))
            await conn.commit()
            links = await fetch_all(conn, "SELECT * FROM material_tags")
            logs = await fetch_all(conn, "SELECT * FROM download_logs")
        assert links == []
        assert logs == []


@pytest.mark.asyncio
async def test_update_row_touches_updated_at(db):
    game_id = await insert_game(db)
    async with get_db(db) as conn:
        await conn.execute(
            "UPDATE games SET updated_at = '2000-01-01 00:00:00' WHERE id = ?", (game_id,)
        )
        await update_row(conn, "games", game_id, {"name": "Renamed"})
        await conn.commit()
        row = await fetch_one(conn, "SELECT * FROM games WHERE id = ?", (game_id,))
    assert row["name"] == "Renamed"
    assert row["updated_at"] != "2000-01-01 00:00:00"
