"""Seed the catalog with the default admin, games, categories and tags.

Run with ``python -m hoyodb.seed``.  Existing rows are left untouched, so
seeding twice is harmless.
"""

import asyncio
import logging
from pathlib import Path

import aiosqlite

from hoyodb.config import settings
from hoyodb.database import fetch_one, get_db, init_db
from hoyodb.services.auth import get_password_hash

logger = logging.getLogger(__name__)

FALLBACK_ADMIN_PASSWORD = "admin123"

GAMES = [
    {"name": "Honkai: Star Rail", "slug": "starrail", "sort_order": 1, "is_active": 1},
    {"name": "Genshin Impact", "slug": "genshin", "sort_order": 2, "is_active": 0},
    {"name": "Zenless Zone Zero", "slug": "zzz", "sort_order": 3, "is_active": 0},
]

STARRAIL_CATEGORIES = [
    {"name": "Character Voice", "slug": "character-voice", "sort_order": 1},
    {"name": "BGM", "slug": "bgm", "sort_order": 2},
    {"name": "Battle Sound", "slug": "battle-sound", "sort_order": 3},
    {"name": "Character Art", "slug": "character-art", "sort_order": 4},
    {"name": "Scene Art", "slug": "scene-art", "sort_order": 5},
    {"name": "UI Assets", "slug": "ui-assets", "sort_order": 6},
    {"name": "Cutscene", "slug": "cutscene", "sort_order": 7},
    {"name": "Other", "slug": "other", "sort_order": 8},
]

TAGS = [
    {"name": "Trailblazer", "slug": "trailblazer", "type": "CHARACTER"},
    {"name": "March 7th", "slug": "march-7th", "type": "CHARACTER"},
    {"name": "Dan Heng", "slug": "dan-heng", "type": "CHARACTER"},
    {"name": "Himeko", "slug": "himeko", "type": "CHARACTER"},
    {"name": "Welt", "slug": "welt", "type": "CHARACTER"},
    {"name": "5-Star", "slug": "5-star", "type": "RARITY"},
    {"name": "4-Star", "slug": "4-star", "type": "RARITY"},
    {"name": "Physical", "slug": "physical", "type": "ELEMENT"},
    {"name": "Fire", "slug": "fire", "type": "ELEMENT"},
    {"name": "Ice", "slug": "ice", "type": "ELEMENT"},
    {"name": "Lightning", "slug": "thunder", "type": "ELEMENT"},
    {"name": "Wind", "slug": "wind", "type": "ELEMENT"},
    {"name": "Quantum", "slug": "quantum", "type": "ELEMENT"},
    {"name": "Imaginary", "slug": "imaginary", "type": "ELEMENT"},
]


async def ensure_admin(db: aiosqlite.Connection, username: str, password: str) -> bool:
    """Create the admin unless the username exists.  Returns True if created."""
    existing = await fetch_one(db, "SELECT id FROM admins WHERE username = ?", (username,))
    if existing is not None:
        return False
    await db.execute(
        "INSERT INTO admins (username, password_hash) VALUES (?, ?)",
        (username, get_password_hash(password)),
    )
    await db.commit()
    logger.info("Created admin %s", username)
    return True


async def seed(db_path: str | Path | None = None) -> None:
    await init_db(db_path)

    password = settings.DEFAULT_ADMIN_PASSWORD
    if not password:
        password = FALLBACK_ADMIN_PASSWORD
        logger.warning(
            "HOYODB_DEFAULT_ADMIN_PASSWORD is not set; using the built-in default. "
            "Change it before going to production."
        )

    async with get_db(db_path) as db:
        await ensure_admin(db, settings.DEFAULT_ADMIN_USERNAME, password)

        for game in GAMES:
            await db.execute(
                """
                INSERT OR IGNORE INTO games (name, slug, sort_order, is_active)
                VALUES (:name, :slug, :sort_order, :is_active)
                """,
                game,
            )
        starrail = await fetch_one(db, "SELECT id FROM games WHERE slug = 'starrail'")

        for cat in STARRAIL_CATEGORIES:
            await db.execute(
                """
                INSERT OR IGNORE INTO categories (game_id, name, slug, sort_order)
                VALUES (:game_id, :name, :slug, :sort_order)
                """,
                {"game_id": starrail["id"], **cat},
            )

        await db.executemany(
            "INSERT OR IGNORE INTO tags (name, slug, type) VALUES (:name, :slug, :type)",
            TAGS,
        )
        await db.commit()

    logger.info(
        "Seeded %d games, %d categories and %d tags",
        len(GAMES), len(STARRAIL_CATEGORIES), len(TAGS),
    )


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    asyncio.run(seed())
