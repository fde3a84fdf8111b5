import aiosqlite
from contextlib import asynccontextmanager
from pathlib import Path
from hoyodb.config import settings
from hoyodb.database_schema import SCHEMA_SQL

DB_PATH: Path = settings.DATABASE_PATH


def set_db_path(path: str | Path) -> None:
    """Override the default database path at runtime."""
    global DB_PATH
    DB_PATH = Path(path)

# ---------------------------------------------------------------------------
# Helper: dict row factory
# ---------------------------------------------------------------------------


def _dict_row_factory(cursor: aiosqlite.Cursor, row: tuple) -> dict:
    """Convert a sqlite3 Row into a plain dict."""
    columns = [description[0] for description in cursor.description]
    return dict(zip(columns, row))


def _casefold(value):
    """SQL ``casefold(x)``; built-in LIKE only folds ASCII letters."""
    return value.casefold() if isinstance(value, str) else value


# ---------------------------------------------------------------------------
# Database access helpers
# ---------------------------------------------------------------------------


@asynccontextmanager
async def get_db(db_path: str | Path | None = None):
    """Async context manager that yields an aiosqlite connection.

    Uses *db_path* when given, otherwise the module-level ``DB_PATH``.
    Anything not committed before the block exits is rolled back.

    Usage:
        async with get_db(db_path) as db:
            await db.execute(...)
    """
    db = await aiosqlite.connect(str(db_path or DB_PATH))
    db.row_factory = _dict_row_factory
    await db.execute("PRAGMA journal_mode=WAL")
    await db.execute("PRAGMA foreign_keys=ON")
    await db.create_function("casefold", 1, _casefold, deterministic=True)
    try:
        yield db
    finally:
        await db.close()


async def init_db(db_path: str | Path | None = None) -> None:
    """Create all tables and indexes.

    Ensures the parent directory for the database file exists.  Safe to
    call repeatedly; every statement is ``IF NOT EXISTS``.
    """
    if db_path is not None:
        set_db_path(db_path)
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)

    async with get_db() as db:
        await db.executescript(SCHEMA_SQL)
        await db.commit()


async def fetch_one(db: aiosqlite.Connection, sql: str, params=()) -> dict | None:
    """Run *sql* and return the first row, or None."""
    cursor = await db.execute(sql, params)
    return await cursor.fetchone()


async def fetch_all(db: aiosqlite.Connection, sql: str, params=()) -> list[dict]:
    """Run *sql* and return every row."""
    cursor = await db.execute(sql, params)
    return await cursor.fetchall()


async def update_row(
    db: aiosqlite.Connection,
    table: str,
    row_id: int,
    values: dict,
    touch: bool = True,
) -> None:
    """UPDATE the columns in *values* for one row; not committed.

    *table* and the keys of *values* must come from code, never from
    request data.  With *touch*, ``updated_at`` is refreshed as well.
    """
    assignments = [f"{col} = ?" for col in values]
    if touch:
        assignments.append("updated_at = CURRENT_TIMESTAMP")
    if not assignments:
        return
    await db.execute(
        f"UPDATE {table} SET {', '.join(assignments)} WHERE id = ?",
        [*values.values(), row_id],
    )
