"""Shared fixtures for the HOYODB test suite."""

import os

import aiosqlite
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from hoyodb.database import init_db
from hoyodb.exceptions import ObjectStoreError


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture
def db_path(tmp_path):
    """Provide a temporary database path."""
    return str(tmp_path / "test.db")


@pytest_asyncio.fixture
async def db(db_path):
    """Initialize a fresh test database and yield the path."""
    await init_db(db_path)
    yield db_path


class FakeObjectStore:
    """In-memory stand-in for WebDAVClient.

    Records every call as ``(method, *args)`` and can be told to fail
    uploads, deletes or the connection check.
    """

    public_url = "http://files.test/d/hoyodb"

    def __init__(self):
        self.files: dict[tuple[str, str], bytes] = {}
        self.calls: list[tuple] = []
        self.fail_upload = False
        self.fail_delete = False
        self.connected = True
        self.storage: dict | None = {"used": 1536, "available": 1024 ** 3}

    def _key(self, remote_path: str, filename: str) -> tuple[str, str]:
        return remote_path.strip("/"), filename

    def calls_to(self, method: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == method]

    async def upload_file(self, data: bytes, remote_path: str, filename: str) -> str:
        self.calls.append(("upload_file", remote_path, filename))
        if self.fail_upload:
            raise ObjectStoreError("WebDAV PUT returned 507")
        self.files[self._key(remote_path, filename)] = data
        return f"{self.public_url}/{remote_path.strip('/')}/{filename}"

    async def delete_file(self, remote_path: str, filename: str) -> None:
        self.calls.append(("delete_file", remote_path, filename))
        if self.fail_delete:
            raise ObjectStoreError("WebDAV DELETE returned 500")
        self.files.pop(self._key(remote_path, filename), None)

    async def list_directory(self, remote_path: str = "") -> list[dict]:
        self.calls.append(("list_directory", remote_path))
        prefix = remote_path.strip("/")
        return [
            {
                "name": name,
                "type": "file",
                "size": len(data),
                "lastModified": None,
                "path": f"/{directory}/{name}",
                "mimeType": None,
            }
            for (directory, name), data in self.files.items()
            if directory == prefix
        ]

    async def get_storage_info(self) -> dict | None:
        self.calls.append(("get_storage_info",))
        return self.storage

    async def check_connection(self) -> bool:
        self.calls.append(("check_connection",))
        return self.connected

    async def aclose(self) -> None:
        pass


@pytest.fixture
def fake_store():
    return FakeObjectStore()


@pytest_asyncio.fixture
async def test_app(tmp_path, fake_store):
    """Create a FastAPI test application with a temporary database."""
    db_file = tmp_path / "data" / "test.db"
    db_file.parent.mkdir(parents=True, exist_ok=True)

    os.environ["HOYODB_DATABASE_PATH"] = str(db_file)

    # The lifespan does not run under ASGITransport, so wire state by hand
    from hoyodb.main import app

    await init_db(str(db_file))
    app.state.db_path = str(db_file)
    app.state.object_store = fake_store

    yield app, str(db_file)

    os.environ.pop("HOYODB_DATABASE_PATH", None)


@pytest_asyncio.fixture
async def client(test_app):
    """Provide an async HTTP client for the test application."""
    app, db_path = test_app
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        ac._db_path = db_path  # Store for test convenience
        yield ac


@pytest_asyncio.fixture
async def auth_headers(test_app):
    """Create an admin and return headers carrying a valid token for it."""
    from hoyodb.database import fetch_one, get_db
    from hoyodb.seed import ensure_admin
    from hoyodb.services.auth import create_access_token

    _, db_path = test_app
    async with get_db(db_path) as conn:
        await ensure_admin(conn, "admin", "admin123")
        admin = await fetch_one(conn, "SELECT id FROM admins WHERE username = 'admin'")

    token = create_access_token(admin["id"], "admin")
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Row helpers
# ---------------------------------------------------------------------------


async def insert_game(
    db_path: str,
    name: str = "Honkai: Star Rail",
    slug: str = "starrail",
    sort_order: int = 0,
    is_active: bool = True,
) -> int:
    async with aiosqlite.connect(db_path) as conn:
        cursor = await conn.execute(
            "INSERT INTO games (name, slug, sort_order, is_active) VALUES (?, ?, ?, ?)",
            (name, slug, sort_order, int(is_active)),
        )
        await conn.commit()
        return cursor.lastrowid


async def insert_category(
    db_path: str,
    game_id: int,
    name: str = "Character Art",
    slug: str = "character-art",
    parent_id: int | None = None,
    sort_order: int = 0,
) -> int:
    async with aiosqlite.connect(db_path) as conn:
        cursor = await conn.execute(
            """
            INSERT INTO categories (game_id, name, slug, parent_id, sort_order)
            VALUES (?, ?, ?, ?, ?)
            """,
            (game_id, name, slug, parent_id, sort_order),
        )
        await conn.commit()
        return cursor.lastrowid


async def insert_tag(
    db_path: str,
    name: str = "March 7th",
    slug: str = "march-7th",
    type: str = "CHARACTER",
) -> int:
    async with aiosqlite.connect(db_path) as conn:
        cursor = await conn.execute(
            "INSERT INTO tags (name, slug, type) VALUES (?, ?, ?)",
            (name, slug, type),
        )
        await conn.commit()
        return cursor.lastrowid


async def insert_material(
    db_path: str,
    game_id: int,
    category_id: int,
    title: str = "Test material",
    description: str | None = None,
    status: str = "PUBLISHED",
    file_size: int = 1024,
    file_type: str = "image/png",
    download_count: int = 0,
    is_featured: bool = False,
    upload_time: str | None = None,
    tag_ids: list[int] | None = None,
) -> int:
    """Insert a material (and its tag links) and return its ID."""
    async with aiosqlite.connect(db_path) as conn:
        cursor = await conn.execute(
            """
            INSERT INTO materials (
                game_id, category_id, title, description, file_path, file_size,
                file_type, status, download_count, is_featured, upload_time
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, COALESCE(?, CURRENT_TIMESTAMP))
            """,
            (
                game_id,
                category_id,
                title,
                description,
                f"http://files.test/d/hoyodb/{title}.png",
                file_size,
                file_type,
                status,
                download_count,
                int(is_featured),
                upload_time,
            ),
        )
        material_id = cursor.lastrowid
        for tag_id in tag_ids or []:
            await conn.execute(
                "INSERT INTO material_tags (material_id, tag_id) VALUES (?, ?)",
                (material_id, tag_id),
            )
        await conn.commit()
        return material_id


@pytest_asyncio.fixture
async def catalog(test_app):
    """A starrail game with one category, ready for materials."""
    _, db_path = test_app
    game_id = await insert_game(db_path)
    category_id = await insert_category(db_path, game_id)
    return {"db_path": db_path, "game_id": game_id, "category_id": category_id}
