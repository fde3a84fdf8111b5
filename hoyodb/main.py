"""HOYODB - game media catalog"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from hoyodb.api.routes_admin_categories import router as admin_categories_router
from hoyodb.api.routes_admin_games import router as admin_games_router
from hoyodb.api.routes_admin_materials import router as admin_materials_router
from hoyodb.api.routes_admin_tags import router as admin_tags_router
from hoyodb.api.routes_auth import router as auth_router
from hoyodb.api.routes_dashboard import router as dashboard_router
from hoyodb.api.routes_games import router as games_router
from hoyodb.api.routes_materials import router as materials_router
from hoyodb.api.routes_tags import router as tags_router
from hoyodb.api.routes_upload import router as upload_router
from hoyodb.config import settings
from hoyodb.database import get_db, init_db
from hoyodb.exceptions import register_exception_handlers
from hoyodb.seed import ensure_admin
from hoyodb.services.webdav import WebDAVClient

VERSION = "1.0.0"

logger = logging.getLogger("hoyodb")
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info("Starting HOYODB API server")
    logger.info("Database: %s", settings.DATABASE_PATH)
    logger.info("WebDAV: %s%s", settings.WEBDAV_URL, settings.WEBDAV_BASE_PATH)

    await init_db(settings.DATABASE_PATH)
    app.state.db_path = str(settings.DATABASE_PATH)

    if settings.DEFAULT_ADMIN_PASSWORD:
        async with get_db(app.state.db_path) as db:
            await ensure_admin(
                db, settings.DEFAULT_ADMIN_USERNAME, settings.DEFAULT_ADMIN_PASSWORD
            )

    app.state.object_store = WebDAVClient.from_settings(settings)

    yield

    logger.info("Shutting down HOYODB")
    await app.state.object_store.aclose()


app = FastAPI(
    title="HOYODB",
    description="Game media catalog with a WebDAV-backed file store",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(auth_router)
app.include_router(games_router)
app.include_router(materials_router)
app.include_router(tags_router)
app.include_router(admin_games_router)
app.include_router(admin_categories_router)
app.include_router(admin_tags_router)
app.include_router(admin_materials_router)
app.include_router(dashboard_router)
app.include_router(upload_router)


@app.get("/")
async def root():
    return {"message": "HOYODB API Server", "version": VERSION, "status": "running"}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "ok", "app": "hoyodb", "version": VERSION}
