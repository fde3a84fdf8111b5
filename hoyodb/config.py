from pydantic_settings import BaseSettings
from pathlib import Path


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables with the
    HOYODB_ prefix (e.g. HOYODB_DATABASE_PATH=/custom/path.db).
    """

    # Database
    DATABASE_PATH: Path = Path("/data/hoyodb.db")

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    CORS_ORIGINS: list[str] = ["*"]

    # Admin tokens
    JWT_SECRET: str = "default-secret"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRE_DAYS: int = 7

    # Created on startup when a password is configured and the user is missing
    DEFAULT_ADMIN_USERNAME: str = "admin"
    DEFAULT_ADMIN_PASSWORD: str | None = None

    # WebDAV object store
    WEBDAV_URL: str = "http://localhost:5244/dav"
    WEBDAV_USERNAME: str = "admin"
    WEBDAV_PASSWORD: str = "admin"
    WEBDAV_BASE_PATH: str = "/hoyodb"
    WEBDAV_TIMEOUT: float = 60.0
    PUBLIC_FILE_URL: str = "http://localhost:5244/d"

    # Uploads
    MAX_UPLOAD_SIZE: int = 100 * 1024 * 1024
    MAX_BATCH_FILES: int = 20
    ALLOWED_UPLOAD_TYPES: set[str] = {
        "image/jpeg", "image/png", "image/gif", "image/webp", "image/svg+xml",
        "audio/mpeg", "audio/wav", "audio/ogg", "audio/flac", "audio/aac",
        "video/mp4", "video/webm", "video/ogg",
        "application/pdf", "application/zip", "application/x-rar-compressed",
    }

    model_config = {"env_prefix": "HOYODB_"}


settings = Settings()
