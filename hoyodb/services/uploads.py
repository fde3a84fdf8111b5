"""Material creation bundled with a file upload to the object store.

The file goes to the store first.  If the material row then fails to
insert, the file just written is deleted again so nothing is orphaned.
"""

import json
import logging
import re
import secrets
import string
import time
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from hoyodb.database_schema import MATERIAL_STATUSES
from hoyodb.exceptions import CatalogError, ObjectStoreError, ValidationError
from hoyodb.database import get_db
from hoyodb.services.catalog import fetch_material_with_relations, insert_material

logger = logging.getLogger(__name__)

_SLUG_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]*$")
_EXT_RE = re.compile(r"^\.[A-Za-z0-9]{1,16}$")
_TOKEN_ALPHABET = string.ascii_lowercase + string.digits
_TRUE_VALUES = {"true", "1", "yes", "on"}


@dataclass
class UploadedFile:
    """A file payload already read into memory."""

    filename: str
    content: bytes
    content_type: str

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass
class MaterialForm:
    """Raw multipart form fields; everything arrives as optional text."""

    game_id: str | None = None
    game_slug: str | None = None
    category_id: str | None = None
    category_slug: str | None = None
    title: str | None = None
    description: str | None = None
    duration: str | None = None
    resolution: str | None = None
    version: str | None = None
    is_featured: str | None = None
    status: str | None = None
    tag_ids: str | None = None
    file_path: str | None = None
    file_size: str | None = None
    file_type: str | None = None


# ---------------------------------------------------------------------------
# Naming helpers
# ---------------------------------------------------------------------------


def random_token(length: int = 6) -> str:
    return "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(length))


def generate_filename(original_name: str | None, timestamp_ms: int | None = None) -> str:
    """Build ``{timestamp}-{random}{ext}`` for a stored file.

    Only the extension of the client's filename survives, and only when it
    looks like a plain extension.
    """
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    ext = PurePosixPath((original_name or "").replace("\\", "/")).suffix
    if not _EXT_RE.match(ext):
        ext = ""
    return f"{timestamp_ms}-{random_token()}{ext.lower()}"


def derive_remote_path(game_slug: str | None, category_slug: str | None = None) -> str:
    """Directory for a game's files: ``{game}`` or ``{game}/{category}``."""
    game_slug = (game_slug or "").strip()
    category_slug = (category_slug or "").strip()
    if not _SLUG_RE.match(game_slug):
        raise ValidationError("A valid gameSlug is required to store a file")
    if category_slug and not _SLUG_RE.match(category_slug):
        raise ValidationError("categorySlug may only contain letters, digits, '-' and '_'")
    return f"{game_slug}/{category_slug}" if category_slug else game_slug


# ---------------------------------------------------------------------------
# Form parsing (no I/O)
# ---------------------------------------------------------------------------


def _blank(value: str | None) -> bool:
    return value is None or not str(value).strip()


def _parse_int(value: str | None, field: str, minimum: int = 0) -> int | None:
    if _blank(value):
        return None
    text = str(value).strip()
    if not re.fullmatch(r"-?\d+", text):
        raise ValidationError(f"'{field}' must be an integer")
    number = int(text)
    if number < minimum:
        raise ValidationError(f"'{field}' must be at least {minimum}")
    return number


def parse_tag_ids(value) -> list[int]:
    """Accept a JSON array (``"[1, 2]"``), a comma list (``"1,2"``) or a list."""
    if value is None or value == "":
        return []
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return []
        if text.startswith("["):
            try:
                value = json.loads(text)
            except json.JSONDecodeError:
                raise ValidationError("'tagIds' must be a JSON array of integers")
        else:
            value = [part.strip() for part in text.split(",") if part.strip()]
    if not isinstance(value, list):
        raise ValidationError("'tagIds' must be a list of integers")
    tag_ids = []
    for item in value:
        if isinstance(item, bool):
            raise ValidationError("'tagIds' must be a list of integers")
        if isinstance(item, int):
            tag_ids.append(item)
        elif isinstance(item, str) and item.strip().isdigit():
            tag_ids.append(int(item.strip()))
        else:
            raise ValidationError("'tagIds' must be a list of integers")
    return tag_ids


def validate_form(form: MaterialForm, upload: UploadedFile | None) -> dict:
    """Check and convert every form field before any I/O happens.

    Returns the keyword arguments for the later steps.
    """
    if _blank(form.game_id) or _blank(form.category_id) or _blank(form.title):
        raise ValidationError("gameId, categoryId and title are required")

    game_id = _parse_int(form.game_id, "gameId", minimum=1)
    category_id = _parse_int(form.category_id, "categoryId", minimum=1)

    status = (form.status or "").strip().upper() or "PUBLISHED"
    if status not in MATERIAL_STATUSES:
        raise ValidationError(f"'status' must be one of {', '.join(MATERIAL_STATUSES)}")

    fields = {
        "title": form.title.strip(),
        "description": None if _blank(form.description) else form.description,
        "duration": _parse_int(form.duration, "duration"),
        "resolution": None if _blank(form.resolution) else form.resolution.strip(),
        "version": None if _blank(form.version) else form.version.strip(),
        "is_featured": (form.is_featured or "").strip().lower() in _TRUE_VALUES,
        "status": status,
    }

    remote_path = None
    if upload is not None:
        remote_path = derive_remote_path(form.game_slug, form.category_slug)
        fields["file_size"] = upload.size
        fields["file_type"] = upload.content_type or "application/octet-stream"
    else:
        if _blank(form.file_path) or _blank(form.file_size) or _blank(form.file_type):
            raise ValidationError(
                "Either upload a file or provide filePath, fileSize and fileType"
            )
        fields["file_path"] = form.file_path.strip()
        fields["file_size"] = _parse_int(form.file_size, "fileSize", minimum=1)
        fields["file_type"] = form.file_type.strip()

    return {
        "game_id": game_id,
        "category_id": category_id,
        "fields": fields,
        "tag_ids": parse_tag_ids(form.tag_ids),
        "remote_path": remote_path,
    }


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------


class MaterialUploader:
    """Create a material, optionally uploading its file first.

    *store* is any object with ``upload_file(data, remote_path, filename)``
    and ``delete_file(remote_path, filename)`` coroutines.  Neither the
    upload nor the compensating delete is retried.
    """

    def __init__(self, db_path: str | Path, store):
        self.db_path = db_path
        self.store = store

    async def create(self, form: MaterialForm, upload: UploadedFile | None = None) -> dict:
        params = validate_form(form, upload)
        fields = params["fields"]
        remote_path = params["remote_path"]

        uploaded: tuple[str, str] | None = None
        if upload is not None:
            filename = generate_filename(upload.filename)
            try:
                fields["file_path"] = await self.store.upload_file(
                    upload.content, remote_path, filename
                )
            except CatalogError:
                raise
            except Exception as e:
                logger.exception("Upload of %s/%s failed", remote_path, filename)
                raise ObjectStoreError(f"File upload failed: {e}") from e
            uploaded = (remote_path, filename)

        material_id = None
        try:
            async with get_db(self.db_path) as db:
                material_id = await insert_material(
                    db,
                    params["game_id"],
                    params["category_id"],
                    fields,
                    params["tag_ids"],
                )
        except Exception:
            # Once the row is committed the file belongs to it
            if uploaded is not None and material_id is None:
                await self._discard(*uploaded)
            raise

        async with get_db(self.db_path) as db:
            material = await fetch_material_with_relations(db, material_id)

        logger.info(
            "Created material %s (%s)%s",
            material["id"],
            material["title"],
            f" with file {uploaded[0]}/{uploaded[1]}" if uploaded else "",
        )
        return material

    async def _discard(self, remote_path: str, filename: str) -> None:
        """Delete an uploaded file whose material row was never written."""
        try:
            await self.store.delete_file(remote_path, filename)
        except Exception:
            logger.exception("Rollback delete of %s/%s failed", remote_path, filename)
        else:
            logger.info("Rolled back uploaded file %s/%s", remote_path, filename)
