import re
from typing import Literal

from pydantic import BaseModel, ConfigDict, field_serializer, field_validator
from pydantic.alias_generators import to_camel


# ---------------------------------------------------------------------------
# Shared allowed values
# ---------------------------------------------------------------------------

TagType = Literal["CHARACTER", "ELEMENT", "RARITY", "VERSION", "SCENE", "OTHER"]
MaterialStatus = Literal["DRAFT", "PUBLISHED", "ARCHIVED"]

_SLUG_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]*$")


def _clean_name(v: str | None) -> str | None:
    if v is None:
        return v
    v = v.strip()
    if not v:
        raise ValueError("must not be empty or whitespace-only")
    return v


def _not_blank(v: str | None) -> str | None:
    if v is None:
        return v
    v = v.strip()
    if not v:
        raise ValueError("must not be empty")
    return v


def _non_negative(v: int | None) -> int | None:
    if v is not None and v < 0:
        raise ValueError("must not be negative")
    return v


def _clean_slug(v: str | None) -> str | None:
    if v is None:
        return v
    v = v.strip()
    if not _SLUG_RE.match(v):
        raise ValueError("may only contain letters, digits, '-' and '_'")
    return v


class CamelModel(BaseModel):
    """Accepts camelCase or snake_case keys; dumps camelCase with by_alias."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class NamedInput(CamelModel):
    """Input with a display name and a URL slug."""

    @field_validator("name", check_fields=False)
    @classmethod
    def clean_name(cls, v: str | None) -> str | None:
        return _clean_name(v)

    @field_validator("slug", check_fields=False)
    @classmethod
    def clean_slug(cls, v: str | None) -> str | None:
        return _clean_slug(v)


# ---------------------------------------------------------------------------
# Auth schemas
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    username: str | None = None
    password: str | None = None


# ---------------------------------------------------------------------------
# Game schemas
# ---------------------------------------------------------------------------


class GameCreate(NamedInput):
    name: str
    slug: str
    icon: str | None = None
    sort_order: int = 0
    is_active: bool = True


class GameUpdate(NamedInput):
    """Partial update; only fields present in the body are written."""

    name: str | None = None
    slug: str | None = None
    icon: str | None = None
    sort_order: int | None = None
    is_active: bool | None = None


class GameOut(CamelModel):
    id: int
    name: str
    slug: str
    icon: str | None = None
    sort_order: int = 0
    is_active: bool = True
    created_at: str | None = None
    updated_at: str | None = None
    material_count: int | None = None
    category_count: int | None = None
    categories: list["CategoryOut"] | None = None


# ---------------------------------------------------------------------------
# Category schemas
# ---------------------------------------------------------------------------


class CategoryCreate(NamedInput):
    game_id: int
    name: str
    slug: str
    parent_id: int | None = None
    sort_order: int = 0


class CategoryUpdate(NamedInput):
    """Partial update.  An explicit ``parentId: null`` detaches the parent."""

    name: str | None = None
    slug: str | None = None
    parent_id: int | None = None
    sort_order: int | None = None


class CategoryOut(CamelModel):
    id: int
    game_id: int
    name: str
    slug: str
    parent_id: int | None = None
    sort_order: int = 0
    created_at: str | None = None
    updated_at: str | None = None
    material_count: int | None = None
    game: GameOut | None = None
    parent: "CategoryOut | None" = None


# ---------------------------------------------------------------------------
# Tag schemas
# ---------------------------------------------------------------------------


class TagCreate(NamedInput):
    name: str
    slug: str
    type: TagType


class TagUpdate(NamedInput):
    name: str | None = None
    slug: str | None = None
    type: TagType | None = None


class TagOut(CamelModel):
    id: int
    name: str
    slug: str
    type: str
    created_at: str | None = None
    material_count: int | None = None
    materials: list["MaterialOut"] | None = None


# ---------------------------------------------------------------------------
# Material schemas
# ---------------------------------------------------------------------------


class MaterialCreate(CamelModel):
    """Material backed by a file that is already in the object store."""

    game_id: int
    category_id: int
    title: str
    description: str | None = None
    file_path: str
    file_size: int
    file_type: str
    duration: int | None = None
    resolution: str | None = None
    version: str | None = None
    is_featured: bool = False
    status: MaterialStatus = "PUBLISHED"
    tag_ids: list[int] = []

    @field_validator("title")
    @classmethod
    def clean_title(cls, v: str | None) -> str | None:
        return _clean_name(v)

    @field_validator("file_path", "file_type")
    @classmethod
    def must_not_be_blank(cls, v: str) -> str:
        return _not_blank(v)

    @field_validator("duration")
    @classmethod
    def duration_not_negative(cls, v: int | None) -> int | None:
        return _non_negative(v)

    @field_validator("file_size")
    @classmethod
    def size_must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v


class MaterialUpdate(CamelModel):
    """Partial update.  ``tagIds``, when present, replaces the whole tag set."""

    title: str | None = None
    description: str | None = None
    file_path: str | None = None
    file_size: int | None = None
    file_type: str | None = None
    duration: int | None = None
    resolution: str | None = None
    version: str | None = None
    is_featured: bool | None = None
    status: MaterialStatus | None = None
    tag_ids: list[int] | None = None

    @field_validator("title")
    @classmethod
    def clean_title(cls, v: str | None) -> str | None:
        return _clean_name(v)

    @field_validator("file_path", "file_type")
    @classmethod
    def must_not_be_blank(cls, v: str | None) -> str | None:
        return _not_blank(v)

    @field_validator("duration")
    @classmethod
    def duration_not_negative(cls, v: int | None) -> int | None:
        return _non_negative(v)

    @field_validator("file_size")
    @classmethod
    def size_must_be_positive(cls, v: int | None) -> int | None:
        if v is not None and v <= 0:
            raise ValueError("must be a positive integer")
        return v


class MaterialOut(CamelModel):
    id: int
    game_id: int
    category_id: int
    title: str
    description: str | None = None
    file_path: str
    file_size: int
    file_type: str
    duration: int | None = None
    resolution: str | None = None
    version: str | None = None
    status: str
    download_count: int = 0
    is_featured: bool = False
    upload_time: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
    game: GameOut | None = None
    category: CategoryOut | None = None
    tags: list[TagOut] | None = None

    @field_serializer("file_size")
    def serialize_file_size(self, v: int) -> str:
        # 64-bit sizes do not survive a trip through a JS number
        return str(v)


GameOut.model_rebuild()
CategoryOut.model_rebuild()
TagOut.model_rebuild()


def dump(model: type[BaseModel], row: dict) -> dict:
    """Validate a database row against *model* and return camelCase JSON.

    Keys absent from *row* are left out of the output, so the same model
    serves rows with and without aggregate columns or relations.
    """
    return model.model_validate(row).model_dump(by_alias=True, exclude_unset=True)


# ---------------------------------------------------------------------------
# Object store maintenance
# ---------------------------------------------------------------------------


class FileDeleteRequest(BaseModel):
    path: str | None = None
    filename: str | None = None
