"""Shared helper functions for API routes."""

import math

from fastapi import Request


def _get_db_path(request: Request) -> str:
    """Retrieve the database path from FastAPI app state."""
    return request.app.state.db_path


def _get_store(request: Request):
    """Retrieve the object store client from FastAPI app state."""
    return request.app.state.object_store


def success(data=None, message: str | None = None, pagination: dict | None = None) -> dict:
    """Build the ``{success: true, ...}`` response envelope."""
    body: dict = {"success": True}
    if data is not None:
        body["data"] = data
    if message is not None:
        body["message"] = message
    if pagination is not None:
        body["pagination"] = pagination
    return body


def pagination(page: int, limit: int, total: int) -> dict:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "totalPages": math.ceil(total / limit) if limit > 0 else 0,
    }


def format_bytes(size: int) -> str:
    """Human-readable size, e.g. ``1.5 MB``."""
    if size <= 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB", "TB"]
    exponent = 0
    while size >= 1024 ** (exponent + 1) and exponent < len(units) - 1:
        exponent += 1
    value = round(size / (1024 ** exponent), 2)
    if value == int(value):
        value = int(value)
    return f"{value} {units[exponent]}"
