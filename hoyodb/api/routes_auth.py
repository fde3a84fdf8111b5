"""API routes for admin login and token verification."""

import logging

from fastapi import APIRouter, Depends, Request

from hoyodb.api._helpers import _get_db_path, success
from hoyodb.database import fetch_one, get_db
from hoyodb.exceptions import AuthError, ValidationError
from hoyodb.models.schemas import LoginRequest
from hoyodb.services.auth import create_access_token, require_admin, verify_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

_BAD_CREDENTIALS = "Invalid username or password"


@router.post("/login")
async def login(request: Request, body: LoginRequest):
    """Exchange a username and password for a bearer token."""
    if not body.username or not body.password:
        raise ValidationError("Username and password are required")

    async with get_db(_get_db_path(request)) as db:
        admin = await fetch_one(
            db, "SELECT * FROM admins WHERE username = ?", (body.username,)
        )
        # Same message for unknown user and wrong password
        if admin is None or not verify_password(body.password, admin["password_hash"]):
            logger.warning("Failed login for %r", body.username)
            raise AuthError(_BAD_CREDENTIALS)

        await db.execute(
            "UPDATE admins SET last_login = CURRENT_TIMESTAMP WHERE id = ?",
            (admin["id"],),
        )
        await db.commit()

    logger.info("Admin %s logged in", admin["username"])
    token = create_access_token(admin["id"], admin["username"])
    return success(
        {"token": token, "admin": {"id": admin["id"], "username": admin["username"]}}
    )


@router.get("/verify")
async def verify(request: Request, identity: dict = Depends(require_admin)):
    """Check a token and confirm its admin still exists."""
    async with get_db(_get_db_path(request)) as db:
        admin = await fetch_one(
            db, "SELECT id, username FROM admins WHERE id = ?", (identity["id"],)
        )
    if admin is None:
        raise AuthError()
    return success({"admin": admin})
