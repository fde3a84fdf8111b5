"""Admin credentials: password hashing, token issue and verification."""

import logging
from datetime import datetime, timedelta, timezone

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from hoyodb.config import settings
from hoyodb.exceptions import AuthError

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
bearer_scheme = HTTPBearer(auto_error=False)


def verify_password(plain_password: str, password_hash: str) -> bool:
    try:
        return pwd_context.verify(plain_password, password_hash)
    except (ValueError, TypeError):
        # Unrecognised or corrupt hash
        return False


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(admin_id: int, username: str, expires_delta: timedelta | None = None) -> str:
    """Issue a signed token carrying the admin's id and username."""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(days=settings.JWT_EXPIRE_DAYS)
    )
    payload = {"sub": str(admin_id), "id": admin_id, "username": username, "exp": expire}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify signature and expiry; return ``{"id", "username"}``.

    Raises AuthError for anything that does not check out.  The error
    carries the same message whatever the cause.
    """
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise AuthError()

    admin_id = payload.get("id")
    username = payload.get("username")
    if not isinstance(admin_id, int) or not isinstance(username, str):
        raise AuthError()
    return {"id": admin_id, "username": username}


async def require_admin(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> dict:
    """FastAPI dependency guarding admin and upload routes.

    Stores the decoded identity on ``request.state.admin`` and returns it.
    """
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthError()
    admin = decode_access_token(credentials.credentials)
    request.state.admin = admin
    return admin
