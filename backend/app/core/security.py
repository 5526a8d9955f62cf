"""Password hashing, signed tokens and the authenticated-user dependency."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from uuid import UUID

import bcrypt
import jwt
from fastapi import HTTPException, Request, status

from app.core.config import settings
from app.core.context import user_id_ctx_var

logger = logging.getLogger(__name__)

# bcrypt reads at most 72 bytes; newer releases raise on longer input.
_BCRYPT_MAX_BYTES = 72


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(password: str) -> str:
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, encoded: str) -> bool:
    try:
        return bcrypt.checkpw(_password_bytes(password), encoded.encode("utf-8"))
    except ValueError:
        return False


def create_access_token(user_id: UUID, *, expires_in: int | None = None) -> str:
    lifetime = expires_in if expires_in is not None else settings.jwt_expires_seconds
    payload = {
        "user": {"id": str(user_id)},
        "exp": datetime.now(timezone.utc) + timedelta(seconds=lifetime),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> UUID:
    """Return the user id carried by ``token``; raises ValueError when invalid."""
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        return UUID(str(payload["user"]["id"]))
    except (jwt.PyJWTError, KeyError, TypeError, ValueError) as exc:
        raise ValueError("invalid token") from exc


def _token_from_request(request: Request) -> str | None:
    token = request.headers.get("x-auth-token")
    if token:
        return token.strip()
    authorization = request.headers.get("Authorization") or ""
    if authorization.lower().startswith("bearer "):
        return authorization[7:].strip() or None
    return None


async def get_current_user_id(request: Request) -> UUID:
    """Resolve the caller's user id from the auth header or reject with 401."""
    token = _token_from_request(request)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="No token, authorization denied")
    try:
        user_id = decode_access_token(token)
    except ValueError:
        logger.info("Rejected request with invalid auth token")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token is not valid")
    user_id_ctx_var.set(str(user_id))
    request.state.user_id = user_id
    return user_id
