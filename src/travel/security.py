"""Password hashing and signed access tokens."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional

import jwt
from passlib.context import CryptContext

from .config import settings
from .entities import utcnow
from .errors import ConfigurationError, InvalidCredentials

logger = logging.getLogger(__name__)

_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return _pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    try:
        return _pwd_context.verify(password, hashed)
    except (ValueError, TypeError):
        # unknown or corrupted hash format
        return False


def _signing_key() -> str:
    key = settings.jwt_secret_key
    if not key:
        logger.error("JWT_SECRET_KEY is not configured")
        raise ConfigurationError()
    return key


def create_access_token(
    user_id: uuid.UUID,
    expires: Optional[timedelta] = None,
    now: Optional[datetime] = None,
) -> str:
    """Issue a token carrying ``user_id`` that expires after ``expires``."""
    key = _signing_key()
    issued = now or utcnow()
    lifetime = expires or timedelta(minutes=settings.access_token_expire_minutes)
    payload = {"user_id": str(user_id), "exp": issued + lifetime}
    return jwt.encode(payload, key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> uuid.UUID:
    """Return the user id carried by ``token`` or raise ``InvalidCredentials``."""
    key = _signing_key()
    try:
        payload = jwt.decode(token, key, algorithms=[settings.jwt_algorithm])
    except jwt.PyJWTError as exc:
        raise InvalidCredentials("invalid token") from exc
    try:
        return uuid.UUID(str(payload.get("user_id")))
    except ValueError as exc:
        raise InvalidCredentials("invalid token") from exc
