"""
Password hashing and JWT helpers.

Tokens carry the user id in ``sub`` and an ``exp`` claim; PyJWT checks
both the signature and the expiry on decode.
"""
import logging
from datetime import datetime, timedelta, timezone

import jwt
from passlib.context import CryptContext

from app.config import settings
from app.exceptions import AuthError

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(user_id: int, expires_delta: timedelta | None = None) -> str:
    """Return a signed token identifying *user_id*."""
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    now = datetime.now(timezone.utc)
    payload = {"sub": str(user_id), "iat": now, "exp": now + expires_delta}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> int:
    """
    Return the user id encoded in *token*.

    Raises AuthError when the signature is invalid, the token has
    expired, or the subject claim is missing.
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthError("token has expired")
    except jwt.InvalidTokenError as exc:
        logger.warning("Rejected token: %s", exc)
        raise AuthError("invalid token")

    sub = payload.get("sub")
    if sub is None or not str(sub).isdigit():
        raise AuthError("invalid token")
    return int(sub)
