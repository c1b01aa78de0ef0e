from fastapi import Depends, Header, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.exceptions import AuthError
from app.models import User
from app.security import decode_access_token

_TOKEN_SCHEMES = frozenset({"bearer", "token"})


class PaginationParams:
    """
    Reusable FastAPI dependency that parses ``limit`` / ``offset`` query
    parameters.

    Usage in a router::

        @router.get("/articles")
        async def list_articles(pagination: PaginationParams = Depends()):
            ...

    Attributes
    ----------
    limit:
        Maximum number of items returned, clamped to
        ``settings.MAX_PAGE_SIZE`` regardless of the value supplied.
    offset:
        Number of items to skip (minimum 0).
    """

    def __init__(
        self,
        limit: int = Query(
            settings.DEFAULT_PAGE_SIZE,
            ge=1,
            description="Number of items returned (max 100).",
        ),
        offset: int = Query(
            0,
            ge=0,
            description="Number of items to skip.",
        ),
    ) -> None:
        self.limit = min(limit, settings.MAX_PAGE_SIZE)
        self.offset = offset


def _extract_token(authorization: str) -> str:
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() not in _TOKEN_SCHEMES or not token.strip():
        raise AuthError("malformed authorization header")
    return token.strip()


async def _load_user(db: AsyncSession, authorization: str) -> User:
    user_id = decode_access_token(_extract_token(authorization))
    user = await db.get(User, user_id)
    if user is None:
        raise AuthError("user no longer exists")
    return user


async def get_current_user(
    authorization: str | None = Header(None),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Resolve the caller from ``Authorization: Bearer <token>``; 401 otherwise."""
    if not authorization:
        raise AuthError("missing authorization header")
    return await _load_user(db, authorization)


async def get_optional_user(
    authorization: str | None = Header(None),
    db: AsyncSession = Depends(get_db),
) -> User | None:
    """Like ``get_current_user`` but anonymous callers resolve to None."""
    if not authorization:
        return None
    return await _load_user(db, authorization)
