"""
Helpers shared by the service modules: timestamp and profile
serialisation, the batched "does the viewer follow these authors" query,
and a dialect-aware INSERT that ignores unique-key conflicts.
"""
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import Table, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import User, follows

_CONFLICT_IGNORING_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def format_timestamp(value: datetime | None) -> str | None:
    """Render *value* as ISO-8601 UTC with millisecond precision and a ``Z`` suffix."""
    if value is None:
        return None
    # SQLite hands back naive datetimes; they were stored as UTC.
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def profile_to_dict(user: User, following: bool = False) -> dict:
    return {
        "username": user.username,
        "bio": user.bio,
        "image": user.image,
        "following": following,
    }


async def followed_author_ids(
    db: AsyncSession, viewer: User | None, author_ids: Iterable[int]
) -> set[int]:
    """
    Return the subset of *author_ids* that *viewer* follows.

    One query regardless of how many authors are asked about; anonymous
    viewers follow nobody.
    """
    ids = set(author_ids)
    if viewer is None or not ids:
        return set()
    q = select(follows.c.followed_id).where(
        follows.c.follower_id == viewer.id,
        follows.c.followed_id.in_(ids),
    )
    result = await db.execute(q)
    return set(result.scalars().all())


async def insert_ignoring_conflicts(
    db: AsyncSession, target: Table, rows: list[dict]
) -> None:
    """
    ``INSERT ... ON CONFLICT DO NOTHING`` for *rows* into *target*.

    Uniqueness of tags, favorites and follows is guaranteed by the
    database constraint, so concurrent writers never produce duplicates
    and a repeated insert is a no-op.
    """
    if not rows:
        return
    dialect = db.get_bind().dialect.name
    insert = _CONFLICT_IGNORING_INSERTS.get(dialect)
    if insert is None:
        raise RuntimeError(f"Unsupported database dialect: {dialect}")
    await db.execute(insert(target).values(rows).on_conflict_do_nothing())
