"""
Profile service — public user profiles and the follow relation.

Follow and unfollow are idempotent: the join row is inserted with
ON CONFLICT DO NOTHING and deleted unconditionally.  Acting on oneself
is rejected before touching the database.
"""
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import NotFoundError, ValidationError
from app.models import User, follows
from app.services.common import followed_author_ids, insert_ignoring_conflicts, profile_to_dict


async def _get_user_or_404(db: AsyncSession, username: str) -> User:
    result = await db.execute(select(User).where(User.username == username))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError("profile", username)
    return user


def _reject_self(target: User, user: User) -> None:
    if target.id == user.id:
        raise ValidationError("cannot follow yourself", field="profile")


async def get_profile(db: AsyncSession, username: str, viewer: User | None = None) -> dict:
    target = await _get_user_or_404(db, username)
    following = await followed_author_ids(db, viewer, [target.id])
    return profile_to_dict(target, target.id in following)


async def follow_user(db: AsyncSession, username: str, user: User) -> dict:
    target = await _get_user_or_404(db, username)
    _reject_self(target, user)
    await insert_ignoring_conflicts(
        db, follows, [{"follower_id": user.id, "followed_id": target.id}]
    )
    return profile_to_dict(target, True)


async def unfollow_user(db: AsyncSession, username: str, user: User) -> dict:
    target = await _get_user_or_404(db, username)
    _reject_self(target, user)
    await db.execute(
        delete(follows).where(
            follows.c.follower_id == user.id,
            follows.c.followed_id == target.id,
        )
    )
    return profile_to_dict(target, False)
