"""
Comment service — comments attached to an Article.

Any authenticated user may comment; only a comment's author may delete
it.  A comment id is always resolved within its article so that a
valid id under the wrong slug reads as "not found".
"""
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from app.exceptions import ForbiddenError, NotFoundError
from app.models import Article, Comment, User
from app.schemas import CommentCreate
from app.services.common import followed_author_ids, format_timestamp, profile_to_dict

logger = logging.getLogger(__name__)


def _comment_to_dict(comment: Comment, author: User, following: bool = False) -> dict:
    return {
        "id": comment.id,
        "createdAt": format_timestamp(comment.created_at),
        "updatedAt": format_timestamp(comment.updated_at),
        "body": comment.body,
        "author": profile_to_dict(author, following),
    }


async def _get_article_id(db: AsyncSession, slug: str) -> int:
    result = await db.execute(select(Article.id).where(Article.slug == slug))
    article_id = result.scalar_one_or_none()
    if article_id is None:
        raise NotFoundError("article", slug)
    return article_id


async def list_comments(db: AsyncSession, slug: str, viewer: User | None = None) -> list[dict]:
    """
    Return the comments on the article identified by *slug*, newest
    first, each with its author's profile relative to *viewer*.
    """
    article_id = await _get_article_id(db, slug)
    q = (
        select(Comment)
        .where(Comment.article_id == article_id)
        .options(joinedload(Comment.author))
        .order_by(Comment.created_at.desc(), Comment.id.desc())
        .execution_options(populate_existing=True)
    )
    comments = (await db.execute(q)).unique().scalars().all()
    following = await followed_author_ids(db, viewer, (c.author_id for c in comments))
    return [_comment_to_dict(c, c.author, c.author_id in following) for c in comments]


async def add_comment(db: AsyncSession, slug: str, user: User, data: CommentCreate) -> dict:
    """Append a comment by *user*; NotFoundError when the article is absent."""
    article_id = await _get_article_id(db, slug)
    comment = Comment(body=data.body, article_id=article_id, author_id=user.id)
    db.add(comment)
    await db.flush()
    return _comment_to_dict(comment, user)


async def delete_comment(db: AsyncSession, slug: str, comment_id: int, user: User) -> None:
    """
    Delete comment *comment_id* from the article identified by *slug*.

    Raises NotFoundError when the article or comment is missing (or the
    comment belongs to another article) and ForbiddenError when *user*
    did not write it.
    """
    article_id = await _get_article_id(db, slug)
    result = await db.execute(
        select(Comment).where(Comment.id == comment_id, Comment.article_id == article_id)
    )
    comment = result.scalar_one_or_none()
    if comment is None:
        raise NotFoundError("comment", str(comment_id))
    if comment.author_id != user.id:
        raise ForbiddenError("comment", context={"comment_id": comment_id, "user_id": user.id})

    await db.delete(comment)
    await db.flush()
    logger.info("Comment deleted: id=%d article=%s", comment_id, slug)
