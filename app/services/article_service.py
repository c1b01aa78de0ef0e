"""
Article service — business logic for the Article aggregate.

Design notes
------------
- Eager loading via ``joinedload`` (many-to-one: author) and
  ``selectinload`` (many-to-many: tags) is used throughout; every model
  relationship is ``lazy="noload"`` so a missing option shows up as an
  empty attribute rather than a hidden query.
- The per-viewer flags (``favorited``, ``author.following``) and
  ``favoritesCount`` are resolved by ``_hydrate`` with one grouped query
  each, so a list request issues the same number of statements whatever
  the page size.
- Single-article fetches use ``populate_existing`` so an instance already
  sitting in the identity map gets its relationships reloaded.
- Service functions flush but do not commit; the transaction boundary
  is owned by the ``get_db`` dependency in the router layer.  Tag cache
  invalidation is deferred until that commit (``after_commit``).
- Slugs are claimed inside a SAVEPOINT: when a concurrent request takes
  the same slug first, the unique index rejects ours and the next free
  slug is tried.
"""
import logging
import re
from datetime import datetime, timezone
from typing import Awaitable, Callable

from sqlalchemy import delete, func, insert, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload
from sqlalchemy.orm.attributes import set_committed_value

from app.cache import cache
from app.database import after_commit
from app.exceptions import ForbiddenError, NotFoundError, ValidationError
from app.models import Article, Comment, Tag, User, article_tags, favorites, follows
from app.schemas import ArticleCreate, ArticleUpdate
from app.services.common import (
    followed_author_ids,
    format_timestamp,
    insert_ignoring_conflicts,
    profile_to_dict,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_SLUG_STRIP_RE = re.compile(r"[^\w\s-]")
_SLUG_SPACE_RE = re.compile(r"[\s_]+")
_SLUG_DASH_RE = re.compile(r"-+")

# Fixed path segments under /api/articles that a slug must never shadow.
RESERVED_SLUGS = frozenset({"feed"})

_SLUG_CLAIM_ATTEMPTS = 5


def slugify(text: str) -> str:
    """Return a URL-safe, lowercase slug derived from *text*."""
    text = _SLUG_STRIP_RE.sub("", text.lower().strip())
    text = _SLUG_SPACE_RE.sub("-", text)
    return _SLUG_DASH_RE.sub("-", text).strip("-")


async def _unique_slug(db: AsyncSession, title: str, exclude_id: int | None = None) -> str:
    """
    Return ``slugify(title)`` or, when that is taken, the first free
    ``<slug>-<n>`` for n = 2, 3, ...  Reserved path segments count as
    taken.
    """
    base = slugify(title) or "article"
    q = select(Article.slug).where(
        or_(Article.slug == base, Article.slug.like(f"{base}-%"))
    )
    if exclude_id is not None:
        q = q.where(Article.id != exclude_id)
    # No autoflush: an article still pending from a failed claim must not
    # be flushed with its old slug by this lookup.
    with db.no_autoflush:
        taken = set((await db.execute(q)).scalars().all()) | RESERVED_SLUGS
    if base not in taken:
        return base
    n = 2
    while f"{base}-{n}" in taken:
        n += 1
    return f"{base}-{n}"


async def _claim_slug(
    db: AsyncSession,
    title: str,
    write: Callable[[str], Awaitable[None]],
    exclude_id: int | None = None,
) -> str:
    """
    Pick a free slug for *title* and persist it with ``write(slug)``
    inside a SAVEPOINT.

    Choosing and writing are separate statements, so a concurrent request
    can take the same slug in between; the unique index then rejects the
    write, only the savepoint is rolled back and the next free slug is
    tried.
    """
    for attempt in range(1, _SLUG_CLAIM_ATTEMPTS + 1):
        slug = await _unique_slug(db, title, exclude_id)
        try:
            async with db.begin_nested():
                await write(slug)
            return slug
        except IntegrityError:
            logger.info("Slug %r taken concurrently (attempt %d)", slug, attempt)
    raise ValidationError("has already been taken", field="slug", context={"title": title})


def _normalize_tags(tag_names: list[str]) -> list[str]:
    """Strip whitespace, drop blanks and duplicates, keep first-seen order."""
    seen: dict[str, None] = {}
    for name in tag_names:
        name = name.strip()
        if name:
            seen.setdefault(name, None)
    return list(seen)


async def _resolve_tags(db: AsyncSession, tag_names: list[str]) -> list[Tag]:
    """
    Return Tag ORM instances for each name in *tag_names*, creating any
    that do not yet exist.

    Creation is an upsert guarded by the unique constraint on
    ``tags.name`` so two requests introducing the same tag never race
    into a duplicate row.
    """
    names = _normalize_tags(tag_names)
    if not names:
        return []
    await insert_ignoring_conflicts(db, Tag.__table__, [{"name": name} for name in names])
    result = await db.execute(select(Tag).where(Tag.name.in_(names)))
    by_name = {tag.name: tag for tag in result.scalars().all()}
    return [by_name[name] for name in names]


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _article_to_dict(
    article: Article, *, favorited: bool, favorites_count: int, following: bool
) -> dict:
    return {
        "slug": article.slug,
        "title": article.title,
        "description": article.description,
        "body": article.body,
        "tagList": sorted(t.name for t in article.tags),
        "createdAt": format_timestamp(article.created_at),
        "updatedAt": format_timestamp(article.updated_at),
        "favorited": favorited,
        "favoritesCount": favorites_count,
        "author": profile_to_dict(article.author, following),
    }


async def _hydrate(db: AsyncSession, articles: list[Article], viewer: User | None) -> list[dict]:
    """
    Serialise *articles* with viewer-relative flags.

    Issues at most three extra statements: favorite counts, the viewer's
    favorites and the viewer's follows, each batched over all articles.
    """
    if not articles:
        return []
    ids = [a.id for a in articles]

    counts_q = (
        select(favorites.c.article_id, func.count())
        .where(favorites.c.article_id.in_(ids))
        .group_by(favorites.c.article_id)
    )
    counts = {article_id: n for article_id, n in (await db.execute(counts_q)).all()}

    favorited_ids: set[int] = set()
    if viewer is not None:
        fav_q = select(favorites.c.article_id).where(
            favorites.c.user_id == viewer.id,
            favorites.c.article_id.in_(ids),
        )
        favorited_ids = set((await db.execute(fav_q)).scalars().all())

    following = await followed_author_ids(db, viewer, (a.author_id for a in articles))

    return [
        _article_to_dict(
            a,
            favorited=a.id in favorited_ids,
            favorites_count=counts.get(a.id, 0),
            following=a.author_id in following,
        )
        for a in articles
    ]


# ---------------------------------------------------------------------------
# Query helpers
# ---------------------------------------------------------------------------

async def _get_article_or_404(db: AsyncSession, slug: str) -> Article:
    q = (
        select(Article)
        .where(Article.slug == slug)
        .options(joinedload(Article.author), selectinload(Article.tags))
        .execution_options(populate_existing=True)
    )
    article = (await db.execute(q)).unique().scalar_one_or_none()
    if article is None:
        raise NotFoundError("article", slug)
    return article


def _ensure_author(article: Article, user: User) -> None:
    if article.author_id != user.id:
        raise ForbiddenError("article", context={"slug": article.slug, "user_id": user.id})


async def _paginate(
    db: AsyncSession,
    conditions: list,
    viewer: User | None,
    limit: int,
    offset: int,
) -> dict:
    """
    Two SQL statements plus the tag load and ``_hydrate`` batch:
    1. COUNT over the filtered set.
    2. SELECT with LIMIT/OFFSET and author JOIN.
    """
    count_q = select(func.count()).select_from(Article).where(*conditions)
    total: int = (await db.execute(count_q)).scalar_one()

    articles_q = (
        select(Article)
        .where(*conditions)
        .options(joinedload(Article.author), selectinload(Article.tags))
        .order_by(Article.created_at.desc(), Article.id.desc())
        .offset(offset)
        .limit(limit)
    )
    articles = list((await db.execute(articles_q)).unique().scalars().all())

    return {
        "articles": await _hydrate(db, articles, viewer),
        "articlesCount": total,
    }


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def list_articles(
    db: AsyncSession,
    viewer: User | None = None,
    tag: str | None = None,
    author: str | None = None,
    favorited: str | None = None,
    limit: int = 20,
    offset: int = 0,
) -> dict:
    """
    Return ``{"articles": [...], "articlesCount": n}``, newest first.

    *tag*, *author* (username) and *favorited* (username of a user who
    favorited the article) are combined with AND.  ``articlesCount`` is
    the filtered total, not the page length.
    """
    conditions = []
    if tag:
        conditions.append(Article.tags.any(Tag.name == tag))
    if author:
        conditions.append(Article.author.has(User.username == author))
    if favorited:
        favorited_by = (
            select(favorites.c.article_id)
            .join(User, User.id == favorites.c.user_id)
            .where(User.username == favorited)
        )
        conditions.append(Article.id.in_(favorited_by))
    return await _paginate(db, conditions, viewer, limit, offset)


async def feed_articles(
    db: AsyncSession, viewer: User, limit: int = 20, offset: int = 0
) -> dict:
    """Articles by authors *viewer* follows, same contract as ``list_articles``."""
    followed = select(follows.c.followed_id).where(follows.c.follower_id == viewer.id)
    return await _paginate(db, [Article.author_id.in_(followed)], viewer, limit, offset)


async def get_article(db: AsyncSession, slug: str, viewer: User | None = None) -> dict:
    """Return the article identified by *slug*; NotFoundError when absent."""
    article = await _get_article_or_404(db, slug)
    return (await _hydrate(db, [article], viewer))[0]


async def create_article(db: AsyncSession, author: User, data: ArticleCreate) -> dict:
    """
    Create a new article owned by *author* and return its dict.

    The slug comes from the title; on collision a numeric suffix is
    appended.  Tags are created on first use and reused afterwards.
    """
    tags = await _resolve_tags(db, data.tag_list)
    article = Article(
        title=data.title,
        description=data.description,
        body=data.body,
        author_id=author.id,
    )

    async def insert_article(slug: str) -> None:
        # A rolled-back attempt leaves the instance transient; add it again.
        article.slug = slug
        db.add(article)
        await db.flush()

    slug = await _claim_slug(db, data.title, insert_article)
    if tags:
        await db.execute(
            insert(article_tags).values(
                [{"article_id": article.id, "tag_id": tag.id} for tag in tags]
            )
        )

    logger.info("Article created: slug=%s author=%s", slug, author.username)
    after_commit(db, cache.invalidate_tags)
    return await get_article(db, slug, author)


async def update_article(
    db: AsyncSession, slug: str, user: User, data: ArticleUpdate
) -> dict:
    """
    Partially update the article identified by *slug*.

    Only the author may update.  Only fields explicitly set in the
    request payload are modified (``model_dump(exclude_unset=True)``);
    the slug is regenerated only when the title actually changes and
    ``tagList``, when present, replaces the tag set.
    """
    article = await _get_article_or_404(db, slug)
    _ensure_author(article, user)

    update_data = data.model_dump(exclude_unset=True)
    tags_data: list[str] | None = update_data.pop("tag_list", None)

    new_title = update_data.get("title")
    if new_title is not None and new_title != article.title:
        # Claimed before any other change so a rolled-back savepoint has
        # nothing on the instance to expire.
        async def rename(new_slug: str) -> None:
            await db.execute(
                update(Article.__table__)
                .where(Article.__table__.c.id == article.id)
                .values(slug=new_slug)
            )

        new_slug = await _claim_slug(db, new_title, rename, exclude_id=article.id)
        set_committed_value(article, "slug", new_slug)

    for field, value in update_data.items():
        if value is not None:
            setattr(article, field, value)

    if tags_data is not None:
        article.tags = await _resolve_tags(db, tags_data)
        after_commit(db, cache.invalidate_tags)

    article.updated_at = datetime.now(timezone.utc)
    await db.flush()
    return await get_article(db, article.slug, user)


async def delete_article(db: AsyncSession, slug: str, user: User) -> None:
    """
    Delete the article identified by *slug* together with its comments,
    favorites and tag associations.  Only the author may delete.
    """
    article = await _get_article_or_404(db, slug)
    _ensure_author(article, user)

    # Dependents first; SQLite does not enforce ON DELETE CASCADE by default.
    await db.execute(delete(Comment).where(Comment.article_id == article.id))
    await db.execute(delete(favorites).where(favorites.c.article_id == article.id))
    await db.execute(delete(article_tags).where(article_tags.c.article_id == article.id))
    await db.execute(delete(Article).where(Article.id == article.id))
    await db.flush()

    logger.info("Article deleted: slug=%s author=%s", slug, user.username)
    after_commit(db, cache.invalidate_tags)


async def favorite_article(db: AsyncSession, slug: str, user: User) -> dict:
    """Mark the article as a favorite of *user*; repeating is a no-op."""
    article = await _get_article_or_404(db, slug)
    await insert_ignoring_conflicts(
        db, favorites, [{"user_id": user.id, "article_id": article.id}]
    )
    return (await _hydrate(db, [article], user))[0]


async def unfavorite_article(db: AsyncSession, slug: str, user: User) -> dict:
    """Remove *user*'s favorite; succeeds silently when there was none."""
    article = await _get_article_or_404(db, slug)
    await db.execute(
        delete(favorites).where(
            favorites.c.user_id == user.id,
            favorites.c.article_id == article.id,
        )
    )
    return (await _hydrate(db, [article], user))[0]
