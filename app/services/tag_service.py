"""
Tag service — the list of tags in use.

Tags are created implicitly by the article service and never deleted,
so the listing joins through ``article_tags`` to skip orphans.  The
result is cached (cache-aside) and invalidated by every article write.
"""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.cache import TAGS_KEY, cache
from app.config import settings
from app.models import Tag, article_tags


async def list_tags(db: AsyncSession) -> list[str]:
    """Return distinct tag names attached to at least one article, A-Z."""
    cached = await cache.get(TAGS_KEY)
    if cached is not None:
        return cached

    q = (
        select(Tag.name)
        .join(article_tags, article_tags.c.tag_id == Tag.id)
        .distinct()
        .order_by(Tag.name)
    )
    names = list((await db.execute(q)).scalars().all())

    await cache.set(TAGS_KEY, names, ttl=settings.CACHE_TTL_TAGS)
    return names
