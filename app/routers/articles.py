from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from app.database import get_db
from app.dependencies import PaginationParams, get_current_user, get_optional_user
from app.models import User
from app.schemas import ArticleCreateRequest, ArticleUpdateRequest, CommentCreateRequest
from app.services import article_service, comment_service

router = APIRouter(prefix="/api/articles", tags=["articles"])

@router.get("")
async def list_articles(
    tag: str | None = Query(None, description="Only articles carrying this tag."),
    author: str | None = Query(None, description="Only articles by this username."),
    favorited: str | None = Query(None, description="Only articles favorited by this username."),
    pagination: PaginationParams = Depends(),
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.list_articles(
        db, viewer, tag, author, favorited, pagination.limit, pagination.offset
    )

# Declared before "/{slug}" so "feed" is not captured as a slug.
@router.get("/feed")
async def feed(
    pagination: PaginationParams = Depends(),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.feed_articles(db, user, pagination.limit, pagination.offset)

@router.post("", status_code=201)
async def create_article(
    data: ArticleCreateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return {"article": await article_service.create_article(db, user, data.article)}

@router.get("/{slug}")
async def get_article(
    slug: str,
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    return {"article": await article_service.get_article(db, slug, viewer)}

@router.put("/{slug}")
async def update_article(
    slug: str,
    data: ArticleUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return {"article": await article_service.update_article(db, slug, user, data.article)}

@router.delete("/{slug}", status_code=204)
async def delete_article(
    slug: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await article_service.delete_article(db, slug, user)

@router.post("/{slug}/favorite")
async def favorite_article(
    slug: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return {"article": await article_service.favorite_article(db, slug, user)}

@router.delete("/{slug}/favorite")
async def unfavorite_article(
    slug: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return {"article": await article_service.unfavorite_article(db, slug, user)}

@router.get("/{slug}/comments")
async def list_comments(
    slug: str,
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    return {"comments": await comment_service.list_comments(db, slug, viewer)}

@router.post("/{slug}/comments", status_code=201)
async def add_comment(
    slug: str,
    data: CommentCreateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return {"comment": await comment_service.add_comment(db, slug, user, data.comment)}

@router.delete("/{slug}/comments/{comment_id}", status_code=204)
async def delete_comment(
    slug: str,
    comment_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await comment_service.delete_comment(db, slug, comment_id, user)
