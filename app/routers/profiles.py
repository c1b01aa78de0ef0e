from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from app.database import get_db
from app.dependencies import get_current_user, get_optional_user
from app.models import User
from app.services import profile_service

router = APIRouter(prefix="/api/profiles", tags=["profiles"])

@router.get("/{username}")
async def get_profile(
    username: str,
    viewer: User | None = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    return {"profile": await profile_service.get_profile(db, username, viewer)}

@router.post("/{username}/follow")
async def follow(
    username: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return {"profile": await profile_service.follow_user(db, username, user)}

@router.delete("/{username}/follow")
async def unfollow(
    username: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return {"profile": await profile_service.unfollow_user(db, username, user)}
