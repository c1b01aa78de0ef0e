from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from app.database import get_db
from app.services import tag_service

router = APIRouter(prefix="/api/tags", tags=["tags"])

@router.get("")
async def list_tags(db: AsyncSession = Depends(get_db)):
    return {"tags": await tag_service.list_tags(db)}
