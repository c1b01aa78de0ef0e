from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from app.database import get_db
from app.dependencies import get_current_user
from app.models import User
from app.schemas import UserLoginRequest, UserRegisterRequest, UserUpdateRequest
from app.services import user_service

router = APIRouter(prefix="/api", tags=["users"])

@router.post("/users", status_code=201)
async def register(data: UserRegisterRequest, db: AsyncSession = Depends(get_db)):
    return {"user": await user_service.register_user(db, data.user)}

@router.post("/users/login")
async def login(data: UserLoginRequest, db: AsyncSession = Depends(get_db)):
    return {"user": await user_service.login_user(db, data.user)}

@router.get("/user")
async def current_user(user: User = Depends(get_current_user)):
    return {"user": user_service.get_current(user)}

@router.put("/user")
async def update_current_user(
    data: UserUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return {"user": await user_service.update_user(db, user, data.user)}
