from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from app.database import get_db
from app.schemas import UserCreate
from app.services import user_service

router = APIRouter(prefix="/api/v1/users", tags=["users"])

@router.get("")
async def list_users(db: AsyncSession = Depends(get_db)):
    users = await user_service.get_users(db)
    return {"success": True, "count": len(users), "data": users}

@router.get("/{user_id}")
async def get_user(user_id: str, db: AsyncSession = Depends(get_db)):
    return {"success": True, "data": await user_service.get_user(db, user_id)}

@router.post("", status_code=201)
async def create_user(data: UserCreate, db: AsyncSession = Depends(get_db)):
    return {"success": True, "data": await user_service.create_user(db, data)}
