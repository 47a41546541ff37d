from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from app.database import get_db
from app.dependencies import get_current_actor
from app.schemas import Actor, CategoryCreate, CategoryUpdate
from app.services import category_service

router = APIRouter(prefix="/api/v1/categories", tags=["categories"])

@router.get("")
async def list_categories(db: AsyncSession = Depends(get_db)):
    categories = await category_service.list_categories(db)
    return {"success": True, "count": len(categories), "data": categories}

@router.get("/{key}")
async def get_category(key: str, db: AsyncSession = Depends(get_db)):
    return {"success": True, "data": await category_service.resolve_category(db, key)}

@router.post("", status_code=201)
async def create_category(
    data: CategoryCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return {"success": True, "data": await category_service.create_category(db, data, actor)}

@router.put("/{category_id}")
async def update_category(
    category_id: str,
    data: CategoryUpdate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    category = await category_service.update_category(db, category_id, data, actor)
    return {"success": True, "data": category}

@router.delete("/{category_id}")
async def delete_category(
    category_id: str,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    await category_service.delete_category(db, category_id, actor)
    return {"success": True, "data": {}}
