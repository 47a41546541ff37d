from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from app.database import get_db
from app.dependencies import PaginationParams, get_current_actor, parse_published
from app.schemas import Actor, CommentCreate, ListResponse, PaginatedResponse, PostCreate, PostUpdate
from app.services import comment_service, post_service

router = APIRouter(prefix="/api/v1/posts", tags=["posts"])

# Fixed paths are declared before "/{key}" so they are not captured as slugs.

@router.get("/search", response_model=ListResponse)
async def search_posts(
    q: str | None = Query(None, description="Substring to look for in title, content or tags."),
    db: AsyncSession = Depends(get_db),
):
    return await post_service.search_posts(db, q)

@router.get("", response_model=PaginatedResponse)
async def list_posts(
    pagination: PaginationParams = Depends(),
    category: str | None = Query(None, description="Category id or slug."),
    published: bool | None = Depends(parse_published),
    db: AsyncSession = Depends(get_db),
):
    return await post_service.get_posts(
        db, category, published, pagination.page, pagination.limit
    )

@router.get("/my/posts", response_model=ListResponse)
async def list_my_posts(
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await post_service.get_my_posts(db, actor)

@router.post("", status_code=201)
async def create_post(
    data: PostCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return {"success": True, "data": await post_service.create_post(db, data, actor)}

@router.get("/{key}")
async def get_post(key: str, db: AsyncSession = Depends(get_db)):
    return {"success": True, "data": await post_service.get_post(db, key)}

@router.put("/{post_id}")
async def update_post(
    post_id: str,
    data: PostUpdate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return {"success": True, "data": await post_service.update_post(db, post_id, data, actor)}

@router.delete("/{post_id}")
async def delete_post(
    post_id: str,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    await post_service.delete_post(db, post_id, actor)
    return {"success": True, "data": {}}

@router.post("/{post_id}/comments", status_code=201)
async def add_comment(
    post_id: str,
    data: CommentCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    comments = await comment_service.add_comment(db, post_id, actor, data)
    return {"success": True, "data": comments}
