from fastapi import APIRouter, Depends
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from app.database import get_db
from app.models import Category, Comment, Post, User
from app.schemas import MetricsResponse
from app.cache import cache

router = APIRouter(prefix="/api/v1/metrics", tags=["metrics"])

@router.get("", response_model=MetricsResponse)
async def get_metrics(db: AsyncSession = Depends(get_db)):

    total_posts = (await db.execute(select(func.count()).select_from(Post))).scalar_one()

    total_categories = (await db.execute(select(func.count()).select_from(Category))).scalar_one()

    total_comments = (await db.execute(select(func.count()).select_from(Comment))).scalar_one()

    total_users = (await db.execute(select(func.count()).select_from(User))).scalar_one()

    avg_comments = total_comments / total_posts if total_posts > 0 else 0

    return MetricsResponse(
        total_posts=total_posts,
        total_categories=total_categories,
        total_comments=total_comments,
        total_users=total_users,
        avg_comments_per_post=round(avg_comments, 2),
        cache_info=cache.stats,
    )
