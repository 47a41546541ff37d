"""
Comment service: append-only comments on the Post aggregate.

Comments cannot be edited or deleted through the API.  Adding one returns
the post's whole comment thread, oldest first, each entry joined with the
commenter's display summary.
"""
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from app.exceptions import NotFound, ValidationError
from app.identifiers import is_object_id
from app.models import Comment, Post
from app.schemas import Actor, CommentCreate
from app.services.user_service import commenter_summary, require_principal

logger = logging.getLogger(__name__)


def _comment_to_dict(comment: Comment) -> dict:
    return {
        "id": comment.id,
        "user": commenter_summary(comment.user),
        "content": comment.content,
        "created_at": comment.created_at.isoformat() if comment.created_at else None,
    }


async def get_comments(db: AsyncSession, post_id: str) -> list[dict]:
    """Return the comment thread of *post_id* in insertion order."""
    q = (
        select(Comment)
        .where(Comment.post_id == post_id)
        .options(joinedload(Comment.user))
        .order_by(Comment.id)
    )
    result = await db.execute(q)
    return [_comment_to_dict(c) for c in result.scalars().all()]


async def add_comment(
    db: AsyncSession,
    post_id: str,
    actor: Actor,
    data: CommentCreate,
) -> list[dict]:
    """
    Append a comment by *actor* to the post identified by *post_id*.

    Raises NotFound when the post does not exist; nothing is written in
    that case.
    """
    if not is_object_id(post_id):
        raise ValidationError(f"Invalid post id '{post_id}'")
    post_id = post_id.lower()

    result = await db.execute(select(Post.id).where(Post.id == post_id))
    if result.scalar_one_or_none() is None:
        raise NotFound("Post not found")

    await require_principal(db, actor)

    db.add(Comment(content=data.content, post_id=post_id, user_id=actor.id))
    await db.flush()
    logger.info("User %s commented on post %s", actor.id, post_id)

    return await get_comments(db, post_id)
