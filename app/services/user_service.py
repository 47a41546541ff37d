"""
User service: the principal directory.

Credentials live upstream; this table only holds what the content API needs
to display authors and commenters (name, email, avatar, bio, role).
"""
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.exceptions import NotFound, ValidationError
from app.models import User
from app.schemas import Actor, UserCreate

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "avatar": user.avatar,
        "bio": user.bio,
        "role": user.role,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def author_summary(user: User | None, with_bio: bool = False) -> dict | None:
    """Display summary embedded in post payloads."""
    if user is None:
        return None
    data = {"id": user.id, "name": user.name, "email": user.email, "avatar": user.avatar}
    if with_bio:
        data["bio"] = user.bio
    return data


def commenter_summary(user: User | None) -> dict | None:
    if user is None:
        return None
    return {"id": user.id, "name": user.name, "avatar": user.avatar}


def _post_summary_to_dict(post) -> dict:
    """
    Lightweight post summary embedded in a user detail response.

    Author is omitted to avoid circular nesting.
    """
    return {
        "id": post.id,
        "title": post.title,
        "slug": post.slug,
        "is_published": post.is_published,
        "view_count": post.view_count,
        "category_id": post.category_id,
        "created_at": post.created_at.isoformat() if post.created_at else None,
    }


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def get_users(db: AsyncSession) -> list[dict]:
    """Return all users ordered by creation date (newest first)."""
    q = select(User).order_by(User.created_at.desc())

    result = await db.execute(q)
    return [_user_to_dict(u) for u in result.scalars().all()]


async def get_user(db: AsyncSession, user_id: str) -> dict:
    """
    Return the full detail dict for *user_id* including a summary of
    their posts.

    Raises NotFound when the user does not exist.
    """
    q = (
        select(User)
        .where(User.id == user_id.lower())
        .options(selectinload(User.posts))
    )

    result = await db.execute(q)
    user = result.unique().scalar_one_or_none()
    if user is None:
        raise NotFound("User not found")

    data = _user_to_dict(user)
    data["posts"] = [
        _post_summary_to_dict(p)
        for p in sorted(user.posts, key=lambda p: p.created_at, reverse=True)
    ]
    return data


async def require_principal(db: AsyncSession, actor: Actor) -> User:
    """
    Return the directory entry for *actor*.

    Posts and comments reference their creator, so writing one on behalf of
    an unknown principal is rejected before anything is stored.
    """
    user = await db.get(User, actor.id)
    if user is None:
        raise ValidationError(f"Unknown user '{actor.id}'")
    return user


async def create_user(db: AsyncSession, data: UserCreate) -> dict:
    """Register a principal; a duplicate email is a ValidationError."""
    email = data.email.strip().lower()
    existing = await db.execute(select(User.id).where(User.email == email))
    if existing.first() is not None:
        raise ValidationError("A user with this email already exists")

    user = User(
        name=data.name.strip(),
        email=email,
        avatar=data.avatar,
        bio=data.bio,
        role=data.role,
    )
    db.add(user)
    try:
        await db.flush()
    except IntegrityError as exc:
        raise ValidationError("A user with this email already exists") from exc
    logger.info("Registered user %s (%s)", user.id, user.role)
    return _user_to_dict(user)
