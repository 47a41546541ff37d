"""
Category service: the Category aggregate and its derived post counter.

Design notes
------------
- ``post_count`` is a materialised view of ``count(posts.category_id)``.
  It is only ever written by ``recount_category``, which recomputes it
  from the posts table in a single UPDATE; it is never incremented or
  decremented, so redundant or racing recounts converge.
- Deleting a category is guarded inside the DELETE statement itself
  (``WHERE NOT EXISTS`` referencing posts), so a post added between the
  check and the delete still blocks it.
- Reads use ``populate_existing`` because recounts bypass the identity map.
- All writes require the admin role; categories have no owner.
"""
import logging

from sqlalchemy import delete, exists, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.cache import cache
from app.config import settings
from app.exceptions import Conflict, NotFound, ValidationError
from app.identifiers import is_object_id, slugify
from app.models import Category, Post
from app.permissions import ensure_admin
from app.schemas import Actor, CategoryCreate, CategoryUpdate

logger = logging.getLogger(__name__)

_LIST_CACHE_KEY = "categories:list"

NAME_MAX_LENGTH = 50
DESCRIPTION_MAX_LENGTH = 200


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _category_to_dict(category: Category) -> dict:
    return {
        "id": category.id,
        "name": category.name,
        "slug": category.slug,
        "description": category.description,
        "color": category.color,
        "post_count": category.post_count,
        "created_at": category.created_at.isoformat() if category.created_at else None,
        "updated_at": category.updated_at.isoformat() if category.updated_at else None,
    }


def category_summary(category: Category | None) -> dict | None:
    """Display summary embedded in post payloads."""
    if category is None:
        return None
    return {
        "id": category.id,
        "name": category.name,
        "slug": category.slug,
        "color": category.color,
    }


# ---------------------------------------------------------------------------
# Lookup and validation helpers
# ---------------------------------------------------------------------------

async def lookup_category(db: AsyncSession, key: str) -> Category | None:
    """Find a category by id when *key* has the id shape, else by slug."""
    if is_object_id(key):
        q = select(Category).where(Category.id == key.lower())
    else:
        q = select(Category).where(Category.slug == key)
    result = await db.execute(q.execution_options(populate_existing=True))
    return result.scalar_one_or_none()


async def _get_by_id(db: AsyncSession, category_id: str) -> Category:
    if not is_object_id(category_id):
        raise ValidationError(f"Invalid category id '{category_id}'")
    category = await lookup_category(db, category_id)
    if category is None:
        raise NotFound("Category not found")
    return category


async def _validate_name(
    db: AsyncSession, raw_name: str, exclude_id: str | None = None
) -> tuple[str, str]:
    """Return ``(name, slug)`` for *raw_name* or raise ValidationError."""
    name = raw_name.strip()
    if not 1 <= len(name) <= NAME_MAX_LENGTH:
        raise ValidationError(
            f"Category name must be between 1 and {NAME_MAX_LENGTH} characters"
        )

    slug = slugify(name)
    if not slug:
        raise ValidationError("Category name must contain at least one letter or digit")
    # A slug shaped like an id could never be reached by slug lookup.
    if is_object_id(slug):
        slug = f"{slug}-category"

    q = select(Category.id).where((Category.name == name) | (Category.slug == slug))
    if exclude_id is not None:
        q = q.where(Category.id != exclude_id)
    if (await db.execute(q)).first() is not None:
        raise ValidationError(f"Category '{name}' already exists")
    return name, slug


def _validate_description(description: str | None) -> None:
    if description is not None and len(description) > DESCRIPTION_MAX_LENGTH:
        raise ValidationError(
            f"Description cannot be more than {DESCRIPTION_MAX_LENGTH} characters"
        )


async def _flush(db: AsyncSession) -> None:
    # Two concurrent writers can both pass _validate_name; the unique
    # constraints decide.
    try:
        await db.flush()
    except IntegrityError as exc:
        raise ValidationError("Category with this name already exists") from exc


# ---------------------------------------------------------------------------
# Consistency coordinator
# ---------------------------------------------------------------------------

async def recount_category(db: AsyncSession, category_id: str) -> int:
    """
    Recompute ``post_count`` for *category_id* from the posts table and
    return the stored value.

    Pending ORM changes are flushed first so the count sees posts created,
    moved or deleted earlier in the same unit of work.
    """
    await db.flush()

    live_count = (
        select(func.count())
        .select_from(Post)
        .where(Post.category_id == category_id)
        .scalar_subquery()
    )
    await db.execute(
        update(Category)
        .where(Category.id == category_id)
        .values(post_count=live_count)
        .execution_options(synchronize_session=False)
    )
    count = (
        await db.execute(select(Category.post_count).where(Category.id == category_id))
    ).scalar_one_or_none()

    await cache.invalidate_categories()
    logger.debug("Recounted category %s: post_count=%s", category_id, count)
    return count or 0


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def list_categories(db: AsyncSession) -> list[dict]:
    """Return every category ordered by name, through the cache."""
    cached = await cache.get(_LIST_CACHE_KEY)
    if cached is not None:
        return cached

    q = (
        select(Category)
        .order_by(Category.name.asc())
        .execution_options(populate_existing=True)
    )
    result = await db.execute(q)
    data = [_category_to_dict(c) for c in result.scalars().all()]
    await cache.set(_LIST_CACHE_KEY, data, ttl=settings.CACHE_TTL_CATEGORIES)
    return data


async def resolve_category(db: AsyncSession, key: str) -> dict:
    category = await lookup_category(db, key)
    if category is None:
        raise NotFound("Category not found")
    return _category_to_dict(category)


async def create_category(db: AsyncSession, data: CategoryCreate, actor: Actor) -> dict:
    ensure_admin(actor, "create categories")
    name, slug = await _validate_name(db, data.name)
    _validate_description(data.description)

    category = Category(
        name=name,
        slug=slug,
        description=data.description,
        color=data.color or settings.DEFAULT_CATEGORY_COLOR,
        post_count=0,
    )
    db.add(category)
    await _flush(db)

    await cache.invalidate_categories()
    logger.info("Created category %s (%s)", category.id, category.slug)
    return _category_to_dict(category)


async def update_category(
    db: AsyncSession, category_id: str, data: CategoryUpdate, actor: Actor
) -> dict:
    """
    Partially update a category.  The slug follows the name; ``post_count``
    cannot be set by callers.
    """
    ensure_admin(actor, "update categories")
    category = await _get_by_id(db, category_id)

    changes = data.model_dump(exclude_unset=True)
    if "name" in changes:
        if changes["name"] is None:
            raise ValidationError("Please provide a category name")
        category.name, category.slug = await _validate_name(
            db, changes["name"], exclude_id=category.id
        )
    if "description" in changes:
        _validate_description(changes["description"])
        category.description = changes["description"]
    if "color" in changes:
        category.color = changes["color"] or settings.DEFAULT_CATEGORY_COLOR

    await _flush(db)
    await cache.invalidate_categories()
    # Listings embed the category summary and are keyed by its slug.
    await cache.invalidate_posts()
    logger.info("Updated category %s", category.id)
    return _category_to_dict(category)


async def delete_category(db: AsyncSession, category_id: str, actor: Actor) -> None:
    ensure_admin(actor, "delete categories")
    category = await _get_by_id(db, category_id)

    if category.post_count > 0:
        logger.warning(
            "Refused to delete category %s with post_count=%d",
            category.id,
            category.post_count,
        )
        raise Conflict("Cannot delete category with existing posts")

    has_posts = exists().where(Post.category_id == category.id)
    result = await db.execute(
        delete(Category)
        .where(Category.id == category.id, ~has_posts)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.warning("Refused to delete category %s: posts were added", category.id)
        raise Conflict("Cannot delete category with existing posts")

    db.expunge(category)
    await cache.invalidate_categories()
    await cache.invalidate_posts()
    logger.info("Deleted category %s", category_id)
