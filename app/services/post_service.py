"""
Post service: business logic for the Post aggregate.

Design notes
------------
- Listings go through the cache-aside pattern (Redis, then the DB).  The
  cache key encodes every filter and pagination dimension.  Single-post
  reads are never cached because every read increments ``view_count``.
- Eager loading via ``joinedload`` (many-to-one: author, category) and
  ``selectinload`` (tags) is used throughout to eliminate N+1 queries.
  ``populate_existing`` refreshes rows the session already holds, since
  counters are updated with bulk statements.
- Every write that changes which posts reference a category ends with
  ``category_service.recount_category`` for each affected category.
- Everything that can reject a request (lookups, the authorization guard,
  referential checks) runs before the first mutation.
- Service functions flush but do not commit; the transaction boundary is
  owned by the ``get_db`` dependency in the router layer.
"""
import logging
import math

from sqlalchemy import delete, desc, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from app.cache import cache
from app.config import settings
from app.exceptions import NotFound, ValidationError
from app.identifiers import is_object_id, new_id, slugify
from app.models import Category, Comment, Post, Tag, post_tags
from app.permissions import ensure_can_modify
from app.schemas import Actor, ListResponse, PaginatedResponse, PostCreate, PostUpdate
from app.services import category_service
from app.services.comment_service import get_comments
from app.services.user_service import author_summary, require_principal

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _post_to_dict(post: Post) -> dict:
    """Serialise a Post ORM instance to a plain dict (list view)."""
    return {
        "id": post.id,
        "title": post.title,
        "slug": post.slug,
        "content": post.content,
        "featured_image": post.featured_image,
        "tags": sorted(t.name for t in post.tags),
        "is_published": post.is_published,
        "view_count": post.view_count,
        "author_id": post.author_id,
        "author": author_summary(post.author),
        "category_id": post.category_id,
        "category": category_service.category_summary(post.category),
        "created_at": post.created_at.isoformat() if post.created_at else None,
        "updated_at": post.updated_at.isoformat() if post.updated_at else None,
    }


def _post_detail_to_dict(post: Post, comments: list[dict]) -> dict:
    """Serialise a Post ORM instance to a plain dict (detail view)."""
    data = _post_to_dict(post)
    data["author"] = author_summary(post.author, with_bio=True)
    data["comments"] = comments
    return data


# ---------------------------------------------------------------------------
# Query / lookup helpers
# ---------------------------------------------------------------------------

def _post_query():
    return (
        select(Post)
        .options(
            joinedload(Post.author),
            joinedload(Post.category),
            selectinload(Post.tags),
        )
        .execution_options(populate_existing=True)
    )


def _recent_first(q):
    # id breaks created_at ties so pages never overlap
    return q.order_by(desc(Post.created_at), desc(Post.id))


async def _lookup_post(db: AsyncSession, key: str) -> Post | None:
    if is_object_id(key):
        q = _post_query().where(Post.id == key.lower())
    else:
        q = _post_query().where(Post.slug == key)
    result = await db.execute(q)
    return result.unique().scalar_one_or_none()


async def resolve_post(db: AsyncSession, key: str) -> Post:
    """
    Return the post whose id (24 hex chars) or slug is *key*, with author,
    category and tags loaded.  Raises NotFound otherwise.
    """
    post = await _lookup_post(db, key)
    if post is None:
        raise NotFound("Post not found")
    return post


async def _get_by_id(db: AsyncSession, post_id: str) -> Post:
    if not is_object_id(post_id):
        raise ValidationError(f"Invalid post id '{post_id}'")
    return await resolve_post(db, post_id)


async def _require_category(db: AsyncSession, key: str) -> Category:
    category = await category_service.lookup_category(db, key)
    if category is None:
        raise ValidationError(f"Category '{key}' does not exist")
    return category


async def _unique_slug(
    db: AsyncSession, title: str, post_id: str, exclude_id: str | None = None
) -> str:
    """
    Derive a slug from *title*.  On collision append the tail of *post_id*,
    then a counter, until no other post holds the candidate.
    """
    base = slugify(title) or "post"
    if is_object_id(base):
        base = f"{base}-post"

    candidate = base
    attempt = 0
    while True:
        q = select(Post.id).where(Post.slug == candidate)
        if exclude_id is not None:
            q = q.where(Post.id != exclude_id)
        if (await db.execute(q)).first() is None:
            return candidate
        attempt += 1
        candidate = f"{base}-{post_id[-8:]}"
        if attempt > 1:
            candidate = f"{candidate}-{attempt}"


async def _flush(db: AsyncSession) -> None:
    # A concurrent writer can claim the slug between the check and the flush.
    try:
        await db.flush()
    except IntegrityError as exc:
        raise ValidationError("Post with this slug already exists") from exc


def _normalize_tags(names: list[str]) -> list[str]:
    """Strip, drop blanks and de-duplicate, keeping first-seen order."""
    seen: dict[str, None] = {}
    for name in names:
        name = name.strip()
        if name:
            seen.setdefault(name, None)
    return list(seen)


async def _resolve_tags(db: AsyncSession, tag_names: list[str]) -> list[Tag]:
    """
    Return Tag ORM instances for each name in *tag_names*, creating any
    that do not yet exist.  All inserts are flushed within the caller's
    transaction.
    """
    tags: list[Tag] = []
    for name in tag_names:
        result = await db.execute(select(Tag).where(Tag.name == name))
        tag = result.scalar_one_or_none()
        if not tag:
            tag = Tag(name=name)
            db.add(tag)
            await db.flush()
        tags.append(tag)
    return tags


# ---------------------------------------------------------------------------
# Listing and search
# ---------------------------------------------------------------------------

async def get_posts(
    db: AsyncSession,
    category: str | None = None,
    published: bool | None = None,
    page: int = 1,
    limit: int = settings.DEFAULT_PAGE_LIMIT,
) -> PaginatedResponse:
    """
    Return one page of posts, newest first.

    *category* is an exact id match (a slug is resolved first).
    *published* defaults to published-only when omitted.  A cache miss
    issues a COUNT for the filtered total, the page itself, and one
    selectin query for the page's tags.
    """
    page = page if page >= 1 else 1
    limit = limit if limit >= 1 else settings.DEFAULT_PAGE_LIMIT
    is_published = True if published is None else published

    cache_key = f"posts:list:{category or 'all'}:{is_published}:{page}:{limit}"
    cached = await cache.get(cache_key)
    if cached:
        return PaginatedResponse(**cached)

    conditions = [Post.is_published.is_(is_published)]
    if category:
        if is_object_id(category):
            conditions.append(Post.category_id == category.lower())
        else:
            conditions.append(
                Post.category_id.in_(select(Category.id).where(Category.slug == category))
            )

    # 1. Total count
    count_q = select(func.count()).select_from(Post).where(*conditions)
    total: int = (await db.execute(count_q)).scalar_one()

    # 2. Requested page
    posts_q = _recent_first(_post_query().where(*conditions)).offset((page - 1) * limit).limit(limit)
    result = await db.execute(posts_q)
    posts = result.unique().scalars().all()

    response = PaginatedResponse(
        count=len(posts),
        total=total,
        page=page,
        pages=math.ceil(total / limit) if total > 0 else 0,
        data=[_post_to_dict(p) for p in posts],
    )
    await cache.set(cache_key, response.model_dump(), ttl=settings.CACHE_TTL_LIST)
    return response


async def search_posts(db: AsyncSession, q: str | None) -> ListResponse:
    """
    Case-insensitive substring search over title, content and tags.

    Only published posts are searched, whoever is asking.  There is no
    relevance ranking: matches come back newest first, capped at
    ``settings.SEARCH_RESULT_LIMIT``.  LIKE wildcards in *q* match
    literally.
    """
    if q is None or not q.strip():
        raise ValidationError("Please provide a search query")

    match = or_(
        Post.title.icontains(q, autoescape=True),
        Post.content.icontains(q, autoescape=True),
        Post.tags.any(Tag.name.icontains(q, autoescape=True)),
    )
    search_q = _recent_first(
        _post_query().where(match, Post.is_published.is_(True))
    ).limit(settings.SEARCH_RESULT_LIMIT)

    result = await db.execute(search_q)
    posts = result.unique().scalars().all()
    return ListResponse(count=len(posts), data=[_post_to_dict(p) for p in posts])


async def get_my_posts(db: AsyncSession, actor: Actor) -> ListResponse:
    """Every post authored by *actor*, drafts included, newest first."""
    result = await db.execute(_recent_first(_post_query().where(Post.author_id == actor.id)))
    posts = result.unique().scalars().all()
    return ListResponse(count=len(posts), data=[_post_to_dict(p) for p in posts])


# ---------------------------------------------------------------------------
# Single post
# ---------------------------------------------------------------------------

async def get_post(db: AsyncSession, key: str) -> dict:
    """
    Return the full detail dict for the post with id or slug *key*,
    incrementing its view counter.

    Every successful fetch counts, for any caller, with no de-duplication.
    The increment is a single ``view_count = view_count + 1`` UPDATE so
    concurrent readers never lose a view.
    """
    post = await resolve_post(db, key)

    await db.execute(
        update(Post)
        .where(Post.id == post.id)
        .values(view_count=Post.view_count + 1)
        .execution_options(synchronize_session=False)
    )
    post = await resolve_post(db, post.id)

    return _post_detail_to_dict(post, await get_comments(db, post.id))


async def create_post(db: AsyncSession, data: PostCreate, actor: Actor) -> dict:
    """
    Create a post authored by *actor* and return its dict.

    The author is always the caller.  The category (id or slug) must
    exist, and its ``post_count`` is recomputed once the post is stored.
    """
    await require_principal(db, actor)
    category = await _require_category(db, data.category)

    post_id = new_id()
    tags = await _resolve_tags(db, _normalize_tags(data.tags))
    post = Post(
        id=post_id,
        title=data.title,
        slug=await _unique_slug(db, data.title, post_id),
        content=data.content,
        featured_image=data.featured_image,
        is_published=data.is_published,
        author_id=actor.id,
        category_id=category.id,
        tags=tags,
    )
    db.add(post)
    await _flush(db)

    await category_service.recount_category(db, category.id)
    await cache.invalidate_posts()
    logger.info("User %s created post %s in category %s", actor.id, post_id, category.id)

    return _post_to_dict(await resolve_post(db, post_id))


async def update_post(
    db: AsyncSession, post_id: str, data: PostUpdate, actor: Actor
) -> dict:
    """
    Partially update a post owned by *actor* (or any post, for an admin).

    Only fields present and non-null in the payload change.  A new
    ``featured_image`` reference replaces the old one.  Moving the post to
    another category recounts both the old and the new category.
    """
    post = await _get_by_id(db, post_id)
    ensure_can_modify(actor, post.author_id, "update this post")

    changes = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}

    new_category = None
    if "category" in changes:
        new_category = await _require_category(db, changes.pop("category"))
    tag_names = changes.pop("tags", None)
    tags = await _resolve_tags(db, _normalize_tags(tag_names)) if tag_names is not None else None
    slug = None
    if "title" in changes:
        slug = await _unique_slug(db, changes["title"], post.id, exclude_id=post.id)

    old_category_id = post.category_id

    for field, value in changes.items():
        setattr(post, field, value)
    if slug is not None:
        post.slug = slug
    if tags is not None:
        post.tags.clear()
        post.tags.extend(tags)
    if new_category is not None:
        post.category = new_category

    await _flush(db)

    if new_category is not None and new_category.id != old_category_id:
        await category_service.recount_category(db, old_category_id)
        await category_service.recount_category(db, new_category.id)
    await cache.invalidate_posts()
    logger.info("User %s updated post %s", actor.id, post.id)

    return _post_to_dict(await resolve_post(db, post.id))


async def delete_post(db: AsyncSession, post_id: str, actor: Actor) -> None:
    """
    Delete a post owned by *actor* (or any post, for an admin) together
    with its comments and tag links, then recount its category.
    """
    post = await _get_by_id(db, post_id)
    ensure_can_modify(actor, post.author_id, "delete this post")
    category_id = post.category_id

    await db.execute(delete(Comment).where(Comment.post_id == post.id))
    await db.execute(delete(post_tags).where(post_tags.c.post_id == post.id))
    await db.execute(
        delete(Post)
        .where(Post.id == post.id)
        .execution_options(synchronize_session=False)
    )
    db.expunge(post)

    await category_service.recount_category(db, category_id)
    await cache.invalidate_posts()
    logger.info("User %s deleted post %s", actor.id, post_id)
