"""
Direct service-layer tests: exercises business logic without HTTP overhead.

These cover the aggregate invariants that are awkward to reach through the
API: post_count convergence after arbitrary create/move/delete sequences,
the delete guard when the stored counter is stale, the dual-key lookup
rule and the authorization predicate.
"""
import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import Conflict, Forbidden, NotFound, ValidationError
from app.identifiers import is_object_id, new_id, slugify
from app.models import Category, Post
from app.permissions import ensure_admin, ensure_can_modify, is_allowed
from app.schemas import Actor, CategoryCreate, CategoryUpdate, CommentCreate, PostCreate, PostUpdate
from app.services import category_service, comment_service, post_service


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _live_count(db: AsyncSession, category_id: str) -> int:
    result = await db.execute(select(Post.id).where(Post.category_id == category_id))
    return len(result.all())


async def _stored_count(db: AsyncSession, category_id: str) -> int:
    return (await category_service.resolve_category(db, category_id))["post_count"]


# ---------------------------------------------------------------------------
# identifiers
# ---------------------------------------------------------------------------

def test_new_id_has_object_id_shape():
    ids = {new_id() for _ in range(100)}
    assert len(ids) == 100
    assert all(is_object_id(i) and len(i) == 24 for i in ids)


@pytest.mark.parametrize("key,expected", [
    ("507f1f77bcf86cd799439011", True),
    ("507F1F77BCF86CD799439011", True),
    ("507f1f77bcf86cd79943901", False),
    ("507f1f77bcf86cd7994390111", False),
    ("507f1f77bcf86cd79943901g", False),
    ("my-first-post", False),
    ("", False),
])
def test_is_object_id(key, expected):
    assert is_object_id(key) is expected


def test_slugify():
    assert slugify("Hello World! This is a Test.") == "hello-world-this-is-a-test"
    assert slugify("  C++ & Rust_lang  ") == "c-rust-lang"
    assert slugify("!!!") == ""


# ---------------------------------------------------------------------------
# permissions
# ---------------------------------------------------------------------------

def test_is_allowed():
    owner = Actor(id="u1", role="author")
    stranger = Actor(id="u2", role="author")
    admin = Actor(id="u3", role="admin")
    assert is_allowed(owner, "u1")
    assert not is_allowed(stranger, "u1")
    assert is_allowed(admin, "u1")
    assert admin.is_admin and not owner.is_admin


def test_ensure_helpers_raise_forbidden():
    with pytest.raises(Forbidden):
        ensure_can_modify(Actor(id="u2"), "u1", "update this post")
    with pytest.raises(Forbidden):
        ensure_admin(Actor(id="u1", role="author"), "create categories")
    ensure_admin(Actor(id="u1", role="admin"), "create categories")


# ---------------------------------------------------------------------------
# category_service
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_category_requires_admin(db_session: AsyncSession, make_actor):
    author = await make_actor("Writer")
    with pytest.raises(Forbidden):
        await category_service.create_category(db_session, CategoryCreate(name="Tech"), author)


@pytest.mark.asyncio
async def test_category_slug_collision_is_rejected(db_session: AsyncSession, make_actor):
    admin = await make_actor("Root", role="admin")
    await category_service.create_category(db_session, CategoryCreate(name="C++"), admin)
    with pytest.raises(ValidationError):
        # Different name, same derived slug "c".
        await category_service.create_category(db_session, CategoryCreate(name="C"), admin)


@pytest.mark.asyncio
async def test_category_name_without_letters_is_rejected(db_session: AsyncSession, make_actor):
    admin = await make_actor("Root", role="admin")
    with pytest.raises(ValidationError):
        await category_service.create_category(db_session, CategoryCreate(name="!!!"), admin)


@pytest.mark.asyncio
async def test_update_category_keeps_own_name(db_session: AsyncSession, make_actor):
    admin = await make_actor("Root", role="admin")
    created = await category_service.create_category(db_session, CategoryCreate(name="Tech"), admin)
    updated = await category_service.update_category(
        db_session, created["id"], CategoryUpdate(name="Tech", description="Same name"), admin
    )
    assert updated["slug"] == "tech"
    assert updated["description"] == "Same name"
    assert updated["updated_at"] is not None


@pytest.mark.asyncio
async def test_resolve_category_dual_key(db_session: AsyncSession, make_actor):
    admin = await make_actor("Root", role="admin")
    created = await category_service.create_category(db_session, CategoryCreate(name="Data"), admin)

    assert (await category_service.resolve_category(db_session, created["id"]))["slug"] == "data"
    assert (await category_service.resolve_category(db_session, created["id"].upper()))["slug"] == "data"
    assert (await category_service.resolve_category(db_session, "data"))["id"] == created["id"]
    with pytest.raises(NotFound):
        await category_service.resolve_category(db_session, "missing")
    with pytest.raises(NotFound):
        await category_service.resolve_category(db_session, new_id())


@pytest.mark.asyncio
async def test_recount_is_idempotent_and_repairs_drift(db_session: AsyncSession, make_actor):
    admin = await make_actor("Root", role="admin")
    author = await make_actor("Writer")
    category = await category_service.create_category(db_session, CategoryCreate(name="Tech"), admin)
    for i in range(3):
        await post_service.create_post(
            db_session, PostCreate(title=f"P{i}", content="C", category="tech"), author
        )

    # Corrupt the stored counter, then let the coordinator repair it.
    row = await db_session.get(Category, category["id"])
    row.post_count = 42
    await db_session.flush()

    assert await category_service.recount_category(db_session, category["id"]) == 3
    assert await category_service.recount_category(db_session, category["id"]) == 3
    assert await _stored_count(db_session, category["id"]) == 3


@pytest.mark.asyncio
async def test_post_count_tracks_any_sequence(db_session: AsyncSession, make_actor):
    admin = await make_actor("Root", role="admin")
    author = await make_actor("Writer")
    a = await category_service.create_category(db_session, CategoryCreate(name="A"), admin)
    b = await category_service.create_category(db_session, CategoryCreate(name="B"), admin)

    posts = []
    for i in range(4):
        posts.append(await post_service.create_post(
            db_session, PostCreate(title=f"Post {i}", content="C", category=a["id"]), author
        ))
    await post_service.update_post(db_session, posts[0]["id"], PostUpdate(category="b"), author)
    await post_service.update_post(db_session, posts[1]["id"], PostUpdate(category=b["id"]), admin)
    await post_service.delete_post(db_session, posts[2]["id"], author)
    # Re-assigning to the same category is a no-op for counts.
    await post_service.update_post(db_session, posts[3]["id"], PostUpdate(category="a"), author)
    await post_service.create_post(
        db_session, PostCreate(title="Late", content="C", category="b"), admin
    )

    for category_id in (a["id"], b["id"]):
        assert await _stored_count(db_session, category_id) == await _live_count(db_session, category_id)
    assert await _stored_count(db_session, a["id"]) == 1
    assert await _stored_count(db_session, b["id"]) == 3


@pytest.mark.asyncio
async def test_delete_category_rechecks_live_posts(db_session: AsyncSession, make_actor):
    """A post inserted without a recount still blocks the delete."""
    admin = await make_actor("Root", role="admin")
    author = await make_actor("Writer")
    category = await category_service.create_category(db_session, CategoryCreate(name="Racy"), admin)

    db_session.add(Post(
        title="Sneaky", slug="sneaky", content="C",
        author_id=author.id, category_id=category["id"],
    ))
    await db_session.flush()
    assert await _stored_count(db_session, category["id"]) == 0

    with pytest.raises(Conflict):
        await category_service.delete_category(db_session, category["id"], admin)
    assert (await category_service.resolve_category(db_session, "racy"))["id"] == category["id"]


@pytest.mark.asyncio
async def test_delete_category_with_stored_count_is_refused(db_session: AsyncSession, make_actor):
    admin = await make_actor("Root", role="admin")
    author = await make_actor("Writer")
    category = await category_service.create_category(db_session, CategoryCreate(name="Busy"), admin)
    await post_service.create_post(
        db_session, PostCreate(title="Resident", content="C", category="busy"), author
    )

    with pytest.raises(Conflict):
        await category_service.delete_category(db_session, category["id"], admin)
    assert await _stored_count(db_session, category["id"]) == 1


# ---------------------------------------------------------------------------
# post_service
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_get_posts_empty(db_session: AsyncSession):
    result = await post_service.get_posts(db_session)
    assert result.total == 0
    assert result.count == 0
    assert result.data == []
    assert result.pages == 0


@pytest.mark.asyncio
async def test_get_posts_clamps_bad_arguments(db_session: AsyncSession, make_actor):
    admin = await make_actor("Root", role="admin")
    await category_service.create_category(db_session, CategoryCreate(name="Tech"), admin)
    for i in range(3):
        await post_service.create_post(
            db_session,
            PostCreate(title=f"P{i}", content="C", category="tech", is_published=True),
            admin,
        )
    result = await post_service.get_posts(db_session, page=0, limit=0)
    assert result.page == 1
    assert result.count == 3
    assert result.pages == 1


@pytest.mark.asyncio
async def test_view_count_twice(db_session: AsyncSession, make_actor):
    admin = await make_actor("Root", role="admin")
    await category_service.create_category(db_session, CategoryCreate(name="Tech"), admin)
    post = await post_service.create_post(
        db_session, PostCreate(title="Viewed", content="C", category="tech"), admin
    )
    before = post["view_count"]
    await post_service.get_post(db_session, post["id"])
    after = await post_service.get_post(db_session, "viewed")
    assert after["view_count"] == before + 2


@pytest.mark.asyncio
async def test_update_and_delete_authorization(db_session: AsyncSession, make_actor):
    admin = await make_actor("Root", role="admin")
    owner = await make_actor("Owner")
    stranger = await make_actor("Stranger")
    await category_service.create_category(db_session, CategoryCreate(name="Tech"), admin)
    post = await post_service.create_post(
        db_session, PostCreate(title="Owned", content="C", category="tech"), owner
    )

    with pytest.raises(Forbidden):
        await post_service.update_post(db_session, post["id"], PostUpdate(title="X"), stranger)
    with pytest.raises(Forbidden):
        await post_service.delete_post(db_session, post["id"], stranger)

    updated = await post_service.update_post(db_session, post["id"], PostUpdate(title="Y"), owner)
    assert updated["title"] == "Y"
    updated = await post_service.update_post(db_session, post["id"], PostUpdate(title="Z"), admin)
    assert updated["author_id"] == owner.id

    await post_service.delete_post(db_session, post["id"], admin)
    with pytest.raises(NotFound):
        await post_service.resolve_post(db_session, post["id"])


@pytest.mark.asyncio
async def test_malformed_post_id_for_mutations(db_session: AsyncSession, make_actor):
    author = await make_actor("Writer")
    with pytest.raises(ValidationError):
        await post_service.update_post(db_session, "not-an-id", PostUpdate(title="X"), author)
    with pytest.raises(ValidationError):
        await post_service.delete_post(db_session, "not-an-id", author)


@pytest.mark.asyncio
async def test_post_slug_shaped_like_an_id_stays_reachable(db_session: AsyncSession, make_actor):
    admin = await make_actor("Root", role="admin")
    await category_service.create_category(db_session, CategoryCreate(name="Hex"), admin)
    title = "deadbeefdeadbeefdeadbeef"
    post = await post_service.create_post(
        db_session, PostCreate(title=title, content="C", category="hex"), admin
    )
    assert post["slug"] == f"{title}-post"
    assert (await post_service.resolve_post(db_session, post["slug"])).id == post["id"]


@pytest.mark.asyncio
async def test_search_rejects_missing_query(db_session: AsyncSession):
    for q in (None, ""):
        with pytest.raises(ValidationError):
            await post_service.search_posts(db_session, q)


# ---------------------------------------------------------------------------
# comment_service
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_add_comment_to_missing_post(db_session: AsyncSession, make_actor):
    author = await make_actor("Writer")
    missing = new_id()
    with pytest.raises(NotFound):
        await comment_service.add_comment(db_session, missing, author, CommentCreate(content="hi"))
    assert (await db_session.execute(select(Post.id))).first() is None


@pytest.mark.asyncio
async def test_add_comment_by_unknown_principal(db_session: AsyncSession, make_actor):
    admin = await make_actor("Root", role="admin")
    await category_service.create_category(db_session, CategoryCreate(name="Tech"), admin)
    post = await post_service.create_post(
        db_session, PostCreate(title="Open", content="C", category="tech"), admin
    )
    with pytest.raises(ValidationError):
        await comment_service.add_comment(
            db_session, post["id"], Actor(id=new_id()), CommentCreate(content="hi")
        )
    assert await comment_service.get_comments(db_session, post["id"]) == []
