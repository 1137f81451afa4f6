"""
Direct service-layer tests: exercises business logic without HTTP overhead.

These call the service functions with a live session so the pagination
engine, the post state machine and the comment depth rule are checked
against the query paths themselves, independent of routing and the
procedure pipeline.
"""
import itertools
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.exc import InvalidRequestError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.dependencies import MAX_PAGE
from app.errors import BadRequestError, ConflictError, NotFoundError, PreconditionFailedError
from app.models import Category, Comment, Post, PostStatus, Role, User
from app.pagination import MAX_OFFSET, paginate_cursor, paginate_offset, total_pages
from app.schemas import (
    CategoryCreate,
    CommentCreate,
    PostCreate,
    PostFilters,
    PostUpdate,
    ProfileUpsert,
    UserCreate,
)
from app.services import (
    category_service,
    comment_service,
    post_service,
    profile_service,
    user_service,
)
from app.serializers import iso


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


async def _seed_posts(db: AsyncSession, author: User, n: int, same_second: bool = False) -> list[Post]:
    """Insert *n* posts with explicit, increasing timestamps (oldest first)."""
    posts = []
    for i in range(n):
        created = BASE_TIME if same_second else BASE_TIME + timedelta(minutes=i)
        post = Post(title=f"Post {i}", author_id=author.id, created_at=created)
        db.add(post)
        posts.append(post)
    await db.flush()
    return posts


async def _walk(db: AsyncSession, limit: int, filters: PostFilters | None = None) -> tuple[list[str], int]:
    ids: list[str] = []
    cursor = None
    pages = 0
    while True:
        page = await post_service.list_posts(db, limit, cursor, filters)
        pages += 1
        ids.extend(item["id"] for item in page.items)
        assert len(page.items) <= limit
        if page.next_cursor is None:
            return ids, pages
        cursor = page.next_cursor


# ---------------------------------------------------------------------------
# Pagination engine
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
@pytest.mark.parametrize("n,limit", [(0, 5), (1, 1), (5, 5), (6, 5), (11, 10), (10, 3), (7, 100)])
async def test_cursor_pagination_is_exact(db_session: AsyncSession, author: User, n: int, limit: int):
    posts = await _seed_posts(db_session, author, n)

    ids, pages = await _walk(db_session, limit)

    expected = [p.id for p in reversed(posts)]
    assert ids == expected
    assert pages == max(1, total_pages(n, limit))


@pytest.mark.asyncio
async def test_cursor_pagination_breaks_timestamp_ties_by_id(db_session: AsyncSession, author: User):
    posts = await _seed_posts(db_session, author, 9, same_second=True)

    ids, _ = await _walk(db_session, 4)

    assert ids == sorted(p.id for p in posts)


@pytest.mark.asyncio
async def test_cursor_is_first_item_of_next_page(db_session: AsyncSession, author: User):
    await _seed_posts(db_session, author, 3)

    first = await post_service.list_posts(db_session, 2)
    second = await post_service.list_posts(db_session, 2, first.next_cursor)

    assert second.items[0]["id"] == first.next_cursor


@pytest.mark.asyncio
async def test_cursor_pagination_respects_filters(db_session: AsyncSession, author: User):
    posts = await _seed_posts(db_session, author, 8)
    for post in posts[::2]:
        post.status = PostStatus.PUBLISHED
    await db_session.flush()

    ids, _ = await _walk(db_session, 3, PostFilters(status=PostStatus.PUBLISHED))

    assert ids == [p.id for p in reversed(posts[::2])]


@pytest.mark.asyncio
async def test_paginate_cursor_unknown_cursor(db_session: AsyncSession, author: User):
    await _seed_posts(db_session, author, 2)
    rows, next_cursor = await paginate_cursor(db_session, select(Post), Post, 10, "unknown")
    assert rows == []
    assert next_cursor is None


def test_total_pages():
    assert total_pages(0, 10) == 0
    assert total_pages(10, 10) == 1
    assert total_pages(11, 10) == 2


# ---------------------------------------------------------------------------
# Post state machine
# ---------------------------------------------------------------------------

async def _post_in(db: AsyncSession, author: User, status: PostStatus) -> Post:
    post = Post(title="sm", author_id=author.id, status=status)
    db.add(post)
    await db.flush()
    return post


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status,action",
    list(itertools.product(PostStatus, ["publish", "archive"])),
)
async def test_state_machine_matrix(db_session: AsyncSession, author: User, status: PostStatus, action: str):
    post = await _post_in(db_session, author, status)
    allowed = {
        ("publish", PostStatus.DRAFT): PostStatus.PUBLISHED,
        ("archive", PostStatus.PUBLISHED): PostStatus.ARCHIVED,
    }
    func = post_service.publish_post if action == "publish" else post_service.archive_post

    if (action, status) in allowed:
        result = await func(db_session, post.id)
        assert result["status"] == allowed[(action, status)].value
    else:
        with pytest.raises(BadRequestError):
            await func(db_session, post.id)
        assert post.status == status


@pytest.mark.asyncio
async def test_soft_deleted_post_rejects_transitions(db_session: AsyncSession, author: User):
    post = await _post_in(db_session, author, PostStatus.DRAFT)
    await post_service.delete_post(db_session, post.id)

    with pytest.raises(NotFoundError):
        await post_service.publish_post(db_session, post.id)
    with pytest.raises(NotFoundError):
        await post_service.delete_post(db_session, post.id)


@pytest.mark.asyncio
async def test_create_and_update_post_via_service(db_session: AsyncSession, author: User):
    tech = Category(name="Tech", slug="tech")
    art = Category(name="Art", slug="art")
    db_session.add_all([tech, art])
    await db_session.flush()

    created = await post_service.create_post(
        db_session, PostCreate(title="Svc", author_id=author.id, category_ids=[tech.id])
    )
    assert created["status"] == "DRAFT"
    assert [c["id"] for c in created["categories"]] == [tech.id]

    updated = await post_service.update_post(
        db_session, created["id"], PostUpdate(content="Body", category_ids=[art.id, tech.id])
    )
    assert updated["title"] == "Svc"
    assert updated["content"] == "Body"
    assert [c["name"] for c in updated["categories"]] == ["Art", "Tech"]
    assert updated["updated_at"] is not None


@pytest.mark.asyncio
async def test_get_posts_by_user_excludes_deleted(db_session: AsyncSession, author: User):
    posts = await _seed_posts(db_session, author, 3)
    await post_service.delete_post(db_session, posts[1].id)

    items = await post_service.get_posts_by_user(db_session, author.id)
    assert [p["id"] for p in items] == [posts[2].id, posts[0].id]


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_comment_depth_never_exceeds_cap(db_session: AsyncSession, author: User):
    post = await _post_in(db_session, author, PostStatus.PUBLISHED)

    parent_id = None
    created = []
    for i in range(5):
        comment = await comment_service.create_comment(
            db_session,
            CommentCreate(content=f"level {i}", author_id=author.id, post_id=post.id, parent_id=parent_id),
        )
        created.append(comment)
        parent_id = comment["id"]

    # Levels 0..2 chain normally; deeper replies stay at level 2.
    assert created[1]["parent_id"] == created[0]["id"]
    assert created[2]["parent_id"] == created[1]["id"]
    assert created[3]["parent_id"] == created[1]["id"]
    assert created[4]["parent_id"] == created[1]["id"]

    page = await comment_service.get_comments_by_post(db_session, post.id)
    level2 = page.items[0]["replies"][0]["replies"]
    assert len(level2) == 3


@pytest.mark.asyncio
async def test_comment_author_soft_deleted_is_not_found(db_session: AsyncSession, author: User):
    post = await _post_in(db_session, author, PostStatus.DRAFT)
    await user_service.delete_user(db_session, author.id)

    with pytest.raises(NotFoundError, match="Author not found"):
        await comment_service.create_comment(
            db_session, CommentCreate(content="x", author_id=author.id, post_id=post.id)
        )


@pytest.mark.asyncio
async def test_delete_comment_removes_subtree(db_session: AsyncSession, author: User):
    post = await _post_in(db_session, author, PostStatus.DRAFT)
    top = await comment_service.create_comment(
        db_session, CommentCreate(content="top", author_id=author.id, post_id=post.id)
    )
    await comment_service.create_comment(
        db_session,
        CommentCreate(content="child", author_id=author.id, post_id=post.id, parent_id=top["id"]),
    )

    await comment_service.delete_comment(db_session, top["id"])

    remaining = (await db_session.execute(select(Comment.id))).scalars().all()
    assert remaining == []


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_category_uniqueness_and_delete_guard(db_session: AsyncSession, author: User):
    tech = await category_service.create_category(db_session, CategoryCreate(name="Tech", slug="tech"))

    with pytest.raises(ConflictError):
        await category_service.create_category(db_session, CategoryCreate(name="Other", slug="tech"))

    await post_service.create_post(
        db_session, PostCreate(title="Linked", author_id=author.id, category_ids=[tech["id"]])
    )
    with pytest.raises(PreconditionFailedError):
        await category_service.delete_category(db_session, tech["id"])

    listed = await category_service.list_categories(db_session)
    assert listed[0]["post_count"] == 1


# ---------------------------------------------------------------------------
# Users and profiles
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_users_via_service(db_session: AsyncSession):
    for i in range(4):
        await user_service.create_user(
            db_session,
            UserCreate(email=f"u{i}@example.com", name=f"U{i}", role=Role.ADMIN if i % 2 else Role.USER),
        )

    page = await user_service.list_users(db_session, page=1, limit=3, role=Role.ADMIN)
    assert page.total == 2
    assert page.total_pages == 1
    assert all(item["role"] == "ADMIN" for item in page.items)


@pytest.mark.asyncio
async def test_user_post_count_ignores_soft_deleted_posts(db_session: AsyncSession, author: User):
    posts = await _seed_posts(db_session, author, 2)
    await post_service.delete_post(db_session, posts[0].id)

    detail = await user_service.get_user(db_session, author.id)
    assert detail["counts"]["posts"] == 1


@pytest.mark.asyncio
async def test_profile_upsert_via_service(db_session: AsyncSession, author: User):
    created = await profile_service.upsert_profile(db_session, author.id, ProfileUpsert(bio="Hi"))
    assert created["bio"] == "Hi"
    assert created["user"]["role"] == "USER"

    updated = await profile_service.upsert_profile(db_session, author.id, ProfileUpsert(bio="Bye"))
    assert updated["id"] == created["id"]
    assert updated["bio"] == "Bye"

    with pytest.raises(NotFoundError):
        await profile_service.get_profile(db_session, "missing")


# ---------------------------------------------------------------------------
# Offset bounds, loading contract and serialisation
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_paginate_offset_rejects_unbindable_page(db_session: AsyncSession):
    with pytest.raises(BadRequestError, match="out of range"):
        await paginate_offset(db_session, User, [], page=10**19, limit=10)


@pytest.mark.asyncio
async def test_paginate_offset_largest_bindable_offset(db_session: AsyncSession, author: User):
    rows, total = await paginate_offset(db_session, User, [], page=MAX_OFFSET // 10 + 1, limit=10)
    assert rows == []
    assert total == 1


def test_max_page_keeps_offset_in_range():
    assert (MAX_PAGE - 1) * settings.USER_MAX_PAGE_SIZE <= MAX_OFFSET
    assert MAX_PAGE * settings.USER_MAX_PAGE_SIZE > MAX_OFFSET


@pytest.mark.asyncio
async def test_unloaded_relationship_access_raises(db_session: AsyncSession, author: User):
    created = await post_service.create_post(db_session, PostCreate(title="Lazy", author_id=author.id))
    db_session.expunge_all()

    post = (await db_session.execute(select(Post).where(Post.id == created["id"]))).scalar_one()
    with pytest.raises(InvalidRequestError):
        post.author
    with pytest.raises(InvalidRequestError):
        post.categories


@pytest.mark.asyncio
async def test_delete_comment_returns_author(db_session: AsyncSession, author: User):
    post = await _post_in(db_session, author, PostStatus.DRAFT)
    comment = await comment_service.create_comment(
        db_session, CommentCreate(content="bye", author_id=author.id, post_id=post.id)
    )
    db_session.expunge_all()

    deleted = await comment_service.delete_comment(db_session, comment["id"])
    assert deleted["author"] == {"id": author.id, "name": "Author"}


def test_iso_normalises_to_utc():
    naive = datetime(2026, 1, 1, 12, 30)
    aware = datetime(2026, 1, 1, 14, 30, tzinfo=timezone(timedelta(hours=2)))

    assert iso(naive) == "2026-01-01T12:30:00+00:00"
    assert iso(aware) == "2026-01-01T12:30:00+00:00"
    assert iso(None) is None
