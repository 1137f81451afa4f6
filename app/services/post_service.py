"""
Post service: lifecycle state machine, cursor listing and category links.

Design notes
------------
- ``DRAFT -> PUBLISHED -> ARCHIVED`` is one-directional.  The allowed
  moves live in ``_TRANSITIONS``; ``publish_post`` and ``archive_post`` are
  both thin wrappers over ``_transition``.
- Soft delete is orthogonal to status: it only stamps ``deleted_at``.
  Every lookup in this module filters ``deleted_at IS NULL`` so a deleted
  post reads as not-found everywhere, including a second delete.
- Category links are replaced wholesale on update: the join rows are
  deleted and re-inserted with Core statements, then the post is reloaded
  with ``populate_existing`` so the returned dict reflects the new set.
- Service functions flush but do not commit; the transaction boundary is
  owned by the ``get_db`` dependency.
"""
import logging

from sqlalchemy import delete, func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from app.errors import BadRequestError, NotFoundError
from app.models import Category, Comment, Post, PostStatus, User, post_categories, utcnow
from app.pagination import paginate_cursor, search_filter
from app.schemas import CursorPage, PostCreate, PostFilters, PostUpdate
from app.serializers import category_to_dict, comment_to_dict, post_to_dict, user_ref

logger = logging.getLogger(__name__)

# action -> (required current status, target status, failure message)
_TRANSITIONS: dict[str, tuple[PostStatus, PostStatus, str]] = {
    "publish": (PostStatus.DRAFT, PostStatus.PUBLISHED, "Only draft posts can be published"),
    "archive": (PostStatus.PUBLISHED, PostStatus.ARCHIVED, "Only published posts can be archived"),
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _not_found(post_id: str) -> NotFoundError:
    return NotFoundError(f"Post with ID {post_id} not found")


async def _get_live_post(db: AsyncSession, post_id: str, with_relations: bool = False) -> Post:
    q = select(Post).where(Post.id == post_id, Post.deleted_at.is_(None))
    if with_relations:
        q = q.options(joinedload(Post.author), selectinload(Post.categories)).execution_options(
            populate_existing=True
        )
    post = (await db.execute(q)).unique().scalar_one_or_none()
    if post is None:
        raise _not_found(post_id)
    return post


async def _resolve_categories(db: AsyncSession, category_ids: list[str]) -> list[str]:
    """Return *category_ids* de-duplicated, raising NotFoundError for any unknown id."""
    unique_ids = list(dict.fromkeys(category_ids))
    if not unique_ids:
        return []
    result = await db.execute(select(Category.id).where(Category.id.in_(unique_ids)))
    found = set(result.scalars().all())
    missing = [cid for cid in unique_ids if cid not in found]
    if missing:
        raise NotFoundError(f"Category with ID {missing[0]} not found")
    return unique_ids


async def _link_categories(db: AsyncSession, post_id: str, category_ids: list[str]) -> None:
    if category_ids:
        await db.execute(
            insert(post_categories),
            [{"post_id": post_id, "category_id": cid} for cid in category_ids],
        )


async def comment_counts(db: AsyncSession, post_ids: list[str]) -> dict[str, int]:
    """Total comments (replies included) per post id, one GROUP BY query."""
    if not post_ids:
        return {}
    q = (
        select(Comment.post_id, func.count())
        .where(Comment.post_id.in_(post_ids))
        .group_by(Comment.post_id)
    )
    return {post_id: count for post_id, count in (await db.execute(q)).all()}


def _post_with_relations(post: Post, *author_fields: str, comment_count: int | None = None) -> dict:
    data = post_to_dict(post)
    data["author"] = user_ref(post.author, *author_fields)
    data["categories"] = [category_to_dict(c) for c in post.categories]
    if comment_count is not None:
        data["comment_count"] = comment_count
    return data


async def _post_detail(db: AsyncSession, post_id: str) -> dict:
    post = await _get_live_post(db, post_id, with_relations=True)
    return _post_with_relations(post)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

async def list_posts(
    db: AsyncSession,
    limit: int = 10,
    cursor: str | None = None,
    filters: PostFilters | None = None,
) -> CursorPage:
    """
    Return one cursor page of live posts, newest first.

    Status and author filters are ANDed; ``search`` matches title or
    content case-insensitively.
    """
    filters = filters or PostFilters()
    criteria = [Post.deleted_at.is_(None)]
    if filters.status is not None:
        criteria.append(Post.status == filters.status)
    if filters.author_id is not None:
        criteria.append(Post.author_id == filters.author_id)
    text_match = search_filter(filters.search, Post.title, Post.content)
    if text_match is not None:
        criteria.append(text_match)

    q = (
        select(Post)
        .where(*criteria)
        .options(joinedload(Post.author), selectinload(Post.categories))
        .execution_options(populate_existing=True)
    )
    posts, next_cursor = await paginate_cursor(db, q, Post, limit, cursor)
    counts = await comment_counts(db, [p.id for p in posts])

    return CursorPage(
        items=[
            _post_with_relations(p, "email", comment_count=counts.get(p.id, 0)) for p in posts
        ],
        next_cursor=next_cursor,
    )


async def get_post(db: AsyncSession, post_id: str) -> dict:
    """
    Return a live post with author, categories and its top-level comments
    (newest first), each carrying its direct replies (oldest first).
    """
    post = await _get_live_post(db, post_id, with_relations=True)

    q = (
        select(Comment)
        .where(Comment.post_id == post_id, Comment.parent_id.is_(None))
        .options(
            joinedload(Comment.author),
            selectinload(Comment.replies).joinedload(Comment.author),
        )
        .order_by(Comment.created_at.desc(), Comment.id.asc())
        .execution_options(populate_existing=True)
    )
    top_level = (await db.execute(q)).unique().scalars().all()
    counts = await comment_counts(db, [post_id])

    data = _post_with_relations(post, "email", "role", comment_count=counts.get(post_id, 0))
    data["comments"] = []
    for comment in top_level:
        item = comment_to_dict(comment)
        item["replies"] = [comment_to_dict(r) for r in comment.replies]
        data["comments"].append(item)
    return data


async def get_posts_by_user(
    db: AsyncSession, user_id: str, status: PostStatus | None = None
) -> list[dict]:
    """All live posts written by *user_id*, newest first."""
    q = (
        select(Post)
        .where(Post.author_id == user_id, Post.deleted_at.is_(None))
        .options(selectinload(Post.categories))
        .order_by(Post.created_at.desc(), Post.id.asc())
        .execution_options(populate_existing=True)
    )
    if status is not None:
        q = q.where(Post.status == status)
    posts = (await db.execute(q)).scalars().all()
    counts = await comment_counts(db, [p.id for p in posts])

    items = []
    for post in posts:
        data = post_to_dict(post)
        data["categories"] = [category_to_dict(c) for c in post.categories]
        data["comment_count"] = counts.get(post.id, 0)
        items.append(data)
    return items


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

async def create_post(db: AsyncSession, data: PostCreate) -> dict:
    """
    Create a DRAFT post for a live author, linking the given categories.

    Raises NotFoundError when the author or any category does not exist.
    """
    author = (
        await db.execute(select(User).where(User.id == data.author_id, User.deleted_at.is_(None)))
    ).scalar_one_or_none()
    if author is None:
        raise NotFoundError(f"User with ID {data.author_id} not found")

    category_ids = await _resolve_categories(db, data.category_ids or [])

    post = Post(
        title=data.title,
        content=data.content,
        status=PostStatus.DRAFT,
        author_id=data.author_id,
    )
    db.add(post)
    await db.flush()
    await _link_categories(db, post.id, category_ids)

    logger.info("Post %s created by %s", post.id, post.author_id)
    return await _post_detail(db, post.id)


async def update_post(db: AsyncSession, post_id: str, data: PostUpdate) -> dict:
    """
    Apply the fields present in *data* to a live post.  ``category_ids``
    replaces the whole category set.  Status is never touched here.
    """
    post = await _get_live_post(db, post_id)

    update_data = data.model_dump(exclude_unset=True)
    category_ids = update_data.pop("category_ids", None)

    if "title" in update_data and update_data["title"] is not None:
        post.title = update_data["title"]
    if "content" in update_data:
        post.content = update_data["content"]

    if category_ids is not None:
        category_ids = await _resolve_categories(db, category_ids)
        await db.execute(delete(post_categories).where(post_categories.c.post_id == post_id))
        await _link_categories(db, post_id, category_ids)
        # Core writes bypass the unit of work; bump the row so updated_at moves.
        post.updated_at = utcnow()

    await db.flush()
    return await _post_detail(db, post_id)


async def _transition(db: AsyncSession, post_id: str, action: str) -> dict:
    required, target, message = _TRANSITIONS[action]
    post = await _get_live_post(db, post_id)
    if post.status != required:
        raise BadRequestError(message)

    post.status = target
    await db.flush()
    logger.info("Post %s %s: %s -> %s", post_id, action, required.value, target.value)
    return post_to_dict(post)


async def publish_post(db: AsyncSession, post_id: str) -> dict:
    """DRAFT -> PUBLISHED; BadRequestError from any other status."""
    return await _transition(db, post_id, "publish")


async def archive_post(db: AsyncSession, post_id: str) -> dict:
    """PUBLISHED -> ARCHIVED; BadRequestError from any other status."""
    return await _transition(db, post_id, "archive")


async def delete_post(db: AsyncSession, post_id: str) -> dict:
    """
    Soft-delete a live post.  Status, category links and comments are kept;
    deleting an already-deleted post raises NotFoundError.
    """
    post = await _get_live_post(db, post_id)
    post.deleted_at = utcnow()
    await db.flush()
    logger.info("Post %s soft-deleted", post_id)
    return post_to_dict(post)
