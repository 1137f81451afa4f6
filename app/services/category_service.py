"""
Category service: uniqueness of name/slug and the has-posts delete guard.

Slug format is enforced by the input schema, so by the time these
functions run only the uniqueness checks remain.  The post count used by
the delete guard is read in the same transaction as the DELETE but is not
locked; the ``post_categories`` foreign key is the final backstop.
"""
import logging

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from app.errors import ConflictError, NotFoundError, PreconditionFailedError
from app.models import Category, Post, post_categories
from app.schemas import CategoryCreate, CategoryUpdate
from app.serializers import category_to_dict, iso, user_ref

logger = logging.getLogger(__name__)

_DUPLICATE_MESSAGE = "Category with this name or slug already exists"


async def _post_count(db: AsyncSession, category_id: str) -> int:
    q = (
        select(func.count())
        .select_from(post_categories)
        .where(post_categories.c.category_id == category_id)
    )
    return (await db.execute(q)).scalar_one()


async def _get_category(db: AsyncSession, category_id: str) -> Category:
    category = (
        await db.execute(select(Category).where(Category.id == category_id))
    ).scalar_one_or_none()
    if category is None:
        raise NotFoundError(f"Category with ID {category_id} not found")
    return category


async def _ensure_unique(
    db: AsyncSession,
    name: str | None,
    slug: str | None,
    exclude_id: str | None = None,
) -> None:
    clauses = []
    if name is not None:
        clauses.append(Category.name == name)
    if slug is not None:
        clauses.append(Category.slug == slug)
    if not clauses:
        return

    q = select(Category.id).where(or_(*clauses))
    if exclude_id is not None:
        q = q.where(Category.id != exclude_id)
    if (await db.execute(q.limit(1))).scalar_one_or_none() is not None:
        raise ConflictError(_DUPLICATE_MESSAGE)


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def list_categories(db: AsyncSession) -> list[dict]:
    """All categories ordered by name, each with its ``post_count``."""
    counts = (
        select(post_categories.c.category_id, func.count().label("post_count"))
        .group_by(post_categories.c.category_id)
        .subquery()
    )
    q = (
        select(Category, func.coalesce(counts.c.post_count, 0))
        .outerjoin(counts, counts.c.category_id == Category.id)
        .order_by(Category.name.asc())
    )
    return [category_to_dict(c, post_count) for c, post_count in (await db.execute(q)).all()]


async def get_category(db: AsyncSession, category_id: str) -> dict:
    """Return a category with a summary of every post linked to it."""
    category = await _get_category(db, category_id)

    q = (
        select(Post)
        .join(post_categories, post_categories.c.post_id == Post.id)
        .where(post_categories.c.category_id == category_id)
        .order_by(Post.created_at.desc(), Post.id.asc())
    )
    posts = (await db.execute(q.options(joinedload(Post.author)))).unique().scalars().all()

    data = category_to_dict(category, len(posts))
    data["posts"] = [
        {
            "id": p.id,
            "title": p.title,
            "status": p.status.value,
            "created_at": iso(p.created_at),
            "author": user_ref(p.author),
        }
        for p in posts
    ]
    return data


async def get_category_by_slug(db: AsyncSession, slug: str) -> dict:
    category = (
        await db.execute(select(Category).where(Category.slug == slug))
    ).scalar_one_or_none()
    if category is None:
        raise NotFoundError(f'Category with slug "{slug}" not found')
    return category_to_dict(category, await _post_count(db, category.id))


async def create_category(db: AsyncSession, data: CategoryCreate) -> dict:
    """Create a category; ConflictError if the name or the slug is taken."""
    await _ensure_unique(db, data.name, data.slug)

    category = Category(name=data.name, slug=data.slug)
    db.add(category)
    await db.flush()
    logger.info("Category %s created (slug=%s)", category.id, category.slug)
    return category_to_dict(category, 0)


async def update_category(db: AsyncSession, category_id: str, data: CategoryUpdate) -> dict:
    """Rename and/or re-slug a category, ignoring itself in the uniqueness check."""
    category = await _get_category(db, category_id)

    update_data = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
    await _ensure_unique(
        db, update_data.get("name"), update_data.get("slug"), exclude_id=category_id
    )

    for field, value in update_data.items():
        setattr(category, field, value)
    await db.flush()
    return category_to_dict(category, await _post_count(db, category_id))


async def delete_category(db: AsyncSession, category_id: str) -> dict:
    """
    Delete a category that no post references.

    Raises PreconditionFailedError while any post association exists,
    including associations of soft-deleted posts.
    """
    category = await _get_category(db, category_id)
    if await _post_count(db, category_id) > 0:
        raise PreconditionFailedError("Cannot delete category that has associated posts")

    data = category_to_dict(category, 0)
    await db.execute(delete(Category).where(Category.id == category_id))
    db.expunge(category)
    logger.info("Category %s deleted", category_id)
    return data
