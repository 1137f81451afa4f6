"""
User service: CRUD for the User aggregate with soft delete.

Email uniqueness is checked before every write and enforced again by the
unique constraint on ``users.email``; the comparison is case-sensitive,
while ``search`` in the listing is case-insensitive.
"""
import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import settings
from app.errors import ConflictError, NotFoundError
from app.models import Comment, Post, Role, User, utcnow
from app.pagination import paginate_offset, search_filter, total_pages
from app.schemas import PaginatedResponse, UserCreate, UserUpdate
from app.serializers import post_to_dict, profile_to_dict, user_to_dict

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def get_live_user(db: AsyncSession, user_id: str, *options) -> User:
    """Return a non-deleted user or raise NotFoundError."""
    q = select(User).where(User.id == user_id, User.deleted_at.is_(None))
    if options:
        q = q.options(*options).execution_options(populate_existing=True)
    user = (await db.execute(q)).scalar_one_or_none()
    if user is None:
        raise NotFoundError(f"User with ID {user_id} not found")
    return user


async def _counts(db: AsyncSession, user_ids: list[str]) -> dict[str, dict[str, int]]:
    """``{user_id: {"posts": n, "comments": m}}`` using two GROUP BY queries."""
    counts = {uid: {"posts": 0, "comments": 0} for uid in user_ids}
    if not user_ids:
        return counts

    posts_q = (
        select(Post.author_id, func.count())
        .where(Post.author_id.in_(user_ids), Post.deleted_at.is_(None))
        .group_by(Post.author_id)
    )
    for uid, n in (await db.execute(posts_q)).all():
        counts[uid]["posts"] = n

    comments_q = (
        select(Comment.author_id, func.count())
        .where(Comment.author_id.in_(user_ids))
        .group_by(Comment.author_id)
    )
    for uid, n in (await db.execute(comments_q)).all():
        counts[uid]["comments"] = n
    return counts


async def _ensure_email_free(db: AsyncSession, email: str, exclude_id: str | None = None) -> None:
    q = select(User.id).where(User.email == email)
    if exclude_id is not None:
        q = q.where(User.id != exclude_id)
    if (await db.execute(q.limit(1))).scalar_one_or_none() is not None:
        raise ConflictError(
            "User with this email already exists" if exclude_id is None else "Email already in use"
        )


def _with_profile(user: User) -> dict:
    data = user_to_dict(user)
    data["profile"] = profile_to_dict(user.profile)
    return data


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def list_users(
    db: AsyncSession,
    page: int = 1,
    limit: int = 10,
    search: str | None = None,
    role: Role | None = None,
) -> PaginatedResponse:
    """
    Return one page of live users, newest first, each with its profile and
    post/comment counts.

    ``search`` matches name or email case-insensitively; ``role`` is an
    equality filter.  A page past the end has no items but the same total.
    """
    criteria = [User.deleted_at.is_(None)]
    if role is not None:
        criteria.append(User.role == role)
    text_match = search_filter(search, User.name, User.email)
    if text_match is not None:
        criteria.append(text_match)

    users, total = await paginate_offset(
        db, User, criteria, page, limit, options=[selectinload(User.profile)]
    )
    counts = await _counts(db, [u.id for u in users])

    items = []
    for user in users:
        data = _with_profile(user)
        data["counts"] = counts[user.id]
        items.append(data)

    return PaginatedResponse(
        items=items,
        total=total,
        page=page,
        limit=limit,
        total_pages=total_pages(total, limit),
    )


async def get_user(db: AsyncSession, user_id: str) -> dict:
    """
    Return a live user with profile, the most recent live posts
    (``settings.RECENT_POSTS_LIMIT``) and post/comment counts.
    """
    user = await get_live_user(db, user_id, selectinload(User.profile))

    posts_q = (
        select(Post)
        .where(Post.author_id == user_id, Post.deleted_at.is_(None))
        .order_by(Post.created_at.desc(), Post.id.asc())
        .limit(settings.RECENT_POSTS_LIMIT)
    )
    posts = (await db.execute(posts_q)).scalars().all()

    data = _with_profile(user)
    data["posts"] = [post_to_dict(p) for p in posts]
    data["counts"] = (await _counts(db, [user_id]))[user_id]
    return data


async def create_user(db: AsyncSession, data: UserCreate) -> dict:
    """Create a user; ConflictError when the email is already registered."""
    await _ensure_email_free(db, data.email)

    user = User(email=data.email, name=data.name, role=data.role)
    db.add(user)
    await db.flush()
    logger.info("User %s created", user.id)

    result = user_to_dict(user)
    result["profile"] = None
    return result


async def update_user(db: AsyncSession, user_id: str, data: UserUpdate) -> dict:
    """Apply the fields present in *data*; ConflictError if the new email is taken."""
    user = await get_live_user(db, user_id, selectinload(User.profile))

    update_data = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
    if "email" in update_data and update_data["email"] != user.email:
        await _ensure_email_free(db, update_data["email"], exclude_id=user_id)

    for field, value in update_data.items():
        setattr(user, field, value)
    await db.flush()
    return _with_profile(user)


async def delete_user(db: AsyncSession, user_id: str) -> dict:
    """Soft-delete a user; a second delete raises NotFoundError."""
    user = await get_live_user(db, user_id)
    user.deleted_at = utcnow()
    await db.flush()
    logger.info("User %s soft-deleted", user_id)
    return user_to_dict(user)
