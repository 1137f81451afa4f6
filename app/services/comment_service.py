"""
Comment service: reply threads attached to a Post.

Threads are materialised ``settings.COMMENT_MAX_DEPTH`` levels below a
top-level comment on read.  Writes are capped at the same depth: a reply
to a comment that already sits at the deepest level is attached to that
comment's own parent instead, so nothing is ever stored deeper than
``get_comments_by_post`` returns.

Deletes are a single SQL ``DELETE``; the ``ON DELETE CASCADE`` on
``comments.parent_id`` removes the replies, this module does not walk the
tree itself.
"""
import logging

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from app.config import settings
from app.errors import BadRequestError, NotFoundError
from app.models import Comment, Post, User
from app.pagination import paginate_cursor
from app.schemas import CommentCreate, CommentUpdate, CursorPage
from app.serializers import comment_to_dict

logger = logging.getLogger(__name__)


def _thread_loader(depth: int):
    """selectinload chain pulling *depth* levels of replies with their authors."""
    loader = selectinload(Comment.replies)
    chain = [loader.joinedload(Comment.author)]
    for _ in range(depth - 1):
        loader = loader.selectinload(Comment.replies)
        chain.append(loader.joinedload(Comment.author))
    return chain


def _thread_to_dict(comment: Comment, depth: int) -> dict:
    data = comment_to_dict(comment)
    if depth > 0:
        data["replies"] = [_thread_to_dict(r, depth - 1) for r in comment.replies]
    return data


async def _get_comment(db: AsyncSession, comment_id: str) -> Comment:
    comment = (
        await db.execute(select(Comment).where(Comment.id == comment_id))
    ).scalar_one_or_none()
    if comment is None:
        raise NotFoundError(f"Comment with ID {comment_id} not found")
    return comment


async def _reply_depth(db: AsyncSession, comment: Comment) -> int:
    """Number of ancestors above *comment* (0 for a top-level comment)."""
    depth = 0
    parent_id = comment.parent_id
    while parent_id is not None:
        depth += 1
        parent_id = (
            await db.execute(select(Comment.parent_id).where(Comment.id == parent_id))
        ).scalar_one_or_none()
    return depth


async def _reload(db: AsyncSession, comment_id: str) -> Comment:
    q = (
        select(Comment)
        .where(Comment.id == comment_id)
        .options(joinedload(Comment.author))
        .execution_options(populate_existing=True)
    )
    return (await db.execute(q)).unique().scalar_one()


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def get_comments_by_post(
    db: AsyncSession,
    post_id: str,
    limit: int = 20,
    cursor: str | None = None,
) -> CursorPage:
    """
    Return one cursor page of top-level comments for *post_id*, newest
    first.  Each carries ``reply_count`` (direct replies) and its reply
    tree, oldest first at every level.
    """
    depth = settings.COMMENT_MAX_DEPTH
    q = (
        select(Comment)
        .where(Comment.post_id == post_id, Comment.parent_id.is_(None))
        .options(joinedload(Comment.author), *_thread_loader(depth))
        .execution_options(populate_existing=True)
    )
    comments, next_cursor = await paginate_cursor(db, q, Comment, limit, cursor)

    reply_counts: dict[str, int] = {}
    if comments:
        count_q = (
            select(Comment.parent_id, func.count())
            .where(Comment.parent_id.in_([c.id for c in comments]))
            .group_by(Comment.parent_id)
        )
        reply_counts = dict((await db.execute(count_q)).all())

    items = []
    for comment in comments:
        data = _thread_to_dict(comment, depth)
        data["reply_count"] = reply_counts.get(comment.id, 0)
        items.append(data)
    return CursorPage(items=items, next_cursor=next_cursor)


async def create_comment(db: AsyncSession, data: CommentCreate) -> dict:
    """
    Add a comment or a reply.

    Raises NotFoundError when the post is missing or soft-deleted, when
    ``parent_id`` does not resolve, or when the author is missing or
    soft-deleted.  Raises BadRequestError when the parent belongs to a
    different post.
    """
    post = (
        await db.execute(select(Post.id).where(Post.id == data.post_id, Post.deleted_at.is_(None)))
    ).scalar_one_or_none()
    if post is None:
        raise NotFoundError("Post not found")

    parent_id = data.parent_id
    if parent_id is not None:
        parent = (
            await db.execute(select(Comment).where(Comment.id == parent_id))
        ).scalar_one_or_none()
        if parent is None:
            raise NotFoundError("Parent comment not found")
        if parent.post_id != data.post_id:
            raise BadRequestError("Parent comment does not belong to this post")

        if await _reply_depth(db, parent) >= settings.COMMENT_MAX_DEPTH:
            logger.debug(
                "Reply to %s exceeds depth %d, attaching to %s",
                parent.id,
                settings.COMMENT_MAX_DEPTH,
                parent.parent_id,
            )
            parent_id = parent.parent_id

    author = (
        await db.execute(select(User.id).where(User.id == data.author_id, User.deleted_at.is_(None)))
    ).scalar_one_or_none()
    if author is None:
        raise NotFoundError("Author not found")

    comment = Comment(
        content=data.content,
        author_id=data.author_id,
        post_id=data.post_id,
        parent_id=parent_id,
    )
    db.add(comment)
    await db.flush()

    return comment_to_dict(await _reload(db, comment.id))


async def update_comment(db: AsyncSession, comment_id: str, data: CommentUpdate) -> dict:
    """Replace the content of a comment; post and parent never change."""
    comment = await _get_comment(db, comment_id)
    comment.content = data.content
    await db.flush()
    return comment_to_dict(await _reload(db, comment_id))


async def delete_comment(db: AsyncSession, comment_id: str) -> dict:
    """Hard-delete a comment; replies go with it through the FK cascade."""
    await _get_comment(db, comment_id)
    comment = await _reload(db, comment_id)
    data = comment_to_dict(comment)

    await db.execute(delete(Comment).where(Comment.id == comment_id))
    # The DELETE bypassed the unit of work; drop the stale instance.
    db.expunge(comment)
    logger.info("Comment %s deleted", comment_id)
    return data
