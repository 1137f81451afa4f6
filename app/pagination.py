"""
Pagination engine shared by the list procedures.

Cursor mode (``post.list``, ``comment.getByPost``)
    Rows are ordered by ``created_at DESC, id ASC`` and positioned with a
    keyset comparison against the cursor row, so a page never depends on how
    many rows precede it.  ``limit + 1`` rows are fetched; when the extra
    row exists it is dropped from the page and its id becomes
    ``next_cursor``.  The next request therefore starts *at* that row.

Offset mode (``user.list``)
    ``LIMIT/OFFSET`` plus a separate ``COUNT`` under the same predicate.
    Totals are only consistent with the filter at query time.
"""
import math
from typing import Any, Sequence

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select

from app.errors import BadRequestError

# OFFSET is bound as a signed 64-bit integer by every supported driver.
MAX_OFFSET = 2**63 - 1


def search_filter(term: str | None, *columns):
    """OR of case-insensitive substring matches of *term* across *columns*."""
    if not term:
        return None
    return or_(*(column.icontains(term, autoescape=True) for column in columns))


def total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit)


def _newest_first(model):
    return (model.created_at.desc(), model.id.asc())


async def paginate_cursor(
    db: AsyncSession,
    stmt: Select,
    model,
    limit: int,
    cursor: str | None = None,
) -> tuple[list[Any], str | None]:
    """
    Run *stmt* (a ``select(model)`` with filters and loader options already
    applied) as one cursor page.

    Returns ``(rows, next_cursor)``.  ``next_cursor`` is None on the final
    page.  A cursor that matches no row yields an empty final page.
    """
    if cursor is not None:
        anchor = (
            await db.execute(select(model.created_at, model.id).where(model.id == cursor))
        ).one_or_none()
        if anchor is None:
            return [], None
        stmt = stmt.where(
            or_(
                model.created_at < anchor.created_at,
                and_(model.created_at == anchor.created_at, model.id >= anchor.id),
            )
        )

    stmt = stmt.order_by(*_newest_first(model)).limit(limit + 1)
    rows = list((await db.execute(stmt)).unique().scalars().all())

    next_cursor = None
    if len(rows) > limit:
        next_cursor = rows.pop().id
    return rows, next_cursor


async def paginate_offset(
    db: AsyncSession,
    model,
    criteria: Sequence,
    page: int,
    limit: int,
    options: Sequence = (),
) -> tuple[list[Any], int]:
    """
    Return ``(rows, total)`` for 1-based *page*.

    Two statements are issued: the COUNT and the LIMIT/OFFSET SELECT, both
    built from the same *criteria*.  Raises BadRequestError when the page
    lies beyond any OFFSET the database can bind.
    """
    offset = (page - 1) * limit
    if offset > MAX_OFFSET:
        raise BadRequestError("Page number is out of range")

    count_q = select(func.count()).select_from(model).where(*criteria)
    total: int = (await db.execute(count_q)).scalar_one()

    rows_q = (
        select(model)
        .where(*criteria)
        .options(*options)
        .order_by(*_newest_first(model))
        .offset(offset)
        .limit(limit)
    )
    rows = list((await db.execute(rows_q)).unique().scalars().all())
    return rows, total
