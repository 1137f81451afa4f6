from fastapi import Query

from app.config import settings
from app.pagination import MAX_OFFSET

# Largest page whose OFFSET still fits a signed 64-bit integer at the largest page size.
MAX_PAGE = MAX_OFFSET // settings.USER_MAX_PAGE_SIZE + 1


class OffsetPaginationParams:
    """
    FastAPI dependency for page-numbered listings (``user.list``).

    Attributes
    ----------
    page:
        1-based page number (1..``MAX_PAGE``).
    limit:
        Items per page, clamped to ``settings.USER_MAX_PAGE_SIZE`` even if
        the query schema allows more.
    """

    def __init__(
        self,
        page: int = Query(1, ge=1, le=MAX_PAGE, description="Page number (1-based)."),
        limit: int = Query(
            settings.USER_PAGE_SIZE,
            ge=1,
            le=settings.USER_MAX_PAGE_SIZE,
            description="Number of items returned per page.",
        ),
    ) -> None:
        self.page = page
        self.limit = min(limit, settings.USER_MAX_PAGE_SIZE)


class CursorPaginationParams:
    """Parsed ``limit`` / ``cursor`` pair for cursor-paginated listings."""

    def __init__(self, limit: int, cursor: str | None = None) -> None:
        self.limit = limit
        self.cursor = cursor


def cursor_pagination(default_limit: int, max_limit: int):
    """
    Build a FastAPI dependency parsing ``limit`` (1..*max_limit*, default
    *default_limit*) and an optional ``cursor``.
    """

    def dependency(
        limit: int = Query(
            default_limit,
            ge=1,
            le=max_limit,
            description=f"Number of items returned per page (max {max_limit}).",
        ),
        cursor: str | None = Query(
            None,
            min_length=1,
            description="Id returned as next_cursor by the previous page.",
        ),
    ) -> CursorPaginationParams:
        return CursorPaginationParams(limit=limit, cursor=cursor)

    return dependency


post_pagination = cursor_pagination(settings.POST_PAGE_SIZE, settings.POST_MAX_PAGE_SIZE)
comment_pagination = cursor_pagination(settings.COMMENT_PAGE_SIZE, settings.COMMENT_MAX_PAGE_SIZE)
