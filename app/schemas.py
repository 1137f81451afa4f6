from typing import Annotated

from pydantic import BaseModel, EmailStr, Field, HttpUrl, StringConstraints

from app.models import PostStatus, Role

SLUG_PATTERN = r"^[a-z0-9-]+$"

Identifier = Annotated[str, StringConstraints(min_length=1, max_length=36)]
Slug = Annotated[
    str, StringConstraints(min_length=1, max_length=100, pattern=SLUG_PATTERN)
]


# --- User ---

class UserCreate(BaseModel):
    email: EmailStr
    name: str | None = Field(None, min_length=1, max_length=150)
    role: Role = Role.USER


class UserUpdate(BaseModel):
    email: EmailStr | None = None
    name: str | None = Field(None, min_length=1, max_length=150)
    role: Role | None = None


# --- Profile ---

class ProfileUpsert(BaseModel):
    """Only the fields present in the payload are written on update."""

    bio: str | None = Field(None, max_length=500)
    avatar: HttpUrl | None = None
    website: HttpUrl | None = None


# --- Category ---

class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    slug: Slug


class CategoryUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    slug: Slug | None = None


# --- Post ---

class PostCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    content: str | None = None
    author_id: Identifier
    category_ids: list[Identifier] | None = None


class PostUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=255)
    content: str | None = None
    # Replaces the whole set of categories when present.
    category_ids: list[Identifier] | None = None


class PostFilters(BaseModel):
    status: PostStatus | None = None
    author_id: Identifier | None = None
    search: str | None = None


# --- Comment ---

class CommentCreate(BaseModel):
    content: str = Field(min_length=1, max_length=5000)
    author_id: Identifier
    post_id: Identifier
    parent_id: Identifier | None = None


class CommentUpdate(BaseModel):
    content: str = Field(min_length=1, max_length=5000)


# --- Pagination ---

class PaginatedResponse(BaseModel):
    """Offset page (user.list)."""

    items: list
    total: int
    page: int
    limit: int
    total_pages: int


class CursorPage(BaseModel):
    """Cursor page (post.list, comment.getByPost); no next_cursor on the last page."""

    items: list
    next_cursor: str | None = None
