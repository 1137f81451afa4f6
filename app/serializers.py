"""
Plain-dict serialisers shared by the services.

Relationships are only rendered when a service eagerly loaded them; every
caller passes the counts it computed rather than touching lazy collections.
"""
from datetime import datetime, timezone

from app.models import Category, Comment, Post, Profile, User


def iso(value: datetime | None) -> str | None:
    """UTC ISO-8601 string; naive values (SQLite drops the offset) are read as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def user_ref(user: User | None, *fields: str) -> dict | None:
    """``{id, name}`` plus any of ``email`` / ``role`` requested in *fields*."""
    if user is None:
        return None
    data = {"id": user.id, "name": user.name}
    if "email" in fields:
        data["email"] = user.email
    if "role" in fields:
        data["role"] = user.role.value
    return data


def user_to_dict(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role.value,
        "created_at": iso(user.created_at),
        "updated_at": iso(user.updated_at),
        "deleted_at": iso(user.deleted_at),
    }


def profile_to_dict(profile: Profile | None) -> dict | None:
    if profile is None:
        return None
    return {
        "id": profile.id,
        "user_id": profile.user_id,
        "bio": profile.bio,
        "avatar": profile.avatar,
        "website": profile.website,
        "created_at": iso(profile.created_at),
        "updated_at": iso(profile.updated_at),
    }


def category_to_dict(category: Category, post_count: int | None = None) -> dict:
    data = {
        "id": category.id,
        "name": category.name,
        "slug": category.slug,
        "created_at": iso(category.created_at),
        "updated_at": iso(category.updated_at),
    }
    if post_count is not None:
        data["post_count"] = post_count
    return data


def post_to_dict(post: Post) -> dict:
    """Scalar columns only; services attach author/categories/counts."""
    return {
        "id": post.id,
        "title": post.title,
        "content": post.content,
        "status": post.status.value,
        "author_id": post.author_id,
        "created_at": iso(post.created_at),
        "updated_at": iso(post.updated_at),
        "deleted_at": iso(post.deleted_at),
    }


def comment_to_dict(comment: Comment) -> dict:
    return {
        "id": comment.id,
        "content": comment.content,
        "post_id": comment.post_id,
        "parent_id": comment.parent_id,
        "author_id": comment.author_id,
        "author": user_ref(comment.author),
        "created_at": iso(comment.created_at),
        "updated_at": iso(comment.updated_at),
    }
