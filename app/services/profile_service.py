"""
Profile service: the 1:1 profile of a User, created lazily on first upsert.
"""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from app.errors import NotFoundError
from app.models import Profile
from app.schemas import ProfileUpsert
from app.serializers import profile_to_dict, user_ref
from app.services.user_service import get_live_user


async def _load(db: AsyncSession, user_id: str) -> Profile | None:
    q = (
        select(Profile)
        .where(Profile.user_id == user_id)
        .options(joinedload(Profile.user))
        .execution_options(populate_existing=True)
    )
    return (await db.execute(q)).unique().scalar_one_or_none()


def _profile_with_user(profile: Profile) -> dict:
    data = profile_to_dict(profile)
    data["user"] = user_ref(profile.user, "email", "role")
    return data


async def get_profile(db: AsyncSession, user_id: str) -> dict:
    profile = await _load(db, user_id)
    if profile is None:
        raise NotFoundError(f"Profile for user {user_id} not found")
    return _profile_with_user(profile)


async def upsert_profile(db: AsyncSession, user_id: str, data: ProfileUpsert) -> dict:
    """
    Create or update the profile of a live user.

    Only fields present in *data* are written: on update absent fields are
    left alone, on create they stay NULL.
    """
    await get_live_user(db, user_id)

    fields = {
        key: str(value) if key in ("avatar", "website") and value is not None else value
        for key, value in data.model_dump(exclude_unset=True).items()
    }

    profile = await _load(db, user_id)
    if profile is None:
        profile = Profile(user_id=user_id, **fields)
        db.add(profile)
    else:
        for field, value in fields.items():
            setattr(profile, field, value)
    await db.flush()

    return _profile_with_user(await _load(db, user_id))
