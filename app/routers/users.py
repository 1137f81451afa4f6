from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import OffsetPaginationParams
from app.models import PostStatus, Role
from app.procedures import ProcedureContext, get_procedure_context, public_procedure
from app.schemas import PaginatedResponse, UserCreate, UserUpdate
from app.services import post_service, user_service

router = APIRouter(prefix="/api/v1/users", tags=["users"])


@router.get("", response_model=PaginatedResponse)
async def list_users(
    pagination: OffsetPaginationParams = Depends(),
    search: str | None = None,
    role: Role | None = None,
    ctx: ProcedureContext = Depends(get_procedure_context),
    db: AsyncSession = Depends(get_db),
):
    return await public_procedure.run(
        "user.list",
        ctx,
        lambda: user_service.list_users(db, pagination.page, pagination.limit, search, role),
    )


@router.get("/{user_id}")
async def get_user(
    user_id: str,
    ctx: ProcedureContext = Depends(get_procedure_context),
    db: AsyncSession = Depends(get_db),
):
    return await public_procedure.run("user.getById", ctx, lambda: user_service.get_user(db, user_id))


@router.get("/{user_id}/posts")
async def list_user_posts(
    user_id: str,
    status: PostStatus | None = None,
    ctx: ProcedureContext = Depends(get_procedure_context),
    db: AsyncSession = Depends(get_db),
):
    return await public_procedure.run(
        "post.getByUser", ctx, lambda: post_service.get_posts_by_user(db, user_id, status)
    )


@router.post("", status_code=201)
async def create_user(
    data: UserCreate,
    ctx: ProcedureContext = Depends(get_procedure_context),
    db: AsyncSession = Depends(get_db),
):
    return await public_procedure.run("user.create", ctx, lambda: user_service.create_user(db, data))


@router.patch("/{user_id}")
async def update_user(
    user_id: str,
    data: UserUpdate,
    ctx: ProcedureContext = Depends(get_procedure_context),
    db: AsyncSession = Depends(get_db),
):
    return await public_procedure.run(
        "user.update", ctx, lambda: user_service.update_user(db, user_id, data)
    )


@router.delete("/{user_id}")
async def delete_user(
    user_id: str,
    ctx: ProcedureContext = Depends(get_procedure_context),
    db: AsyncSession = Depends(get_db),
):
    return await public_procedure.run(
        "user.delete", ctx, lambda: user_service.delete_user(db, user_id)
    )
