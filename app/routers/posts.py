from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import CursorPaginationParams, post_pagination
from app.models import PostStatus
from app.procedures import ProcedureContext, get_procedure_context, public_procedure
from app.schemas import CursorPage, PostCreate, PostFilters, PostUpdate
from app.services import post_service

router = APIRouter(prefix="/api/v1/posts", tags=["posts"])


@router.get("", response_model=CursorPage)
async def list_posts(
    pagination: CursorPaginationParams = Depends(post_pagination),
    status: PostStatus | None = None,
    author_id: str | None = None,
    search: str | None = None,
    ctx: ProcedureContext = Depends(get_procedure_context),
    db: AsyncSession = Depends(get_db),
):
    filters = PostFilters(status=status, author_id=author_id, search=search)
    return await public_procedure.run(
        "post.list",
        ctx,
        lambda: post_service.list_posts(db, pagination.limit, pagination.cursor, filters),
    )


@router.get("/{post_id}")
async def get_post(
    post_id: str,
    ctx: ProcedureContext = Depends(get_procedure_context),
    db: AsyncSession = Depends(get_db),
):
    return await public_procedure.run("post.getById", ctx, lambda: post_service.get_post(db, post_id))


@router.post("", status_code=201)
async def create_post(
    data: PostCreate,
    ctx: ProcedureContext = Depends(get_procedure_context),
    db: AsyncSession = Depends(get_db),
):
    return await public_procedure.run("post.create", ctx, lambda: post_service.create_post(db, data))


@router.patch("/{post_id}")
async def update_post(
    post_id: str,
    data: PostUpdate,
    ctx: ProcedureContext = Depends(get_procedure_context),
    db: AsyncSession = Depends(get_db),
):
    return await public_procedure.run(
        "post.update", ctx, lambda: post_service.update_post(db, post_id, data)
    )


@router.post("/{post_id}/publish")
async def publish_post(
    post_id: str,
    ctx: ProcedureContext = Depends(get_procedure_context),
    db: AsyncSession = Depends(get_db),
):
    return await public_procedure.run(
        "post.publish", ctx, lambda: post_service.publish_post(db, post_id)
    )


@router.post("/{post_id}/archive")
async def archive_post(
    post_id: str,
    ctx: ProcedureContext = Depends(get_procedure_context),
    db: AsyncSession = Depends(get_db),
):
    return await public_procedure.run(
        "post.archive", ctx, lambda: post_service.archive_post(db, post_id)
    )


@router.delete("/{post_id}")
async def delete_post(
    post_id: str,
    ctx: ProcedureContext = Depends(get_procedure_context),
    db: AsyncSession = Depends(get_db),
):
    return await public_procedure.run(
        "post.delete", ctx, lambda: post_service.delete_post(db, post_id)
    )
