from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import CursorPaginationParams, comment_pagination
from app.procedures import ProcedureContext, get_procedure_context, public_procedure
from app.schemas import CommentCreate, CommentUpdate, CursorPage
from app.services import comment_service

router = APIRouter(prefix="/api/v1", tags=["comments"])


@router.get("/posts/{post_id}/comments", response_model=CursorPage)
async def list_post_comments(
    post_id: str,
    pagination: CursorPaginationParams = Depends(comment_pagination),
    ctx: ProcedureContext = Depends(get_procedure_context),
    db: AsyncSession = Depends(get_db),
):
    return await public_procedure.run(
        "comment.getByPost",
        ctx,
        lambda: comment_service.get_comments_by_post(
            db, post_id, pagination.limit, pagination.cursor
        ),
    )


@router.post("/comments", status_code=201)
async def create_comment(
    data: CommentCreate,
    ctx: ProcedureContext = Depends(get_procedure_context),
    db: AsyncSession = Depends(get_db),
):
    return await public_procedure.run(
        "comment.create", ctx, lambda: comment_service.create_comment(db, data)
    )


@router.patch("/comments/{comment_id}")
async def update_comment(
    comment_id: str,
    data: CommentUpdate,
    ctx: ProcedureContext = Depends(get_procedure_context),
    db: AsyncSession = Depends(get_db),
):
    return await public_procedure.run(
        "comment.update", ctx, lambda: comment_service.update_comment(db, comment_id, data)
    )


@router.delete("/comments/{comment_id}")
async def delete_comment(
    comment_id: str,
    ctx: ProcedureContext = Depends(get_procedure_context),
    db: AsyncSession = Depends(get_db),
):
    return await public_procedure.run(
        "comment.delete", ctx, lambda: comment_service.delete_comment(db, comment_id)
    )
