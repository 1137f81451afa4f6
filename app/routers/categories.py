from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.procedures import ProcedureContext, get_procedure_context, public_procedure
from app.schemas import CategoryCreate, CategoryUpdate
from app.services import category_service

router = APIRouter(prefix="/api/v1/categories", tags=["categories"])


@router.get("")
async def list_categories(
    ctx: ProcedureContext = Depends(get_procedure_context),
    db: AsyncSession = Depends(get_db),
):
    return await public_procedure.run(
        "category.list", ctx, lambda: category_service.list_categories(db)
    )


# Declared before "/{category_id}" so "slug" is not captured as an id.
@router.get("/slug/{slug}")
async def get_category_by_slug(
    slug: str,
    ctx: ProcedureContext = Depends(get_procedure_context),
    db: AsyncSession = Depends(get_db),
):
    return await public_procedure.run(
        "category.getBySlug", ctx, lambda: category_service.get_category_by_slug(db, slug)
    )


@router.get("/{category_id}")
async def get_category(
    category_id: str,
    ctx: ProcedureContext = Depends(get_procedure_context),
    db: AsyncSession = Depends(get_db),
):
    return await public_procedure.run(
        "category.getById", ctx, lambda: category_service.get_category(db, category_id)
    )


@router.post("", status_code=201)
async def create_category(
    data: CategoryCreate,
    ctx: ProcedureContext = Depends(get_procedure_context),
    db: AsyncSession = Depends(get_db),
):
    return await public_procedure.run(
        "category.create", ctx, lambda: category_service.create_category(db, data)
    )


@router.patch("/{category_id}")
async def update_category(
    category_id: str,
    data: CategoryUpdate,
    ctx: ProcedureContext = Depends(get_procedure_context),
    db: AsyncSession = Depends(get_db),
):
    return await public_procedure.run(
        "category.update", ctx, lambda: category_service.update_category(db, category_id, data)
    )


@router.delete("/{category_id}")
async def delete_category(
    category_id: str,
    ctx: ProcedureContext = Depends(get_procedure_context),
    db: AsyncSession = Depends(get_db),
):
    return await public_procedure.run(
        "category.delete", ctx, lambda: category_service.delete_category(db, category_id)
    )
