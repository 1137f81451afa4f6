from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.procedures import ProcedureContext, get_procedure_context, public_procedure
from app.schemas import ProfileUpsert
from app.services import profile_service

router = APIRouter(prefix="/api/v1/users/{user_id}/profile", tags=["profiles"])


@router.get("")
async def get_profile(
    user_id: str,
    ctx: ProcedureContext = Depends(get_procedure_context),
    db: AsyncSession = Depends(get_db),
):
    return await public_procedure.run(
        "profile.getByUser", ctx, lambda: profile_service.get_profile(db, user_id)
    )


@router.put("")
async def upsert_profile(
    user_id: str,
    data: ProfileUpsert,
    ctx: ProcedureContext = Depends(get_procedure_context),
    db: AsyncSession = Depends(get_db),
):
    return await public_procedure.run(
        "profile.upsert", ctx, lambda: profile_service.upsert_profile(db, user_id, data)
    )
