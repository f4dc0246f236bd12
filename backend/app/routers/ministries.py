"""Ministry directory (public, read-only)."""

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.ministry_access import get_ministry
from app.database import get_db
from app.models.ministry import Ministry
from app.schemas.ministry import MinistryOut

router = APIRouter()


@router.get("/", response_model=list[MinistryOut])
async def list_ministries(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(Ministry).order_by(Ministry.name))
    return [MinistryOut.model_validate(m) for m in result.scalars().all()]


@router.get("/{ministry_id}", response_model=MinistryOut)
async def read_ministry(ministry_id: int, db: AsyncSession = Depends(get_db)):
    return MinistryOut.model_validate(await get_ministry(db, ministry_id))
