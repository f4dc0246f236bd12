"""Alternate permission API keyed by short capability names.

Payload entries look like {ministry_id, can_view, can_create, can_edit,
can_delete, can_view_team, ...}; they are converted to full capability
sets and handed to app.services.permissions. Admins only.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import Identity, require_admin
from app.database import get_db
from app.models.ministry import Ministry
from app.schemas.auth import UserOut
from app.schemas.ministry import MinistryRef
from app.schemas.permission import (
    BulkAssignRequest,
    BulkAssignResult,
    CreateUserWithPermissions,
    MinistryPermissionEntry,
    PermissionRowOut,
    PermissionSummaryRow,
)
from app.services import permissions as service

router = APIRouter()


def _entries(items: list[MinistryPermissionEntry]) -> list[tuple[int, dict]]:
    return [(item.ministry_id, item.to_capabilities().model_dump()) for item in items]


@router.get("/user/{user_id}", response_model=list[PermissionRowOut])
async def user_permission_rows(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    _admin: Identity = Depends(require_admin),
):
    await service.get_user(db, user_id)
    return await service.list_permission_rows(db, user_id)


@router.post("/assign", response_model=BulkAssignResult)
async def replace_user_permissions(
    body: BulkAssignRequest,
    db: AsyncSession = Depends(get_db),
    admin: Identity = Depends(require_admin),
):
    rows = await service.replace_permissions(
        db,
        user_id=body.user_id,
        entries=_entries(body.ministry_permissions),
        granted_by=admin.user_id,
    )
    return BulkAssignResult(permissions=rows)


@router.post("/create-user", response_model=UserOut, status_code=status.HTTP_201_CREATED)
async def create_user(
    body: CreateUserWithPermissions,
    db: AsyncSession = Depends(get_db),
    admin: Identity = Depends(require_admin),
):
    user = await service.create_user_with_permissions(
        db,
        name=body.name,
        email=body.email.lower(),
        password=body.password,
        role=body.role.value,
        entries=_entries(body.ministry_permissions),
        granted_by=admin.user_id,
    )
    return UserOut.model_validate(user)


@router.get("/ministries", response_model=list[MinistryRef])
async def ministry_choices(
    db: AsyncSession = Depends(get_db),
    _admin: Identity = Depends(require_admin),
):
    result = await db.execute(select(Ministry).order_by(Ministry.name))
    return [MinistryRef.model_validate(m) for m in result.scalars().all()]


@router.get("/summary", response_model=list[PermissionSummaryRow])
async def permission_summary(
    db: AsyncSession = Depends(get_db),
    _admin: Identity = Depends(require_admin),
):
    return await service.permission_summary(db)
