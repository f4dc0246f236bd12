"""Ministry permission management.

Endpoints:
    GET    /api/permissions/user/{user_id}   subject or admin
    GET    /api/permissions/all              admin
    POST   /api/permissions/assign           admin
    DELETE /api/permissions/revoke           admin
    POST   /api/permissions/apply-group      admin
    GET    /api/permissions/groups           admin
    GET    /api/permissions/check            caller's own capability

Admin rights are checked by dependency, before any row is touched. The
assignment logic itself lives in app.services.permissions.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import Identity, get_identity, require_admin
from app.auth.ministry_access import get_ministry, has_capability
from app.auth.permissions import normalize_capabilities, parse_capability
from app.database import get_db
from app.middleware.exceptions import BadRequestError, PermissionDeniedError
from app.models.permission import PermissionGroup
from app.schemas.permission import (
    ApplyGroupRequest,
    AssignResult,
    PermissionAssign,
    PermissionCheck,
    PermissionGroupOut,
    PermissionRevoke,
    RevokeResult,
    UserPermissionsOut,
    UserPermissionsOverview,
)
from app.services import permissions as service

router = APIRouter()


@router.get("/user/{user_id}", response_model=UserPermissionsOut)
async def user_permissions(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    if identity.user_id != user_id and not identity.is_admin:
        raise PermissionDeniedError("Access denied")

    user = await service.get_user(db, user_id)
    return UserPermissionsOut(
        user_id=user.id,
        is_super_admin=user.is_super_admin,
        permissions=await service.user_permission_matrix(db, user.id),
    )


@router.get("/all", response_model=list[UserPermissionsOverview])
async def all_permissions(
    db: AsyncSession = Depends(get_db),
    _admin: Identity = Depends(require_admin),
):
    return await service.permissions_overview(db)


@router.post("/assign", response_model=AssignResult)
async def assign_permissions(
    body: PermissionAssign,
    db: AsyncSession = Depends(get_db),
    admin: Identity = Depends(require_admin),
):
    affected = await service.assign_permissions(
        db,
        user_id=body.user_id,
        capabilities=body.permissions.model_dump(),
        granted_by=admin.user_id,
        ministry_id=body.ministry_id,
        all_ministries=body.apply_to_all_ministries,
    )
    return AssignResult(message="Permissions assigned", affected_ministries=affected)


@router.delete("/revoke", response_model=RevokeResult)
async def revoke_permissions(
    body: PermissionRevoke,
    db: AsyncSession = Depends(get_db),
    _admin: Identity = Depends(require_admin),
):
    revoked = await service.revoke_permissions(
        db,
        user_id=body.user_id,
        ministry_id=body.ministry_id,
        revoke_all=body.revoke_all,
    )
    return RevokeResult(message="Permissions revoked", revoked_count=revoked)


@router.post("/apply-group", response_model=AssignResult)
async def apply_group(
    body: ApplyGroupRequest,
    db: AsyncSession = Depends(get_db),
    admin: Identity = Depends(require_admin),
):
    affected = await service.apply_group(
        db,
        user_id=body.user_id,
        group_name=body.group_name,
        ministry_ids=body.ministry_ids,
        granted_by=admin.user_id,
    )
    return AssignResult(
        message=f"Group {body.group_name!r} applied", affected_ministries=affected
    )


@router.get("/groups", response_model=list[PermissionGroupOut])
async def list_groups(
    db: AsyncSession = Depends(get_db),
    _admin: Identity = Depends(require_admin),
):
    result = await db.execute(select(PermissionGroup).order_by(PermissionGroup.name))
    return [
        PermissionGroupOut(
            id=group.id,
            name=group.name,
            description=group.description,
            permissions=normalize_capabilities(group.permissions),
        )
        for group in result.scalars().all()
    ]


@router.get("/check", response_model=PermissionCheck)
async def check_permission(
    ministry_id: int = Query(...),
    permission: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
    identity: Identity = Depends(get_identity),
):
    try:
        capability = parse_capability(permission)
    except ValueError:
        raise BadRequestError(f"Unknown permission: {permission}") from None

    await get_ministry(db, ministry_id)
    return PermissionCheck(
        has_permission=await has_capability(db, identity, ministry_id, capability)
    )
