"""User administration (admins only).

Business rules, all answered with 400:
  - an admin cannot deactivate, delete or re-role their own account
  - the last active admin cannot be deactivated or demoted
  - the last admin cannot be deleted
  - activating an already active account
"""

import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, Request
from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import Identity, require_admin
from app.database import get_db, utcnow
from app.middleware.exceptions import BadRequestError
from app.models.user import User, UserRole
from app.schemas.auth import UserOut
from app.schemas.user import (
    DeletedUser,
    PendingUsers,
    RoleUpdate,
    SignupDay,
    UserCounts,
    UserDeleted,
    UserEnvelope,
    UserStats,
)
from app.services.permissions import get_user
from app.utils.activity import record_history

logger = logging.getLogger(__name__)

router = APIRouter()


async def _admin_count(db: AsyncSession, *, active_only: bool) -> int:
    stmt = select(func.count(User.id)).where(User.role == UserRole.ADMIN.value)
    if active_only:
        stmt = stmt.where(User.is_active.is_(True))
    return await db.scalar(stmt) or 0


def _reject_self(identity: Identity, user_id: int, verb: str) -> None:
    if identity.user_id == user_id:
        raise BadRequestError(f"You cannot {verb} your own account")


@router.get("/", response_model=list[UserOut])
async def list_users(
    db: AsyncSession = Depends(get_db),
    _admin: Identity = Depends(require_admin),
):
    result = await db.execute(select(User).order_by(User.created_at.desc(), User.id.desc()))
    return [UserOut.model_validate(u) for u in result.scalars().all()]


@router.get("/pending", response_model=PendingUsers)
async def pending_users(
    db: AsyncSession = Depends(get_db),
    _admin: Identity = Depends(require_admin),
):
    result = await db.execute(
        select(User).where(User.is_active.is_(False)).order_by(User.created_at, User.id)
    )
    users = [UserOut.model_validate(u) for u in result.scalars().all()]
    return PendingUsers(count=len(users), users=users)


@router.get("/stats", response_model=UserStats)
async def user_stats(
    db: AsyncSession = Depends(get_db),
    _admin: Identity = Depends(require_admin),
):
    counts = (
        await db.execute(
            select(
                func.count(User.id).label("total"),
                func.count(case((User.is_active.is_(True), 1))).label("active"),
                func.count(case((User.is_active.is_(False), 1))).label("pending"),
                func.count(case((User.role == UserRole.ADMIN.value, 1))).label("admins"),
                func.count(case((User.role == UserRole.USER.value, 1))).label("users"),
            )
        )
    ).one()

    since = utcnow() - timedelta(days=30)
    recent = await db.execute(select(User.created_at).where(User.created_at > since))
    per_day: dict = {}
    for (created_at,) in recent.all():
        per_day[created_at.date()] = per_day.get(created_at.date(), 0) + 1

    return UserStats(
        overview=UserCounts(**counts._mapping),
        recent_signups=[
            SignupDay(date=day, signups=n) for day, n in sorted(per_day.items(), reverse=True)
        ],
    )


@router.put("/{user_id}/activate", response_model=UserEnvelope)
@record_history("activated", entity_type="user", id_param="user_id")
async def activate_user(
    user_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    admin: Identity = Depends(require_admin),
):
    user = await get_user(db, user_id)
    if user.is_active:
        raise BadRequestError("User is already active")

    user.is_active = True
    user.approved_by = admin.user_id
    user.approved_at = utcnow()
    await db.flush()

    logger.info(f"User {user.email} activated by {admin.user_id}")
    return UserEnvelope(message="User activated", user=UserOut.model_validate(user))


@router.put("/{user_id}/deactivate", response_model=UserEnvelope)
@record_history("deactivated", entity_type="user", id_param="user_id")
async def deactivate_user(
    user_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    admin: Identity = Depends(require_admin),
):
    _reject_self(admin, user_id, "deactivate")
    user = await get_user(db, user_id)

    if user.role == UserRole.ADMIN.value and user.is_active:
        if await _admin_count(db, active_only=True) <= 1:
            raise BadRequestError("Cannot deactivate the last administrator")

    user.is_active = False
    await db.flush()

    logger.warning(f"User {user.email} deactivated by {admin.user_id}")
    return UserEnvelope(message="User deactivated", user=UserOut.model_validate(user))


@router.put("/{user_id}/role", response_model=UserEnvelope)
@record_history("role_changed", entity_type="user", id_param="user_id")
async def change_role(
    user_id: int,
    body: RoleUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    admin: Identity = Depends(require_admin),
):
    _reject_self(admin, user_id, "change the role of")
    user = await get_user(db, user_id)

    if body.role == UserRole.USER and user.role == UserRole.ADMIN.value:
        if await _admin_count(db, active_only=True) <= 1:
            raise BadRequestError("Cannot demote the last administrator")

    user.role = body.role.value
    await db.flush()

    logger.info(f"Role of {user.email} set to {user.role} by {admin.user_id}")
    return UserEnvelope(message="Role updated", user=UserOut.model_validate(user))


@router.delete("/{user_id}", response_model=UserDeleted)
@record_history("deleted", entity_type="user", id_param="user_id")
async def delete_user(
    user_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    admin: Identity = Depends(require_admin),
):
    _reject_self(admin, user_id, "delete")
    user = await get_user(db, user_id)

    if user.role == UserRole.ADMIN.value and await _admin_count(db, active_only=False) <= 1:
        raise BadRequestError("Cannot delete the last administrator")

    deleted = DeletedUser(id=user.id, name=user.name, email=user.email)
    await db.delete(user)
    await db.flush()

    logger.warning(f"User {deleted.email} deleted by {admin.user_id}")
    return UserDeleted(message="User deleted", deleted=deleted)
