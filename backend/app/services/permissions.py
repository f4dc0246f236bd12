"""Permission assignment service.

Every mutation runs inside the caller's request transaction (see
app.database.get_db): raising at any point rolls back every row already
written by the same call. Routers check admin rights before calling in.

  - assign_permissions()   upsert one CapabilitySet for one or all ministries
  - revoke_permissions()   delete one row or every row of a user
  - apply_group()          upsert a named template onto a list of ministries
  - replace_permissions()  delete all rows of a user, then insert the new set
  - create_user_with_permissions()
"""

import logging
from collections.abc import Iterable, Mapping

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.ministry_access import get_ministry
from app.auth.password import hash_password
from app.auth.permissions import capabilities_of, normalize_capabilities
from app.database import utcnow
from app.middleware.exceptions import BadRequestError, ResourceNotFoundError
from app.models.ministry import Ministry
from app.models.permission import PermissionGroup, UserMinistryPermission
from app.models.user import User

logger = logging.getLogger(__name__)


async def get_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise ResourceNotFoundError("User", user_id)
    return user


async def _upsert(
    db: AsyncSession,
    user_id: int,
    ministry_id: int,
    capabilities: Mapping[str, bool],
    granted_by: int | None,
) -> UserMinistryPermission:
    """Insert or fully replace the CapabilitySet of one (user, ministry) pair."""
    result = await db.execute(
        select(UserMinistryPermission).where(
            UserMinistryPermission.user_id == user_id,
            UserMinistryPermission.ministry_id == ministry_id,
        )
    )
    row = result.scalar_one_or_none()
    if row is None:
        row = UserMinistryPermission(
            user_id=user_id, ministry_id=ministry_id, created_by=granted_by
        )
        db.add(row)
    for field, value in capabilities.items():
        setattr(row, field, value)
    row.updated_at = utcnow()
    await db.flush()
    return row


# ── Mutations ────────────────────────────────────────────────

async def assign_permissions(
    db: AsyncSession,
    *,
    user_id: int,
    capabilities: Mapping[str, bool] | None,
    granted_by: int,
    ministry_id: int | None = None,
    all_ministries: bool = False,
) -> int:
    """Upsert a CapabilitySet. Returns the number of ministries touched."""
    if ministry_id is None and not all_ministries:
        raise BadRequestError("ministry_id or apply_to_all_ministries is required")

    await get_user(db, user_id)
    caps = normalize_capabilities(capabilities)

    if all_ministries:
        result = await db.execute(select(Ministry.id).order_by(Ministry.id))
        ministry_ids = list(result.scalars().all())
    else:
        await get_ministry(db, ministry_id)
        ministry_ids = [ministry_id]

    for target in ministry_ids:
        await _upsert(db, user_id, target, caps, granted_by)

    logger.info(
        f"Permissions assigned to user {user_id} on {len(ministry_ids)} ministries",
        extra={"user_id": user_id, "granted_by": granted_by},
    )
    return len(ministry_ids)


async def revoke_permissions(
    db: AsyncSession,
    *,
    user_id: int,
    ministry_id: int | None = None,
    revoke_all: bool = False,
) -> int:
    """Delete permission rows. Revoking nothing is not an error."""
    if ministry_id is None and not revoke_all:
        raise BadRequestError("ministry_id or revoke_all is required")

    stmt = delete(UserMinistryPermission).where(UserMinistryPermission.user_id == user_id)
    if not revoke_all:
        stmt = stmt.where(UserMinistryPermission.ministry_id == ministry_id)

    result = await db.execute(stmt)
    revoked = result.rowcount or 0
    logger.info(f"Revoked {revoked} permission rows from user {user_id}")
    return revoked


async def apply_group(
    db: AsyncSession,
    *,
    user_id: int,
    group_name: str,
    ministry_ids: list[int],
    granted_by: int,
) -> int:
    if not ministry_ids:
        raise BadRequestError("ministry_ids must not be empty")

    await get_user(db, user_id)
    result = await db.execute(
        select(PermissionGroup).where(PermissionGroup.name == group_name)
    )
    group = result.scalar_one_or_none()
    if group is None:
        raise ResourceNotFoundError("Permission group", group_name)

    caps = normalize_capabilities(group.permissions)
    for ministry_id in ministry_ids:
        await get_ministry(db, ministry_id)
        await _upsert(db, user_id, ministry_id, caps, granted_by)

    logger.info(
        f"Group {group_name!r} applied to user {user_id} on {len(ministry_ids)} ministries"
    )
    return len(ministry_ids)


async def _insert_all(
    db: AsyncSession,
    user_id: int,
    entries: Iterable[tuple[int, Mapping[str, bool]]],
    granted_by: int,
) -> None:
    for ministry_id, capabilities in entries:
        await get_ministry(db, ministry_id)
        db.add(
            UserMinistryPermission(
                user_id=user_id,
                ministry_id=ministry_id,
                created_by=granted_by,
                **normalize_capabilities(capabilities),
            )
        )
    await db.flush()


async def replace_permissions(
    db: AsyncSession,
    *,
    user_id: int,
    entries: list[tuple[int, Mapping[str, bool]]],
    granted_by: int,
) -> list[dict]:
    """Bulk replace: the user ends up with exactly `entries`."""
    await get_user(db, user_id)
    await db.execute(
        delete(UserMinistryPermission).where(UserMinistryPermission.user_id == user_id)
    )
    await _insert_all(db, user_id, entries, granted_by)

    logger.info(f"Permissions of user {user_id} replaced ({len(entries)} ministries)")
    return await list_permission_rows(db, user_id)


async def create_user_with_permissions(
    db: AsyncSession,
    *,
    name: str,
    email: str,
    password: str,
    role: str,
    entries: list[tuple[int, Mapping[str, bool]]],
    granted_by: int,
) -> User:
    """Create an active, pre-approved account and its permission rows."""
    existing = await db.execute(select(User.id).where(User.email == email))
    if existing.scalar_one_or_none() is not None:
        raise BadRequestError("Email already registered", error_code="DUPLICATE_RECORD")

    user = User(
        name=name,
        email=email,
        hashed_password=hash_password(password),
        role=role,
        is_active=True,
        approved_by=granted_by,
        approved_at=utcnow(),
    )
    db.add(user)
    await db.flush()

    await _insert_all(db, user.id, entries, granted_by)
    logger.info(f"User {email} created with {len(entries)} ministry permissions")
    return user


# ── Queries ──────────────────────────────────────────────────

async def list_permission_rows(db: AsyncSession, user_id: int) -> list[dict]:
    """Existing rows only, ordered by ministry name."""
    result = await db.execute(
        select(UserMinistryPermission, Ministry.name)
        .join(Ministry, Ministry.id == UserMinistryPermission.ministry_id)
        .where(UserMinistryPermission.user_id == user_id)
        .order_by(Ministry.name)
    )
    return [
        {
            "id": row.id,
            "user_id": row.user_id,
            "ministry_id": row.ministry_id,
            "ministry_name": name,
            "created_by": row.created_by,
            "updated_at": row.updated_at,
            **capabilities_of(row),
        }
        for row, name in result.all()
    ]


async def user_permission_matrix(db: AsyncSession, user_id: int) -> list[dict]:
    """One entry per ministry; ministries without a row read all-false."""
    result = await db.execute(
        select(Ministry, UserMinistryPermission)
        .outerjoin(
            UserMinistryPermission,
            (UserMinistryPermission.ministry_id == Ministry.id)
            & (UserMinistryPermission.user_id == user_id),
        )
        .order_by(Ministry.name)
    )
    return [
        {
            "ministry_id": ministry.id,
            "ministry_name": ministry.name,
            "ministry_abbrev": ministry.abbrev,
            "has_access": row is not None,
            **capabilities_of(row),
        }
        for ministry, row in result.all()
    ]


async def permissions_overview(db: AsyncSession) -> list[dict]:
    """Every user with the rows they actually hold."""
    users = (await db.execute(select(User).order_by(User.name))).scalars().all()
    rows = (
        await db.execute(
            select(UserMinistryPermission, Ministry)
            .join(Ministry, Ministry.id == UserMinistryPermission.ministry_id)
            .order_by(Ministry.name)
        )
    ).all()

    by_user: dict[int, list[dict]] = {}
    for row, ministry in rows:
        by_user.setdefault(row.user_id, []).append({
            "ministry_id": ministry.id,
            "ministry_name": ministry.name,
            "ministry_abbrev": ministry.abbrev,
            "has_access": True,
            **capabilities_of(row),
        })

    return [
        {
            "user_id": user.id,
            "user_name": user.name,
            "user_email": user.email,
            "user_role": user.role,
            "is_active": user.is_active,
            "is_super_admin": user.is_super_admin,
            "permissions": by_user.get(user.id, []),
        }
        for user in users
    ]


async def permission_summary(db: AsyncSession) -> list[dict]:
    """Non-admin users with the ministries they can reach."""
    users = (
        await db.execute(
            select(User).where(User.role != "admin").order_by(User.name)
        )
    ).scalars().all()
    rows = (
        await db.execute(
            select(UserMinistryPermission.user_id, Ministry.name)
            .join(Ministry, Ministry.id == UserMinistryPermission.ministry_id)
        )
    ).all()

    names: dict[int, set[str]] = {}
    for user_id, ministry_name in rows:
        names.setdefault(user_id, set()).add(ministry_name)

    return [
        {
            "id": user.id,
            "name": user.name,
            "email": user.email,
            "role": user.role,
            "ministries_count": len(names.get(user.id, ())),
            "ministries": sorted(names.get(user.id, ())),
        }
        for user in users
    ]


async def permission_snapshot(db: AsyncSession, user_id: int) -> dict[str, dict[str, bool]]:
    """{ministry name: CapabilitySet} embedded in tokens at login."""
    result = await db.execute(
        select(UserMinistryPermission, Ministry.name)
        .join(Ministry, Ministry.id == UserMinistryPermission.ministry_id)
        .where(UserMinistryPermission.user_id == user_id)
    )
    return {name: capabilities_of(row) for row, name in result.all()}
