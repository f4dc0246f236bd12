"""Ministry-scoped authorization.

Per request:
  1. Resolve the ministry the request targets: path entity first, then the
     `ministry` / `ministry_id` field of a JSON body, then the `ministry`
     query parameter. First match wins.
  2. Admins and super admins are granted without further checks.
  3. Load the caller's live permission row for that ministry. No row means
     no access.
  4. Check the single capability the route requires.
  5. A collection read (listing, statistics, export) with no ministry in
     context is not rejected: the caller's authorized ministry set is
     loaded instead and the route must narrow its query with
     `MinistryAccess.scope()`.

The permission snapshot embedded in the token is never consulted here.

Usage:
    @router.put("/{action_id}")
    async def update_action(
        access: MinistryAccess = Depends(require_ministry_access(
            "update", path_param="action_id", lookup=action_ministry_id,
        )),
    ):
        ...
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from fastapi import Depends, Request
from sqlalchemy import Select, false, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import Identity, get_identity
from app.auth.permissions import Capability, capability_for
from app.database import get_db
from app.middleware.exceptions import (
    BadRequestError,
    PermissionDeniedError,
    ResourceNotFoundError,
)
from app.models.ministry import Ministry
from app.models.permission import UserMinistryPermission

logger = logging.getLogger(__name__)

# (db, path value) -> ministry id of the addressed entity (None if it has none).
# Raises ResourceNotFoundError when the entity itself does not exist.
MinistryLookup = Callable[[AsyncSession, str], Awaitable[int | None]]


# ── Ministry resolution ─────────────────────────────────────

async def get_ministry(db: AsyncSession, ministry_id: int) -> Ministry:
    ministry = await db.get(Ministry, ministry_id)
    if ministry is None:
        raise ResourceNotFoundError("Ministry", ministry_id)
    return ministry


async def resolve_ministry(db: AsyncSession, ref: Any) -> Ministry:
    """Resolve a client reference: numeric id, then exact name, then abbrev."""
    text_ref = str(ref).strip()
    if not text_ref:
        raise BadRequestError("Ministry not identified")

    if text_ref.isdigit():
        ministry = await db.get(Ministry, int(text_ref))
        if ministry is not None:
            return ministry

    result = await db.execute(select(Ministry).where(Ministry.name == text_ref))
    ministry = result.scalar_one_or_none()
    if ministry is not None:
        return ministry

    result = await db.execute(
        select(Ministry).where(func.lower(Ministry.abbrev) == text_ref.lower())
    )
    ministry = result.scalars().first()
    if ministry is None:
        raise ResourceNotFoundError("Ministry", text_ref)
    return ministry


async def _body_ministry_ref(request: Request) -> Any:
    raw = await request.body()
    if not raw:
        return None
    try:
        body = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    ref = body.get("ministry")
    if ref in (None, ""):
        ref = body.get("ministry_id")
    return None if ref in (None, "") else ref


async def resolve_request_ministry(
    request: Request,
    db: AsyncSession,
    path_param: str | None = None,
    lookup: MinistryLookup | None = None,
) -> Ministry | None:
    if path_param and lookup:
        value = request.path_params.get(path_param)
        if value is not None:
            # An addressed entity decides alone, even when it has no ministry.
            ministry_id = await lookup(db, str(value))
            if ministry_id is None:
                return None
            return await get_ministry(db, ministry_id)

    ref = await _body_ministry_ref(request)
    if ref is None:
        ref = request.query_params.get("ministry") or request.query_params.get("ministry_id")
    if ref is None:
        return None
    return await resolve_ministry(db, ref)


# ── Live capability lookups ─────────────────────────────────

async def load_permission_row(
    db: AsyncSession, user_id: int, ministry_id: int
) -> UserMinistryPermission | None:
    result = await db.execute(
        select(UserMinistryPermission).where(
            UserMinistryPermission.user_id == user_id,
            UserMinistryPermission.ministry_id == ministry_id,
        )
    )
    return result.scalar_one_or_none()


async def authorized_ministry_ids(
    db: AsyncSession,
    user_id: int,
    capability: Capability = Capability.VIEW_ACTIONS,
) -> set[int]:
    """Ministries where the user holds `capability`."""
    column = getattr(UserMinistryPermission, Capability(capability).value)
    result = await db.execute(
        select(UserMinistryPermission.ministry_id).where(
            UserMinistryPermission.user_id == user_id,
            column.is_(True),
        )
    )
    return set(result.scalars().all())


def _restrict(stmt: Select, column, ministry_ids: set[int] | frozenset[int]) -> Select:
    if not ministry_ids:
        return stmt.where(false())
    return stmt.where(column.in_(sorted(ministry_ids)))


async def filter_by_permission(
    db: AsyncSession,
    user_id: int,
    stmt: Select,
    column,
    capability: Capability = Capability.VIEW_ACTIONS,
) -> Select:
    """Narrow `stmt` to rows whose `column` is an authorized ministry id.

    With zero authorized ministries the predicate is always false; the
    statement is never returned unfiltered.
    """
    return _restrict(stmt, column, await authorized_ministry_ids(db, user_id, capability))


async def has_capability(
    db: AsyncSession,
    identity: Identity,
    ministry_id: int,
    capability: Capability,
) -> bool:
    if identity.is_admin:
        return True
    row = await load_permission_row(db, identity.user_id, ministry_id)
    return row is not None and bool(getattr(row, Capability(capability).value))


async def ensure_capability(
    db: AsyncSession,
    identity: Identity,
    ministry: Ministry,
    action: str,
    capability: Capability,
) -> UserMinistryPermission | None:
    """Raise PermissionDeniedError unless `identity` may `action` on `ministry`.

    Returns the permission row that granted access (None for admins).
    """
    if identity.is_admin:
        return None

    row = await load_permission_row(db, identity.user_id, ministry.id)
    if row is None:
        logger.info(f"User {identity.user_id} has no access to ministry {ministry.name}")
        raise PermissionDeniedError("No access to this ministry")

    if not getattr(row, Capability(capability).value):
        required = f"{action} on {ministry.name}"
        logger.info(f"User {identity.user_id} denied {required}")
        raise PermissionDeniedError(f"Permission denied: {required}", required=required)
    return row


# ── Request-scoped result ───────────────────────────────────

@dataclass(frozen=True)
class MinistryAccess:
    """Outcome of a granted authorization check."""

    identity: Identity
    action: str
    capability: Capability
    ministry: Ministry | None = None
    permissions: UserMinistryPermission | None = None
    # None → unrestricted (admin); otherwise the only ministries visible.
    ministry_ids: frozenset[int] | None = None

    def scope(self, stmt: Select, column) -> Select:
        """Apply the caller's ministry restriction to a listing query."""
        if self.ministry_ids is None:
            return stmt
        return _restrict(stmt, column, self.ministry_ids)


def require_ministry_access(
    action: str,
    *,
    capability: Capability | None = None,
    path_param: str | None = None,
    lookup: MinistryLookup | None = None,
    collection: bool = False,
):
    """Dependency factory: gate a route on one ministry capability.

    `collection=True` marks a read over many rows (listing, statistics,
    export): with no ministry in context it returns the caller's
    authorized set instead of failing.
    """
    required = capability or capability_for(action)

    async def _check(
        request: Request,
        identity: Identity = Depends(get_identity),
        db: AsyncSession = Depends(get_db),
    ) -> MinistryAccess:
        ministry = await resolve_request_ministry(request, db, path_param, lookup)

        if ministry is None:
            if identity.is_admin:
                return MinistryAccess(identity, action, required)
            if collection:
                ids = await authorized_ministry_ids(db, identity.user_id, required)
                return MinistryAccess(identity, action, required, ministry_ids=frozenset(ids))
            raise BadRequestError("Ministry not identified")

        row = await ensure_capability(db, identity, ministry, action, required)
        return MinistryAccess(
            identity,
            action,
            required,
            ministry=ministry,
            permissions=row,
            ministry_ids=None if identity.is_admin else frozenset({ministry.id}),
        )

    return _check
