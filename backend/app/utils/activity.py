"""Audit trail for resource handlers.

Usage:
    @router.put("/{action_id}", response_model=ActionEnvelope)
    @record_history("updated", id_param="action_id")
    async def update_action(
        action_id: str,
        request: Request,
        db: AsyncSession = Depends(get_db),
        access: MinistryAccess = Depends(require_ministry_access("update", ...)),
    ):
        ...

The wrapped handler runs first. Only when it returns normally is one
ActionHistory row appended, inside a SAVEPOINT of the request's own
transaction: a failed audit write is logged and rolled back to the
savepoint, and the handler's result is returned untouched.
"""

from __future__ import annotations

import functools
import json
import logging
from typing import Any

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import Identity
from app.auth.ministry_access import MinistryAccess
from app.models.action import ActionHistory
from app.models.user import User

logger = logging.getLogger(__name__)

# Result keys that may wrap the affected entity.
_NESTED_KEYS = ("action", "member", "user", "deleted")


def _pick(kwargs: dict, kind: type) -> Any:
    for value in kwargs.values():
        if isinstance(value, kind):
            return value
    return None


def _actor_id(kwargs: dict) -> int | None:
    access = _pick(kwargs, MinistryAccess)
    if access is not None:
        return access.identity.user_id
    identity = _pick(kwargs, Identity)
    if identity is not None:
        return identity.user_id
    user = _pick(kwargs, User)
    return user.id if user is not None else None


def _get(obj: Any, key: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(key)
    return getattr(obj, key, None)


def entity_id_of(result: Any, request: Request, id_param: str | None) -> str | None:
    """Path parameter first, then `result.id`, then a wrapped entity's id."""
    if id_param:
        value = request.path_params.get(id_param)
        if value is not None:
            return str(value)

    if result is None:
        return None
    value = _get(result, "id")
    if value is not None:
        return str(value)
    for key in _NESTED_KEYS:
        nested = _get(result, key)
        if nested is not None and _get(nested, "id") is not None:
            return str(_get(nested, "id"))
    return None


async def _request_snapshot(request: Request) -> dict:
    body: Any = None
    raw = await request.body()
    if raw:
        try:
            body = json.loads(raw)
        except ValueError:
            body = None
    return {
        "method": request.method,
        "path": request.url.path,
        "body": body,
        "query": dict(request.query_params),
    }


async def write_history(
    db: AsyncSession,
    request: Request,
    *,
    action_type: str,
    entity_type: str,
    entity_id: str,
    user_id: int | None,
) -> None:
    """Append one history row in a savepoint. Never raises."""
    try:
        changes = await _request_snapshot(request)
        async with db.begin_nested():
            db.add(
                ActionHistory(
                    entity_type=entity_type,
                    entity_id=entity_id,
                    user_id=user_id,
                    action_type=action_type,
                    changes=changes,
                )
            )
    except Exception:
        logger.exception(
            f"Failed to record {action_type} history for {entity_type} {entity_id}",
            extra={"path": request.url.path, "method": request.method},
        )


def record_history(
    action_type: str,
    entity_type: str = "action",
    id_param: str | None = None,
):
    """Decorator recording a history row after the handler succeeds.

    The handler must take a `Request` and an `AsyncSession`; the actor is
    read from a `MinistryAccess`, `Identity` or `User` argument.
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            result = await func(*args, **kwargs)

            request = _pick(kwargs, Request)
            db = _pick(kwargs, AsyncSession)
            if request is None or db is None:
                logger.error(f"{func.__name__}: no request/session to record {action_type}")
                return result

            entity_id = entity_id_of(result, request, id_param)
            if entity_id is None:
                return result

            await write_history(
                db,
                request,
                action_type=action_type,
                entity_type=entity_type,
                entity_id=entity_id,
                user_id=_actor_id(kwargs),
            )
            return result

        return wrapper

    return decorator
