"""FastAPI dependencies for authentication.

Dependencies:
  get_identity       → verify the bearer token, return the Identity claims
  get_current_user   → Identity + load the (active) user row
  require_admin      → restrict to role "admin" or super admins
"""

from dataclasses import dataclass, field

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.jwt import decode_token
from app.database import get_db
from app.middleware.exceptions import AuthenticationError, PermissionDeniedError
from app.models.user import User, UserRole

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    """Claims of a verified access token. Lives for one request."""

    user_id: int
    role: str
    is_super_admin: bool = False
    permissions_snapshot: dict = field(default_factory=dict)

    @property
    def is_admin(self) -> bool:
        return self.is_super_admin or self.role == UserRole.ADMIN.value


def verify_token(token: str) -> Identity:
    """Turn a raw JWT into an Identity or raise AuthenticationError.

    Pure function of the token: signature and expiry only, no DB access.
    """
    payload = decode_token(token)
    subject = payload.get("sub")
    if not subject or payload.get("type") != "access":
        raise AuthenticationError("Invalid token")
    try:
        user_id = int(subject)
    except (TypeError, ValueError):
        raise AuthenticationError("Invalid token") from None

    return Identity(
        user_id=user_id,
        role=payload.get("role", UserRole.USER.value),
        is_super_admin=bool(payload.get("is_super_admin", False)),
        permissions_snapshot=payload.get("permissions") or {},
    )


# ── Core identity dependency ────────────────────────────────

async def get_identity(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Identity:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Missing token")
    return verify_token(credentials.credentials)


async def get_current_user(
    identity: Identity = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Load the user behind the token; reject deleted or deactivated accounts."""
    result = await db.execute(select(User).where(User.id == identity.user_id))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        raise AuthenticationError("User not found or inactive")
    return user


# ── Role-based access control ───────────────────────────────

async def require_admin(identity: Identity = Depends(get_identity)) -> Identity:
    """Restrict endpoint to admins and super admins."""
    if not identity.is_admin:
        raise PermissionDeniedError("Administrator rights required")
    return identity
