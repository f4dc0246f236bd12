"""JWT token creation and decoding.

Token claims:
  - sub:             user ID (stringified integer)
  - role:            "admin" | "user"
  - is_super_admin:  bool
  - permissions:     {ministry name: CapabilitySet} snapshot taken at login.
                     Informational only; authorization re-reads live rows.
  - type:            "access"
  - exp:             expiry timestamp
"""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from app.config import settings


def create_access_token(
    user_id: int,
    role: str,
    is_super_admin: bool = False,
    permissions: dict[str, dict[str, bool]] | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    payload = {
        "sub": str(user_id),
        "role": role,
        "is_super_admin": is_super_admin,
        "type": "access",
        "exp": expire,
    }
    if permissions is not None:
        payload["permissions"] = permissions
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict:
    """Decode and validate a JWT. Returns empty dict on failure."""
    try:
        return jwt.decode(
            token, settings.secret_key, algorithms=[settings.jwt_algorithm]
        )
    except JWTError:
        return {}
