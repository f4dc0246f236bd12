"""Auth routes: register, login, me.

Route overview:
  POST /register  self-registration; the account stays inactive until an
                  admin activates it (PUT /api/users/{id}/activate)
  POST /login     email + password login, active accounts only
  GET  /me        current user profile + live ministry permissions
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.deps import get_current_user
from app.auth.jwt import create_access_token
from app.auth.password import hash_password, verify_password
from app.database import get_db, utcnow
from app.middleware.exceptions import (
    AuthenticationError,
    BadRequestError,
    PermissionDeniedError,
)
from app.models.user import User, UserRole
from app.schemas.auth import (
    LoginRequest,
    MeOut,
    RegisterRequest,
    RegisterResponse,
    TokenResponse,
    UserOut,
)
from app.services.permissions import permission_snapshot

logger = logging.getLogger(__name__)

router = APIRouter()


# ── POST /register ──────────────────────────────────────────

@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, db: AsyncSession = Depends(get_db)):
    email = body.email.lower()
    existing = await db.execute(select(User).where(User.email == email))
    if existing.scalar_one_or_none():
        raise BadRequestError("Email already registered", error_code="DUPLICATE_RECORD")

    user = User(
        name=body.name.strip(),
        email=email,
        hashed_password=hash_password(body.password),
        role=UserRole.USER.value,
        is_active=False,
    )
    db.add(user)
    await db.flush()

    logger.info(f"New registration pending approval: {email}")
    return RegisterResponse(
        message="Registration received; an administrator must activate the account",
        user=UserOut.model_validate(user),
    )


# ── POST /login ──────────────────────────────────────────────

@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)):
    """Email + password login. The token carries a display-only permission snapshot."""
    result = await db.execute(select(User).where(User.email == body.email.lower()))
    user = result.scalar_one_or_none()

    if not user or not verify_password(body.password, user.hashed_password):
        raise AuthenticationError("Invalid credentials")
    if not user.is_active:
        raise PermissionDeniedError("Account is pending approval or deactivated")

    user.last_login = utcnow()
    await db.flush()

    snapshot = await permission_snapshot(db, user.id)
    token = create_access_token(
        user_id=user.id,
        role=user.role,
        is_super_admin=user.is_super_admin,
        permissions=snapshot,
    )
    logger.info(f"User {user.email} logged in")
    return TokenResponse(
        access_token=token,
        user=UserOut.model_validate(user),
        permissions=snapshot,
    )


# ── GET /me ──────────────────────────────────────────────────

@router.get("/me", response_model=MeOut)
async def me(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    permissions = await permission_snapshot(db, user.id)
    return MeOut(**UserOut.model_validate(user).model_dump(), permissions=permissions)
