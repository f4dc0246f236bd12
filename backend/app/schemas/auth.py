from datetime import datetime

from pydantic import BaseModel, EmailStr, Field

from app.schemas.permission import CapabilitySet


class UserOut(BaseModel):
    id: int
    name: str
    email: str
    role: str
    is_active: bool
    is_super_admin: bool
    created_at: datetime | None = None
    last_login: datetime | None = None
    approved_at: datetime | None = None

    model_config = {"from_attributes": True}


# ── Self-registration (pending admin approval) ──────────────

class RegisterRequest(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=8)


class RegisterResponse(BaseModel):
    message: str
    user: UserOut


# ── Login ────────────────────────────────────────────────────

class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut
    # ministry name → capabilities at login time (display only)
    permissions: dict[str, CapabilitySet] = Field(default_factory=dict)


class MeOut(UserOut):
    permissions: dict[str, CapabilitySet] = Field(default_factory=dict)
