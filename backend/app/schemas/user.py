"""Pydantic schemas for user administration."""

from datetime import date

from pydantic import BaseModel

from app.models.user import UserRole
from app.schemas.auth import UserOut


class PendingUsers(BaseModel):
    count: int
    users: list[UserOut]


class UserEnvelope(BaseModel):
    message: str
    user: UserOut


class RoleUpdate(BaseModel):
    role: UserRole


class DeletedUser(BaseModel):
    id: int
    name: str
    email: str


class UserDeleted(BaseModel):
    message: str
    deleted: DeletedUser


class UserCounts(BaseModel):
    total: int = 0
    active: int = 0
    pending: int = 0
    admins: int = 0
    users: int = 0


class SignupDay(BaseModel):
    date: date
    signups: int


class UserStats(BaseModel):
    overview: UserCounts
    recent_signups: list[SignupDay]
