"""Pydantic schemas for team members."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, EmailStr, Field, field_validator

PHONE_PATTERN = r"^[+\d\s\-()]+$"


class TeamMemberCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    position: str | None = None
    ministry: str | int | None = None
    ministry_id: int | None = None
    email: EmailStr | None = None
    phone: str | None = Field(default=None, pattern=PHONE_PATTERN)
    notes: str | None = None

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name is required")
        return value


class TeamMemberUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    position: str | None = None
    ministry: str | int | None = None
    ministry_id: int | None = None
    email: EmailStr | None = None
    phone: str | None = Field(default=None, pattern=PHONE_PATTERN)
    notes: str | None = None


class TeamMemberOut(BaseModel):
    id: int
    name: str
    position: str | None = None
    ministry_id: int | None = None
    ministry: str | None = Field(default=None, validation_alias="ministry_name")
    email: str | None = None
    phone: str | None = None
    notes: str | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True, "populate_by_name": True}


class MemberEnvelope(BaseModel):
    message: str
    member: TeamMemberOut


class DeletedMember(BaseModel):
    id: int
    name: str


class MemberDeleted(BaseModel):
    message: str
    deleted: DeletedMember


# ── Bulk import ──────────────────────────────────────────────

class TeamImportRequest(BaseModel):
    members: list[dict[str, Any]]


class ImportRowError(BaseModel):
    row: int
    member: dict[str, Any]
    error: str


class TeamImportResult(BaseModel):
    message: str
    imported: list[TeamMemberOut]
    errors: list[ImportRowError]


# ── Statistics ───────────────────────────────────────────────

class MemberPerformance(BaseModel):
    id: int
    name: str
    position: str | None = None
    ministry: str | None = None
    total_actions: int
    completed_actions: int
    in_progress_actions: int
    overdue_actions: int
    completion_rate: float


class TopPerformer(BaseModel):
    name: str
    ministry: str | None = None
    completed_count: int


class TeamPerformance(BaseModel):
    member_stats: list[MemberPerformance]
    top_performers: list[TopPerformer]


class ResponsibleOut(BaseModel):
    name: str
    ministry: str | None = None
