"""Pydantic schemas for actions, their history, and action statistics."""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field, model_validator

from app.models.action import ActionPriority, ActionStatus


class ActionCreate(BaseModel):
    # Ministry name, abbreviation, or id; `ministry_id` is also accepted.
    ministry: str | int | None = None
    ministry_id: int | None = None
    action_title: str = Field(min_length=1, max_length=500)
    description: str | None = None
    responsible: str = Field(min_length=1, max_length=255)
    priority: ActionPriority
    status: ActionStatus = ActionStatus.NEW
    start_date: date
    end_date: date
    stakeholders: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check(self):
        if self.ministry in (None, "") and self.ministry_id is None:
            raise ValueError("ministry is required")
        if self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class ActionUpdate(BaseModel):
    """Partial patch; only fields present in the body are applied."""
    ministry: str | int | None = None
    ministry_id: int | None = None
    action_title: str | None = Field(default=None, min_length=1, max_length=500)
    description: str | None = None
    responsible: str | None = Field(default=None, min_length=1, max_length=255)
    priority: ActionPriority | None = None
    status: ActionStatus | None = None
    start_date: date | None = None
    end_date: date | None = None
    stakeholders: list[str] | None = None

    @model_validator(mode="after")
    def _check_dates(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class ActionOut(BaseModel):
    id: int
    action_code: str
    ministry_id: int
    ministry: str | None = Field(default=None, validation_alias="ministry_name")
    action_title: str
    description: str | None = None
    responsible: str
    priority: str
    status: str
    start_date: date
    end_date: date
    stakeholders: list[str] | None = None
    created_by: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True, "populate_by_name": True}


class ActionEnvelope(BaseModel):
    message: str
    action: ActionOut


class DeletedAction(BaseModel):
    id: int
    action_title: str


class ActionDeleted(BaseModel):
    message: str
    deleted: DeletedAction


class ActionHistoryOut(BaseModel):
    id: int
    entity_type: str
    entity_id: str
    user_id: int | None = None
    action_type: str
    changes: dict[str, Any] | None = None
    performed_at: datetime

    model_config = {"from_attributes": True}


# ── Statistics ───────────────────────────────────────────────

class StatusCounts(BaseModel):
    total: int = 0
    completed: int = 0
    in_progress: int = 0
    new: int = 0
    overdue: int = 0


class MinistryCount(BaseModel):
    ministry: str
    total: int
    completed: int


class PriorityCount(BaseModel):
    priority: str
    count: int


class UpcomingDeadline(BaseModel):
    id: int
    action_title: str
    responsible: str
    end_date: date


class StatsOverview(BaseModel):
    overview: StatusCounts
    by_ministry: list[MinistryCount]
    by_priority: list[PriorityCount]
    upcoming_deadlines: list[UpcomingDeadline]
