"""Action (a tracked governmental task) and its append-only history."""

import enum
from datetime import date, datetime

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base, utcnow


class ActionStatus(str, enum.Enum):
    NEW = "new"
    IN_PROGRESS = "in-progress"
    DONE = "done"
    OVERDUE = "overdue"


class ActionPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Action(Base):
    __tablename__ = "actions"
    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="ck_actions_date_range"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # ACT-2026-0001
    action_code: Mapped[str] = mapped_column(String(30), unique=True, nullable=False, index=True)
    ministry_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("ministries.id"), nullable=False, index=True
    )

    action_title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    responsible: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    priority: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ActionStatus.NEW.value, index=True
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    stakeholders: Mapped[list | None] = mapped_column(JSON, default=list)

    created_by: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL")
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    ministry = relationship("Ministry", lazy="joined")

    @property
    def ministry_name(self) -> str | None:
        return self.ministry.name if self.ministry else None


class ActionHistory(Base):
    """Append-only audit trail, one row per successful audited call.

    `entity_id` is a plain column, not a foreign key: rows outlive the
    entity they describe.
    """

    __tablename__ = "action_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, default="action", index=True)
    entity_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    user_id: Mapped[int | None] = mapped_column(Integer, index=True)
    # viewed | created | updated | deleted
    action_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    # {"method": ..., "path": ..., "body": {...}, "query": {...}}
    changes: Mapped[dict | None] = mapped_column(JSON)
    performed_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False, index=True
    )
