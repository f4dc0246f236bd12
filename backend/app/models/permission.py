"""Per-ministry capability rows and reusable capability templates.

UserMinistryPermission holds one CapabilitySet per (user, ministry) pair.
A missing row means "no capabilities", never "default allow". Rows go away
with their user or ministry (ON DELETE CASCADE).
"""

from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, utcnow


class UserMinistryPermission(Base):
    __tablename__ = "user_ministry_permissions"
    __table_args__ = (
        UniqueConstraint("user_id", "ministry_id", name="uq_user_ministry_permission"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    ministry_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("ministries.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # ── Capabilities ───────────────────────────────────────────
    can_view_actions: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_create_actions: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_edit_actions: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_delete_actions: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_view_team: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_manage_team: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_view_reports: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    can_export_data: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # ── Audit ──────────────────────────────────────────────────
    created_by: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL")
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )


class PermissionGroup(Base):
    """Named CapabilitySet template applied across many ministries at once."""

    __tablename__ = "permission_groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text)
    # {"can_view_actions": true, ...}; missing keys read as false
    permissions: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
