"""Aggregate model imports for Alembic auto-detection."""

from app.models.user import User, UserRole  # noqa: F401
from app.models.ministry import Ministry  # noqa: F401
from app.models.permission import PermissionGroup, UserMinistryPermission  # noqa: F401
from app.models.action import Action, ActionHistory, ActionPriority, ActionStatus  # noqa: F401
from app.models.team_member import TeamMember  # noqa: F401
