"""Pydantic schemas for ministry permissions.

Two request shapes exist for assignment:
  - canonical:  {user_id, ministry_id?, permissions: CapabilitySet, apply_to_all_ministries?}
  - adapter:    {user_id, ministry_permissions: [{ministry_id, can_view, can_create, ...}]}
The adapter converts to CapabilitySet; both end in app.services.permissions.
"""

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field

from app.models.user import UserRole


class CapabilitySet(BaseModel):
    """Eight independent flags. Anything not sent explicitly is False."""
    can_view_actions: bool = False
    can_create_actions: bool = False
    can_edit_actions: bool = False
    can_delete_actions: bool = False
    can_view_team: bool = False
    can_manage_team: bool = False
    can_view_reports: bool = False
    can_export_data: bool = False

    model_config = {"from_attributes": True}


# ── Canonical assignment API ─────────────────────────────────

class PermissionAssign(BaseModel):
    user_id: int
    ministry_id: int | None = None
    permissions: CapabilitySet = Field(default_factory=CapabilitySet)
    apply_to_all_ministries: bool = False


class PermissionRevoke(BaseModel):
    user_id: int
    ministry_id: int | None = None
    revoke_all: bool = False


class ApplyGroupRequest(BaseModel):
    user_id: int
    group_name: str
    ministry_ids: list[int] = Field(default_factory=list)


class AssignResult(BaseModel):
    message: str
    affected_ministries: int


class RevokeResult(BaseModel):
    message: str
    revoked_count: int


class PermissionCheck(BaseModel):
    has_permission: bool


class MinistryPermissionOut(CapabilitySet):
    """One ministry as seen by one user; no row reads as all-False."""
    ministry_id: int
    ministry_name: str
    ministry_abbrev: str | None = None
    has_access: bool = False


class UserPermissionsOut(BaseModel):
    user_id: int
    is_super_admin: bool
    permissions: list[MinistryPermissionOut]


class UserPermissionsOverview(BaseModel):
    user_id: int
    user_name: str
    user_email: str
    user_role: str
    is_active: bool
    is_super_admin: bool
    permissions: list[MinistryPermissionOut]


class PermissionGroupOut(BaseModel):
    id: int
    name: str
    description: str | None = None
    permissions: CapabilitySet


# ── Adapter shape (/api/user-permissions) ────────────────────

class MinistryPermissionEntry(BaseModel):
    ministry_id: int
    can_view: bool = False
    can_create: bool = False
    can_edit: bool = False
    can_delete: bool = False
    can_view_team: bool = False
    can_manage_team: bool = False
    can_view_reports: bool = False
    can_export_data: bool = False

    def to_capabilities(self) -> CapabilitySet:
        return CapabilitySet(
            can_view_actions=self.can_view,
            can_create_actions=self.can_create,
            can_edit_actions=self.can_edit,
            can_delete_actions=self.can_delete,
            can_view_team=self.can_view_team,
            can_manage_team=self.can_manage_team,
            can_view_reports=self.can_view_reports,
            can_export_data=self.can_export_data,
        )


class BulkAssignRequest(BaseModel):
    user_id: int
    ministry_permissions: list[MinistryPermissionEntry]


class PermissionRowOut(CapabilitySet):
    id: int
    user_id: int
    ministry_id: int
    ministry_name: str
    created_by: int | None = None
    updated_at: datetime | None = None


class BulkAssignResult(BaseModel):
    success: bool = True
    permissions: list[PermissionRowOut]


class CreateUserWithPermissions(BaseModel):
    name: str = Field(min_length=1)
    email: EmailStr
    password: str = Field(min_length=8)
    role: UserRole = UserRole.USER
    ministry_permissions: list[MinistryPermissionEntry] = Field(default_factory=list)


class PermissionSummaryRow(BaseModel):
    id: int
    name: str
    email: str
    role: str
    ministries_count: int
    ministries: list[str]
