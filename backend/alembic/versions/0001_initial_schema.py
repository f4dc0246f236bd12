"""Initial schema: users, ministries, permissions, actions, history, team.

Revision ID: 0001
Revises: (none)
Create Date: 2026-10-19

Run with:
    alembic upgrade head
    python -m app.cli seed
"""

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa


def upgrade() -> None:
    # ── Directory ────────────────────────────────────────────

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="user"),
        sa.Column("is_super_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("approved_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("approved_at", sa.DateTime()),
        sa.Column("last_login", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "ministries",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("abbrev", sa.String(50)),
        sa.Column("description", sa.Text()),
    )
    op.create_index("ix_ministries_name", "ministries", ["name"], unique=True)

    # ── Permissions ──────────────────────────────────────────

    op.create_table(
        "user_ministry_permissions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "ministry_id", sa.Integer(),
            sa.ForeignKey("ministries.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("can_view_actions", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_create_actions", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_edit_actions", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_delete_actions", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_view_team", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_manage_team", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_view_reports", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("can_export_data", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "ministry_id", name="uq_user_ministry_permission"),
    )
    op.create_index(
        "ix_user_ministry_permissions_user_id", "user_ministry_permissions", ["user_id"]
    )
    op.create_index(
        "ix_user_ministry_permissions_ministry_id", "user_ministry_permissions", ["ministry_id"]
    )

    op.create_table(
        "permission_groups",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("permissions", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_permission_groups_name", "permission_groups", ["name"], unique=True)

    # ── Actions ──────────────────────────────────────────────

    op.create_table(
        "actions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("action_code", sa.String(30), nullable=False),
        sa.Column("ministry_id", sa.Integer(), sa.ForeignKey("ministries.id"), nullable=False),
        sa.Column("action_title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("responsible", sa.String(255), nullable=False),
        sa.Column("priority", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="new"),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("stakeholders", sa.JSON()),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL")),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint("end_date >= start_date", name="ck_actions_date_range"),
    )
    op.create_index("ix_actions_action_code", "actions", ["action_code"], unique=True)
    op.create_index("ix_actions_ministry_id", "actions", ["ministry_id"])
    op.create_index("ix_actions_responsible", "actions", ["responsible"])
    op.create_index("ix_actions_status", "actions", ["status"])
    op.create_index("ix_actions_created_at", "actions", ["created_at"])

    op.create_table(
        "action_history",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("entity_type", sa.String(50), nullable=False, server_default="action"),
        sa.Column("entity_id", sa.String(50), nullable=False),
        sa.Column("user_id", sa.Integer()),
        sa.Column("action_type", sa.String(50), nullable=False),
        sa.Column("changes", sa.JSON()),
        sa.Column("performed_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_action_history_entity_type", "action_history", ["entity_type"])
    op.create_index("ix_action_history_entity_id", "action_history", ["entity_id"])
    op.create_index("ix_action_history_user_id", "action_history", ["user_id"])
    op.create_index("ix_action_history_action_type", "action_history", ["action_type"])
    op.create_index("ix_action_history_performed_at", "action_history", ["performed_at"])

    # ── Team ─────────────────────────────────────────────────

    op.create_table(
        "team_members",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("position", sa.String(255)),
        sa.Column(
            "ministry_id", sa.Integer(), sa.ForeignKey("ministries.id", ondelete="SET NULL")
        ),
        sa.Column("email", sa.String(255), unique=True),
        sa.Column("phone", sa.String(50)),
        sa.Column("notes", sa.Text()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_team_members_name", "team_members", ["name"])
    op.create_index("ix_team_members_ministry_id", "team_members", ["ministry_id"])


def downgrade() -> None:
    op.drop_table("team_members")
    op.drop_table("action_history")
    op.drop_table("actions")
    op.drop_table("permission_groups")
    op.drop_table("user_ministry_permissions")
    op.drop_table("ministries")
    op.drop_table("users")
