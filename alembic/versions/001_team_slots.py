"""Create users, teams and the leader/member slot history tables

Revision ID: 001_team_slots
Revises:
Create Date: 2026-10-16
"""
from alembic import op
import sqlalchemy as sa

revision = "001_team_slots"
down_revision = None
branch_labels = None
depends_on = None


def _assignment_columns():
    return [
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False, index=True),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("unassigned_at", sa.DateTime(timezone=True)),
        sa.Column("assigned_by", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "teams",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False, index=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, index=True),
        sa.Column("created_by", sa.Uuid()),
        sa.Column("team_leader_id", sa.Uuid()),
        sa.Column("deleted_at", sa.DateTime(timezone=True)),
        sa.Column("deleted_by", sa.String(255)),
        sa.Column("original_name", sa.String(255)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("version_id", sa.Integer(), nullable=False),
    )
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("username", sa.String(30), nullable=False, unique=True, index=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True, index=True),
        sa.Column("first_name", sa.String(50), nullable=False),
        sa.Column("last_name", sa.String(50), nullable=False),
        sa.Column(
            "role",
            sa.Enum("ADMIN", "TEAM_LEADER", "MEMBER", name="userrole"),
            nullable=False,
        ),
        sa.Column("team_id", sa.Uuid(), sa.ForeignKey("teams.id", ondelete="SET NULL"), index=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_table(
        "team_leader_slots",
        sa.Column("team_id", sa.Uuid(), sa.ForeignKey("teams.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("current_holder_id", sa.Uuid(), sa.ForeignKey("users.id"), index=True),
    )
    op.create_table(
        "leader_assignments",
        *_assignment_columns(),
        sa.Column(
            "team_id",
            sa.Uuid(),
            sa.ForeignKey("team_leader_slots.team_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    op.create_table(
        "team_member_slots",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("team_id", sa.Uuid(), sa.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("current_holder_id", sa.Uuid(), sa.ForeignKey("users.id"), index=True),
    )
    op.create_table(
        "member_assignments",
        *_assignment_columns(),
        sa.Column(
            "slot_id",
            sa.Uuid(),
            sa.ForeignKey("team_member_slots.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.func.now(), index=True),
        sa.Column("user_id", sa.Uuid(), index=True),
        sa.Column("username", sa.String(255)),
        sa.Column("action", sa.String(100), nullable=False, index=True),
        sa.Column("resource_type", sa.String(100)),
        sa.Column("resource_id", sa.String(255)),
        sa.Column("ip_address", sa.String(45)),
        sa.Column("user_agent", sa.String(512)),
        sa.Column("method", sa.String(10)),
        sa.Column("path", sa.String(500)),
        sa.Column("status_code", sa.Integer()),
    )


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("member_assignments")
    op.drop_table("team_member_slots")
    op.drop_table("leader_assignments")
    op.drop_table("team_leader_slots")
    op.drop_table("users")
    op.drop_table("teams")
    sa.Enum(name="userrole").drop(op.get_bind(), checkfirst=True)
