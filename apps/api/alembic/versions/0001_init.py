"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
  op.create_table(
    "profiles",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("email", sa.String(), nullable=False),
    sa.Column("name", sa.String(), nullable=True),
    sa.Column("password_hash", sa.String(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_profiles_email", "profiles", ["email"], unique=True)

  op.create_table(
    "sessions",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("user_id", sa.String(36), sa.ForeignKey("profiles.id"), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_sessions_user_id", "sessions", ["user_id"], unique=False)

  op.create_table(
    "organizations",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("type", sa.String(), nullable=False),
    sa.Column("description", sa.Text(), nullable=True),
    sa.Column("created_by", sa.String(36), sa.ForeignKey("profiles.id"), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_organizations_created_by", "organizations", ["created_by"], unique=False)

  op.create_table(
    "memberships",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("user_id", sa.String(36), sa.ForeignKey("profiles.id"), nullable=False),
    sa.Column("organization_id", sa.String(36), sa.ForeignKey("organizations.id"), nullable=False),
    sa.Column("role", sa.String(), nullable=False),
    sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
    sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_memberships_user_id", "memberships", ["user_id"], unique=False)
  op.create_index("ix_memberships_organization_id", "memberships", ["organization_id"], unique=False)
  # One active membership per user.
  op.create_index(
    "ux_memberships_active_user",
    "memberships",
    ["user_id"],
    unique=True,
    postgresql_where=sa.text("active IS TRUE"),
  )

  op.create_table(
    "buckets",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("type", sa.String(), nullable=False),
    sa.Column("color", sa.String(), nullable=False),
    sa.Column("order_index", sa.Integer(), nullable=False),
    sa.Column("organization_id", sa.String(36), sa.ForeignKey("organizations.id"), nullable=False),
    sa.Column("user_id", sa.String(36), sa.ForeignKey("profiles.id"), nullable=False),
    sa.Column("project_id", sa.String(36), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_buckets_organization_id", "buckets", ["organization_id"], unique=False)
  op.create_index("ix_buckets_user_id", "buckets", ["user_id"], unique=False)

  op.create_table(
    "tasks",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("description", sa.Text(), nullable=True),
    sa.Column("priority", sa.String(), nullable=False, server_default="med"),
    sa.Column("status", sa.String(), nullable=False, server_default="open"),
    sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
    sa.Column("bucket_id", sa.String(36), sa.ForeignKey("buckets.id", ondelete="SET NULL"), nullable=True),
    sa.Column("project_id", sa.String(36), nullable=True),
    sa.Column("organization_id", sa.String(36), sa.ForeignKey("organizations.id"), nullable=False),
    sa.Column("user_id", sa.String(36), sa.ForeignKey("profiles.id"), nullable=False),
    sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("completed_by", sa.String(36), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_tasks_bucket_id", "tasks", ["bucket_id"], unique=False)
  op.create_index("ix_tasks_organization_id", "tasks", ["organization_id"], unique=False)
  op.create_index("ix_tasks_user_id", "tasks", ["user_id"], unique=False)

  op.create_table(
    "invitations",
    sa.Column("id", sa.String(36), primary_key=True),
    sa.Column("email", sa.String(), nullable=False),
    sa.Column("organization_id", sa.String(36), sa.ForeignKey("organizations.id"), nullable=False),
    sa.Column("role", sa.String(), nullable=False),
    sa.Column("token_hash", sa.String(), nullable=False),
    sa.Column("invited_by", sa.String(36), sa.ForeignKey("profiles.id"), nullable=False),
    sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_invitations_email", "invitations", ["email"], unique=False)
  op.create_index("ix_invitations_organization_id", "invitations", ["organization_id"], unique=False)
  op.create_index("ix_invitations_token_hash", "invitations", ["token_hash"], unique=True)


def downgrade() -> None:
  op.drop_table("invitations")
  op.drop_table("tasks")
  op.drop_table("buckets")
  op.drop_index("ux_memberships_active_user", table_name="memberships")
  op.drop_table("memberships")
  op.drop_table("organizations")
  op.drop_table("sessions")
  op.drop_table("profiles")
