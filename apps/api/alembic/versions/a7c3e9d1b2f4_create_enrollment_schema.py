"""create enrollment schema

Revision ID: a7c3e9d1b2f4
Revises:
Create Date: 2026-10-19 09:00:00.000000

This migration:
1. Creates the enum types shared by the enrollment tables
2. Creates identity tables (users, accounts, sessions)
3. Creates leader_profiles, students and parent_student_links
4. Creates invitations, student_submissions and notifications

Tables are created in dependency order so every foreign key target exists
before it is referenced.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "a7c3e9d1b2f4"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

ENUMS = {
    "user_role": ("ADMIN", "LEADER", "PARENT"),
    "leader_status": ("ACTIVE", "INACTIVE"),
    "gender": ("MALE", "FEMALE"),
    "submission_status": ("PENDING", "REVISED", "APPROVED", "REJECTED"),
    "notification_type": (
        "REGISTRATION_SUBMITTED",
        "REGISTRATION_APPROVED",
        "REGISTRATION_REJECTED",
        "USER_ROLE_CHANGED",
    ),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _base_columns() -> list[sa.Column]:
    """Primary key and timestamps (from BaseModel)."""
    return [
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    """Create the enrollment and identity schema."""
    bind = op.get_bind()
    for name, values in ENUMS.items():
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    # Identity
    op.create_table(
        "users",
        *_base_columns(),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("role", _enum("user_role"), nullable=False, server_default="PARENT"),
        sa.Column("email_verified", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("force_password_change", sa.Boolean(), nullable=False, server_default="false"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)
    op.create_index(op.f("ix_users_role"), "users", ["role"], unique=False)

    op.create_table(
        "accounts",
        *_base_columns(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("provider_id", sa.String(length=50), nullable=False),
        sa.Column("password_hash", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index(op.f("ix_accounts_user_id"), "accounts", ["user_id"], unique=False)

    op.create_table(
        "sessions",
        *_base_columns(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("token", sa.String(length=255), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("token", name="uq_sessions_token"),
    )
    op.create_index(op.f("ix_sessions_user_id"), "sessions", ["user_id"], unique=False)

    # Leaders and students
    op.create_table(
        "leader_profiles",
        *_base_columns(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("unit_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("dharma_name", sa.String(length=200), nullable=True),
        sa.Column("year_of_birth", sa.Integer(), nullable=False),
        sa.Column("status", _enum("leader_status"), nullable=False, server_default="ACTIVE"),
        sa.Column("full_date_of_birth", sa.Date(), nullable=True),
        sa.Column("place_of_origin", sa.String(length=255), nullable=True),
        sa.Column("education", sa.String(length=255), nullable=True),
        sa.Column("occupation", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=30), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("join_date", sa.Date(), nullable=True),
        sa.Column("refuge_date", sa.Date(), nullable=True),
        sa.Column("refuge_name", sa.String(length=200), nullable=True),
        sa.Column("level", sa.String(length=100), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", name="uq_leader_profiles_user_id"),
    )
    op.create_index(
        op.f("ix_leader_profiles_unit_id"), "leader_profiles", ["unit_id"], unique=False
    )

    op.create_table(
        "students",
        *_base_columns(),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("dharma_name", sa.String(length=200), nullable=True),
        sa.Column("date_of_birth", sa.Date(), nullable=False),
        sa.Column("gender", _enum("gender"), nullable=False),
        sa.Column("unit_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("class_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_students_unit_id"), "students", ["unit_id"], unique=False)
    op.create_index(op.f("ix_students_class_id"), "students", ["class_id"], unique=False)

    op.create_table(
        "parent_student_links",
        *_base_columns(),
        sa.Column("parent_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("student_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("relation", sa.String(length=50), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["parent_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["student_id"], ["students.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("parent_id", "student_id", name="uq_parent_student"),
    )
    op.create_index(
        op.f("ix_parent_student_links_parent_id"),
        "parent_student_links",
        ["parent_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_parent_student_links_student_id"),
        "parent_student_links",
        ["student_id"],
        unique=False,
    )

    # Enrollment workflow
    op.create_table(
        "invitations",
        *_base_columns(),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=True),
        sa.Column("role", _enum("user_role"), nullable=False),
        sa.Column("unit_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("token_hash", sa.String(length=64), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_invitations_email", "invitations", ["email"], unique=False)
    op.create_index(op.f("ix_invitations_token_hash"), "invitations", ["token_hash"], unique=True)

    op.create_table(
        "student_submissions",
        *_base_columns(),
        sa.Column("parent_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("submitted_data", postgresql.JSON(astext_type=sa.Text()), nullable=False),
        sa.Column("submission_notes", sa.Text(), nullable=True),
        sa.Column(
            "status",
            _enum("submission_status"),
            nullable=False,
            server_default="PENDING",
        ),
        sa.Column("reviewed_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("review_notes", sa.Text(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["parent_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["reviewed_by"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index(
        op.f("ix_student_submissions_parent_id"),
        "student_submissions",
        ["parent_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_student_submissions_status"),
        "student_submissions",
        ["status"],
        unique=False,
    )

    op.create_table(
        "notifications",
        *_base_columns(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("type", _enum("notification_type"), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("data", postgresql.JSON(astext_type=sa.Text()), nullable=True),
        sa.Column("action_url", sa.String(length=500), nullable=True),
        sa.Column("read", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index(op.f("ix_notifications_user_id"), "notifications", ["user_id"], unique=False)


def downgrade() -> None:
    """Drop the enrollment and identity schema."""
    op.drop_index(op.f("ix_notifications_user_id"), table_name="notifications")
    op.drop_table("notifications")

    op.drop_index(op.f("ix_student_submissions_status"), table_name="student_submissions")
    op.drop_index(op.f("ix_student_submissions_parent_id"), table_name="student_submissions")
    op.drop_table("student_submissions")

    op.drop_index(op.f("ix_invitations_token_hash"), table_name="invitations")
    op.drop_index("ix_invitations_email", table_name="invitations")
    op.drop_table("invitations")

    op.drop_index(
        op.f("ix_parent_student_links_student_id"), table_name="parent_student_links"
    )
    op.drop_index(op.f("ix_parent_student_links_parent_id"), table_name="parent_student_links")
    op.drop_table("parent_student_links")

    op.drop_index(op.f("ix_students_class_id"), table_name="students")
    op.drop_index(op.f("ix_students_unit_id"), table_name="students")
    op.drop_table("students")

    op.drop_index(op.f("ix_leader_profiles_unit_id"), table_name="leader_profiles")
    op.drop_table("leader_profiles")

    op.drop_index(op.f("ix_sessions_user_id"), table_name="sessions")
    op.drop_table("sessions")

    op.drop_index(op.f("ix_accounts_user_id"), table_name="accounts")
    op.drop_table("accounts")

    op.drop_index(op.f("ix_users_role"), table_name="users")
    op.drop_index(op.f("ix_users_email"), table_name="users")
    op.drop_table("users")

    bind = op.get_bind()
    for name, values in reversed(ENUMS.items()):
        postgresql.ENUM(*values, name=name).drop(bind, checkfirst=True)
