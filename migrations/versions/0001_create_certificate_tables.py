"""create event and certificate tables

Revision ID: 0001
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("prefix", sa.String(32), nullable=True),
        sa.Column("first_name", sa.String(120), nullable=True),
        sa.Column("middle_initial", sa.String(8), nullable=True),
        sa.Column("last_name", sa.String(120), nullable=True),
        sa.Column("suffix", sa.String(32), nullable=True),
        sa.Column("role", sa.String(16), nullable=False, server_default="participant"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_users_email_lower", "users", [sa.text("lower(email)")], unique=True
    )

    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("venue", sa.String(255), nullable=True),
        sa.Column(
            "organizer_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("requires_attendance", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("requires_survey", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "certificate_policy",
            sa.String(32),
            nullable=False,
            server_default="attendance_and_survey",
        ),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "attendance_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "event_id",
            sa.Integer(),
            sa.ForeignKey("events.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("is_validated", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("checked_in_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint("event_id", "user_id", name="uix_attendance_event_user"),
    )

    op.create_table(
        "survey_responses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "event_id",
            sa.Integer(),
            sa.ForeignKey("events.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("submitted_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint("event_id", "user_id", name="uix_survey_event_user"),
    )

    op.create_table(
        "certificate_configs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "event_id",
            sa.Integer(),
            sa.ForeignKey("events.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("layout", sa.JSON(), nullable=False),
        sa.Column(
            "updated_by",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
    )

    op.create_table(
        "certificate_counters",
        sa.Column(
            "event_id",
            sa.Integer(),
            sa.ForeignKey("events.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("last_sequence", sa.Integer(), nullable=False, server_default="0"),
    )

    op.create_table(
        "certificates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "event_id",
            sa.Integer(),
            sa.ForeignKey("events.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("certificate_number", sa.String(120), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("participant_name", sa.String(255), nullable=False),
        sa.Column("event_title", sa.String(255), nullable=False),
        sa.Column("completion_date", sa.Date(), nullable=True),
        sa.Column("vector_artifact_ref", sa.String(512), nullable=False),
        sa.Column("raster_artifact_ref", sa.String(512), nullable=False),
        sa.Column("generated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "event_id", name="uix_certificate_user_event"),
        sa.UniqueConstraint(
            "event_id", "certificate_number", name="uix_certificate_event_number"
        ),
        sa.UniqueConstraint("event_id", "sequence", name="uix_certificate_event_sequence"),
    )


def downgrade() -> None:
    op.drop_table("certificates")
    op.drop_table("certificate_counters")
    op.drop_table("certificate_configs")
    op.drop_table("survey_responses")
    op.drop_table("attendance_logs")
    op.drop_table("events")
    op.drop_index("ix_users_email_lower", table_name="users")
    op.drop_table("users")
