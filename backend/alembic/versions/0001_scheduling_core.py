"""scheduling core tables

Revision ID: 0001_scheduling_core
Revises:
Create Date: 2026-10-16

"""
from alembic import op
import sqlalchemy as sa

revision = "0001_scheduling_core"
down_revision = None
branch_labels = None
depends_on = None

RULE_KINDS = ("recurring", "one_off")
EXCEPTION_TYPES = ("unavailable", "available")
APPOINTMENT_STATUSES = ("pending", "confirmed", "completed", "cancelled", "no_show")


def upgrade():
    op.create_table(
        "doctors",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("display_name", sa.Text(), nullable=False),
        sa.Column("timezone", sa.Text(), nullable=False, server_default=sa.text("'UTC'")),
        sa.Column("is_active", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("schedule_version", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.current_timestamp()),
    )

    op.create_table(
        "availability_rules",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("doctor_id", sa.Integer(), sa.ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False),
        sa.Column("kind", sa.Enum(*RULE_KINDS, name="rule_kind", native_enum=False), nullable=False),
        sa.Column("day_of_week", sa.Integer()),
        sa.Column("start_time", sa.Time()),
        sa.Column("end_time", sa.Time()),
        sa.Column("valid_from", sa.Date()),
        sa.Column("valid_to", sa.Date()),
        sa.Column("starts_at", sa.DateTime()),
        sa.Column("ends_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.current_timestamp()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.current_timestamp()),
    )
    op.create_index("ix_availability_rules_doctor_id", "availability_rules", ["doctor_id"])

    op.create_table(
        "slot_templates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("doctor_id", sa.Integer(), sa.ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("duration_minutes", sa.Integer(), nullable=False, server_default=sa.text("30")),
        sa.Column("buffer_minutes", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("advance_booking_days", sa.Integer(), nullable=False, server_default=sa.text("30")),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.current_timestamp()),
    )

    op.create_table(
        "schedule_exceptions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("doctor_id", sa.Integer(), sa.ForeignKey("doctors.id", ondelete="CASCADE")),
        sa.Column("type", sa.Enum(*EXCEPTION_TYPES, name="exception_type", native_enum=False), nullable=False),
        sa.Column("date_from", sa.Date(), nullable=False),
        sa.Column("date_to", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time()),
        sa.Column("end_time", sa.Time()),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("label", sa.Text()),
        sa.Column("created_by", sa.Integer()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.current_timestamp()),
    )
    op.create_index("ix_schedule_exceptions_doctor_id", "schedule_exceptions", ["doctor_id"])

    op.create_table(
        "appointments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("doctor_id", sa.Integer(), sa.ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False),
        sa.Column("patient_id", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.DateTime(), nullable=False),
        sa.Column("end_time", sa.DateTime(), nullable=False),
        sa.Column(
            "status",
            sa.Enum(*APPOINTMENT_STATUSES, name="appointment_status", native_enum=False),
            nullable=False,
            server_default=sa.text("'pending'"),
        ),
        sa.Column("rule_id", sa.Integer(), sa.ForeignKey("availability_rules.id", ondelete="SET NULL")),
        sa.Column("exception_id", sa.Integer(), sa.ForeignKey("schedule_exceptions.id", ondelete="SET NULL")),
        sa.Column("notes", sa.Text()),
        sa.Column("cancel_reason", sa.Text()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.current_timestamp()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.current_timestamp()),
    )
    op.create_index("ix_appointments_patient_id", "appointments", ["patient_id"])
    op.create_index(
        "uq_appointments_live_slot",
        "appointments",
        ["doctor_id", "start_time", "end_time"],
        unique=True,
        sqlite_where=sa.text("status != 'cancelled'"),
        postgresql_where=sa.text("status != 'cancelled'"),
    )


def downgrade():
    op.drop_index("uq_appointments_live_slot", table_name="appointments")
    op.drop_index("ix_appointments_patient_id", table_name="appointments")
    op.drop_table("appointments")
    op.drop_index("ix_schedule_exceptions_doctor_id", table_name="schedule_exceptions")
    op.drop_table("schedule_exceptions")
    op.drop_table("slot_templates")
    op.drop_index("ix_availability_rules_doctor_id", table_name="availability_rules")
    op.drop_table("availability_rules")
    op.drop_table("doctors")
