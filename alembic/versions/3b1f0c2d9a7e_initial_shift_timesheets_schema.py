"""initial shift timesheets schema

Revision ID: 3b1f0c2d9a7e
Revises:
Create Date: 2026-10-18 09:12:44.301122
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "3b1f0c2d9a7e"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "clients",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("company_name", sa.String(), nullable=False),
        sa.Column("contact_email", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index(op.f("ix_clients_id"), "clients", ["id"], unique=False)
    op.create_index(op.f("ix_clients_company_id"), "clients", ["company_id"], unique=False)

    op.create_table(
        "jobs",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("clients.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index(op.f("ix_jobs_id"), "jobs", ["id"], unique=False)
    op.create_index(op.f("ix_jobs_company_id"), "jobs", ["company_id"], unique=False)
    op.create_index(op.f("ix_jobs_client_id"), "jobs", ["client_id"], unique=False)

    op.create_table(
        "shifts",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("job_id", sa.Integer(), sa.ForeignKey("jobs.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=True),
        sa.Column("end_time", sa.Time(), nullable=True),
        sa.Column("location", sa.String(), nullable=True),
        sa.Column("requested_workers", sa.Integer(), server_default=sa.text("1"), nullable=False),
        sa.Column("crew_chief_user_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("requested_workers >= 0", name="ck_shifts_requested_workers_nonnegative"),
    )
    op.create_index(op.f("ix_shifts_id"), "shifts", ["id"], unique=False)
    op.create_index(op.f("ix_shifts_company_id"), "shifts", ["company_id"], unique=False)
    op.create_index(op.f("ix_shifts_job_id"), "shifts", ["job_id"], unique=False)
    op.create_index(op.f("ix_shifts_crew_chief_user_id"), "shifts", ["crew_chief_user_id"], unique=False)

    op.create_table(
        "assigned_personnel",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("shift_id", sa.Integer(), sa.ForeignKey("shifts.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("employee_id", sa.String(), nullable=False),
        sa.Column("employee_name", sa.String(), nullable=True),
        sa.Column("role_code", sa.String(), server_default=sa.text("'GL'"), nullable=False),
        sa.Column("shift_ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("shift_id", "employee_id", name="uq_assigned_personnel_shift_employee"),
    )
    op.create_index(op.f("ix_assigned_personnel_id"), "assigned_personnel", ["id"], unique=False)
    op.create_index(op.f("ix_assigned_personnel_company_id"), "assigned_personnel", ["company_id"], unique=False)
    op.create_index(op.f("ix_assigned_personnel_shift_id"), "assigned_personnel", ["shift_id"], unique=False)
    op.create_index(op.f("ix_assigned_personnel_employee_id"), "assigned_personnel", ["employee_id"], unique=False)

    op.create_table(
        "time_entries",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column(
            "assigned_personnel_id",
            sa.Integer(),
            sa.ForeignKey("assigned_personnel.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("entry_number", sa.Integer(), nullable=False),
        sa.Column("clock_in", sa.DateTime(timezone=True), nullable=True),
        sa.Column("clock_out", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint(
            "assigned_personnel_id",
            "entry_number",
            name="uq_time_entries_assignment_entry_number",
        ),
        sa.CheckConstraint(
            "entry_number >= 1 AND entry_number <= 3",
            name="ck_time_entries_entry_number_range",
        ),
        sa.CheckConstraint(
            "clock_out IS NULL OR (clock_in IS NOT NULL AND clock_out >= clock_in)",
            name="ck_time_entries_clock_out_after_clock_in",
        ),
    )
    op.create_index(op.f("ix_time_entries_id"), "time_entries", ["id"], unique=False)
    op.create_index(op.f("ix_time_entries_company_id"), "time_entries", ["company_id"], unique=False)
    op.create_index(
        op.f("ix_time_entries_assigned_personnel_id"),
        "time_entries",
        ["assigned_personnel_id"],
        unique=False,
    )
    op.create_index(
        "uq_time_entries_open",
        "time_entries",
        ["assigned_personnel_id"],
        unique=True,
        postgresql_where=sa.text("clock_out IS NULL"),
        sqlite_where=sa.text("clock_out IS NULL"),
    )

    op.create_table(
        "signatures",
        sa.Column("id", sa.String(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("content_type", sa.String(), nullable=False),
        sa.Column("data", sa.LargeBinary(), nullable=False),
        sa.Column("sha256", sa.String(length=64), nullable=False),
        sa.Column("created_by", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index(op.f("ix_signatures_company_id"), "signatures", ["company_id"], unique=False)

    op.create_table(
        "timesheets",
        sa.Column("id", sa.String(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("shift_id", sa.Integer(), sa.ForeignKey("shifts.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("revision", sa.Integer(), server_default=sa.text("1"), nullable=False),
        sa.Column("total_seconds", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("total_hours", sa.Numeric(10, 2), server_default=sa.text("0"), nullable=False),
        sa.Column(
            "worker_totals",
            postgresql.JSONB(astext_type=sa.Text()),
            server_default=sa.text("'[]'::jsonb"),
            nullable=False,
        ),
        sa.Column("submitted_by", sa.String(), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "client_signature_id",
            sa.String(),
            sa.ForeignKey("signatures.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column("client_approved_by", sa.String(), nullable=True),
        sa.Column("client_approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "manager_signature_id",
            sa.String(),
            sa.ForeignKey("signatures.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        sa.Column("manager_approved_by", sa.String(), nullable=True),
        sa.Column("manager_approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("rejected_by", sa.String(), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint(
            "status IN ('pending_client_approval', 'pending_final_approval', 'completed', 'rejected')",
            name="ck_timesheets_status_valid",
        ),
        sa.CheckConstraint(
            "manager_approved_at IS NULL OR client_approved_at IS NOT NULL",
            name="ck_timesheets_manager_after_client",
        ),
        sa.CheckConstraint("total_seconds >= 0", name="ck_timesheets_total_seconds_nonnegative"),
    )
    op.create_index(op.f("ix_timesheets_company_id"), "timesheets", ["company_id"], unique=False)
    op.create_index(op.f("ix_timesheets_shift_id"), "timesheets", ["shift_id"], unique=True)
    op.create_index(op.f("ix_timesheets_status"), "timesheets", ["status"], unique=False)

    op.create_table(
        "crew_chief_permissions",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("permission_type", sa.String(), nullable=False),
        sa.Column("target_id", sa.Integer(), nullable=False),
        sa.Column("granted_by_user_id", sa.String(), nullable=False),
        sa.Column("granted_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "permission_type IN ('shift', 'job', 'client')",
            name="ck_crew_chief_permissions_type_valid",
        ),
    )
    op.create_index(op.f("ix_crew_chief_permissions_id"), "crew_chief_permissions", ["id"], unique=False)
    op.create_index(
        op.f("ix_crew_chief_permissions_company_id"),
        "crew_chief_permissions",
        ["company_id"],
        unique=False,
    )
    op.create_index(op.f("ix_crew_chief_permissions_user_id"), "crew_chief_permissions", ["user_id"], unique=False)
    op.create_index(
        "uq_crew_chief_permissions_active",
        "crew_chief_permissions",
        ["company_id", "user_id", "permission_type", "target_id"],
        unique=True,
        postgresql_where=sa.text("revoked_at IS NULL"),
    )

    op.create_table(
        "event_outbox",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("idempotency_key", sa.String(), nullable=False),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("processed", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("retry_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("company_id", "event_type", "idempotency_key", name="uq_event_outbox_idempotency"),
    )
    op.create_index("ix_event_outbox_company_event", "event_outbox", ["company_id", "event_type"], unique=False)
    op.create_index("ix_event_outbox_processed", "event_outbox", ["processed", "created_at"], unique=False)
    op.create_index(op.f("ix_event_outbox_company_id"), "event_outbox", ["company_id"], unique=False)
    op.create_index(op.f("ix_event_outbox_event_type"), "event_outbox", ["event_type"], unique=False)


def downgrade() -> None:
    op.drop_table("event_outbox")
    op.drop_index("uq_crew_chief_permissions_active", table_name="crew_chief_permissions")
    op.drop_table("crew_chief_permissions")
    op.drop_table("timesheets")
    op.drop_table("signatures")
    op.drop_index("uq_time_entries_open", table_name="time_entries")
    op.drop_table("time_entries")
    op.drop_table("assigned_personnel")
    op.drop_table("shifts")
    op.drop_table("jobs")
    op.drop_table("clients")
