import uuid

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from app.core.timeutils import utcnow
from app.database import Base

TIMESHEET_STATUSES = (
    "pending_client_approval",
    "pending_final_approval",
    "completed",
    "rejected",
)


class Timesheet(Base):
    __tablename__ = "timesheets"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    company_id = Column(Integer, nullable=False, index=True)
    shift_id = Column(
        Integer,
        ForeignKey("shifts.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
        index=True,
    )

    status = Column(String, nullable=False, index=True)
    revision = Column(Integer, nullable=False, default=1)

    # Frozen at finalization; never recomputed from the ledger afterwards.
    total_seconds = Column(Integer, nullable=False, default=0)
    total_hours = Column(Numeric(10, 2), nullable=False, default=0)
    worker_totals = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=list)

    submitted_by = Column(String, nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=True)

    client_signature_id = Column(String, ForeignKey("signatures.id", ondelete="RESTRICT"), nullable=True)
    client_approved_by = Column(String, nullable=True)
    client_approved_at = Column(DateTime(timezone=True), nullable=True)

    manager_signature_id = Column(String, ForeignKey("signatures.id", ondelete="RESTRICT"), nullable=True)
    manager_approved_by = Column(String, nullable=True)
    manager_approved_at = Column(DateTime(timezone=True), nullable=True)

    rejection_reason = Column(Text, nullable=True)
    rejected_by = Column(String, nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    shift = relationship("Shift")
    client_signature = relationship("Signature", foreign_keys=[client_signature_id])
    manager_signature = relationship("Signature", foreign_keys=[manager_signature_id])

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending_client_approval', 'pending_final_approval', 'completed', 'rejected')",
            name="ck_timesheets_status_valid",
        ),
        CheckConstraint(
            "manager_approved_at IS NULL OR client_approved_at IS NOT NULL",
            name="ck_timesheets_manager_after_client",
        ),
        CheckConstraint("total_seconds >= 0", name="ck_timesheets_total_seconds_nonnegative"),
    )
