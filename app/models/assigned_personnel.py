from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from app.core.timeutils import utcnow
from app.database import Base


class AssignedPersonnel(Base):
    """A worker assigned to a shift.

    Status is never stored: it is derived from the time entries plus
    ``shift_ended_at`` (see app.services.worker_state.derive_status).
    """

    __tablename__ = "assigned_personnel"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, nullable=False, index=True)
    shift_id = Column(Integer, ForeignKey("shifts.id", ondelete="RESTRICT"), nullable=False, index=True)
    employee_id = Column(String, nullable=False, index=True)
    employee_name = Column(String, nullable=True)
    role_code = Column(String, nullable=False, default="GL")  # CC|SH|FO|RFO|RG|GL

    shift_ended_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    shift = relationship("Shift", back_populates="assignments")
    time_entries = relationship(
        "TimeEntry",
        back_populates="assignment",
        order_by="TimeEntry.entry_number",
    )

    __table_args__ = (
        UniqueConstraint("shift_id", "employee_id", name="uq_assigned_personnel_shift_employee"),
    )
