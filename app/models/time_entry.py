from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, UniqueConstraint, text
from sqlalchemy.orm import relationship

from app.core.timeutils import utcnow
from app.database import Base


class TimeEntry(Base):
    __tablename__ = "time_entries"

    id = Column(Integer, primary_key=True, index=True)

    company_id = Column(Integer, nullable=False, index=True)
    assigned_personnel_id = Column(
        Integer,
        ForeignKey("assigned_personnel.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    entry_number = Column(Integer, nullable=False)

    clock_in = Column(DateTime(timezone=True), nullable=True)
    clock_out = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    assignment = relationship("AssignedPersonnel", back_populates="time_entries")

    __table_args__ = (
        UniqueConstraint(
            "assigned_personnel_id",
            "entry_number",
            name="uq_time_entries_assignment_entry_number",
        ),
        CheckConstraint(
            "entry_number >= 1 AND entry_number <= 3",
            name="ck_time_entries_entry_number_range",
        ),
        CheckConstraint(
            "clock_out IS NULL OR (clock_in IS NOT NULL AND clock_out >= clock_in)",
            name="ck_time_entries_clock_out_after_clock_in",
        ),
        # At most one open entry per assignment.
        Index(
            "uq_time_entries_open",
            "assigned_personnel_id",
            unique=True,
            postgresql_where=text("clock_out IS NULL"),
            sqlite_where=text("clock_out IS NULL"),
        ),
    )
