from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Integer, String, Time
from sqlalchemy.orm import relationship

from app.core.timeutils import utcnow
from app.database import Base


class Shift(Base):
    __tablename__ = "shifts"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, nullable=False, index=True)
    job_id = Column(Integer, ForeignKey("jobs.id", ondelete="RESTRICT"), nullable=False, index=True)

    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)
    location = Column(String, nullable=True)

    requested_workers = Column(Integer, nullable=False, default=1)

    # Designated crew chief; has crew-chief rights without an explicit grant.
    crew_chief_user_id = Column(String, nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    job = relationship("Job")
    assignments = relationship(
        "AssignedPersonnel",
        back_populates="shift",
        order_by="AssignedPersonnel.id",
    )

    __table_args__ = (
        CheckConstraint("requested_workers >= 0", name="ck_shifts_requested_workers_nonnegative"),
    )
