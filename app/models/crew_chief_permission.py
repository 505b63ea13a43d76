from sqlalchemy import CheckConstraint, Column, DateTime, Index, Integer, String, text

from app.core.timeutils import utcnow
from app.database import Base

PERMISSION_TYPES = ("shift", "job", "client")


class CrewChiefPermission(Base):
    __tablename__ = "crew_chief_permissions"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, nullable=False, index=True)

    user_id = Column(String, nullable=False, index=True)
    permission_type = Column(String, nullable=False)  # shift|job|client
    target_id = Column(Integer, nullable=False)

    granted_by_user_id = Column(String, nullable=False)
    granted_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    revoked_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "permission_type IN ('shift', 'job', 'client')",
            name="ck_crew_chief_permissions_type_valid",
        ),
        Index(
            "uq_crew_chief_permissions_active",
            "company_id",
            "user_id",
            "permission_type",
            "target_id",
            unique=True,
            postgresql_where=text("revoked_at IS NULL"),
            sqlite_where=text("revoked_at IS NULL"),
        ),
    )
