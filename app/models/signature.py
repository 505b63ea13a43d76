import uuid

from sqlalchemy import Column, DateTime, Integer, LargeBinary, String

from app.core.timeutils import utcnow
from app.database import Base


class Signature(Base):
    __tablename__ = "signatures"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    company_id = Column(Integer, nullable=False, index=True)
    content_type = Column(String, nullable=False)
    data = Column(LargeBinary, nullable=False)
    sha256 = Column(String(64), nullable=False)
    created_by = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
