from sqlalchemy import Column, DateTime, Integer, String

from app.core.timeutils import utcnow
from app.database import Base


class Client(Base):
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, nullable=False, index=True)
    company_name = Column(String, nullable=False)
    contact_email = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
