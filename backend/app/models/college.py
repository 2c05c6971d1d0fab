from sqlalchemy import Column, String, Boolean, DateTime, Text
from sqlalchemy.orm import relationship

from app.core.clock import utc_now
from app.core.database import Base
from app.core.types import GUID, generate_uuid


class College(Base):
    """College/Institution provisioned by a master administrator"""
    __tablename__ = "colleges"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    code = Column(String(50), unique=True, nullable=False)
    email = Column(String(255), nullable=True)
    address = Column(Text, nullable=True)

    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    members = relationship("User", back_populates="college", foreign_keys="User.college_id")

    def __repr__(self):
        return f"<College {self.code}>"
