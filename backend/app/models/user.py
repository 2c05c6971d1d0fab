from sqlalchemy import Column, String, Boolean, DateTime, Enum as SQLEnum, ForeignKey
from sqlalchemy.orm import relationship
import enum

from app.core.clock import utc_now
from app.core.database import Base
from app.core.types import GUID, generate_uuid


class UserRole(str, enum.Enum):
    """User roles"""
    MASTER_ADMIN = "master_admin"
    COLLEGE_ADMIN = "college_admin"
    FACULTY = "faculty"
    STUDENT = "student"


class User(Base):
    """User model - master admins, college staff and students"""
    __tablename__ = "users"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=False)

    role = Column(SQLEnum(UserRole), default=UserRole.STUDENT, nullable=False)
    is_active = Column(Boolean, default=True)

    # College scope (college admins, faculty and students)
    college_id = Column(GUID, ForeignKey("colleges.id"), nullable=True, index=True)

    # Student cohort fields
    id_number = Column(String(50), nullable=True)  # roll number / faculty id
    branch = Column(String(100), nullable=True)
    batch = Column(String(50), nullable=True)
    section = Column(String(20), nullable=True)

    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    college = relationship("College", back_populates="members", foreign_keys=[college_id])

    def __repr__(self):
        return f"<User {self.email}>"
