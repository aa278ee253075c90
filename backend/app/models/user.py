"""
User model - students, instructors and admins.

Users register as STUDENT; an admin can promote them. Deleting a user
removes their payments and quiz attempts through database cascades.
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, Integer, Text, DateTime, String
from sqlalchemy.orm import relationship
from app.database import Base


class Role:
    """Values stored in users.role."""
    STUDENT = "STUDENT"
    INSTRUCTOR = "INSTRUCTOR"
    ADMIN = "ADMIN"

    ALL = (STUDENT, INSTRUCTOR, ADMIN)


class User(Base):
    """
    SQLAlchemy model for the users table.

    The password column holds a bcrypt hash, never the plain text.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique user identifier")
    email = Column(Text, nullable=False, unique=True,
                   doc="Login email, unique across all users")
    name = Column(Text, nullable=False,
                  doc="Display name")
    password = Column(Text, nullable=False,
                      doc="bcrypt password hash")
    phone = Column(Text, nullable=True, unique=True,
                   doc="Phone number, usable as an alternative login")
    address = Column(Text, nullable=True)
    role = Column(Text, nullable=False, default=Role.STUDENT,
                  doc="STUDENT | INSTRUCTOR | ADMIN")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    reset_code_hash = Column(Text, nullable=True,
                             doc="bcrypt hash of the pending password reset code")
    reset_code_expires_at = Column(DateTime(timezone=True), nullable=True)
    reset_attempts = Column(Integer, nullable=False, default=0,
                            doc="Wrong codes entered against the pending reset")

    payments = relationship("Payment", back_populates="student",
                            cascade="all, delete-orphan", passive_deletes=True)
    quiz_attempts = relationship("QuizAttempt", back_populates="student",
                                 cascade="all, delete-orphan", passive_deletes=True)
    courses = relationship("Course", back_populates="created_by")

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"
