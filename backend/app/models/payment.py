"""
Payment model - a student's request for access to a paid course.

Lifecycle:
- PENDING: receipt uploaded, waiting for an admin
- APPROVED: admin matched the bank reference number; course content unlocked
- REJECTED: admin refused the receipt; the student may upload a new one,
  which deletes this row and creates a fresh PENDING one

At most one PENDING or APPROVED payment may exist per (student, course).
The partial unique index below backs the application-level check.
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, Text, DateTime, ForeignKey, Index, String, text
from sqlalchemy.orm import relationship
from app.database import Base


class PaymentStatus:
    """Values stored in payments.status."""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"

    ACTIVE = (PENDING, APPROVED)


_ACTIVE_PREDICATE = text("status IN ('PENDING', 'APPROVED')")


class Payment(Base):
    """SQLAlchemy model for the payments table."""
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique payment identifier")
    student_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    course_id = Column(String(36), ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    receipt_url = Column(Text, nullable=False,
                         doc="Storage URL of the uploaded bank receipt")
    status = Column(Text, nullable=False, default=PaymentStatus.PENDING,
                    doc="PENDING | APPROVED | REJECTED")
    reference_number = Column(Text, nullable=True, unique=True,
                              doc="Bank reference, set on approval and never reused")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    student = relationship("User", back_populates="payments")
    course = relationship("Course", back_populates="payments")

    __table_args__ = (
        Index("ix_payments_student_course", "student_id", "course_id"),
        Index("ix_payments_status", "status"),
        Index("uq_payments_active_enrollment", "student_id", "course_id", unique=True,
              sqlite_where=_ACTIVE_PREDICATE, postgresql_where=_ACTIVE_PREDICATE),
    )

    def __repr__(self):
        return f"<Payment(id={self.id}, student={self.student_id}, course={self.course_id}, status='{self.status}')>"
