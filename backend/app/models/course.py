"""
Course model and the content attached to it.

- Course: a paid course owned by the instructor or admin who created it
- CourseMaterial: zoom link and a single recording link, one row per course
- Recording: uploaded lecture videos

Materials, recordings, quizzes and payments are deleted with their course.
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, Text, DateTime, ForeignKey, Numeric, String, Index
from sqlalchemy.orm import relationship
from app.database import Base


class Course(Base):
    """SQLAlchemy model for the courses table."""
    __tablename__ = "courses"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()),
                doc="Unique course identifier")
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False, default=0,
                   doc="Course fee paid by bank transfer")
    tutor = Column(Text, nullable=True)
    whatsapp_group_link = Column(Text, nullable=True)
    image_url = Column(Text, nullable=True)
    created_by_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
                           doc="Owning instructor or admin")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                        onupdate=lambda: datetime.now(timezone.utc))

    created_by = relationship("User", back_populates="courses")
    material = relationship("CourseMaterial", back_populates="course", uselist=False,
                            cascade="all, delete-orphan", passive_deletes=True)
    recordings = relationship("Recording", back_populates="course",
                              cascade="all, delete-orphan", passive_deletes=True,
                              order_by="Recording.created_at")
    quizzes = relationship("Quiz", back_populates="course",
                           cascade="all, delete-orphan", passive_deletes=True,
                           order_by="Quiz.created_at")
    payments = relationship("Payment", back_populates="course",
                            cascade="all, delete-orphan", passive_deletes=True)

    def __repr__(self):
        return f"<Course(id={self.id}, title='{self.title}')>"


class CourseMaterial(Base):
    """Zoom link and recording link for a course (course_id is unique)."""
    __tablename__ = "course_materials"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    course_id = Column(String(36), ForeignKey("courses.id", ondelete="CASCADE"),
                       nullable=False, unique=True)
    zoom_link = Column(Text, nullable=True)
    recording_url = Column(Text, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc),
                        onupdate=lambda: datetime.now(timezone.utc))

    course = relationship("Course", back_populates="material")


class Recording(Base):
    """Uploaded lecture video for a course."""
    __tablename__ = "recordings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    course_id = Column(String(36), ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    title = Column(Text, nullable=False)
    video_url = Column(Text, nullable=False,
                       doc="Storage URL of the video file")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    course = relationship("Course", back_populates="recordings")

    __table_args__ = (
        Index("ix_recordings_course_id", "course_id"),
    )

    def __repr__(self):
        return f"<Recording(id={self.id}, course={self.course_id}, title='{self.title}')>"
