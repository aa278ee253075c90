"""
Past paper models - a three level catalogue: grade → subject → paper.

Each paper is an uploaded file with a title, exam year and medium
(language of the paper).
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, Text, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from app.database import Base


class PastPaperGrade(Base):
    __tablename__ = "past_paper_grades"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(Text, nullable=False, unique=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    subjects = relationship("PastPaperSubject", back_populates="grade",
                            cascade="all, delete-orphan", passive_deletes=True,
                            order_by="PastPaperSubject.name")


class PastPaperSubject(Base):
    __tablename__ = "past_paper_subjects"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    grade_id = Column(String(36), ForeignKey("past_paper_grades.id", ondelete="CASCADE"), nullable=False)
    name = Column(Text, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    grade = relationship("PastPaperGrade", back_populates="subjects")
    papers = relationship("PastPaper", back_populates="subject",
                          cascade="all, delete-orphan", passive_deletes=True,
                          order_by=lambda: [PastPaper.year.desc(), PastPaper.created_at.desc()])


class PastPaper(Base):
    __tablename__ = "past_papers"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    subject_id = Column(String(36), ForeignKey("past_paper_subjects.id", ondelete="CASCADE"), nullable=False)
    title = Column(Text, nullable=False)
    medium = Column(Text, nullable=False,
                    doc="Language medium of the paper, e.g. Sinhala or English")
    year = Column(Integer, nullable=False)
    file_url = Column(Text, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    subject = relationship("PastPaperSubject", back_populates="papers")
