"""
Quiz models - a quiz belongs to a course and holds multiple-choice questions.

Every question has exactly four answers and exactly one of them is correct.
This is validated when questions are written, not by the schema.
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import Column, Text, DateTime, ForeignKey, Boolean, Integer, String, Index
from sqlalchemy.orm import relationship
from app.database import Base


class Quiz(Base):
    """SQLAlchemy model for the quizzes table."""
    __tablename__ = "quizzes"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    course_id = Column(String(36), ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    title = Column(Text, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    course = relationship("Course", back_populates="quizzes")
    questions = relationship("Question", back_populates="quiz",
                             cascade="all, delete-orphan", passive_deletes=True,
                             order_by="Question.created_at")
    attempts = relationship("QuizAttempt", back_populates="quiz",
                            cascade="all, delete-orphan", passive_deletes=True)

    __table_args__ = (
        Index("ix_quizzes_course_id", "course_id"),
    )

    def __repr__(self):
        return f"<Quiz(id={self.id}, course={self.course_id}, title='{self.title}')>"


class Question(Base):
    """A question may carry text, an image, or both."""
    __tablename__ = "questions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    quiz_id = Column(String(36), ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False)
    question_text = Column(Text, nullable=True)
    image_url = Column(Text, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    quiz = relationship("Quiz", back_populates="questions")
    answers = relationship("Answer", back_populates="question",
                           cascade="all, delete-orphan", passive_deletes=True,
                           order_by="Answer.position")

    @property
    def correct_answer(self):
        for answer in self.answers:
            if answer.is_correct:
                return answer
        return None


class Answer(Base):
    __tablename__ = "answers"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    question_id = Column(String(36), ForeignKey("questions.id", ondelete="CASCADE"), nullable=False)
    answer_text = Column(Text, nullable=False)
    is_correct = Column(Boolean, nullable=False, default=False)
    position = Column(Integer, nullable=False, default=0,
                      doc="Display order within the question")

    question = relationship("Question", back_populates="answers")
