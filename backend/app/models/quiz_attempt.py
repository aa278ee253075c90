"""
QuizAttempt model - a student's single scored submission of a quiz.

A student gets one attempt per quiz (unique on student_id, quiz_id).
The score is a percentage stored with one decimal place.
QuestionAttempt rows record what was selected for each question.
"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import (
    Column, DateTime, ForeignKey, Numeric, String, Boolean, UniqueConstraint, Index
)
from sqlalchemy.orm import relationship
from app.database import Base


class QuizAttempt(Base):
    """SQLAlchemy model for the quiz_attempts table."""
    __tablename__ = "quiz_attempts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    student_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    quiz_id = Column(String(36), ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False)
    score = Column(Numeric(5, 1), nullable=False, default=0,
                   doc="Percentage of correct answers, 0.0 to 100.0")
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    student = relationship("User", back_populates="quiz_attempts")
    quiz = relationship("Quiz", back_populates="attempts")
    question_attempts = relationship("QuestionAttempt", back_populates="quiz_attempt",
                                     cascade="all, delete-orphan", passive_deletes=True)

    __table_args__ = (
        UniqueConstraint("student_id", "quiz_id", name="uq_quiz_attempts_student_quiz"),
        Index("ix_quiz_attempts_quiz_id", "quiz_id"),
    )

    def __repr__(self):
        return f"<QuizAttempt(id={self.id}, student={self.student_id}, quiz={self.quiz_id}, score={self.score})>"


class QuestionAttempt(Base):
    __tablename__ = "question_attempts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    quiz_attempt_id = Column(String(36), ForeignKey("quiz_attempts.id", ondelete="CASCADE"), nullable=False)
    question_id = Column(String(36), ForeignKey("questions.id", ondelete="CASCADE"), nullable=False)
    selected_answer_id = Column(String(36), ForeignKey("answers.id", ondelete="SET NULL"), nullable=True)
    is_correct = Column(Boolean, nullable=False, default=False)

    quiz_attempt = relationship("QuizAttempt", back_populates="question_attempts")
