"""
Quiz API routes - quiz containers, question authoring and submissions.

Provides endpoints for:
- Listing and creating quizzes of a course
- Question CRUD (four answers, one correct)
- Scoring a student's submission (multi-question and legacy single answer)
- A student's own attempt history
"""

import json
from typing import Dict, List, Optional
from fastapi import APIRouter, Depends, File, Form, Response, UploadFile
from pydantic import BaseModel
from sqlalchemy.orm import Session, joinedload

from app.database import get_db
from app.errors import NotFoundError, ValidationError
from app.models.course import Course
from app.models.quiz import Quiz, Question
from app.models.quiz_attempt import QuizAttempt
from app.models.user import User, Role
from app.serializers import serialize_quiz, serialize_question, score_value
from app.services import enrollment, quiz_scoring
from app.services.identity import (
    get_current_user, require_roles, require_course_owner, can_manage_course
)
from app.services.storage import Storage, get_storage, read_upload, build_key, discard_file, IMAGE_10MB
from app.logging_config import get_logger, log_with_context

router = APIRouter()
logger = get_logger("http")

STAFF = (Role.ADMIN, Role.INSTRUCTOR)


# ── Pydantic schemas ─────────────────────────────────────────

class QuizCreate(BaseModel):
    title: Optional[str] = None


class AnswerInput(BaseModel):
    answerText: Optional[str] = None
    isCorrect: bool = False


class QuestionUpdate(BaseModel):
    questionText: Optional[str] = None
    answers: List[AnswerInput] = []


class SingleAnswerSubmission(BaseModel):
    selectedAnswerId: Optional[str] = None


def _answers_payload(answers: List[AnswerInput]) -> list:
    return [{"answer_text": a.answerText, "is_correct": a.isCorrect} for a in answers]


def _parse_json_list(raw: Optional[str]) -> list:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(str(e))
    if not isinstance(value, list):
        raise ValueError("answers must be a list")
    return value


def _get_quiz(db: Session, quiz_id: str) -> Quiz:
    quiz = db.query(Quiz).options(joinedload(Quiz.course)).filter(Quiz.id == quiz_id).first()
    if not quiz:
        raise NotFoundError("Quiz not found")
    return quiz


def _ensure_quiz_access(db: Session, user: User, quiz: Quiz):
    """Managers see every quiz; students only those of courses they are approved for."""
    if not can_manage_course(user, quiz.course):
        enrollment.require_approved_enrollment(db, user, quiz.course_id)


@router.get("/api/courses/{course_id}/quizzes")
def list_quizzes(
    course_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    course = db.query(Course).filter(Course.id == course_id).first()
    if not course:
        raise NotFoundError("Course not found")
    if not can_manage_course(user, course):
        enrollment.require_approved_enrollment(db, user, course_id)
    return [{"id": q.id, "title": q.title} for q in course.quizzes]


@router.post("/api/courses/{course_id}/quizzes", status_code=201)
def create_quiz(
    course_id: str,
    request: QuizCreate,
    user: User = Depends(require_roles(*STAFF)),
    db: Session = Depends(get_db)
):
    course = db.query(Course).filter(Course.id == course_id).first()
    if not course:
        raise NotFoundError("Course not found")
    require_course_owner(user, course)
    if not (request.title or "").strip():
        raise ValidationError("A title is required to create a quiz.")

    quiz = Quiz(course_id=course_id, title=request.title.strip())
    db.add(quiz)
    db.commit()
    db.refresh(quiz)
    log_with_context(logger, "INFO", "Quiz created", context={"course_id": course_id, "quiz_id": quiz.id})
    return serialize_quiz(quiz)


@router.get("/api/quizzes/{quiz_id}")
def get_quiz(
    quiz_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    quiz = _get_quiz(db, quiz_id)
    _ensure_quiz_access(db, user, quiz)
    return serialize_quiz(quiz)


@router.delete("/api/quizzes/{quiz_id}", status_code=204)
def delete_quiz(
    quiz_id: str,
    user: User = Depends(require_roles(*STAFF)),
    db: Session = Depends(get_db),
    storage: Storage = Depends(get_storage)
):
    quiz = _get_quiz(db, quiz_id)
    require_course_owner(user, quiz.course)
    images = [q.image_url for q in quiz.questions if q.image_url]
    db.delete(quiz)
    db.commit()
    for url in images:
        discard_file(storage, url, {"quiz_id": quiz_id})
    return Response(status_code=204)


# ── Questions ────────────────────────────────────────────────

@router.get("/api/quizzes/{quiz_id}/questions")
def list_questions(
    quiz_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Questions with their answers; correctness is hidden from students."""
    quiz = _get_quiz(db, quiz_id)
    _ensure_quiz_access(db, user, quiz)
    include_correct = can_manage_course(user, quiz.course)
    return [serialize_question(q, include_correct=include_correct) for q in quiz.questions]


@router.post("/api/quizzes/{quiz_id}/questions", status_code=201)
def create_question(
    quiz_id: str,
    question_text: Optional[str] = Form(None, alias="questionText"),
    answers: Optional[str] = Form(None, description="JSON array of {answerText, isCorrect}"),
    image: Optional[UploadFile] = File(None),
    user: User = Depends(require_roles(*STAFF)),
    db: Session = Depends(get_db),
    storage: Storage = Depends(get_storage)
):
    """
    Add a question with exactly four answers.

    Sent as multipart so a question image can accompany the text; the
    answers travel as a JSON array in the `answers` field.
    """
    quiz = _get_quiz(db, quiz_id)
    require_course_owner(user, quiz.course)

    try:
        parsed = [AnswerInput.model_validate(a) for a in _parse_json_list(answers)]
    except ValueError:
        raise ValidationError("Answers must be a JSON array of {answerText, isCorrect}.")
    answer_data = _answers_payload(parsed)
    quiz_scoring.validate_answers(answer_data)

    image_url = None
    if image is not None and image.filename:
        data = read_upload(image, IMAGE_10MB, "image")
        image_url = storage.put(data, build_key("questions", image.filename))

    try:
        question = quiz_scoring.create_question(db, quiz_id, question_text, image_url, answer_data)
    except Exception:
        if image_url:
            discard_file(storage, image_url, {"quiz_id": quiz_id})
        raise
    return serialize_question(question)


@router.patch("/api/quizzes/{quiz_id}/questions/{question_id}")
def update_question(
    quiz_id: str,
    question_id: str,
    request: QuestionUpdate,
    user: User = Depends(require_roles(*STAFF)),
    db: Session = Depends(get_db)
):
    quiz = _get_quiz(db, quiz_id)
    require_course_owner(user, quiz.course)
    question = db.query(Question).filter(Question.id == question_id, Question.quiz_id == quiz_id).first()
    if not question:
        raise NotFoundError("Question not found")

    question = quiz_scoring.update_question(db, question, request.questionText,
                                            _answers_payload(request.answers))
    return serialize_question(question)


@router.delete("/api/quizzes/{quiz_id}/questions/{question_id}", status_code=204)
def delete_question(
    quiz_id: str,
    question_id: str,
    user: User = Depends(require_roles(*STAFF)),
    db: Session = Depends(get_db),
    storage: Storage = Depends(get_storage)
):
    quiz = _get_quiz(db, quiz_id)
    require_course_owner(user, quiz.course)
    question = db.query(Question).filter(Question.id == question_id, Question.quiz_id == quiz_id).first()
    if not question:
        raise NotFoundError("Question not found")

    image_url = quiz_scoring.delete_question(db, question)
    if image_url:
        discard_file(storage, image_url, {"question_id": question_id})
    return Response(status_code=204)


# ── Submissions ──────────────────────────────────────────────

@router.post("/api/quizzes/{quiz_id}/submit")
def submit_quiz(
    quiz_id: str,
    submission: Dict[str, str],
    student: User = Depends(require_roles(Role.STUDENT)),
    db: Session = Depends(get_db)
):
    """Score a submission mapping question id -> selected answer id."""
    return quiz_scoring.submit_quiz(db, student, quiz_id, submission)


@router.post("/api/quiz/{quiz_id}/submit")
def submit_single_answer(
    quiz_id: str,
    request: SingleAnswerSubmission,
    student: User = Depends(require_roles(Role.STUDENT)),
    db: Session = Depends(get_db)
):
    """Legacy one-question quiz submission."""
    return quiz_scoring.submit_single_answer(db, student, quiz_id, request.selectedAnswerId)


@router.get("/api/student/quiz-attempts")
def my_quiz_attempts(
    student: User = Depends(require_roles(Role.STUDENT)),
    db: Session = Depends(get_db)
):
    attempts = db.query(QuizAttempt).options(
        joinedload(QuizAttempt.quiz).joinedload(Quiz.course)
    ).filter(
        QuizAttempt.student_id == student.id
    ).order_by(QuizAttempt.created_at.desc()).all()

    return [
        {
            "attemptId": a.id,
            "score": score_value(a.score),
            "attemptedAt": a.created_at.isoformat() if a.created_at else None,
            "quizId": a.quiz_id,
            "quizTitle": a.quiz.title,
            "courseId": a.quiz.course_id,
            "courseTitle": a.quiz.course.title,
        }
        for a in attempts
    ]
