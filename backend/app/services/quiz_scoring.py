"""
Quiz Scoring Service - scores quiz submissions and manages question authoring.

Scoring rules:
1. A student gets a single attempt per quiz; a repeat submission is a conflict
2. score = correct / total_questions * 100, kept with one decimal place
3. Unanswered questions count as wrong (they are part of total_questions)
4. The attempt row and its per-question rows are written in one transaction;
   any failure rolls back the whole attempt

Correct answers are only revealed in the response to a submission.
"""

import time
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from app.errors import ValidationError, NotFoundError, ConflictError
from app.models.quiz import Quiz, Question, Answer
from app.models.quiz_attempt import QuizAttempt, QuestionAttempt
from app.models.user import User
from app.serializers import score_value
from app.services.enrollment import require_approved_enrollment
from app.logging_config import get_logger, log_with_context

# Channel logger for quiz operations
logger = get_logger("quiz")

ANSWERS_PER_QUESTION = 4
REPEAT_ATTEMPT_MESSAGE = "You have already attempted this quiz."


def compute_percentage(correct_count: int, total_questions: int) -> Decimal:
    """Percentage of correct answers rounded half-up to one decimal place."""
    if total_questions <= 0:
        return Decimal("0.0")
    raw = Decimal(correct_count * 100) / Decimal(total_questions)
    return raw.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)


def _load_quiz(db: Session, quiz_id: str) -> Quiz:
    quiz = db.query(Quiz).options(
        joinedload(Quiz.questions).joinedload(Question.answers)
    ).filter(Quiz.id == quiz_id).first()
    if not quiz:
        raise NotFoundError("Quiz not found")
    return quiz


def _ensure_first_attempt(db: Session, student: User, quiz_id: str):
    existing = db.query(QuizAttempt.id).filter(
        QuizAttempt.student_id == student.id,
        QuizAttempt.quiz_id == quiz_id
    ).first()
    if existing:
        db.rollback()
        log_with_context(logger, "INFO", "Repeat attempt refused",
                         context={"student_id": student.id, "quiz_id": quiz_id})
        raise ConflictError(REPEAT_ATTEMPT_MESSAGE)


def _commit_attempt(db: Session, student: User, quiz_id: str):
    try:
        db.commit()
    except IntegrityError:
        # A concurrent submission won the unique (student_id, quiz_id) race
        db.rollback()
        raise ConflictError(REPEAT_ATTEMPT_MESSAGE)
    except Exception:
        db.rollback()
        log_with_context(logger, "ERROR", "Quiz attempt rolled back",
                         context={"student_id": student.id, "quiz_id": quiz_id}, exc_info=True)
        raise


def submit_quiz(db: Session, student: User, quiz_id: str, submission: dict) -> dict:
    """
    Score a multi-question submission and persist a single attempt.

    Args:
        submission: mapping of question id -> selected answer id

    Returns:
        {score, totalQuestions, correctAnswers, results[]} where results hold
        the selected and correct answer per question for review rendering

    Raises:
        ValidationError: empty submission or unknown question id
        NotFoundError: quiz does not exist
        AuthorizationError: student is not approved for the quiz's course
        ConflictError: student already attempted this quiz
    """
    start_time = time.time()
    if not submission:
        raise ValidationError("Submission cannot be empty.")

    quiz = _load_quiz(db, quiz_id)
    require_approved_enrollment(db, student, quiz.course_id)
    _ensure_first_attempt(db, student, quiz_id)

    questions = {q.id: q for q in quiz.questions}
    unknown = [qid for qid in submission if qid not in questions]
    if unknown:
        raise ValidationError("Submission contains questions that are not part of this quiz.")

    correct_count = 0
    question_rows = []
    for question_id, selected_answer_id in submission.items():
        question = questions[question_id]
        correct = question.correct_answer
        answer_ids = {a.id for a in question.answers}
        is_correct = correct is not None and selected_answer_id == correct.id
        if is_correct:
            correct_count += 1
        question_rows.append(QuestionAttempt(
            question_id=question_id,
            selected_answer_id=selected_answer_id if selected_answer_id in answer_ids else None,
            is_correct=is_correct,
        ))

    total_questions = len(questions)
    score = compute_percentage(correct_count, total_questions)

    attempt = QuizAttempt(student_id=student.id, quiz_id=quiz_id, score=score)
    attempt.question_attempts = question_rows
    db.add(attempt)
    _commit_attempt(db, student, quiz_id)

    results = []
    for question in quiz.questions:
        correct = question.correct_answer
        results.append({
            "questionId": question.id,
            "questionText": question.question_text,
            "imageUrl": question.image_url,
            "selectedAnswerId": submission.get(question.id),
            "correctAnswerId": correct.id if correct else None,
            "answers": [{"id": a.id, "answerText": a.answer_text} for a in question.answers],
        })

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Quiz scored: {} ({} of {} correct)".format(score, correct_count, total_questions),
        context={"student_id": student.id, "quiz_id": quiz_id, "attempt_id": attempt.id},
        extra_data={"duration_ms": round(duration_ms, 2)})

    return {
        "score": score_value(score),
        "totalQuestions": total_questions,
        "correctAnswers": correct_count,
        "results": results,
    }


def submit_single_answer(db: Session, student: User, quiz_id: str,
                         selected_answer_id: Optional[str]) -> dict:
    """
    Score a one-question submission (the legacy quiz page).

    Records an attempt worth 100 or 0 and reveals the correct answer text
    only when the selection was wrong.
    """
    if not selected_answer_id:
        raise ValidationError("Answer selection is required")

    quiz = db.query(Quiz).filter(Quiz.id == quiz_id).first()
    if not quiz:
        raise NotFoundError("Quiz not found")
    require_approved_enrollment(db, student, quiz.course_id)

    selected = db.query(Answer).join(Question).options(
        joinedload(Answer.question).joinedload(Question.answers)
    ).filter(
        Answer.id == selected_answer_id,
        Question.quiz_id == quiz_id
    ).first()
    if not selected:
        raise ValidationError("Invalid answer selection")

    _ensure_first_attempt(db, student, quiz_id)

    is_correct = bool(selected.is_correct)
    attempt = QuizAttempt(
        student_id=student.id,
        quiz_id=quiz_id,
        score=compute_percentage(1 if is_correct else 0, 1),
    )
    attempt.question_attempts = [QuestionAttempt(
        question_id=selected.question_id,
        selected_answer_id=selected.id,
        is_correct=is_correct,
    )]
    db.add(attempt)
    _commit_attempt(db, student, quiz_id)

    correct_answer = None
    if not is_correct:
        correct = selected.question.correct_answer
        correct_answer = correct.answer_text if correct else None

    log_with_context(logger, "INFO", "Single answer scored: {}".format("correct" if is_correct else "wrong"),
                     context={"student_id": student.id, "quiz_id": quiz_id})
    return {
        "isCorrect": is_correct,
        "correctAnswer": correct_answer,
        "selectedAnswer": selected.answer_text,
    }


# ── Question authoring ───────────────────────────────────────

def validate_answers(answers: list) -> None:
    """
    Exactly four answers with non-empty text, exactly one marked correct.

    Args:
        answers: list of dicts with answer_text and is_correct
    """
    if not isinstance(answers, list) or len(answers) != ANSWERS_PER_QUESTION:
        raise ValidationError("Exactly {} answers are required.".format(ANSWERS_PER_QUESTION))
    if any(not (a.get("answer_text") or "").strip() for a in answers):
        raise ValidationError("Every answer needs text.")
    correct = sum(1 for a in answers if a.get("is_correct"))
    if correct != 1:
        raise ValidationError("Exactly one answer must be marked correct.")


def create_question(db: Session, quiz_id: str, question_text: Optional[str],
                    image_url: Optional[str], answers: list) -> Question:
    if not (question_text or "").strip() and not image_url:
        raise ValidationError("A question needs text or an image.")
    validate_answers(answers)

    question = Question(quiz_id=quiz_id, question_text=(question_text or "").strip() or None,
                        image_url=image_url)
    question.answers = [
        Answer(answer_text=a["answer_text"].strip(), is_correct=bool(a.get("is_correct")), position=i)
        for i, a in enumerate(answers)
    ]
    db.add(question)
    db.commit()
    db.refresh(question)
    log_with_context(logger, "INFO", "Question created", context={"quiz_id": quiz_id, "question_id": question.id})
    return question


def update_question(db: Session, question: Question, question_text: Optional[str],
                    answers: list) -> Question:
    """Replace the text and the four answers of a question in one transaction."""
    validate_answers(answers)
    if question_text is not None:
        question.question_text = question_text.strip() or None
    if not question.question_text and not question.image_url:
        raise ValidationError("A question needs text or an image.")

    existing = list(question.answers)
    for position, (answer, data) in enumerate(zip(existing, answers)):
        answer.answer_text = data["answer_text"].strip()
        answer.is_correct = bool(data.get("is_correct"))
        answer.position = position
    # Legacy rows may not have exactly four answers
    for answer in existing[len(answers):]:
        db.delete(answer)
    for position in range(len(existing), len(answers)):
        data = answers[position]
        question.answers.append(Answer(answer_text=data["answer_text"].strip(),
                                       is_correct=bool(data.get("is_correct")), position=position))
    db.commit()
    db.refresh(question)
    return question


def delete_question(db: Session, question: Question) -> Optional[str]:
    """Delete a question with its answers; returns the image URL left to clean up."""
    image_url = question.image_url
    question_id = question.id
    db.delete(question)
    db.commit()
    log_with_context(logger, "INFO", "Question deleted", context={"question_id": question_id})
    return image_url
