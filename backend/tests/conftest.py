"""
Shared fixtures: in-memory SQLite, a temporary upload directory and a
notifier that records messages instead of sending them.

Environment is set before the application is imported because config and
the database engine are resolved at import time.
"""

import os
import tempfile

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_CAPACITY"] = "0"
os.environ["JWT_SECRET"] = "test-secret"
os.environ.setdefault("UPLOADS_DIR", tempfile.mkdtemp(prefix="course-portal-uploads-"))

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.database import SessionLocal, create_tables, drop_tables
from app.models.course import Course, CourseMaterial, Recording
from app.models.payment import Payment, PaymentStatus
from app.models.quiz import Quiz, Question, Answer
from app.models.user import Role
from app.services.accounts import create_user
from app.services.identity import issue_session_token
from app.services.notifications import Notifier, get_notifier
from app.services.storage import LocalFileStorage, get_storage

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


class RecordingNotifier(Notifier):
    def __init__(self):
        self.sent = []

    def send(self, recipients, subject, body):
        self.sent.append({"recipients": list(recipients), "subject": subject, "body": body})


@pytest.fixture(autouse=True)
def fresh_database():
    drop_tables()
    create_tables()
    yield


@pytest.fixture
def storage(tmp_path):
    return LocalFileStorage(str(tmp_path / "uploads"))


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def client(storage, notifier):
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_notifier] = lambda: notifier
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def db():
    session = SessionLocal()
    yield session
    session.close()


# ── Factories ────────────────────────────────────────────────

def auth_header(token):
    return {"Authorization": "Bearer {}".format(token)}


@pytest.fixture
def make_user():
    counter = {"n": 0}

    def _make(role=Role.STUDENT, name=None, email=None):
        counter["n"] += 1
        n = counter["n"]
        session = SessionLocal()
        try:
            user = create_user(session, email or "user{}@example.com".format(n),
                               name or "User {}".format(n), "secret123", role=role)
            token = issue_session_token(user)
            return {"id": user.id, "email": user.email, "name": user.name,
                    "role": user.role, "headers": auth_header(token)}
        finally:
            session.close()

    return _make


@pytest.fixture
def student(make_user):
    return make_user(Role.STUDENT, name="Nimal Perera", email="nimal@example.com")


@pytest.fixture
def admin(make_user):
    return make_user(Role.ADMIN, name="Admin", email="admin@example.com")


@pytest.fixture
def make_course():
    def _make(title="Combined Maths", owner_id=None, price="2500.00", with_content=False):
        session = SessionLocal()
        try:
            course = Course(title=title, description="Weekly theory class", price=Decimal(price),
                            tutor="Mr. Silva", created_by_id=owner_id)
            session.add(course)
            session.flush()
            if with_content:
                session.add(CourseMaterial(course_id=course.id, zoom_link="https://zoom.us/j/123"))
                session.add(Recording(course_id=course.id, title="Lesson 1",
                                      video_url="/api/uploads/recordings/1-lesson1.mp4"))
            session.commit()
            return course.id
        finally:
            session.close()

    return _make


@pytest.fixture
def make_quiz():
    """
    Create a quiz with n four-answer questions.

    Returns (quiz_id, [(question_id, correct_answer_id, wrong_answer_id), ...]).
    """
    def _make(course_id, n_questions=5, title="Unit test"):
        session = SessionLocal()
        try:
            quiz = Quiz(course_id=course_id, title=title)
            keys = []
            for i in range(n_questions):
                question = Question(question_text="Question {}".format(i + 1))
                question.answers = [
                    Answer(answer_text="Option {}".format(p), is_correct=(p == 0), position=p)
                    for p in range(4)
                ]
                quiz.questions.append(question)
            session.add(quiz)
            session.commit()
            for question in quiz.questions:
                keys.append((question.id, question.answers[0].id, question.answers[1].id))
            return quiz.id, keys
        finally:
            session.close()

    return _make


@pytest.fixture
def enroll():
    """Insert a payment row directly, bypassing the upload workflow."""
    def _enroll(student_id, course_id, status=PaymentStatus.APPROVED, reference_number=None):
        session = SessionLocal()
        try:
            payment = Payment(student_id=student_id, course_id=course_id,
                              receipt_url="/api/uploads/receipts/seed.png",
                              status=status, reference_number=reference_number)
            session.add(payment)
            session.commit()
            return payment.id
        finally:
            session.close()

    return _enroll


def upload_receipt(client, user, course_id, content=PNG_BYTES, filename="receipt.png",
                   content_type="image/png"):
    return client.post(
        "/api/payments/upload",
        data={"courseId": course_id},
        files={"receipt": (filename, content, content_type)},
        headers=user["headers"],
    )
