"""Course catalogue, enrollment gating, ownership and unenrollment."""

import pytest

from app.database import SessionLocal
from app.models.payment import Payment, PaymentStatus
from app.models.quiz_attempt import QuizAttempt, QuestionAttempt
from app.models.user import Role

from conftest import upload_receipt


def test_public_course_list(client, make_course):
    make_course(title="Combined Maths", price="2500.00")

    resp = client.get("/api/courses")

    assert resp.status_code == 200
    courses = resp.json()
    assert len(courses) == 1
    assert courses[0]["title"] == "Combined Maths"
    assert courses[0]["price"] == 2500.0


def test_pending_student_sees_no_content(client, student, make_course, make_quiz):
    course_id = make_course(with_content=True)
    make_quiz(course_id)
    upload_receipt(client, student, course_id)

    resp = client.get("/api/courses/{}".format(course_id), headers=student["headers"])

    assert resp.status_code == 200
    body = resp.json()
    assert body["enrollmentStatus"] == "PENDING"
    assert body["materials"] is None
    assert body["quizzes"] == []
    assert body["recordings"] == []


def test_approved_student_sees_content(client, student, make_course, make_quiz, enroll):
    course_id = make_course(with_content=True)
    quiz_id, _ = make_quiz(course_id, title="Algebra")
    enroll(student["id"], course_id, PaymentStatus.APPROVED, "REF1")

    body = client.get("/api/courses/{}".format(course_id), headers=student["headers"]).json()

    assert body["enrollmentStatus"] == "APPROVED"
    assert body["materials"]["zoomLink"] == "https://zoom.us/j/123"
    assert body["quizzes"] == [{"id": quiz_id, "title": "Algebra"}]
    assert [r["title"] for r in body["recordings"]] == ["Lesson 1"]


def test_course_detail_requires_login(client, make_course):
    resp = client.get("/api/courses/{}".format(make_course()))
    assert resp.status_code == 401
    assert resp.json() == {"error": "Not authenticated"}


def test_unknown_course_is_not_found(client, student):
    resp = client.get("/api/courses/missing", headers=student["headers"])
    assert resp.status_code == 404


def test_recordings_are_gated(client, student, make_course, enroll):
    course_id = make_course(with_content=True)
    url = "/api/courses/{}/recordings".format(course_id)

    assert client.get(url, headers=student["headers"]).status_code == 403

    enroll(student["id"], course_id, PaymentStatus.APPROVED, "REF5")
    resp = client.get(url, headers=student["headers"])
    assert resp.status_code == 200
    assert len(resp.json()) == 1


def test_instructor_manages_only_own_courses(client, make_user, make_course):
    owner = make_user(Role.INSTRUCTOR)
    other = make_user(Role.INSTRUCTOR)
    course_id = make_course(owner_id=owner["id"])
    url = "/api/courses/{}".format(course_id)

    resp = client.patch(url, json={"price": 3000}, headers=other["headers"])
    assert resp.status_code == 403

    resp = client.patch(url, json={"price": 3000, "tutor": "Ms. Fernando"}, headers=owner["headers"])
    assert resp.status_code == 200
    assert resp.json()["price"] == 3000.0
    assert resp.json()["tutor"] == "Ms. Fernando"

    # Owners see gated content without paying
    body = client.get(url, headers=owner["headers"]).json()
    assert body["enrollmentStatus"] is None
    assert body["quizzes"] == []


def test_create_course(client, make_user):
    instructor = make_user(Role.INSTRUCTOR)

    resp = client.post("/api/courses", json={"title": "  Biology ", "price": 1500},
                       headers=instructor["headers"])

    assert resp.status_code == 201
    assert resp.json()["title"] == "Biology"
    assert resp.json()["createdById"] == instructor["id"]

    assert client.post("/api/courses", json={"title": ""}, headers=instructor["headers"]).status_code == 400
    assert client.post("/api/courses", json={"title": "X", "price": -1},
                       headers=instructor["headers"]).status_code == 400


@pytest.mark.parametrize("price", ["NaN", "Infinity", "-Infinity", "1e30", "100000000", "99999999.999"])
def test_course_price_must_be_finite_and_fit(client, make_user, make_course, price):
    instructor = make_user(Role.INSTRUCTOR)
    headers = {**instructor["headers"], "Content-Type": "application/json"}

    resp = client.post("/api/courses", content='{"title": "X", "price": %s}' % price, headers=headers)
    assert resp.status_code == 400
    assert "error" in resp.json()

    course_id = make_course(owner_id=instructor["id"])
    resp = client.patch("/api/courses/{}".format(course_id), content='{"price": %s}' % price, headers=headers)
    assert resp.status_code == 400
    assert client.get("/api/courses").json()[0]["price"] == 2500.0


def test_students_cannot_create_courses(client, student):
    resp = client.post("/api/courses", json={"title": "Hack"}, headers=student["headers"])
    assert resp.status_code == 403
    assert resp.json() == {"error": "Forbidden: insufficient permissions"}


def test_unenroll_removes_payment_and_attempts(client, student, make_course, make_quiz, enroll):
    course_id = make_course()
    other_course = make_course(title="Other")
    quiz_id, keys = make_quiz(course_id, n_questions=2)
    other_quiz, other_keys = make_quiz(other_course, n_questions=1)
    enroll(student["id"], course_id, PaymentStatus.APPROVED, "REF10")
    enroll(student["id"], other_course, PaymentStatus.APPROVED, "REF11")

    client.post("/api/quizzes/{}/submit".format(quiz_id),
                json={keys[0][0]: keys[0][1]}, headers=student["headers"])
    client.post("/api/quizzes/{}/submit".format(other_quiz),
                json={other_keys[0][0]: other_keys[0][1]}, headers=student["headers"])

    resp = client.delete("/api/courses/{}/unenroll".format(course_id), headers=student["headers"])
    assert resp.status_code == 204

    session = SessionLocal()
    try:
        assert session.query(Payment).filter(Payment.course_id == course_id).count() == 0
        remaining = session.query(QuizAttempt).filter(QuizAttempt.student_id == student["id"]).all()
        assert [a.quiz_id for a in remaining] == [other_quiz]
        # Per-question rows went with their attempt
        assert session.query(QuestionAttempt).count() == 1
    finally:
        session.close()

    body = client.get("/api/courses/{}".format(course_id), headers=student["headers"]).json()
    assert body["enrollmentStatus"] is None
    assert body["quizzes"] == []

    # The enrollment form is available again
    assert upload_receipt(client, student, course_id).status_code == 201


def test_unenroll_without_payment(client, student, make_course):
    resp = client.delete("/api/courses/{}/unenroll".format(make_course()), headers=student["headers"])
    assert resp.status_code == 404
    assert resp.json() == {"error": "Enrollment record not found."}


def test_delete_course_cascades(client, admin, student, make_course, make_quiz, enroll):
    course_id = make_course(with_content=True)
    make_quiz(course_id)
    enroll(student["id"], course_id, PaymentStatus.APPROVED, "REF3")

    resp = client.delete("/api/courses/{}".format(course_id), headers=admin["headers"])

    assert resp.status_code == 200
    assert client.get("/api/courses").json() == []
    session = SessionLocal()
    try:
        assert session.query(Payment).count() == 0
    finally:
        session.close()
