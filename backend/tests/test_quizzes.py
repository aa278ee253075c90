"""Quiz submission scoring and question authoring."""

import json
from decimal import Decimal

from app.database import SessionLocal
from app.services.quiz_scoring import compute_percentage
from app.models.payment import PaymentStatus
from app.models.quiz_attempt import QuizAttempt
from app.models.user import Role


def _submit(client, user, quiz_id, answers):
    return client.post("/api/quizzes/{}/submit".format(quiz_id), json=answers, headers=user["headers"])


def test_score_three_of_five(client, student, make_course, make_quiz, enroll):
    course_id = make_course()
    quiz_id, keys = make_quiz(course_id, n_questions=5)
    enroll(student["id"], course_id)

    answers = {}
    for i, (question_id, correct_id, wrong_id) in enumerate(keys):
        answers[question_id] = correct_id if i < 3 else wrong_id

    resp = _submit(client, student, quiz_id, answers)

    assert resp.status_code == 200
    body = resp.json()
    assert body["score"] == 60.0
    assert body["totalQuestions"] == 5
    assert body["correctAnswers"] == 3
    assert len(body["results"]) == 5
    by_question = {r["questionId"]: r for r in body["results"]}
    for question_id, correct_id, _ in keys:
        assert by_question[question_id]["correctAnswerId"] == correct_id
        assert len(by_question[question_id]["answers"]) == 4

    session = SessionLocal()
    try:
        attempt = session.query(QuizAttempt).filter(QuizAttempt.quiz_id == quiz_id).one()
        assert float(attempt.score) == 60.0
        assert len(attempt.question_attempts) == 5
    finally:
        session.close()


def test_score_rounds_to_one_decimal(client, student, make_course, make_quiz, enroll):
    course_id = make_course()
    quiz_id, keys = make_quiz(course_id, n_questions=3)
    enroll(student["id"], course_id)

    answers = {keys[0][0]: keys[0][1], keys[1][0]: keys[1][1], keys[2][0]: keys[2][2]}
    body = _submit(client, student, quiz_id, answers).json()

    assert body["score"] == 66.7


def test_unanswered_questions_count_as_wrong(client, student, make_course, make_quiz, enroll):
    course_id = make_course()
    quiz_id, keys = make_quiz(course_id, n_questions=4)
    enroll(student["id"], course_id)

    body = _submit(client, student, quiz_id, {keys[0][0]: keys[0][1]}).json()

    assert body["score"] == 25.0
    assert body["totalQuestions"] == 4
    unanswered = [r for r in body["results"] if r["selectedAnswerId"] is None]
    assert len(unanswered) == 3


def test_second_submission_is_refused(client, student, make_course, make_quiz, enroll):
    course_id = make_course()
    quiz_id, keys = make_quiz(course_id, n_questions=2)
    enroll(student["id"], course_id)
    answers = {q: c for q, c, _ in keys}

    assert _submit(client, student, quiz_id, answers).status_code == 200
    resp = _submit(client, student, quiz_id, answers)

    assert resp.status_code == 409
    assert resp.json() == {"error": "You have already attempted this quiz."}
    session = SessionLocal()
    try:
        assert session.query(QuizAttempt).count() == 1
    finally:
        session.close()


def test_submission_requires_approved_enrollment(client, student, make_course, make_quiz, enroll):
    course_id = make_course()
    quiz_id, keys = make_quiz(course_id, n_questions=1)

    assert _submit(client, student, quiz_id, {keys[0][0]: keys[0][1]}).status_code == 403

    enroll(student["id"], course_id, PaymentStatus.PENDING)
    assert _submit(client, student, quiz_id, {keys[0][0]: keys[0][1]}).status_code == 403


def test_invalid_submissions(client, student, make_course, make_quiz, enroll):
    course_id = make_course()
    quiz_id, keys = make_quiz(course_id, n_questions=2)
    enroll(student["id"], course_id)

    resp = _submit(client, student, quiz_id, {})
    assert resp.status_code == 400

    resp = _submit(client, student, quiz_id, {"not-a-question": keys[0][1]})
    assert resp.status_code == 400

    assert _submit(client, student, "missing-quiz", {keys[0][0]: keys[0][1]}).status_code == 404

    # Nothing was recorded, so a valid submission still goes through
    assert _submit(client, student, quiz_id, {keys[0][0]: keys[0][1]}).status_code == 200


def test_only_students_submit(client, admin, make_course, make_quiz):
    quiz_id, keys = make_quiz(make_course(), n_questions=1)
    assert _submit(client, admin, quiz_id, {keys[0][0]: keys[0][1]}).status_code == 403


def test_legacy_single_answer(client, student, make_user, make_course, make_quiz, enroll):
    course_id = make_course()
    quiz_id, keys = make_quiz(course_id, n_questions=1)
    enroll(student["id"], course_id)
    url = "/api/quiz/{}/submit".format(quiz_id)

    resp = client.post(url, json={"selectedAnswerId": keys[0][2]}, headers=student["headers"])
    assert resp.status_code == 200
    assert resp.json() == {"isCorrect": False, "correctAnswer": "Option 0", "selectedAnswer": "Option 1"}

    resp = client.post(url, json={"selectedAnswerId": keys[0][1]}, headers=student["headers"])
    assert resp.status_code == 409

    other = make_user(Role.STUDENT)
    enroll(other["id"], course_id)
    resp = client.post(url, json={"selectedAnswerId": keys[0][1]}, headers=other["headers"])
    assert resp.json() == {"isCorrect": True, "correctAnswer": None, "selectedAnswer": "Option 0"}


def test_legacy_answer_must_belong_to_quiz(client, student, make_course, make_quiz, enroll):
    course_id = make_course()
    quiz_id, _ = make_quiz(course_id, n_questions=1)
    _, other_keys = make_quiz(course_id, n_questions=1, title="Other")
    enroll(student["id"], course_id)

    resp = client.post("/api/quiz/{}/submit".format(quiz_id),
                       json={"selectedAnswerId": other_keys[0][1]}, headers=student["headers"])
    assert resp.status_code == 400


def test_students_do_not_see_correct_flags(client, student, make_user, make_course, make_quiz, enroll):
    instructor = make_user(Role.INSTRUCTOR)
    course_id = make_course(owner_id=instructor["id"])
    quiz_id, _ = make_quiz(course_id, n_questions=1)
    enroll(student["id"], course_id)
    url = "/api/quizzes/{}/questions".format(quiz_id)

    answers = client.get(url, headers=student["headers"]).json()[0]["answers"]
    assert all("isCorrect" not in a for a in answers)

    answers = client.get(url, headers=instructor["headers"]).json()[0]["answers"]
    assert sum(1 for a in answers if a["isCorrect"]) == 1


def test_my_quiz_attempts(client, student, make_course, make_quiz, enroll):
    course_id = make_course(title="Physics")
    quiz_id, keys = make_quiz(course_id, n_questions=2, title="Motion")
    enroll(student["id"], course_id)
    _submit(client, student, quiz_id, {q: c for q, c, _ in keys})

    resp = client.get("/api/student/quiz-attempts", headers=student["headers"])

    assert resp.status_code == 200
    rows = resp.json()
    assert len(rows) == 1
    assert rows[0]["score"] == 100.0
    assert rows[0]["quizTitle"] == "Motion"
    assert rows[0]["courseTitle"] == "Physics"


# ── Authoring ────────────────────────────────────────────────

def _answers(correct_index=0, count=4):
    return json.dumps([
        {"answerText": "Answer {}".format(i), "isCorrect": i == correct_index}
        for i in range(count)
    ])


def test_create_quiz_and_question(client, make_user, make_course):
    instructor = make_user(Role.INSTRUCTOR)
    course_id = make_course(owner_id=instructor["id"])

    resp = client.post("/api/courses/{}/quizzes".format(course_id), json={"title": "Week 1"},
                       headers=instructor["headers"])
    assert resp.status_code == 201
    quiz_id = resp.json()["id"]

    resp = client.post("/api/quizzes/{}/questions".format(quiz_id),
                       data={"questionText": "2 + 2 = ?", "answers": _answers(correct_index=2)},
                       headers=instructor["headers"])
    assert resp.status_code == 201
    question = resp.json()
    assert question["questionText"] == "2 + 2 = ?"
    assert [a["isCorrect"] for a in question["answers"]] == [False, False, True, False]


def test_question_needs_four_answers_and_one_correct(client, make_user, make_course):
    instructor = make_user(Role.INSTRUCTOR)
    course_id = make_course(owner_id=instructor["id"])
    quiz_id = client.post("/api/courses/{}/quizzes".format(course_id), json={"title": "Q"},
                          headers=instructor["headers"]).json()["id"]
    url = "/api/quizzes/{}/questions".format(quiz_id)

    resp = client.post(url, data={"questionText": "?", "answers": _answers(count=3)},
                       headers=instructor["headers"])
    assert resp.status_code == 400

    resp = client.post(url, data={"questionText": "?", "answers": _answers(correct_index=9)},
                       headers=instructor["headers"])
    assert resp.status_code == 400

    resp = client.post(url, data={"questionText": "?", "answers": "not json"},
                       headers=instructor["headers"])
    assert resp.status_code == 400


def test_update_and_delete_question(client, make_user, make_course, make_quiz):
    instructor = make_user(Role.INSTRUCTOR)
    course_id = make_course(owner_id=instructor["id"])
    quiz_id, keys = make_quiz(course_id, n_questions=1)
    url = "/api/quizzes/{}/questions/{}".format(quiz_id, keys[0][0])

    resp = client.patch(url, json={
        "questionText": "Updated",
        "answers": [{"answerText": "A{}".format(i), "isCorrect": i == 3} for i in range(4)],
    }, headers=instructor["headers"])
    assert resp.status_code == 200
    assert resp.json()["questionText"] == "Updated"
    assert [a["isCorrect"] for a in resp.json()["answers"]] == [False, False, False, True]

    assert client.delete(url, headers=instructor["headers"]).status_code == 204
    assert client.get("/api/quizzes/{}/questions".format(quiz_id), headers=instructor["headers"]).json() == []


def test_other_instructor_cannot_author(client, make_user, make_course, make_quiz):
    owner = make_user(Role.INSTRUCTOR)
    other = make_user(Role.INSTRUCTOR)
    quiz_id, _ = make_quiz(make_course(owner_id=owner["id"]))

    resp = client.delete("/api/quizzes/{}".format(quiz_id), headers=other["headers"])
    assert resp.status_code == 403


def test_compute_percentage_rounds_half_up():
    assert compute_percentage(3, 5) == Decimal("60.0")
    assert compute_percentage(1, 3) == Decimal("33.3")
    assert compute_percentage(1, 8) == Decimal("12.5")
    assert compute_percentage(1, 16) == Decimal("6.3")
    assert compute_percentage(0, 0) == Decimal("0.0")
