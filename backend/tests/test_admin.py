"""Admin dashboards, staff accounts, announcements and past papers."""

from app.models.payment import PaymentStatus
from app.models.user import Role, User

from conftest import PNG_BYTES, upload_receipt


def test_dashboard_stats(client, admin, student, make_course):
    course_id = make_course(title="Maths")
    make_course(title="Science")
    upload_receipt(client, student, course_id)

    resp = client.get("/api/admin/dashboard-stats", headers=admin["headers"])

    assert resp.status_code == 200
    body = resp.json()
    assert body["totalStudents"] == 1
    assert body["totalCourses"] == 2
    assert body["pendingPayments"] == 1
    assert body["recentPayments"][0]["studentName"] == "Nimal Perera"
    assert body["recentPayments"][0]["courseTitle"] == "Maths"


def test_dashboard_is_admin_only(client, student):
    assert client.get("/api/admin/dashboard-stats", headers=student["headers"]).status_code == 403


def test_student_roster_with_highest_score(client, admin, student, make_user, make_course, make_quiz, enroll):
    course_id = make_course(title="Maths")
    quiz_id, keys = make_quiz(course_id, n_questions=2)
    enroll(student["id"], course_id)
    make_user(Role.STUDENT, name="Saman Kumara", email="saman@example.com")
    client.post("/api/quizzes/{}/submit".format(quiz_id), json={keys[0][0]: keys[0][1]},
                headers=student["headers"])

    rows = client.get("/api/admin/students", headers=admin["headers"]).json()
    assert {r["name"] for r in rows} == {"Nimal Perera", "Saman Kumara"}

    rows = client.get("/api/admin/students", params={"search": "nimal"}, headers=admin["headers"]).json()
    assert len(rows) == 1
    assert rows[0]["courses"] == [{
        "courseId": course_id,
        "courseTitle": "Maths",
        "enrollmentStatus": "APPROVED",
        "highestScore": 50.0,
    }]

    rows = client.get("/api/admin/students", params={"courseId": course_id}, headers=admin["headers"]).json()
    assert [r["name"] for r in rows] == ["Nimal Perera"]


def test_quiz_results(client, admin, student, make_course, make_quiz, enroll):
    course_id = make_course(title="Maths")
    quiz_id, keys = make_quiz(course_id, n_questions=4)
    enroll(student["id"], course_id)
    client.post("/api/quizzes/{}/submit".format(quiz_id), json={keys[0][0]: keys[0][1]},
                headers=student["headers"])

    rows = client.get("/api/admin/quiz-results", headers=admin["headers"]).json()

    assert len(rows) == 1
    assert rows[0]["studentName"] == "Nimal Perera"
    assert rows[0]["quizzesAttempted"] == 1
    assert rows[0]["highestScore"] == 25.0


def test_create_and_list_instructors(client, admin, make_course):
    resp = client.post("/api/admin/instructors", json={
        "email": "lecturer@example.com", "name": "Lecturer", "password": "secret123",
    }, headers=admin["headers"])
    assert resp.status_code == 201
    assert resp.json()["role"] == "INSTRUCTOR"
    make_course(title="Owned", owner_id=resp.json()["id"])

    rows = client.get("/api/admin/instructors", headers=admin["headers"]).json()
    assert rows[0]["courseCount"] == 1
    assert rows[0]["courseTitles"] == ["Owned"]

    resp = client.post("/api/admin/instructors", json={
        "email": "lecturer@example.com", "name": "Again", "password": "secret123",
    }, headers=admin["headers"])
    assert resp.status_code == 409


def test_update_user_validation(client, admin, student):
    url = "/api/users/{}".format(student["id"])
    assert client.patch(url, json={"role": "SUPERUSER"}, headers=admin["headers"]).status_code == 400
    assert client.patch(url, json={}, headers=admin["headers"]).status_code == 400
    assert client.patch("/api/users/missing", json={"role": "ADMIN"}, headers=admin["headers"]).status_code == 404

    resp = client.patch(url, json={"name": "Nimal P."}, headers=admin["headers"])
    assert resp.status_code == 200
    assert resp.json()["name"] == "Nimal P."


def test_rejected_update_changes_nothing(client, admin, student, db):
    url = "/api/users/{}".format(student["id"])

    resp = client.patch(url, json={"name": "Changed Name", "role": "BOGUS"}, headers=admin["headers"])
    assert resp.status_code == 400
    resp = client.patch(url, json={"role": "INSTRUCTOR", "email": "not-an-email"}, headers=admin["headers"])
    assert resp.status_code == 400

    user = db.query(User).filter(User.id == student["id"]).one()
    assert user.name == "Nimal Perera"
    assert user.role == Role.STUDENT


def test_role_and_profile_change_together(client, admin, student):
    resp = client.patch("/api/users/{}".format(student["id"]),
                        json={"name": "Nimal P.", "role": "INSTRUCTOR"}, headers=admin["headers"])

    assert resp.status_code == 200
    assert resp.json()["name"] == "Nimal P."
    assert resp.json()["role"] == "INSTRUCTOR"


def test_admin_cannot_demote_self(client, admin, db):
    url = "/api/users/{}".format(admin["id"])

    resp = client.patch(url, json={"role": "STUDENT"}, headers=admin["headers"])
    assert resp.status_code == 400
    assert resp.json() == {"error": "You cannot remove your own admin role"}
    assert db.query(User).filter(User.id == admin["id"]).one().role == Role.ADMIN

    # Editing their own profile is still allowed
    assert client.patch(url, json={"name": "Head Admin", "role": "ADMIN"},
                        headers=admin["headers"]).status_code == 200


def test_admin_cannot_delete_self(client, admin):
    resp = client.delete("/api/users/{}".format(admin["id"]), headers=admin["headers"])
    assert resp.status_code == 400


def test_instructor_course_students(client, make_user, student, make_course, enroll):
    owner = make_user(Role.INSTRUCTOR)
    other = make_user(Role.INSTRUCTOR)
    pending = make_user(Role.STUDENT)
    course_id = make_course(owner_id=owner["id"])
    enroll(student["id"], course_id, PaymentStatus.APPROVED, "REF1")
    enroll(pending["id"], course_id, PaymentStatus.PENDING)
    url = "/api/instructor/courses/{}/students".format(course_id)

    assert client.get(url, headers=other["headers"]).status_code == 403

    rows = client.get(url, headers=owner["headers"]).json()
    assert [r["email"] for r in rows] == [student["email"]]
    assert rows[0]["attempts"] == 0


# ── Announcements ────────────────────────────────────────────

def test_announcement_emails_students_and_instructors(client, admin, student, make_user, notifier):
    instructor = make_user(Role.INSTRUCTOR)

    resp = client.post("/api/announcements",
                       data={"title": "Exam week", "description": "No classes on Monday."},
                       files={"image": ("banner.png", PNG_BYTES, "image/png")},
                       headers=admin["headers"])

    assert resp.status_code == 201
    assert resp.json()["imageUrl"].startswith("/api/uploads/announcements/")
    assert [a["title"] for a in client.get("/api/announcements").json()] == ["Exam week"]

    assert len(notifier.sent) == 1
    assert set(notifier.sent[0]["recipients"]) == {student["email"], instructor["email"]}
    assert "Exam week" in notifier.sent[0]["subject"]


def test_announcement_requires_image(client, admin):
    resp = client.post("/api/announcements", data={"title": "T", "description": "D"},
                       headers=admin["headers"])
    assert resp.status_code == 400


def test_delete_announcement(client, admin, storage):
    created = client.post("/api/announcements", data={"title": "T", "description": "D"},
                          files={"image": ("b.png", PNG_BYTES, "image/png")},
                          headers=admin["headers"]).json()

    resp = client.delete("/api/announcements/{}".format(created["id"]), headers=admin["headers"])

    assert resp.status_code == 204
    assert client.get("/api/announcements").json() == []
    assert storage.resolve(created["imageUrl"]) is not None
    assert client.get(created["imageUrl"]).status_code == 404


# ── Past papers ──────────────────────────────────────────────

def test_past_paper_tree(client, admin):
    grade = client.post("/api/pastpapers/grades", json={"name": "Grade 11"}, headers=admin["headers"]).json()
    subject = client.post("/api/pastpapers/grades/{}/subjects".format(grade["id"]), json={"name": "Science"},
                          headers=admin["headers"]).json()
    for year in ("2022", "2023"):
        resp = client.post("/api/pastpapers/subjects/{}/papers".format(subject["id"]),
                           data={"title": "O/L {}".format(year), "medium": "English", "year": year},
                           files={"file": ("paper.pdf", b"%PDF-1.4 paper", "application/pdf")},
                           headers=admin["headers"])
        assert resp.status_code == 201

    tree = client.get("/api/pastpapers").json()

    assert tree[0]["name"] == "Grade 11"
    papers = tree[0]["subjects"][0]["papers"]
    assert [p["year"] for p in papers] == [2023, 2022]

    assert client.post("/api/pastpapers/grades", json={"name": "Grade 11"},
                       headers=admin["headers"]).status_code == 409

    assert client.delete("/api/pastpapers/grades/{}".format(grade["id"]),
                         headers=admin["headers"]).status_code == 204
    assert client.get("/api/pastpapers").json() == []


def test_past_paper_year_must_be_numeric(client, admin):
    grade = client.post("/api/pastpapers/grades", json={"name": "Grade 10"}, headers=admin["headers"]).json()
    subject = client.post("/api/pastpapers/grades/{}/subjects".format(grade["id"]), json={"name": "Maths"},
                          headers=admin["headers"]).json()

    resp = client.post("/api/pastpapers/subjects/{}/papers".format(subject["id"]),
                       data={"title": "T", "medium": "Sinhala", "year": "twenty"},
                       files={"file": ("paper.pdf", b"%PDF", "application/pdf")},
                       headers=admin["headers"])
    assert resp.status_code == 400
