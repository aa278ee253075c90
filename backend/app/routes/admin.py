"""
Admin and instructor views - dashboard counts, student roster, quiz
results and user management.
"""

from collections import defaultdict
from typing import Optional
from fastapi import APIRouter, Depends, Query, Response
from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from app.database import get_db
from app.errors import NotFoundError, ValidationError
from app.models.course import Course
from app.models.payment import Payment, PaymentStatus
from app.models.quiz import Quiz
from app.models.quiz_attempt import QuizAttempt
from app.models.user import User, Role
from app.serializers import serialize_user, score_value
from app.services import accounts
from app.services.identity import require_roles, require_course_owner
from app.logging_config import get_logger, log_with_context

router = APIRouter()
logger = get_logger("http")


# ── Pydantic schemas ─────────────────────────────────────────

class StaffCreate(BaseModel):
    email: Optional[str] = None
    name: Optional[str] = None
    password: Optional[str] = None


class UserUpdate(BaseModel):
    role: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


def _iso(value):
    return value.isoformat() if value else None


@router.get("/api/admin/dashboard-stats")
def dashboard_stats(
    admin: User = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db)
):
    """Headline counts and the five most recent payments."""
    recent = db.query(Payment).options(
        joinedload(Payment.student), joinedload(Payment.course)
    ).order_by(Payment.created_at.desc()).limit(5).all()

    return {
        "totalStudents": db.query(func.count(User.id)).filter(User.role == Role.STUDENT).scalar(),
        "totalCourses": db.query(func.count(Course.id)).scalar(),
        "pendingPayments": db.query(func.count(Payment.id)).filter(
            Payment.status == PaymentStatus.PENDING
        ).scalar(),
        "recentPayments": [
            {
                "createdAt": _iso(p.created_at),
                "studentName": p.student.name,
                "courseTitle": p.course.title,
            }
            for p in recent
        ],
    }


@router.get("/api/admin/students")
def list_students(
    search: Optional[str] = Query(None, description="Match against name, email, phone or address"),
    course_id: Optional[str] = Query(None, alias="courseId", description="Only students with a payment for this course"),
    admin: User = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db)
):
    """
    Students with each course they paid for, its enrollment status and
    their highest quiz score in that course.
    """
    query = db.query(User).filter(User.role == Role.STUDENT)
    if search and search.strip():
        pattern = "%{}%".format(search.strip().lower())
        query = query.filter(
            func.lower(User.name).like(pattern)
            | func.lower(User.email).like(pattern)
            | User.phone.like(pattern)
            | func.lower(User.address).like(pattern)
        )
    if course_id:
        query = query.filter(User.id.in_(
            db.query(Payment.student_id).filter(Payment.course_id == course_id)
        ))
    students = query.order_by(User.created_at.desc()).all()

    # Highest score per (student, course)
    best = {}
    rows = db.query(
        QuizAttempt.student_id, Quiz.course_id, func.max(QuizAttempt.score)
    ).join(Quiz, QuizAttempt.quiz_id == Quiz.id).group_by(
        QuizAttempt.student_id, Quiz.course_id
    ).all()
    for student_id, cid, highest in rows:
        best[(student_id, cid)] = highest

    payments = db.query(Payment).options(joinedload(Payment.course)).filter(
        Payment.student_id.in_([s.id for s in students])
    ).all() if students else []
    courses_by_student = defaultdict(list)
    for p in payments:
        courses_by_student[p.student_id].append({
            "courseId": p.course_id,
            "courseTitle": p.course.title,
            "enrollmentStatus": p.status,
            "highestScore": score_value(best.get((p.student_id, p.course_id))),
        })

    result = []
    for student in students:
        item = serialize_user(student)
        item["courses"] = courses_by_student.get(student.id, [])
        result.append(item)
    return result


@router.get("/api/admin/quiz-results")
def quiz_results(
    admin: User = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db)
):
    """Per student and course: quizzes attempted, average and best score."""
    rows = db.query(
        User.id, User.name, Course.id, Course.title,
        func.count(QuizAttempt.id), func.avg(QuizAttempt.score), func.max(QuizAttempt.score)
    ).select_from(QuizAttempt).join(
        User, QuizAttempt.student_id == User.id
    ).join(
        Quiz, QuizAttempt.quiz_id == Quiz.id
    ).join(
        Course, Quiz.course_id == Course.id
    ).group_by(User.id, User.name, Course.id, Course.title).all()

    results = [
        {
            "studentId": student_id,
            "studentName": student_name,
            "courseId": course_id,
            "courseTitle": course_title,
            "quizzesAttempted": attempted,
            "averageScore": score_value(average),
            "highestScore": score_value(highest),
        }
        for student_id, student_name, course_id, course_title, attempted, average, highest in rows
    ]
    results.sort(key=lambda r: (r["courseTitle"], -(r["averageScore"] or 0)))
    return results


# ── Staff accounts ───────────────────────────────────────────

def _list_role(db: Session, role: str) -> list:
    users = db.query(User).options(joinedload(User.courses)).filter(
        User.role == role
    ).order_by(User.created_at.desc()).all()
    result = []
    for user in users:
        titles = [c.title for c in sorted(user.courses, key=lambda c: c.created_at, reverse=True)]
        result.append({
            "id": user.id,
            "name": user.name,
            "email": user.email,
            "createdAt": _iso(user.created_at),
            "courseCount": len(titles),
            "courseTitles": titles,
        })
    return result


@router.get("/api/admin/instructors")
def list_instructors(
    admin: User = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db)
):
    return _list_role(db, Role.INSTRUCTOR)


@router.post("/api/admin/instructors", status_code=201)
def create_instructor(
    request: StaffCreate,
    admin: User = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db)
):
    user = accounts.create_user(db, request.email, request.name, request.password, role=Role.INSTRUCTOR)
    return serialize_user(user)


@router.get("/api/admin/admins")
def list_admins(
    admin: User = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db)
):
    return _list_role(db, Role.ADMIN)


@router.post("/api/admin/admins", status_code=201)
def create_admin(
    request: StaffCreate,
    admin: User = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db)
):
    user = accounts.create_user(db, request.email, request.name, request.password, role=Role.ADMIN)
    return serialize_user(user)


# ── Users ────────────────────────────────────────────────────

@router.patch("/api/users/{user_id}")
def update_user(
    user_id: str,
    request: UserUpdate,
    admin: User = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db)
):
    changes = request.model_dump(exclude_unset=True)
    user = accounts.update_user(db, user_id, changes, acting_user_id=admin.id)
    return serialize_user(user)


@router.delete("/api/users/{user_id}", status_code=204)
def delete_user(
    user_id: str,
    admin: User = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db)
):
    """Delete a user together with their payments and quiz attempts."""
    if user_id == admin.id:
        raise ValidationError("You cannot delete your own account")
    accounts.delete_user(db, user_id)
    return Response(status_code=204)


# ── Instructor views ─────────────────────────────────────────

@router.get("/api/instructor/courses/{course_id}/students")
def course_students(
    course_id: str,
    user: User = Depends(require_roles(Role.ADMIN, Role.INSTRUCTOR)),
    db: Session = Depends(get_db)
):
    """Approved students of a course with their quiz statistics for it."""
    course = db.query(Course).filter(Course.id == course_id).first()
    if not course:
        raise NotFoundError("Course not found")
    require_course_owner(user, course)

    stats = {}
    rows = db.query(
        QuizAttempt.student_id, func.count(QuizAttempt.id),
        func.max(QuizAttempt.score), func.avg(QuizAttempt.score)
    ).join(Quiz, QuizAttempt.quiz_id == Quiz.id).filter(
        Quiz.course_id == course_id
    ).group_by(QuizAttempt.student_id).all()
    for student_id, attempts, highest, average in rows:
        stats[student_id] = (attempts, highest, average)

    payments = db.query(Payment).options(joinedload(Payment.student)).filter(
        Payment.course_id == course_id,
        Payment.status == PaymentStatus.APPROVED
    ).order_by(Payment.created_at.desc()).all()

    log_with_context(logger, "INFO", "Course roster fetched",
                     context={"course_id": course_id}, extra_data={"students": len(payments)})
    result = []
    for p in payments:
        attempts, highest, average = stats.get(p.student_id, (0, 0, 0))
        result.append({
            "id": p.student.id,
            "name": p.student.name,
            "email": p.student.email,
            "status": p.status,
            "enrolledAt": _iso(p.created_at),
            "attempts": attempts,
            "highestScore": score_value(highest or 0),
            "averageScore": score_value(average or 0),
        })
    return result
