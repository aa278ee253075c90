"""
Enrollment Service - the payment lifecycle that gates paid course content.

A student asks for access by uploading a bank receipt (PENDING). An admin
either approves it with the bank reference number printed on the receipt
(APPROVED, content unlocked) or rejects it (REJECTED, student may upload
again). A student can also unenroll, which deletes the payment together
with their quiz attempts for that course.

Rules enforced here:
1. At most one PENDING/APPROVED payment per (student, course). The
   check-and-insert runs in one transaction and a partial unique index
   catches the remaining race between concurrent uploads.
2. A bank reference number can back only one approved payment. An explicit
   lookup refuses duplicates before the update; the unique column
   constraint catches the rest.
3. Approval and rejection only move PENDING rows. The status predicate in
   the UPDATE makes a second concurrent approval a no-op.
4. Stored files are secondary: they are cleaned up after the database
   commit and cleanup failures are only logged.
"""

import time
from datetime import datetime, timezone
from typing import Optional

from fastapi import UploadFile
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from app.errors import ValidationError, NotFoundError, ConflictError, AuthorizationError
from app.models.course import Course
from app.models.payment import Payment, PaymentStatus
from app.models.quiz import Quiz
from app.models.quiz_attempt import QuizAttempt
from app.models.user import User
from app.serializers import (
    serialize_course, serialize_material, serialize_recording
)
from app.services.identity import can_manage_course
from app.services.storage import Storage, RECEIPT_10MB, read_upload, build_key, discard_file
from app.logging_config import get_logger, log_with_context

logger = get_logger("payments")


def _now():
    return datetime.now(timezone.utc)


def _get_course(db: Session, course_id: str) -> Course:
    course = db.query(Course).filter(Course.id == course_id).first()
    if not course:
        raise NotFoundError("Course not found")
    return course


def upload_receipt(db: Session, storage: Storage, student: User, course_id: str,
                   upload: Optional[UploadFile]) -> Payment:
    """
    Create a PENDING payment for a student's receipt upload.

    An existing PENDING or APPROVED payment blocks the upload. A REJECTED one
    is deleted (row and file) and replaced by the new submission.

    Raises:
        ValidationError: course id missing or receipt file invalid
        NotFoundError: course does not exist
        ConflictError: an active payment already exists
    """
    start_time = time.time()
    if not course_id:
        raise ValidationError("Course ID and receipt file are required.")
    data = read_upload(upload, RECEIPT_10MB, "receipt")
    _get_course(db, course_id)

    context = {"student_id": student.id, "course_id": course_id}

    existing = db.query(Payment).filter(
        Payment.student_id == student.id,
        Payment.course_id == course_id
    ).with_for_update().all()

    if any(p.status in PaymentStatus.ACTIVE for p in existing):
        db.rollback()
        log_with_context(logger, "INFO", "Upload refused: active payment exists", context=context)
        raise ConflictError("A payment for this course is already pending or has been approved.")

    # Only REJECTED rows are left; the new submission supersedes them
    stale_receipts = [p.receipt_url for p in existing]
    for old in existing:
        db.delete(old)
    db.flush()

    receipt_url = storage.put(data, build_key("receipts", upload.filename))
    payment = Payment(
        student_id=student.id,
        course_id=course_id,
        receipt_url=receipt_url,
        status=PaymentStatus.PENDING,
        created_at=_now(),
        updated_at=_now(),
    )
    db.add(payment)

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        discard_file(storage, receipt_url, context)
        log_with_context(logger, "WARNING", "Concurrent upload lost the race", context=context)
        raise ConflictError("A payment for this course is already pending or has been approved.")
    db.refresh(payment)

    for url in stale_receipts:
        discard_file(storage, url, context)

    duration_ms = (time.time() - start_time) * 1000
    log_with_context(logger, "INFO",
        "Receipt uploaded, payment {} PENDING{}".format(
            payment.id, " (replaced rejected submission)" if stale_receipts else ""),
        context={**context, "payment_id": payment.id},
        extra_data={"duration_ms": round(duration_ms, 2), "bytes": len(data)})
    return payment


def find_reference_owner(db: Session, reference_number: str,
                         exclude_payment_id: Optional[str] = None) -> Optional[Payment]:
    """Return the APPROVED payment already carrying this reference number, if any."""
    query = db.query(Payment).options(
        joinedload(Payment.student),
        joinedload(Payment.course)
    ).filter(
        Payment.reference_number == reference_number,
        Payment.status == PaymentStatus.APPROVED
    )
    if exclude_payment_id:
        query = query.filter(Payment.id != exclude_payment_id)
    return query.first()


def verify_reference_number(db: Session, reference_number: str) -> dict:
    """
    Check whether a bank reference number is already used.

    Returns the conflicting student/course details so the admin can see who
    used it.
    """
    reference_number = (reference_number or "").strip()
    if not reference_number:
        raise ValidationError("Reference number is required.")

    owner = find_reference_owner(db, reference_number)
    if not owner:
        return {"isDuplicate": False}

    log_with_context(logger, "INFO", "Reference number {} already in use".format(reference_number),
                     context={"payment_id": owner.id})
    return {
        "isDuplicate": True,
        "payment": {
            "paymentId": owner.id,
            "status": owner.status,
            "processedAt": owner.updated_at.isoformat() if owner.updated_at else None,
            "studentId": owner.student_id,
            "studentName": owner.student.name if owner.student else None,
            "studentEmail": owner.student.email if owner.student else None,
            "courseTitle": owner.course.title if owner.course else None,
        }
    }


def approve_payment(db: Session, payment_id: str, reference_number: Optional[str]) -> Payment:
    """
    Move a PENDING payment to APPROVED with a unique bank reference number.

    Raises:
        ValidationError: reference number blank
        ConflictError: reference number already backs another approved payment
        NotFoundError: payment missing or no longer PENDING
    """
    reference_number = (reference_number or "").strip()
    if not reference_number:
        raise ValidationError("Reference number is required for approval.")

    context = {"payment_id": payment_id}
    duplicate_message = "Reference number {} has already been used.".format(reference_number)

    owner = find_reference_owner(db, reference_number, exclude_payment_id=payment_id)
    if owner:
        log_with_context(logger, "WARNING",
            "Approval refused: reference {} belongs to payment {}".format(reference_number, owner.id),
            context={**context, "student_id": owner.student_id})
        raise ConflictError(duplicate_message)

    try:
        updated = db.query(Payment).filter(
            Payment.id == payment_id,
            Payment.status == PaymentStatus.PENDING
        ).update({
            Payment.status: PaymentStatus.APPROVED,
            Payment.reference_number: reference_number,
            Payment.updated_at: _now(),
        }, synchronize_session=False)

        if updated == 0:
            db.rollback()
            raise NotFoundError("Payment not found or already processed")
        db.commit()
    except IntegrityError:
        db.rollback()
        log_with_context(logger, "WARNING",
            "Approval refused by unique constraint on reference {}".format(reference_number),
            context=context)
        raise ConflictError(duplicate_message)

    payment = db.query(Payment).options(
        joinedload(Payment.student),
        joinedload(Payment.course)
    ).filter(Payment.id == payment_id).first()

    log_with_context(logger, "INFO", "Payment {} APPROVED".format(payment_id),
                     context={**context, "student_id": payment.student_id, "course_id": payment.course_id},
                     extra_data={"reference_number": reference_number})
    return payment


def reject_payment(db: Session, payment_id: str) -> Payment:
    """
    Move a PENDING payment to REJECTED.

    Raises:
        NotFoundError: payment missing or no longer PENDING
    """
    updated = db.query(Payment).filter(
        Payment.id == payment_id,
        Payment.status == PaymentStatus.PENDING
    ).update({
        Payment.status: PaymentStatus.REJECTED,
        Payment.updated_at: _now(),
    }, synchronize_session=False)

    if updated == 0:
        db.rollback()
        raise NotFoundError("Payment not found or already processed")
    db.commit()

    payment = db.query(Payment).filter(Payment.id == payment_id).first()
    log_with_context(logger, "INFO", "Payment {} REJECTED".format(payment_id),
                     context={"payment_id": payment_id, "student_id": payment.student_id,
                              "course_id": payment.course_id})
    return payment


def unenroll(db: Session, storage: Storage, student: User, course_id: str) -> None:
    """
    Remove a student's enrollment in a course, whatever its status.

    Deletes the payment and the student's attempts on the course's quizzes in
    one transaction, then removes the receipt file on a best-effort basis.

    Raises:
        NotFoundError: no payment exists for (student, course)
    """
    context = {"student_id": student.id, "course_id": course_id}

    payments = db.query(Payment).filter(
        Payment.student_id == student.id,
        Payment.course_id == course_id
    ).all()
    if not payments:
        raise NotFoundError("Enrollment record not found.")

    receipt_urls = [p.receipt_url for p in payments]
    course_quiz_ids = select(Quiz.id).where(Quiz.course_id == course_id)

    removed_attempts = db.query(QuizAttempt).filter(
        QuizAttempt.student_id == student.id,
        QuizAttempt.quiz_id.in_(course_quiz_ids)
    ).delete(synchronize_session=False)
    for payment in payments:
        db.delete(payment)
    db.commit()

    for url in receipt_urls:
        discard_file(storage, url, context)

    log_with_context(logger, "INFO", "Student unenrolled",
                     context=context,
                     extra_data={"payments_removed": len(payments), "attempts_removed": removed_attempts})


def enrollment_status(db: Session, student_id: str, course_id: str) -> Optional[str]:
    """Current payment status of a student for a course, or None."""
    payment = db.query(Payment).filter(
        Payment.student_id == student_id,
        Payment.course_id == course_id
    ).order_by(Payment.created_at.desc()).first()
    return payment.status if payment else None


def course_detail(db: Session, user: User, course_id: str) -> dict:
    """
    Course details with the caller's enrollment status.

    Materials, quizzes and recordings are attached only when the caller's
    payment is APPROVED (or the caller manages the course). The check runs on
    every fetch, nothing is cached in the session.
    """
    course = _get_course(db, course_id)
    status = enrollment_status(db, user.id, course_id)

    result = serialize_course(course)
    result["enrollmentStatus"] = status

    if status == PaymentStatus.APPROVED or can_manage_course(user, course):
        result["materials"] = serialize_material(course.material) if course.material else None
        result["quizzes"] = [{"id": q.id, "title": q.title} for q in course.quizzes]
        result["recordings"] = [serialize_recording(r) for r in course.recordings]
    else:
        result["materials"] = None
        result["quizzes"] = []
        result["recordings"] = []
    return result


def require_approved_enrollment(db: Session, student: User, course_id: str) -> None:
    """Raises AuthorizationError unless the student's payment for the course is APPROVED."""
    if enrollment_status(db, student.id, course_id) != PaymentStatus.APPROVED:
        raise AuthorizationError("You are not enrolled in this course")


def list_payments(db: Session) -> list:
    """All payments for the admin review queue, grouped by status, newest first."""
    payments = db.query(Payment).options(
        joinedload(Payment.student),
        joinedload(Payment.course)
    ).order_by(Payment.status.asc(), Payment.created_at.desc()).all()

    return [
        {
            "id": p.id,
            "status": p.status,
            "receiptUrl": p.receipt_url,
            "referenceNumber": p.reference_number,
            "createdAt": p.created_at.isoformat() if p.created_at else None,
            "studentId": p.student_id,
            "studentName": p.student.name if p.student else None,
            "courseId": p.course_id,
            "courseTitle": p.course.title if p.course else None,
        }
        for p in payments
    ]
