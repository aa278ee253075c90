"""
Payment API routes - receipt upload and the admin approval workflow.

Provides endpoints for:
- Students uploading a bank receipt for a course
- Admins listing payments, checking reference numbers, approving and rejecting
"""

from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, UploadFile
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.user import User, Role
from app.serializers import serialize_payment
from app.services import enrollment
from app.services.identity import require_roles
from app.services.notifications import Notifier, get_notifier, send_payment_approved
from app.services.storage import Storage, get_storage

router = APIRouter()


class ApproveRequest(BaseModel):
    """Schema for approving a payment."""
    referenceNumber: Optional[str] = None


@router.post("/api/payments/upload", status_code=201)
def upload_receipt(
    course_id: Optional[str] = Form(None, alias="courseId"),
    receipt: Optional[UploadFile] = File(None),
    student: User = Depends(require_roles(Role.STUDENT)),
    db: Session = Depends(get_db),
    storage: Storage = Depends(get_storage)
):
    """Upload a receipt; creates a PENDING payment."""
    payment = enrollment.upload_receipt(db, storage, student, course_id, receipt)
    return serialize_payment(payment)


@router.get("/api/payments")
def list_payments(
    admin: User = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db)
):
    return enrollment.list_payments(db)


@router.get("/api/payments/verify/{reference_number}")
def verify_reference(
    reference_number: str,
    admin: User = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db)
):
    """Check whether a bank reference number is already attached to an approved payment."""
    return enrollment.verify_reference_number(db, reference_number)


@router.patch("/api/payments/{payment_id}/approve")
def approve_payment(
    payment_id: str,
    request: ApproveRequest,
    background_tasks: BackgroundTasks,
    admin: User = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier)
):
    """
    Approve a PENDING payment with its bank reference number.

    The student is emailed after the response is sent; a mail failure does
    not undo the approval.
    """
    payment = enrollment.approve_payment(db, payment_id, request.referenceNumber)
    if payment.student and payment.course:
        background_tasks.add_task(
            send_payment_approved, notifier,
            payment.student.email, payment.student.name,
            payment.course.title, payment.course_id
        )
    return serialize_payment(payment)


@router.patch("/api/payments/{payment_id}/reject")
def reject_payment(
    payment_id: str,
    admin: User = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db)
):
    payment = enrollment.reject_payment(db, payment_id)
    return serialize_payment(payment)
