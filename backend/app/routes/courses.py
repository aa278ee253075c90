"""
Course API routes - course catalogue, enrollment-gated details and content.

Provides endpoints for:
- Public course listing
- Course details with the caller's enrollment status
- Course CRUD for admins and owning instructors
- Unenrollment
- Materials (zoom link / recording link) and recordings
"""

from decimal import Decimal, InvalidOperation
from typing import Optional
from fastapi import APIRouter, Depends, File, Form, Response, UploadFile
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.database import get_db
from app.errors import NotFoundError, ValidationError
from app.models.course import Course, CourseMaterial, Recording
from app.models.user import User, Role
from app.serializers import serialize_course, serialize_material, serialize_recording
from app.services import enrollment
from app.services.identity import (
    get_current_user, require_roles, require_course_owner, can_manage_course
)
from app.services.storage import (
    Storage, get_storage, read_upload, build_key, discard_file, IMAGE_10MB, VIDEO_500MB
)
from app.logging_config import get_logger, log_with_context

router = APIRouter()
logger = get_logger("http")

STAFF = (Role.ADMIN, Role.INSTRUCTOR)


# ── Pydantic schemas ─────────────────────────────────────────

class CourseCreate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = None
    tutor: Optional[str] = None
    whatsappGroupLink: Optional[str] = None


class CourseUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = None
    tutor: Optional[str] = None
    whatsappGroupLink: Optional[str] = None


# camelCase payload field -> Course column
UPDATABLE_FIELDS = {
    "title": "title",
    "description": "description",
    "price": "price",
    "tutor": "tutor",
    "whatsappGroupLink": "whatsapp_group_link",
}


# courses.price is Numeric(10, 2)
MAX_PRICE = Decimal("99999999.99")


def _price(value) -> Decimal:
    try:
        price = Decimal(str(value))
    except (InvalidOperation, TypeError):
        raise ValidationError("Price must be a number")
    if not price.is_finite():
        raise ValidationError("Price must be a number")
    if price < 0:
        raise ValidationError("Price cannot be negative")
    if price > MAX_PRICE or price.quantize(Decimal("0.01")) > MAX_PRICE:
        raise ValidationError("Price cannot exceed {}".format(MAX_PRICE))
    return price.quantize(Decimal("0.01"))


def get_course_or_404(db: Session, course_id: str) -> Course:
    course = db.query(Course).filter(Course.id == course_id).first()
    if not course:
        raise NotFoundError("Course not found")
    return course


@router.get("/api/courses")
def list_courses(db: Session = Depends(get_db)):
    """Public course catalogue, newest first."""
    courses = db.query(Course).order_by(Course.created_at.desc()).all()
    return [serialize_course(c) for c in courses]


@router.post("/api/courses", status_code=201)
def create_course(
    request: CourseCreate,
    user: User = Depends(require_roles(*STAFF)),
    db: Session = Depends(get_db)
):
    if not (request.title or "").strip():
        raise ValidationError("Title is required")

    course = Course(
        title=request.title.strip(),
        description=request.description,
        price=_price(request.price if request.price is not None else 0),
        tutor=request.tutor,
        whatsapp_group_link=request.whatsappGroupLink,
        created_by_id=user.id,
    )
    db.add(course)
    db.commit()
    db.refresh(course)

    log_with_context(logger, "INFO", "Course created: {}".format(course.title),
                     context={"course_id": course.id, "user_id": user.id})
    return serialize_course(course)


@router.get("/api/courses/{course_id}")
def get_course(
    course_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Course details; protected content is attached only for approved students."""
    return enrollment.course_detail(db, user, course_id)


@router.patch("/api/courses/{course_id}")
def update_course(
    course_id: str,
    request: CourseUpdate,
    user: User = Depends(require_roles(*STAFF)),
    db: Session = Depends(get_db)
):
    course = get_course_or_404(db, course_id)
    require_course_owner(user, course)

    changes = request.model_dump(exclude_unset=True)
    changes = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS and v is not None}
    if not changes:
        raise ValidationError("No valid fields to update provided.")

    for field, value in changes.items():
        if field == "price":
            value = _price(value)
        elif field == "title" and not value.strip():
            raise ValidationError("Title cannot be empty")
        setattr(course, UPDATABLE_FIELDS[field], value)
    db.commit()
    db.refresh(course)

    log_with_context(logger, "INFO", "Course updated", context={"course_id": course_id},
                     extra_data={"fields": sorted(changes)})
    return serialize_course(course)


@router.delete("/api/courses/{course_id}")
def delete_course(
    course_id: str,
    user: User = Depends(require_roles(*STAFF)),
    db: Session = Depends(get_db),
    storage: Storage = Depends(get_storage)
):
    """Delete a course with its materials, recordings, quizzes and payments."""
    course = get_course_or_404(db, course_id)
    require_course_owner(user, course)

    files = [course.image_url]
    files += [r.video_url for r in course.recordings]
    files += [p.receipt_url for p in course.payments]
    if course.material:
        files.append(course.material.recording_url)

    db.delete(course)
    db.commit()

    for url in files:
        if url:
            discard_file(storage, url, {"course_id": course_id})

    log_with_context(logger, "INFO", "Course deleted", context={"course_id": course_id})
    return {"message": "Course deleted successfully"}


@router.post("/api/courses/{course_id}/image")
def upload_course_image(
    course_id: str,
    image: Optional[UploadFile] = File(None),
    user: User = Depends(require_roles(*STAFF)),
    db: Session = Depends(get_db),
    storage: Storage = Depends(get_storage)
):
    course = get_course_or_404(db, course_id)
    require_course_owner(user, course)
    data = read_upload(image, IMAGE_10MB, "image")

    old_url = course.image_url
    course.image_url = storage.put(data, build_key("courses", image.filename))
    db.commit()
    db.refresh(course)
    if old_url:
        discard_file(storage, old_url, {"course_id": course_id})
    return serialize_course(course)


@router.delete("/api/courses/{course_id}/unenroll", status_code=204)
def unenroll(
    course_id: str,
    student: User = Depends(require_roles(Role.STUDENT)),
    db: Session = Depends(get_db),
    storage: Storage = Depends(get_storage)
):
    """Drop the caller's enrollment; the course reverts to the enrollment form."""
    enrollment.unenroll(db, storage, student, course_id)
    return Response(status_code=204)


# ── Materials ────────────────────────────────────────────────

@router.post("/api/materials/{course_id}")
def upsert_materials(
    course_id: str,
    zoom_link: Optional[str] = Form(None, alias="zoomLink"),
    recording: Optional[UploadFile] = File(None),
    user: User = Depends(require_roles(*STAFF)),
    db: Session = Depends(get_db),
    storage: Storage = Depends(get_storage)
):
    """Create or update a course's zoom link and recording; omitted fields are kept."""
    course = get_course_or_404(db, course_id)
    require_course_owner(user, course)

    recording_url = None
    if recording is not None and recording.filename:
        data = read_upload(recording, VIDEO_500MB, "recording")
        recording_url = storage.put(data, build_key("recordings", recording.filename))

    material = course.material
    old_recording = None
    if material is None:
        material = CourseMaterial(course_id=course_id)
        db.add(material)
    if zoom_link:
        material.zoom_link = zoom_link.strip()
    if recording_url:
        old_recording = material.recording_url
        material.recording_url = recording_url
    db.commit()
    db.refresh(material)

    if old_recording:
        discard_file(storage, old_recording, {"course_id": course_id})
    return serialize_material(material)


# ── Recordings ───────────────────────────────────────────────

@router.get("/api/courses/{course_id}/recordings")
def list_recordings(
    course_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    course = get_course_or_404(db, course_id)
    if not can_manage_course(user, course):
        enrollment.require_approved_enrollment(db, user, course_id)
    return [serialize_recording(r) for r in course.recordings]


@router.post("/api/courses/{course_id}/recordings", status_code=201)
def upload_recording(
    course_id: str,
    title: Optional[str] = Form(None),
    video: Optional[UploadFile] = File(None),
    user: User = Depends(require_roles(*STAFF)),
    db: Session = Depends(get_db),
    storage: Storage = Depends(get_storage)
):
    course = get_course_or_404(db, course_id)
    require_course_owner(user, course)
    if not (title or "").strip():
        raise ValidationError("Title and video file are required.")
    data = read_upload(video, VIDEO_500MB, "video")

    recording = Recording(
        course_id=course_id,
        title=title.strip(),
        video_url=storage.put(data, build_key("recordings", video.filename)),
    )
    db.add(recording)
    db.commit()
    db.refresh(recording)

    log_with_context(logger, "INFO", "Recording uploaded", context={"course_id": course_id,
                                                                   "recording_id": recording.id})
    return serialize_recording(recording)


@router.delete("/api/recordings/{recording_id}", status_code=204)
def delete_recording(
    recording_id: str,
    user: User = Depends(require_roles(*STAFF)),
    db: Session = Depends(get_db),
    storage: Storage = Depends(get_storage)
):
    recording = db.query(Recording).filter(Recording.id == recording_id).first()
    if not recording:
        raise NotFoundError("Recording not found")
    require_course_owner(user, recording.course)

    video_url = recording.video_url
    db.delete(recording)
    db.commit()
    discard_file(storage, video_url, {"recording_id": recording_id})
    return Response(status_code=204)
