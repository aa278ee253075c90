"""
Announcement API routes - public notices published by admins.

Publishing an announcement emails every student and instructor in the
background; the request does not wait for mail delivery.
"""

from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Response, UploadFile
from sqlalchemy.orm import Session

from app.database import get_db
from app.errors import NotFoundError, ValidationError
from app.models.announcement import Announcement
from app.models.user import User, Role
from app.serializers import serialize_announcement
from app.services.identity import require_roles
from app.services.notifications import Notifier, get_notifier, send_announcement
from app.services.storage import Storage, get_storage, read_upload, build_key, discard_file, IMAGE_10MB
from app.logging_config import get_logger, log_with_context

router = APIRouter()
logger = get_logger("http")


@router.get("/api/announcements")
def list_announcements(db: Session = Depends(get_db)):
    announcements = db.query(Announcement).order_by(Announcement.created_at.desc()).all()
    return [serialize_announcement(a) for a in announcements]


@router.post("/api/announcements", status_code=201)
def create_announcement(
    background_tasks: BackgroundTasks,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    admin: User = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db),
    storage: Storage = Depends(get_storage),
    notifier: Notifier = Depends(get_notifier)
):
    if not (title or "").strip() or not (description or "").strip():
        raise ValidationError("Title, description and image are required")
    data = read_upload(image, IMAGE_10MB, "image")

    announcement = Announcement(
        title=title.strip(),
        description=description.strip(),
        image_url=storage.put(data, build_key("announcements", image.filename)),
        created_by_id=admin.id,
    )
    db.add(announcement)
    db.commit()
    db.refresh(announcement)

    recipients = [
        email for (email,) in db.query(User.email).filter(
            User.role.in_((Role.STUDENT, Role.INSTRUCTOR))
        ).all()
    ]
    background_tasks.add_task(
        send_announcement, notifier, recipients,
        announcement.title, announcement.description, announcement.id
    )

    log_with_context(logger, "INFO", "Announcement published",
                     context={"announcement_id": announcement.id},
                     extra_data={"recipients": len(recipients)})
    return serialize_announcement(announcement)


@router.delete("/api/announcements/{announcement_id}", status_code=204)
def delete_announcement(
    announcement_id: str,
    admin: User = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db),
    storage: Storage = Depends(get_storage)
):
    announcement = db.query(Announcement).filter(Announcement.id == announcement_id).first()
    if not announcement:
        raise NotFoundError("Announcement not found")

    image_url = announcement.image_url
    db.delete(announcement)
    db.commit()
    discard_file(storage, image_url, {"announcement_id": announcement_id})
    return Response(status_code=204)
