"""
Past paper API routes - public grade → subject → paper tree and admin CRUD.
"""

from typing import Optional
from fastapi import APIRouter, Depends, File, Form, Response, UploadFile
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.database import get_db
from app.errors import ConflictError, NotFoundError, ValidationError
from app.models.past_paper import PastPaperGrade, PastPaperSubject, PastPaper
from app.models.user import User, Role
from app.serializers import serialize_past_paper
from app.services.identity import require_roles
from app.services.storage import Storage, get_storage, read_upload, build_key, discard_file, PAPER_20MB
from app.logging_config import get_logger, log_with_context

router = APIRouter()
logger = get_logger("http")


class NameRequest(BaseModel):
    name: Optional[str] = None


def _required_name(request: NameRequest, label: str) -> str:
    name = (request.name or "").strip()
    if not name:
        raise ValidationError("{} name is required".format(label))
    return name


@router.get("/api/pastpapers")
def pastpaper_tree(db: Session = Depends(get_db)):
    """Every grade with its subjects and their papers (newest year first)."""
    grades = db.query(PastPaperGrade).options(
        selectinload(PastPaperGrade.subjects).selectinload(PastPaperSubject.papers)
    ).order_by(PastPaperGrade.name).all()

    return [
        {
            "id": grade.id,
            "name": grade.name,
            "subjects": [
                {
                    "id": subject.id,
                    "name": subject.name,
                    "papers": [serialize_past_paper(p) for p in subject.papers],
                }
                for subject in grade.subjects
            ],
        }
        for grade in grades
    ]


# ── Grades ───────────────────────────────────────────────────

@router.post("/api/pastpapers/grades", status_code=201)
def create_grade(
    request: NameRequest,
    admin: User = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db)
):
    grade = PastPaperGrade(name=_required_name(request, "Grade"))
    db.add(grade)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Grade already exists")
    db.refresh(grade)
    return {"id": grade.id, "name": grade.name}


@router.delete("/api/pastpapers/grades/{grade_id}", status_code=204)
def delete_grade(
    grade_id: str,
    admin: User = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db),
    storage: Storage = Depends(get_storage)
):
    grade = db.query(PastPaperGrade).filter(PastPaperGrade.id == grade_id).first()
    if not grade:
        raise NotFoundError("Grade not found")

    files = [p.file_url for s in grade.subjects for p in s.papers]
    db.delete(grade)
    db.commit()
    for url in files:
        discard_file(storage, url, {"grade_id": grade_id})
    return Response(status_code=204)


# ── Subjects ─────────────────────────────────────────────────

@router.post("/api/pastpapers/grades/{grade_id}/subjects", status_code=201)
def create_subject(
    grade_id: str,
    request: NameRequest,
    admin: User = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db)
):
    grade = db.query(PastPaperGrade).filter(PastPaperGrade.id == grade_id).first()
    if not grade:
        raise NotFoundError("Grade not found")

    subject = PastPaperSubject(grade_id=grade_id, name=_required_name(request, "Subject"))
    db.add(subject)
    db.commit()
    db.refresh(subject)
    return {"id": subject.id, "gradeId": subject.grade_id, "name": subject.name}


@router.delete("/api/pastpapers/subjects/{subject_id}", status_code=204)
def delete_subject(
    subject_id: str,
    admin: User = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db),
    storage: Storage = Depends(get_storage)
):
    subject = db.query(PastPaperSubject).filter(PastPaperSubject.id == subject_id).first()
    if not subject:
        raise NotFoundError("Subject not found")

    files = [p.file_url for p in subject.papers]
    db.delete(subject)
    db.commit()
    for url in files:
        discard_file(storage, url, {"subject_id": subject_id})
    return Response(status_code=204)


# ── Papers ───────────────────────────────────────────────────

@router.post("/api/pastpapers/subjects/{subject_id}/papers", status_code=201)
def upload_paper(
    subject_id: str,
    title: Optional[str] = Form(None),
    medium: Optional[str] = Form(None),
    year: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    admin: User = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db),
    storage: Storage = Depends(get_storage)
):
    subject = db.query(PastPaperSubject).filter(PastPaperSubject.id == subject_id).first()
    if not subject:
        raise NotFoundError("Subject not found")
    if not (title or "").strip() or not (medium or "").strip():
        raise ValidationError("Title, medium, year and file are required")
    try:
        year_value = int((year or "").strip())
    except ValueError:
        raise ValidationError("Year must be a number")
    data = read_upload(file, PAPER_20MB, "file")

    paper = PastPaper(
        subject_id=subject_id,
        title=title.strip(),
        medium=medium.strip(),
        year=year_value,
        file_url=storage.put(data, build_key("pastpapers", file.filename)),
    )
    db.add(paper)
    db.commit()
    db.refresh(paper)

    log_with_context(logger, "INFO", "Past paper uploaded",
                     context={"subject_id": subject_id, "paper_id": paper.id})
    return serialize_past_paper(paper)


@router.delete("/api/pastpapers/papers/{paper_id}", status_code=204)
def delete_paper(
    paper_id: str,
    admin: User = Depends(require_roles(Role.ADMIN)),
    db: Session = Depends(get_db),
    storage: Storage = Depends(get_storage)
):
    paper = db.query(PastPaper).filter(PastPaper.id == paper_id).first()
    if not paper:
        raise NotFoundError("Past paper not found")

    file_url = paper.file_url
    db.delete(paper)
    db.commit()
    discard_file(storage, file_url, {"paper_id": paper_id})
    return Response(status_code=204)
