"""
Convert ORM objects to the JSON shapes returned by the API.

Field names follow the camelCase wire contract the web client consumes.
"""

from decimal import Decimal, ROUND_HALF_UP


def _iso(value):
    return value.isoformat() if value else None


def score_value(score) -> float:
    """Scores travel as numbers with one decimal place."""
    if score is None:
        return None
    return float(Decimal(str(score)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def serialize_user(user) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "phone": user.phone,
        "address": user.address,
        "role": user.role,
        "createdAt": _iso(user.created_at),
    }


def serialize_course(course) -> dict:
    return {
        "id": course.id,
        "title": course.title,
        "description": course.description,
        "price": float(course.price) if course.price is not None else 0.0,
        "tutor": course.tutor,
        "whatsappGroupLink": course.whatsapp_group_link,
        "imageUrl": course.image_url,
        "createdById": course.created_by_id,
        "createdAt": _iso(course.created_at),
        "updatedAt": _iso(course.updated_at),
    }


def serialize_material(material) -> dict:
    return {
        "id": material.id,
        "courseId": material.course_id,
        "zoomLink": material.zoom_link,
        "recordingUrl": material.recording_url,
        "updatedAt": _iso(material.updated_at),
    }


def serialize_recording(recording) -> dict:
    return {
        "id": recording.id,
        "courseId": recording.course_id,
        "title": recording.title,
        "videoUrl": recording.video_url,
        "createdAt": _iso(recording.created_at),
    }


def serialize_payment(payment) -> dict:
    return {
        "id": payment.id,
        "studentId": payment.student_id,
        "courseId": payment.course_id,
        "receiptUrl": payment.receipt_url,
        "status": payment.status,
        "referenceNumber": payment.reference_number,
        "createdAt": _iso(payment.created_at),
        "updatedAt": _iso(payment.updated_at),
    }


def serialize_quiz(quiz) -> dict:
    return {
        "id": quiz.id,
        "courseId": quiz.course_id,
        "title": quiz.title,
        "createdAt": _iso(quiz.created_at),
    }


def serialize_question(question, include_correct: bool = True) -> dict:
    answers = []
    for a in question.answers:
        item = {"id": a.id, "answerText": a.answer_text}
        if include_correct:
            item["isCorrect"] = a.is_correct
        answers.append(item)
    return {
        "id": question.id,
        "quizId": question.quiz_id,
        "questionText": question.question_text,
        "imageUrl": question.image_url,
        "answers": answers,
    }


def serialize_announcement(announcement) -> dict:
    return {
        "id": announcement.id,
        "title": announcement.title,
        "description": announcement.description,
        "imageUrl": announcement.image_url,
        "createdAt": _iso(announcement.created_at),
    }


def serialize_past_paper(paper) -> dict:
    return {
        "id": paper.id,
        "subjectId": paper.subject_id,
        "title": paper.title,
        "medium": paper.medium,
        "year": paper.year,
        "fileUrl": paper.file_url,
        "createdAt": _iso(paper.created_at),
    }
