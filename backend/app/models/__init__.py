from app.models.user import User, Role
from app.models.course import Course, CourseMaterial, Recording
from app.models.payment import Payment, PaymentStatus
from app.models.quiz import Quiz, Question, Answer
from app.models.quiz_attempt import QuizAttempt, QuestionAttempt
from app.models.announcement import Announcement
from app.models.past_paper import PastPaperGrade, PastPaperSubject, PastPaper

__all__ = [
    "User", "Role", "Course", "CourseMaterial", "Recording", "Payment", "PaymentStatus",
    "Quiz", "Question", "Answer", "QuizAttempt", "QuestionAttempt", "Announcement",
    "PastPaperGrade", "PastPaperSubject", "PastPaper",
]
