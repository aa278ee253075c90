"""Initial migration - create all tables

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-19

Creates all database tables for the Course Portal:
- users: students, instructors and admins
- courses, course_materials, recordings: the catalogue and gated content
- payments: receipt uploads and their approval state
- quizzes, questions, answers: single-attempt multiple choice quizzes
- quiz_attempts, question_attempts: scored submissions
- announcements
- past_paper_grades, past_paper_subjects, past_papers

Also creates the partial unique index that allows at most one PENDING or
APPROVED payment per (student, course).
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_PAYMENT = sa.text("status IN ('PENDING', 'APPROVED')")


def upgrade() -> None:
    # ── Users Table ───────────────────────────────────────────
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.Text(), nullable=False, unique=True),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('password', sa.Text(), nullable=False),
        sa.Column('phone', sa.Text(), nullable=True, unique=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('role', sa.Text(), nullable=False, server_default='STUDENT'),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('reset_code_hash', sa.Text(), nullable=True),
        sa.Column('reset_code_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('reset_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.CheckConstraint("role IN ('STUDENT', 'INSTRUCTOR', 'ADMIN')", name='ck_users_role'),
    )

    # ── Courses Table ─────────────────────────────────────────
    op.create_table(
        'courses',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=False, server_default='0'),
        sa.Column('tutor', sa.Text(), nullable=True),
        sa.Column('whatsapp_group_link', sa.Text(), nullable=True),
        sa.Column('image_url', sa.Text(), nullable=True),
        sa.Column('created_by_id', sa.String(36),
                  sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_courses_created_by_id', 'courses', ['created_by_id'])

    op.create_table(
        'course_materials',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('course_id', sa.String(36),
                  sa.ForeignKey('courses.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('zoom_link', sa.Text(), nullable=True),
        sa.Column('recording_url', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'recordings',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('course_id', sa.String(36),
                  sa.ForeignKey('courses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('video_url', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_recordings_course_id', 'recordings', ['course_id'])

    # ── Payments Table ────────────────────────────────────────
    op.create_table(
        'payments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('student_id', sa.String(36),
                  sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('course_id', sa.String(36),
                  sa.ForeignKey('courses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('receipt_url', sa.Text(), nullable=False),
        sa.Column('status', sa.Text(), nullable=False, server_default='PENDING'),
        sa.Column('reference_number', sa.Text(), nullable=True, unique=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("status IN ('PENDING', 'APPROVED', 'REJECTED')", name='ck_payments_status'),
    )
    op.create_index('ix_payments_student_course', 'payments', ['student_id', 'course_id'])
    op.create_index('ix_payments_status', 'payments', ['status'])
    op.create_index('uq_payments_active_enrollment', 'payments', ['student_id', 'course_id'],
                    unique=True, postgresql_where=ACTIVE_PAYMENT, sqlite_where=ACTIVE_PAYMENT)

    # ── Quizzes ───────────────────────────────────────────────
    op.create_table(
        'quizzes',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('course_id', sa.String(36),
                  sa.ForeignKey('courses.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_quizzes_course_id', 'quizzes', ['course_id'])

    op.create_table(
        'questions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('quiz_id', sa.String(36),
                  sa.ForeignKey('quizzes.id', ondelete='CASCADE'), nullable=False),
        sa.Column('question_text', sa.Text(), nullable=True),
        sa.Column('image_url', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_questions_quiz_id', 'questions', ['quiz_id'])

    op.create_table(
        'answers',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('question_id', sa.String(36),
                  sa.ForeignKey('questions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('answer_text', sa.Text(), nullable=False),
        sa.Column('is_correct', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
    )
    op.create_index('ix_answers_question_id', 'answers', ['question_id'])

    # ── Quiz Attempts ─────────────────────────────────────────
    op.create_table(
        'quiz_attempts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('student_id', sa.String(36),
                  sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('quiz_id', sa.String(36),
                  sa.ForeignKey('quizzes.id', ondelete='CASCADE'), nullable=False),
        sa.Column('score', sa.Numeric(precision=5, scale=1), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('student_id', 'quiz_id', name='uq_quiz_attempts_student_quiz'),
    )
    op.create_index('ix_quiz_attempts_quiz_id', 'quiz_attempts', ['quiz_id'])

    op.create_table(
        'question_attempts',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('quiz_attempt_id', sa.String(36),
                  sa.ForeignKey('quiz_attempts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('question_id', sa.String(36),
                  sa.ForeignKey('questions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('selected_answer_id', sa.String(36),
                  sa.ForeignKey('answers.id', ondelete='SET NULL'), nullable=True),
        sa.Column('is_correct', sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index('ix_question_attempts_quiz_attempt_id', 'question_attempts', ['quiz_attempt_id'])

    # ── Announcements ─────────────────────────────────────────
    op.create_table(
        'announcements',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('image_url', sa.Text(), nullable=False),
        sa.Column('created_by_id', sa.String(36),
                  sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )

    # ── Past Papers ───────────────────────────────────────────
    op.create_table(
        'past_paper_grades',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.Text(), nullable=False, unique=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )
    op.create_table(
        'past_paper_subjects',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('grade_id', sa.String(36),
                  sa.ForeignKey('past_paper_grades.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )
    op.create_table(
        'past_papers',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('subject_id', sa.String(36),
                  sa.ForeignKey('past_paper_subjects.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('medium', sa.Text(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('file_url', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    op.drop_table('past_papers')
    op.drop_table('past_paper_subjects')
    op.drop_table('past_paper_grades')
    op.drop_table('announcements')
    op.drop_index('ix_question_attempts_quiz_attempt_id', table_name='question_attempts')
    op.drop_table('question_attempts')
    op.drop_index('ix_quiz_attempts_quiz_id', table_name='quiz_attempts')
    op.drop_table('quiz_attempts')
    op.drop_index('ix_answers_question_id', table_name='answers')
    op.drop_table('answers')
    op.drop_index('ix_questions_quiz_id', table_name='questions')
    op.drop_table('questions')
    op.drop_index('ix_quizzes_course_id', table_name='quizzes')
    op.drop_table('quizzes')
    op.drop_index('uq_payments_active_enrollment', table_name='payments')
    op.drop_index('ix_payments_status', table_name='payments')
    op.drop_index('ix_payments_student_course', table_name='payments')
    op.drop_table('payments')
    op.drop_index('ix_recordings_course_id', table_name='recordings')
    op.drop_table('recordings')
    op.drop_table('course_materials')
    op.drop_index('ix_courses_created_by_id', table_name='courses')
    op.drop_table('courses')
    op.drop_table('users')
