"""
Authentication API routes - register, login, logout, password reset and the
current user.

Login sets the signed session token as an httpOnly cookie; API clients may
send the same token as a Bearer header instead.
"""

from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, Response
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app import config
from app.database import get_db
from app.models.user import User
from app.serializers import serialize_user
from app.services import accounts
from app.services.identity import get_current_user, issue_session_token
from app.services.notifications import Notifier, get_notifier, send_password_reset_code
from app.logging_config import get_logger, log_with_context

router = APIRouter()
logger = get_logger("http")


# ── Pydantic schemas ─────────────────────────────────────────

class RegisterRequest(BaseModel):
    email: Optional[str] = None
    name: Optional[str] = None
    password: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    phone: Optional[str] = None
    password: Optional[str] = None


class ResetRequest(BaseModel):
    email: Optional[str] = None


class ResetPassword(BaseModel):
    email: Optional[str] = None
    phone: Optional[str] = None
    code: Optional[str] = None
    newPassword: Optional[str] = None


@router.post("/api/auth/register", status_code=201)
def register(request: RegisterRequest, db: Session = Depends(get_db)):
    """Self-service registration, always as a STUDENT."""
    user = accounts.create_user(db, request.email, request.name, request.password,
                                phone=request.phone, address=request.address)
    return serialize_user(user)


@router.post("/api/auth/login")
def login(request: LoginRequest, response: Response, db: Session = Depends(get_db)):
    user = accounts.authenticate(db, request.email, request.phone, request.password)
    token = issue_session_token(user)
    response.set_cookie(
        config.SESSION_COOKIE_NAME, token,
        httponly=True,
        secure=config.COOKIE_SECURE,
        samesite="strict",
        max_age=60 * 60 * 24 * config.JWT_EXPIRES_DAYS,
        path="/",
    )
    log_with_context(logger, "INFO", "User logged in", context={"user_id": user.id})
    return {**serialize_user(user), "token": token}


@router.post("/api/auth/logout")
def logout(response: Response):
    response.delete_cookie(config.SESSION_COOKIE_NAME, path="/")
    return {"message": "Logged out"}


@router.get("/api/users/me")
def me(user: User = Depends(get_current_user)):
    return serialize_user(user)


@router.post("/api/auth/request-reset")
def request_reset(
    request: ResetRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier)
):
    """Email a reset code. The answer is identical whether or not the account exists."""
    issued = accounts.request_password_reset(db, request.email)
    if issued:
        user, code = issued
        minutes = int(accounts.RESET_CODE_TTL.total_seconds() // 60)
        background_tasks.add_task(send_password_reset_code, notifier, user.email, code, minutes)
    return {"message": "If an account exists, a reset code was sent."}


@router.post("/api/auth/reset-password")
def reset_password(request: ResetPassword, db: Session = Depends(get_db)):
    accounts.reset_password(db, request.email, request.phone, request.code, request.newPassword)
    return {"message": "Password has been reset"}
