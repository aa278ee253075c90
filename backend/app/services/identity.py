"""
Identity resolver - turns a signed session token into the calling User.

Tokens are HS256 JWTs carrying the user id (and the role at login time,
which is informational only). The role used for authorization is always
re-read from the database, so a role change by an admin takes effect on
the caller's next request.

Role checks go through require_role so every handler enforces access the
same way, before its body runs.
"""

from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

import bcrypt
import jwt
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app import config
from app.database import get_db
from app.errors import AuthenticationError, AuthorizationError, ValidationError
from app.models.user import User, Role
from app.logging_config import get_logger, log_with_context

logger = get_logger("auth")

# bcrypt only looks at the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72


def hash_password(password: str) -> str:
    encoded = password.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        raise ValidationError("Password is too long.")
    return bcrypt.hashpw(encoded, bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    encoded = password.encode("utf-8")
    if len(encoded) > MAX_PASSWORD_BYTES:
        return False
    try:
        return bcrypt.checkpw(encoded, password_hash.encode("utf-8"))
    except ValueError:
        # Stored value is not a bcrypt hash
        return False


def issue_session_token(user: User) -> str:
    """Sign a session token for a freshly authenticated user."""
    now = datetime.now(timezone.utc)
    payload = {
        "id": user.id,
        "role": user.role,
        "iat": now,
        "exp": now + timedelta(days=config.JWT_EXPIRES_DAYS),
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def decode_session_token(token: str) -> dict:
    """
    Verify a session token and return its payload.

    Raises:
        AuthenticationError: signature invalid, token expired or malformed
    """
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Session has expired")
    except jwt.InvalidTokenError as e:
        log_with_context(logger, "WARNING", "Rejected session token",
                         extra_data={"error": str(e)})
        raise AuthenticationError("Invalid session token")
    if not payload.get("id"):
        raise AuthenticationError("Invalid session token")
    return payload


def _extract_token(request: Request) -> Optional[str]:
    token = request.cookies.get(config.SESSION_COOKIE_NAME)
    if token:
        return token
    header = request.headers.get("authorization", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return None


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    """FastAPI dependency resolving the authenticated caller."""
    token = _extract_token(request)
    if not token:
        raise AuthenticationError("Not authenticated")

    payload = decode_session_token(token)
    user = db.query(User).filter(User.id == payload["id"]).first()
    if not user:
        raise AuthenticationError("User not found")
    return user


def require_role(caller: User, allowed_roles: Iterable[str]) -> User:
    """
    Check that the caller holds one of the allowed roles.

    Raises:
        AuthorizationError: caller's current role is not allowed
    """
    allowed = tuple(allowed_roles)
    if caller.role not in allowed:
        log_with_context(logger, "WARNING", "Forbidden: role {} not in {}".format(caller.role, list(allowed)),
                         context={"user_id": caller.id})
        raise AuthorizationError("Forbidden: insufficient permissions")
    return caller


def require_roles(*roles: str):
    """Build a dependency that authenticates the caller and checks their role."""
    def dependency(user: User = Depends(get_current_user)) -> User:
        return require_role(user, roles)
    return dependency


def can_manage_course(caller: User, course) -> bool:
    """Admins manage every course; instructors only the ones they created."""
    if caller.role == Role.ADMIN:
        return True
    return caller.role == Role.INSTRUCTOR and course.created_by_id == caller.id


def require_course_owner(caller: User, course) -> User:
    """
    Raises:
        AuthorizationError: caller may not modify this course
    """
    if not can_manage_course(caller, course):
        log_with_context(logger, "WARNING", "Forbidden: not the owner of course {}".format(course.id),
                         context={"user_id": caller.id, "course_id": course.id})
        raise AuthorizationError("Forbidden: you do not own this course")
    return caller
