"""
Account management - registration, login, admin edits and password reset.

A password reset is a 6-digit code sent by email. Only its bcrypt hash is
stored. The code stops working after RESET_CODE_TTL or after
MAX_RESET_ATTEMPTS wrong guesses.
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.errors import ValidationError, AuthenticationError, ConflictError, NotFoundError
from app.models.user import User, Role
from app.services.identity import hash_password, verify_password
from app.logging_config import get_logger, log_with_context

logger = get_logger("auth")

RESET_CODE_TTL = timedelta(minutes=10)
MAX_RESET_ATTEMPTS = 5


def normalize_email(email: Optional[str]) -> Optional[str]:
    if not email:
        return None
    return email.strip().lower() or None


def create_user(db: Session, email: str, name: str, password: str, role: str = Role.STUDENT,
                phone: Optional[str] = None, address: Optional[str] = None) -> User:
    """
    Create a user with a hashed password.

    Raises:
        ValidationError: required field missing or unknown role
        ConflictError: email or phone already registered
    """
    email = normalize_email(email)
    name = (name or "").strip()
    if not email or not name or not password:
        raise ValidationError("Missing fields")
    if "@" not in email:
        raise ValidationError("Invalid email address")
    if len(password) < 6:
        raise ValidationError("Password must be at least 6 characters.")
    if role not in Role.ALL:
        raise ValidationError("Unknown role: {}".format(role))

    user = User(
        email=email,
        name=name,
        password=hash_password(password),
        phone=(phone or "").strip() or None,
        address=(address or "").strip() or None,
        role=role,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("User with this email or phone already exists")
    db.refresh(user)

    log_with_context(logger, "INFO", "Created {} account".format(role), context={"user_id": user.id})
    return user


def authenticate(db: Session, email: Optional[str], phone: Optional[str], password: Optional[str]) -> User:
    """
    Look up a user by email (or phone) and check the password.

    The same error is returned for an unknown user and a wrong password.
    """
    email = normalize_email(email)
    if (not email and not phone) or not password:
        raise ValidationError("Email/phone and password are required")

    query = db.query(User)
    if email:
        user = query.filter(User.email == email).first()
    else:
        user = query.filter(User.phone == phone.strip()).first()

    if not user or not verify_password(password, user.password):
        log_with_context(logger, "INFO", "Failed login attempt",
                         extra_data={"by": "email" if email else "phone"})
        raise AuthenticationError("Invalid credentials")
    return user


def delete_user(db: Session, user_id: str) -> None:
    """Delete a user; payments and quiz attempts go with them."""
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")
    db.delete(user)
    db.commit()
    log_with_context(logger, "INFO", "User deleted", context={"user_id": user_id})


def update_user(db: Session, user_id: str, changes: dict, acting_user_id: Optional[str] = None) -> User:
    """
    Apply an admin's edit of role, name, email, phone or address.

    Every field is validated before anything is written, and the whole edit
    is committed at once, so a rejected request leaves the user unchanged.

    Raises:
        ValidationError: nothing to change, bad value, or an admin demoting themselves
        NotFoundError: user does not exist
        ConflictError: email or phone already registered
    """
    updates = {}
    role = changes.get("role")
    if role is not None:
        if role not in Role.ALL:
            raise ValidationError("Unknown role: {}".format(role))
        if user_id == acting_user_id and role != Role.ADMIN:
            raise ValidationError("You cannot remove your own admin role")
        updates["role"] = role
    if "name" in changes:
        name = (changes["name"] or "").strip()
        if not name:
            raise ValidationError("Name cannot be empty")
        updates["name"] = name
    if "email" in changes:
        email = normalize_email(changes["email"])
        if not email or "@" not in email:
            raise ValidationError("Invalid email address")
        updates["email"] = email
    if "phone" in changes:
        updates["phone"] = (changes["phone"] or "").strip() or None
    if "address" in changes:
        updates["address"] = (changes["address"] or "").strip() or None
    if not updates:
        raise ValidationError("No valid fields to update provided.")

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")
    for field, value in updates.items():
        setattr(user, field, value)

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("User with this email or phone already exists")
    db.refresh(user)

    log_with_context(logger, "INFO", "User updated", context={"user_id": user_id},
                     extra_data={"fields": sorted(updates)})
    return user


def _find_by_email_or_phone(db: Session, email: Optional[str], phone: Optional[str]) -> Optional[User]:
    email = normalize_email(email)
    if email:
        return db.query(User).filter(User.email == email).first()
    phone = (phone or "").strip()
    if phone:
        return db.query(User).filter(User.phone == phone).first()
    return None


def _clear_reset(user: User) -> None:
    user.reset_code_hash = None
    user.reset_code_expires_at = None
    user.reset_attempts = 0


def request_password_reset(db: Session, email: Optional[str]) -> Optional[Tuple[User, str]]:
    """
    Issue a new reset code for the account with this email.

    Returns (user, code) so the caller can mail it, or None when no account
    matches. Callers must answer both cases the same way.
    """
    email = normalize_email(email)
    if not email:
        raise ValidationError("Email is required")

    user = db.query(User).filter(User.email == email).first()
    if not user:
        log_with_context(logger, "INFO", "Password reset requested for unknown email")
        return None

    code = "{:06d}".format(100000 + secrets.randbelow(900000))
    user.reset_code_hash = hash_password(code)
    user.reset_code_expires_at = datetime.now(timezone.utc) + RESET_CODE_TTL
    user.reset_attempts = 0
    db.commit()

    log_with_context(logger, "INFO", "Password reset code issued", context={"user_id": user.id})
    return user, code


def reset_password(db: Session, email: Optional[str], phone: Optional[str],
                   code: Optional[str], new_password: Optional[str]) -> User:
    """
    Replace the password of the account identified by email (or phone)
    when the reset code matches and has not expired.

    Unknown accounts, wrong codes and expired codes all fail with the same
    message.
    """
    if (not email and not phone) or not code or not new_password:
        raise ValidationError("Email/phone, code, and new password are required")
    if len(new_password) < 6:
        raise ValidationError("Password must be at least 6 characters.")

    invalid = ValidationError("Invalid code or expired")
    user = _find_by_email_or_phone(db, email, phone)
    if not user or not user.reset_code_hash:
        raise invalid

    expires_at = user.reset_code_expires_at
    if expires_at is not None and expires_at.tzinfo is None:
        # SQLite hands back naive datetimes
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    if expires_at is None or expires_at <= datetime.now(timezone.utc):
        _clear_reset(user)
        db.commit()
        log_with_context(logger, "INFO", "Expired reset code used", context={"user_id": user.id})
        raise invalid

    if not verify_password(code.strip(), user.reset_code_hash):
        user.reset_attempts = (user.reset_attempts or 0) + 1
        if user.reset_attempts >= MAX_RESET_ATTEMPTS:
            _clear_reset(user)
        db.commit()
        log_with_context(logger, "WARNING", "Wrong reset code", context={"user_id": user.id})
        raise invalid

    user.password = hash_password(new_password)
    _clear_reset(user)
    db.commit()
    db.refresh(user)

    log_with_context(logger, "INFO", "Password reset", context={"user_id": user.id})
    return user
