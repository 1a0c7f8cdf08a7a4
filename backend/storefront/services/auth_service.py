# Overview: Service-layer operations for auth; password hashing, user creation and credential checks.

"""
Authentication service

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, 12 by default)
- Minimum 8 characters, at least one letter and one digit
- Session tokens managed separately (see session_service.py)
"""

from __future__ import annotations

import re

import bcrypt
from flask import current_app

from ..errors import DuplicateError, UserNotFoundError, ValidationError
from ..extensions import db
from ..models import User
from ..models.auth import ROLE_ADMIN, ROLE_CUSTOMER
from ..validation import coerce_str
from .concurrency import run_in_transaction


_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password) -> None:
    """
    Requirements:
    - Minimum 8 characters
    - At least one letter
    - At least one digit
    """
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")
    if not re.search(r"[A-Za-z]", password):
        raise PasswordValidationError("Password must contain at least one letter")
    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=current_app.config["BCRYPT_ROUNDS"])
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """bcrypt.checkpw is timing-safe. A malformed stored hash never verifies."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def create_user(username, email, password, *, role: str = ROLE_CUSTOMER) -> User:
    """
    Create a user with a bcrypt password hash.

    Raises ValidationError for malformed input (including weak passwords) and
    DuplicateError when the username or email is taken.
    """
    username = coerce_str(username, "username", max_length=64)
    email = coerce_str(email, "email", max_length=255).lower()
    if not _EMAIL_RE.match(email):
        raise ValidationError("email is not valid")
    if role not in (ROLE_CUSTOMER, ROLE_ADMIN):
        raise ValidationError("role must be 'customer' or 'admin'")

    password_hash = hash_password(password)

    def _op():
        existing = db.session.query(User).filter(
            db.or_(User.username == username, User.email == email)
        ).first()
        if existing:
            raise DuplicateError("Username or email already exists")

        user = User(username=username, email=email, password_hash=password_hash, role=role)
        db.session.add(user)
        db.session.flush()
        return user

    user = run_in_transaction(_op)
    current_app.logger.info("User created: %s (%s, role=%s)", user.id, user.username, user.role)
    return user


def authenticate(identifier, password) -> User | None:
    """
    Check credentials by username or email.

    Returns the User when valid and active, None otherwise. Unknown users and
    wrong passwords are indistinguishable to the caller. Non-string input is
    a ValidationError.
    """
    identifier = coerce_str(identifier, "username", max_length=255)
    if not isinstance(password, str) or not password:
        raise ValidationError("password must be a non-empty string")

    user = db.session.query(User).filter(
        db.or_(User.username == identifier, User.email == identifier.lower()),
        User.is_active.is_(True),
    ).first()

    if user is None or not verify_password(password, user.password_hash):
        return None
    return user


def change_password(user_id: int, current_password, new_password, *, keep_token: str | None = None) -> User:
    """
    Replace a user's password after re-checking the current one.

    Every other session of the user is revoked; keep_token (the caller's own
    session) stays valid.
    """
    from .session_service import revoke_user_sessions

    if not isinstance(current_password, str) or not current_password:
        raise ValidationError("current_password is required")
    if not isinstance(new_password, str):
        raise PasswordValidationError("new_password must be a string")
    validate_password_strength(new_password)
    if new_password == current_password:
        raise PasswordValidationError("New password must differ from the current password")

    user = db.session.get(User, user_id)
    if user is None:
        raise UserNotFoundError(user_id)
    if not verify_password(current_password, user.password_hash):
        raise ValidationError("Current password is incorrect")

    password_hash = hash_password(new_password)

    def _op():
        locked = db.session.get(User, user_id)
        locked.password_hash = password_hash
        return revoke_user_sessions(user_id, except_token=keep_token)

    revoked = run_in_transaction(_op)
    current_app.logger.info("Password changed for user %s (%s other sessions revoked)", user_id, revoked)
    return user
