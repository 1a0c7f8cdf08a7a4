# Overview: Admin user management; listing, profile edits and deactivation.

from __future__ import annotations

from flask import current_app

from ..errors import BusinessRuleError, DuplicateError, UserNotFoundError, ValidationError
from ..extensions import db
from ..models import User
from ..models.auth import ROLE_ADMIN, ROLE_CUSTOMER
from ..validation import coerce_bool, coerce_str
from .auth_service import _EMAIL_RE
from .concurrency import run_in_transaction
from .query_filters import UserFilter, paginate
from .session_service import revoke_user_sessions


USER_UPDATE_FIELDS = {"email", "role", "is_active"}


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise UserNotFoundError(user_id)
    return user


def list_users(filters: UserFilter) -> dict:
    query = filters.apply(db.session.query(User))
    rows, pagination = paginate(
        query, filters.page, filters.limit, order_by=(User.created_at.desc(), User.id.desc())
    )
    return {"users": [u.to_dict() for u in rows], "pagination": pagination}


def update_user(user_id: int, data: dict, *, acting_user_id: int) -> User:
    """
    Update email, role and/or is_active.

    Email stays unique. An admin cannot demote or deactivate their own
    account. Deactivating a user revokes all of their sessions.
    """
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    unknown = set(data) - USER_UPDATE_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    patch = {}
    if "email" in data:
        patch["email"] = coerce_str(data["email"], "email", max_length=255).lower()
        if not _EMAIL_RE.match(patch["email"]):
            raise ValidationError("email is not valid")
    if "role" in data:
        patch["role"] = coerce_str(data["role"], "role")
        if patch["role"] not in (ROLE_CUSTOMER, ROLE_ADMIN):
            raise ValidationError("role must be 'customer' or 'admin'")
    if "is_active" in data:
        patch["is_active"] = coerce_bool(data["is_active"], "is_active")

    if user_id == acting_user_id:
        if patch.get("role", ROLE_ADMIN) != ROLE_ADMIN or patch.get("is_active", True) is False:
            raise BusinessRuleError("Cannot demote or deactivate your own account", {"user_id": user_id})

    def _op():
        user = get_user(user_id)
        if "email" in patch:
            existing = db.session.query(User).filter(User.email == patch["email"], User.id != user_id).first()
            if existing is not None:
                raise DuplicateError("Email already in use", {"email": patch["email"]})

        deactivating = patch.get("is_active") is False and user.is_active
        for key, value in patch.items():
            setattr(user, key, value)
        if deactivating:
            revoke_user_sessions(user_id)
        db.session.flush()
        return user

    user = run_in_transaction(_op)
    current_app.logger.info(
        "User %s updated by %s: %s", user_id, acting_user_id, ", ".join(sorted(patch)) or "no changes"
    )
    return user


def deactivate_user(user_id: int, *, acting_user_id: int) -> int:
    """
    Soft-delete an account: is_active=False and every session revoked. Order,
    ledger and points history keep referencing the row. Returns the number of
    sessions revoked.
    """
    if user_id == acting_user_id:
        raise BusinessRuleError("Cannot deactivate your own account", {"user_id": user_id})

    def _op():
        user = get_user(user_id)
        if not user.is_active:
            raise BusinessRuleError("User is already deactivated", {"user_id": user_id})
        user.is_active = False
        return revoke_user_sessions(user_id)

    revoked = run_in_transaction(_op)
    current_app.logger.info(
        "User %s deactivated by %s (%s sessions revoked)", user_id, acting_user_id, revoked
    )
    return revoked
