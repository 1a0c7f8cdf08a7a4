# Overview: Service-layer operations for session tokens; issue, validate and revoke.

"""
Session token management

- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage; the plaintext is returned once
- Absolute timeout of SESSION_TTL_HOURS
- Revocable on logout
"""

from __future__ import annotations

import hashlib
import secrets
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User
from ..time_utils import utcnow
from .concurrency import run_in_transaction


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """Tokens are high-entropy, so a plain SHA-256 is enough (unlike passwords)."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(user_id: int) -> tuple[SessionToken, str]:
    """Returns (session_record, plaintext_token). Only the hash is stored."""
    plaintext_token = generate_token()
    now = utcnow()
    ttl = timedelta(hours=current_app.config["SESSION_TTL_HOURS"])

    def _op():
        session = SessionToken(
            user_id=user_id,
            token_hash=hash_token(plaintext_token),
            created_at=now,
            expires_at=now + ttl,
        )
        db.session.add(session)
        db.session.flush()
        return session

    return run_in_transaction(_op), plaintext_token


def validate_session(token: str) -> User | None:
    """
    Resolve a bearer token to its user.

    Returns None if the token is unknown, expired or revoked, or the user has
    been deactivated.
    """
    if not token:
        return None

    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        revoked_at=None,
    ).first()
    if session is None or session.expires_at < utcnow():
        return None

    user = session.user
    if user is None or not user.is_active:
        return None
    return user


def revoke_session(token: str) -> bool:
    """Returns True if a live session was revoked, False if none matched."""
    def _op():
        session = db.session.query(SessionToken).filter_by(
            token_hash=hash_token(token),
            revoked_at=None,
        ).first()
        if session is None:
            return False
        session.revoked_at = utcnow()
        return True

    return run_in_transaction(_op)


def revoke_user_sessions(user_id: int, *, except_token: str | None = None) -> int:
    """
    Revoke every live session of a user, optionally sparing one token.

    Runs in the caller's transaction. Returns the number of sessions revoked.
    """
    query = db.session.query(SessionToken).filter_by(user_id=user_id, revoked_at=None)
    if except_token:
        query = query.filter(SessionToken.token_hash != hash_token(except_token))

    now = utcnow()
    count = 0
    for session in query.all():
        session.revoked_at = now
        count += 1
    return count
