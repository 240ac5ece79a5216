# app/auth/sessions.py
"""
Opaque session tokens.

The token handed to the browser is random; the database only ever sees its
SHA-256. Each authenticated request slides ``expires_at`` forward by
``SESSION_TTL_MINUTES``.
"""
from __future__ import annotations

import hashlib
import secrets
from datetime import timedelta
from typing import Optional

from sqlalchemy.orm import Session

from app.auth.passwords import verify_password
from app.core.clock import utcnow
from app.core.logging_config import get_logger
from app.core.settings import settings
from app.models.user import User
from app.repositories import sessions as sessions_repo

log = get_logger(__name__)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _ttl() -> timedelta:
    return timedelta(minutes=settings.SESSION_TTL_MINUTES)


def authenticate(db: Session, email: str, password: str) -> Optional[User]:
    user = sessions_repo.get_user_by_email(db, email)
    if user is None or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


def issue_session(db: Session, user: User) -> str:
    token = secrets.token_urlsafe(32)
    now = utcnow()
    sessions_repo.insert_session(
        db,
        user_id=user.id,
        token_hash=hash_token(token),
        now=now,
        expires_at=now + _ttl(),
    )
    db.commit()
    log.info("session_issued", user_id=user.id)
    return token


def resolve_session(db: Session, token: str) -> Optional[User]:
    """User behind a live token, or None. Slides the expiry on success."""
    now = utcnow()
    row = sessions_repo.get_live_session(db, hash_token(token), now)
    if row is None:
        return None
    user = sessions_repo.get_user_by_id(db, row.user_id)
    if user is None or not user.is_active:
        return None
    sessions_repo.touch_session(db, row, now=now, expires_at=now + _ttl())
    db.commit()
    return user


def end_session(db: Session, token: str) -> bool:
    revoked = sessions_repo.revoke_session(db, hash_token(token), utcnow())
    db.commit()
    return revoked
