# app/repositories/sessions.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Session

from app.models.user import User, UserSession


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.query(User).filter(User.email == email.strip().lower()).first()


def get_user_by_id(db: Session, user_id: int) -> User | None:
    return db.get(User, user_id)


def insert_session(
    db: Session, *, user_id: int, token_hash: str, now: datetime, expires_at: datetime
) -> UserSession:
    row = UserSession(
        user_id=user_id,
        token_hash=token_hash,
        created_at=now,
        last_seen_at=now,
        expires_at=expires_at,
    )
    db.add(row)
    db.flush()
    return row


def get_live_session(db: Session, token_hash: str, now: datetime) -> UserSession | None:
    return (
        db.query(UserSession)
        .filter(
            UserSession.token_hash == token_hash,
            UserSession.revoked_at.is_(None),
            UserSession.expires_at > now,
        )
        .first()
    )


def touch_session(db: Session, row: UserSession, *, now: datetime, expires_at: datetime) -> None:
    row.last_seen_at = now
    row.expires_at = expires_at
    db.flush()


def revoke_session(db: Session, token_hash: str, now: datetime) -> bool:
    row = (
        db.query(UserSession)
        .filter(UserSession.token_hash == token_hash, UserSession.revoked_at.is_(None))
        .first()
    )
    if row is None:
        return False
    row.revoked_at = now
    db.flush()
    return True
