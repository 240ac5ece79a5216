# app/repositories/messaging.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, or_, update
from sqlalchemy.orm import Session

from app.models.conversation import Conversation, Message


def get_conversation(db: Session, conversation_id: int) -> Conversation | None:
    return db.get(Conversation, conversation_id)


def find_conversation(
    db: Session, lead_id: int, customer_id: int, painter_id: int
) -> Conversation | None:
    return (
        db.query(Conversation)
        .filter(
            Conversation.lead_id == lead_id,
            Conversation.customer_id == customer_id,
            Conversation.painter_id == painter_id,
        )
        .first()
    )


def create_conversation(
    db: Session, *, lead_id: int, customer_id: int, painter_id: int, now: datetime
) -> Conversation:
    conv = Conversation(
        lead_id=lead_id, customer_id=customer_id, painter_id=painter_id, created_at=now
    )
    db.add(conv)
    db.flush()
    return conv


def list_conversations(
    db: Session, *, customer_id: int | None = None, painter_id: int | None = None
) -> list[Conversation]:
    q = db.query(Conversation)
    if customer_id is not None:
        q = q.filter(Conversation.customer_id == customer_id)
    if painter_id is not None:
        q = q.filter(Conversation.painter_id == painter_id)
    return q.order_by(
        func.coalesce(Conversation.last_message_at, Conversation.created_at).desc()
    ).all()


def insert_message(
    db: Session, *, conversation: Conversation, sender_user_id: int, body: str, now: datetime
) -> Message:
    msg = Message(
        conversation_id=conversation.id,
        sender_user_id=sender_user_id,
        body=body,
        created_at=now,
    )
    db.add(msg)
    conversation.last_message_at = now
    db.flush()
    return msg


def list_messages(db: Session, conversation_id: int) -> list[Message]:
    return (
        db.query(Message)
        .filter(Message.conversation_id == conversation_id)
        .order_by(Message.created_at.asc(), Message.id.asc())
        .all()
    )


def mark_read(db: Session, conversation_id: int, reader_user_id: int, now: datetime) -> int:
    result = db.execute(
        update(Message)
        .where(
            Message.conversation_id == conversation_id,
            Message.sender_user_id != reader_user_id,
            Message.read_at.is_(None),
        )
        .values(read_at=now)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount


def unread_count(
    db: Session, *, user_id: int, customer_id: int | None = None, painter_id: int | None = None
) -> int:
    q = (
        db.query(func.count(Message.id))
        .join(Conversation, Conversation.id == Message.conversation_id)
        .filter(Message.sender_user_id != user_id, Message.read_at.is_(None))
    )
    conds = []
    if customer_id is not None:
        conds.append(Conversation.customer_id == customer_id)
    if painter_id is not None:
        conds.append(Conversation.painter_id == painter_id)
    if conds:
        q = q.filter(or_(*conds))
    return int(q.scalar() or 0)
