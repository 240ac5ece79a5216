# app/services/messaging.py
"""Customer <-> painter conversations, one per (lead, customer, painter)."""
from __future__ import annotations

from typing import Optional

from sqlalchemy.exc import IntegrityError

from app.core.clock import utcnow
from app.core.context import Principal, RequestContext
from app.core.errors import (
    AuthorizationError,
    ConversationNotFound,
    LeadNotFound,
    NoAccess,
    ValidationError,
)
from app.core.logging_config import get_logger
from app.models.conversation import Conversation
from app.models.user import Role
from app.repositories import leads as leads_repo
from app.repositories import messaging as messaging_repo
from app.repositories import painters as painters_repo
from app.repositories import payments as payments_repo
from app.repositories import sessions as sessions_repo

log = get_logger(__name__)

MAX_BODY = 5000
PREVIEW_LEN = 200


def _participant(ctx: RequestContext) -> Principal:
    principal = ctx.require(Role.PAINTER, Role.CUSTOMER)
    if principal.role == Role.PAINTER.value:
        ctx.require_active_painter()
    return principal


def _is_party(principal: Principal, conv: Conversation) -> bool:
    if principal.role == Role.PAINTER.value:
        return conv.painter_id == principal.painter_id
    return conv.customer_id == principal.user_id


def _load(ctx: RequestContext, conversation_id: int) -> tuple[Principal, Conversation]:
    principal = _participant(ctx)
    conv = messaging_repo.get_conversation(ctx.db, conversation_id)
    # niet-deelnemers krijgen 404, geen 403: bestaan niet lekken
    if conv is None or not _is_party(principal, conv):
        raise ConversationNotFound()
    return principal, conv


def _clean_body(body: Optional[str]) -> str:
    text = (body or "").strip()
    if not text:
        raise ValidationError(errors={"body": "Message cannot be empty."})
    if len(text) > MAX_BODY:
        raise ValidationError(errors={"body": f"Message cannot exceed {MAX_BODY:,} characters."})
    return text


def open_conversation(
    ctx: RequestContext, lead_id: int, painter_id: Optional[int] = None
) -> Conversation:
    """
    Get or create the conversation about ``lead_id``.

    Painters need an access grant on the lead. Customers must own the lead and
    name the painter, who in turn must hold access.
    """
    principal = _participant(ctx)
    db = ctx.db
    lead = leads_repo.get_lead_by_id(db, lead_id)
    if lead is None:
        raise LeadNotFound()

    if principal.role == Role.PAINTER.value:
        painter_id = principal.painter_id
        if lead.customer_id is None:
            raise ValidationError("This customer cannot receive messages.")
    else:
        if lead.customer_id != principal.user_id:
            raise LeadNotFound()
        if painter_id is None:
            raise ValidationError(errors={"painter_id": "Choose the painter to message."})

    if not payments_repo.has_lead_access(db, lead.id, painter_id):
        raise NoAccess("Only painters with access to this lead can be messaged.")

    conv = messaging_repo.find_conversation(db, lead.id, lead.customer_id, painter_id)
    if conv is not None:
        return conv
    try:
        conv = messaging_repo.create_conversation(
            db, lead_id=lead.id, customer_id=lead.customer_id, painter_id=painter_id, now=utcnow()
        )
        db.commit()
    except IntegrityError:
        db.rollback()
        conv = messaging_repo.find_conversation(db, lead.id, lead.customer_id, painter_id)
    log.info("conversation_opened", conversation_id=conv.id, lead_id=lead.id, painter_id=painter_id)
    return conv


def list_conversations(ctx: RequestContext) -> list[Conversation]:
    principal = _participant(ctx)
    if principal.role == Role.PAINTER.value:
        return messaging_repo.list_conversations(ctx.db, painter_id=principal.painter_id)
    return messaging_repo.list_conversations(ctx.db, customer_id=principal.user_id)


def send_message(ctx: RequestContext, conversation_id: int, body: str, *, notifier=None):
    principal, conv = _load(ctx, conversation_id)
    text = _clean_body(body)
    db = ctx.db

    msg = messaging_repo.insert_message(
        db, conversation=conv, sender_user_id=principal.user_id, body=text, now=utcnow()
    )
    db.commit()
    log.info("message_sent", conversation_id=conv.id, message_id=msg.id, sender=principal.user_id)

    _notify_other_party(db, principal, conv, text, notifier)
    return msg


def _notify_other_party(db, principal: Principal, conv: Conversation, text: str, notifier) -> None:
    if notifier is None:
        return
    lead = leads_repo.get_lead_by_id(db, conv.lead_id)
    painter = painters_repo.get_painter_by_id(db, conv.painter_id)
    if lead is None or painter is None:
        return

    if principal.role == Role.PAINTER.value:
        customer = sessions_repo.get_user_by_id(db, conv.customer_id)
        recipient = customer.email if customer else lead.customer_email
        recipient_name = (customer.full_name if customer else None) or lead.customer_name
        sender_name = painter.company_name
    else:
        recipient = painter.email
        recipient_name = painter.contact_name or painter.company_name
        sender_name = principal.full_name or lead.customer_name

    try:
        notifier.notify(
            "new_message",
            [recipient],
            {
                "recipient_name": recipient_name,
                "sender_name": sender_name,
                "job_title": lead.job_title,
                "preview": text[:PREVIEW_LEN],
                "conversation_id": conv.id,
            },
        )
    except Exception:
        log.exception("notify_failed", event_type="new_message")


def list_messages(ctx: RequestContext, conversation_id: int):
    """Messages oldest first; the other party's unread ones are marked read."""
    principal, conv = _load(ctx, conversation_id)
    messaging_repo.mark_read(ctx.db, conv.id, principal.user_id, utcnow())
    ctx.db.commit()
    return messaging_repo.list_messages(ctx.db, conv.id)


def unread_count(ctx: RequestContext) -> int:
    principal = _participant(ctx)
    if principal.role == Role.PAINTER.value:
        return messaging_repo.unread_count(
            ctx.db, user_id=principal.user_id, painter_id=principal.painter_id
        )
    return messaging_repo.unread_count(
        ctx.db, user_id=principal.user_id, customer_id=principal.user_id
    )
