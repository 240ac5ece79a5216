# app/routers/messaging.py
from fastapi import APIRouter, Depends

from app.auth.deps import require_role
from app.core.context import RequestContext
from app.dependencies import get_notifier
from app.models.user import Role
from app.schemas.messaging import (
    ConversationOut,
    MessageOut,
    MessagePayload,
    OpenConversationPayload,
)
from app.services import messaging

router = APIRouter(prefix="/conversations", tags=["messaging"])

require_participant = require_role(Role.PAINTER, Role.CUSTOMER)


@router.get("", response_model=list[ConversationOut])
def list_conversations(ctx: RequestContext = Depends(require_participant)):
    return messaging.list_conversations(ctx)


@router.post("", response_model=ConversationOut)
def open_conversation(
    payload: OpenConversationPayload,
    ctx: RequestContext = Depends(require_participant),
):
    return messaging.open_conversation(ctx, payload.lead_id, payload.painter_id)


# vóór /{conversation_id}/... registreren
@router.get("/unread-count")
def unread_count(ctx: RequestContext = Depends(require_participant)):
    return {"unread": messaging.unread_count(ctx)}


@router.get("/{conversation_id}/messages", response_model=list[MessageOut])
def list_messages(conversation_id: int, ctx: RequestContext = Depends(require_participant)):
    return messaging.list_messages(ctx, conversation_id)


@router.post("/{conversation_id}/messages", response_model=MessageOut)
def send_message(
    conversation_id: int,
    payload: MessagePayload,
    ctx: RequestContext = Depends(require_participant),
    notifier=Depends(get_notifier),
):
    return messaging.send_message(ctx, conversation_id, payload.body, notifier=notifier)
