# app/schemas/messaging.py
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class OpenConversationPayload(BaseModel):
    lead_id: int
    painter_id: Optional[int] = None


class ConversationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    lead_id: int
    customer_id: int
    painter_id: int
    created_at: datetime
    last_message_at: Optional[datetime] = None


class MessagePayload(BaseModel):
    body: str = Field(max_length=10000)


class MessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    conversation_id: int
    sender_user_id: int
    body: str
    created_at: datetime
    read_at: Optional[datetime] = None
