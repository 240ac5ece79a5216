# app/schemas/payments.py
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class PublicConfig(BaseModel):
    publishable_key: str
    default_lead_price: Decimal
    currency: str
    payment_enabled: bool
    max_payments_per_lead: int


class PurchaseLeadPayload(BaseModel):
    lead_id: int
    payment_method_id: Optional[str] = None


class ClaimOut(BaseModel):
    success: bool
    claim_id: int
    status: str
    payment_number: Optional[int] = None
    requires_action: bool = False
    client_secret: Optional[str] = None
    payment_intent_id: Optional[str] = None


class ConfirmPaymentPayload(BaseModel):
    payment_intent_id: str = Field(min_length=3, max_length=255)


class LeadAccessOut(BaseModel):
    lead_id: int
    has_access: bool
    source: Optional[str] = None
    payment_status: Optional[str] = None
    can_purchase: bool


class PaymentMethodPayload(BaseModel):
    payment_method_id: str = Field(min_length=3, max_length=255)
    set_as_default: bool = False


class RemovePaymentMethodPayload(BaseModel):
    payment_method_id: str = Field(min_length=3, max_length=255)


class PaymentMethodOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    provider_payment_method_id: str
    payment_method_type: str
    card_brand: Optional[str] = None
    card_last4: Optional[str] = None
    is_default: bool
    created_at: datetime


class PaymentHistoryItem(BaseModel):
    id: int
    lead_id: int
    job_title: str
    amount: Decimal
    currency: str
    payment_status: str
    payment_number: Optional[int] = None
    failure_reason: Optional[str] = None
    created_at: datetime
