# app/schemas/admin.py
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from app.models.painter import PainterStatus, VerificationStatus


class AnalyticsOut(BaseModel):
    total_payments: int
    total_revenue: Decimal
    unique_paying_painters: int
    leads_with_payments: int
    average_payment_amount: Optional[Decimal] = None
    successful_payments: int
    failed_payments: int


class GrantAccessPayload(BaseModel):
    painter_id: int


class PainterUpdatePayload(BaseModel):
    status: Optional[PainterStatus] = None
    verification_status: Optional[VerificationStatus] = None


class PainterOut(BaseModel):
    id: int
    company_name: str
    email: str
    status: str
    verification_status: str
