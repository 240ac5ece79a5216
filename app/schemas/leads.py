# app/schemas/leads.py
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict


class LeadSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    job_title: str
    job_description: Optional[str] = None
    location: Optional[str] = None
    postcode: Optional[str] = None
    status: str
    lead_price: Decimal
    payment_count: int
    max_payments: int
    payment_active: bool
    remaining_slots: int
    created_at: datetime


class LeadDetail(LeadSummary):
    has_access: bool = False
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    assigned_painter_id: Optional[int] = None
    my_bid_id: Optional[int] = None


class CustomerLead(LeadSummary):
    customer_name: str
    customer_email: str
    customer_phone: Optional[str] = None
    assigned_painter_id: Optional[int] = None


class BidStatsOut(BaseModel):
    lead_id: int
    total_bids: int
    lowest_bid: Optional[Decimal] = None
    highest_bid: Optional[Decimal] = None
    average_bid: Optional[Decimal] = None
