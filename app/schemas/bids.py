# app/schemas/bids.py
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class BidPayload(BaseModel):
    lead_id: int
    # als string/nummer binnen, validatie tegen de marketplace config gebeurt in de lifecycle
    bid_amount: Decimal
    message: str = ""
    timeline: str = ""
    materials_included: bool = False
    warranty_months: int = Field(0, ge=0, le=120)
    warranty_details: Optional[str] = None
    project_approach: Optional[str] = Field(None, max_length=5000)


class ResubmitPayload(BaseModel):
    bid_amount: Decimal


class BidOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    lead_id: int
    painter_id: int
    bid_amount: Decimal
    message: str
    timeline: str
    materials_included: bool
    warranty_months: int
    warranty_details: Optional[str] = None
    project_approach: Optional[str] = None
    status: str
    submitted_at: datetime
    updated_at: datetime


class CustomerBidOut(BidOut):
    painter_company: Optional[str] = None
    painter_verified: bool = False
