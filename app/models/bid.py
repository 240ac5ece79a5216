# app/models/bid.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, validates

from app.db import Base


class BidStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class Bid(Base):
    __tablename__ = "bids"
    __table_args__ = (
        # één actieve (niet-ingetrokken) bid per painter per lead
        Index(
            "uq_bids_active_per_painter",
            "lead_id",
            "painter_id",
            unique=True,
            sqlite_where=text("status != 'withdrawn'"),
            postgresql_where=text("status != 'withdrawn'"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    lead_id: Mapped[int] = mapped_column(ForeignKey("leads.id"), index=True, nullable=False)
    painter_id: Mapped[int] = mapped_column(
        ForeignKey("painters.id"), index=True, nullable=False
    )

    bid_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    timeline: Mapped[str] = mapped_column(String(255), nullable=False)
    materials_included: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    warranty_months: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    warranty_details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    project_approach: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BidStatus.PENDING.value, index=True
    )

    submitted_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    @validates("status")
    def _validate_status(self, key, value):
        return BidStatus(value).value

    @validates("bid_amount")
    def _validate_amount(self, key, value):
        value = Decimal(str(value))
        if value <= 0:
            raise ValueError("bid_amount must be positive")
        return value

    def __repr__(self) -> str:
        return f"<Bid id={self.id} lead={self.lead_id} painter={self.painter_id} status={self.status}>"
