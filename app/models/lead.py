# app/models/lead.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, validates

from app.db import Base


class LeadStatus(str, Enum):
    OPEN = "open"
    ASSIGNED = "assigned"
    CLOSED = "closed"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class AccessSource(str, Enum):
    PAYMENT = "payment"
    MANUAL = "manual"


class Lead(Base):
    __tablename__ = "leads"
    __table_args__ = (
        CheckConstraint("payment_count >= 0", name="ck_leads_payment_count_positive"),
        CheckConstraint("payment_count <= max_payments", name="ck_leads_payment_cap"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # customer
    customer_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id"), index=True, nullable=True
    )
    customer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    customer_email: Mapped[str] = mapped_column(String(320), nullable=False)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # job
    job_title: Mapped[str] = mapped_column(String(255), nullable=False)
    job_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    postcode: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)

    # status/meta
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=LeadStatus.OPEN.value, index=True
    )
    assigned_painter_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("painters.id"), nullable=True
    )

    # payment bookkeeping
    lead_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    payment_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_payments: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    payment_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    @validates("status")
    def _validate_status(self, key, value):
        return LeadStatus(value).value

    @validates("max_payments")
    def _validate_max_payments(self, key, value):
        if value is None or int(value) < 1:
            raise ValueError("max_payments must be at least 1")
        return int(value)

    @validates("lead_price")
    def _validate_price(self, key, value):
        value = Decimal(str(value))
        if value <= 0:
            raise ValueError("lead_price must be positive")
        return value

    @property
    def remaining_slots(self) -> int:
        return max(self.max_payments - self.payment_count, 0)

    def __repr__(self) -> str:
        return (
            f"<Lead id={self.id} status={self.status} "
            f"payments={self.payment_count}/{self.max_payments}>"
        )


class LeadPayment(Base):
    """A painter's claim on a lead, backed by one payment intent."""

    __tablename__ = "lead_payments"
    __table_args__ = (
        # max. één niet-mislukte claim per (lead, painter)
        Index(
            "uq_lead_payments_active_claim",
            "lead_id",
            "painter_id",
            unique=True,
            sqlite_where=text("payment_status != 'failed'"),
            postgresql_where=text("payment_status != 'failed'"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    lead_id: Mapped[int] = mapped_column(
        ForeignKey("leads.id"), index=True, nullable=False
    )
    painter_id: Mapped[int] = mapped_column(
        ForeignKey("painters.id"), index=True, nullable=False
    )

    provider_intent_id: Mapped[Optional[str]] = mapped_column(
        String(255), unique=True, nullable=True
    )
    provider_customer_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    payment_method_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="GBP")
    payment_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PaymentStatus.PENDING.value
    )
    payment_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    failure_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    @validates("payment_status")
    def _validate_status(self, key, value):
        return PaymentStatus(value).value

    @validates("amount")
    def _validate_amount(self, key, value):
        value = Decimal(str(value))
        if value <= 0:
            raise ValueError("amount must be positive")
        return value

    def __repr__(self) -> str:
        return (
            f"<LeadPayment id={self.id} lead={self.lead_id} painter={self.painter_id} "
            f"status={self.payment_status}>"
        )


class LeadAccess(Base):
    """Canonical grant: painter may see the lead's contact details and bid."""

    __tablename__ = "lead_access"
    __table_args__ = (UniqueConstraint("lead_id", "painter_id", name="uq_lead_access"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    lead_id: Mapped[int] = mapped_column(ForeignKey("leads.id"), index=True, nullable=False)
    painter_id: Mapped[int] = mapped_column(
        ForeignKey("painters.id"), index=True, nullable=False
    )
    payment_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("lead_payments.id"), nullable=True
    )
    source: Mapped[str] = mapped_column(
        String(20), nullable=False, default=AccessSource.PAYMENT.value
    )
    granted_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
