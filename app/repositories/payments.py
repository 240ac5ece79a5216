# app/repositories/payments.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import case, distinct, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.clock import utcnow
from app.models.lead import AccessSource, Lead, LeadAccess, LeadPayment, PaymentStatus


def get_payment_by_id(db: Session, payment_id: int, *, fresh: bool = False) -> LeadPayment | None:
    stmt = select(LeadPayment).where(LeadPayment.id == payment_id)
    if fresh:
        stmt = stmt.execution_options(populate_existing=True)
    return db.execute(stmt).scalar_one_or_none()


def get_payment_by_intent(db: Session, intent_id: str) -> LeadPayment | None:
    return (
        db.query(LeadPayment)
        .filter(LeadPayment.provider_intent_id == intent_id)
        .first()
    )


def get_active_claim(db: Session, lead_id: int, painter_id: int) -> LeadPayment | None:
    """The non-failed claim for (lead, painter), if any."""
    return (
        db.query(LeadPayment)
        .filter(
            LeadPayment.lead_id == lead_id,
            LeadPayment.painter_id == painter_id,
            LeadPayment.payment_status != PaymentStatus.FAILED.value,
        )
        .first()
    )


def insert_claim(
    db: Session,
    *,
    lead_id: int,
    painter_id: int,
    amount: Decimal,
    currency: str,
    provider_customer_id: Optional[str],
    payment_method_id: Optional[str],
) -> LeadPayment:
    """Insert a pending claim. Raises ``IntegrityError`` when a non-failed claim
    for the pair already exists."""
    claim = LeadPayment(
        lead_id=lead_id,
        painter_id=painter_id,
        amount=amount,
        currency=currency.upper(),
        provider_customer_id=provider_customer_id,
        payment_method_id=payment_method_id,
        payment_status=PaymentStatus.PENDING.value,
    )
    db.add(claim)
    db.flush()
    return claim


def set_intent_id(db: Session, payment: LeadPayment, intent_id: str) -> None:
    payment.provider_intent_id = intent_id
    db.flush()


def set_payment_status(
    db: Session,
    payment_id: int,
    from_status: PaymentStatus,
    to_status: PaymentStatus,
    **values,
) -> bool:
    """Guarded ``from_status -> to_status``. False when the row had moved on already."""
    result = db.execute(
        update(LeadPayment)
        .where(
            LeadPayment.id == payment_id,
            LeadPayment.payment_status == from_status.value,
        )
        .values(payment_status=to_status.value, updated_at=utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False
    get_payment_by_id(db, payment_id, fresh=True)
    return True


def get_access(db: Session, lead_id: int, painter_id: int) -> LeadAccess | None:
    return (
        db.query(LeadAccess)
        .filter(LeadAccess.lead_id == lead_id, LeadAccess.painter_id == painter_id)
        .first()
    )


def has_lead_access(db: Session, lead_id: int, painter_id: int) -> bool:
    return get_access(db, lead_id, painter_id) is not None


def grant_access(
    db: Session,
    lead_id: int,
    painter_id: int,
    *,
    source: AccessSource,
    payment_id: Optional[int] = None,
) -> LeadAccess:
    """Idempotent: returns the existing grant when there already is one."""
    existing = get_access(db, lead_id, painter_id)
    if existing is not None:
        return existing
    grant = LeadAccess(
        lead_id=lead_id,
        painter_id=painter_id,
        payment_id=payment_id,
        source=source.value,
        granted_at=utcnow(),
    )
    try:
        with db.begin_nested():
            db.add(grant)
    except IntegrityError:
        # gelijktijdig toegekend door webhook of admin
        return get_access(db, lead_id, painter_id)
    return grant


def payment_history(db: Session, painter_id: int, *, limit: int = 100) -> list[tuple[LeadPayment, Lead]]:
    return (
        db.query(LeadPayment, Lead)
        .join(Lead, Lead.id == LeadPayment.lead_id)
        .filter(LeadPayment.painter_id == painter_id)
        .order_by(LeadPayment.created_at.desc(), LeadPayment.id.desc())
        .limit(limit)
        .all()
    )


def payment_analytics(
    db: Session,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> dict:
    succeeded = LeadPayment.payment_status == PaymentStatus.SUCCEEDED.value
    failed = LeadPayment.payment_status == PaymentStatus.FAILED.value

    stmt = select(
        func.count(LeadPayment.id),
        func.coalesce(func.sum(case((succeeded, LeadPayment.amount), else_=0)), 0),
        func.count(distinct(LeadPayment.painter_id)),
        func.count(distinct(LeadPayment.lead_id)),
        func.avg(LeadPayment.amount),
        func.count(case((succeeded, 1))),
        func.count(case((failed, 1))),
    )
    if start is not None:
        stmt = stmt.where(LeadPayment.created_at >= start)
    if end is not None:
        stmt = stmt.where(LeadPayment.created_at <= end)

    total, revenue, painters, leads, average, ok, ko = db.execute(stmt).one()
    return {
        "total_payments": int(total or 0),
        "total_revenue": Decimal(str(revenue or 0)).quantize(Decimal("0.01")),
        "unique_paying_painters": int(painters or 0),
        "leads_with_payments": int(leads or 0),
        "average_payment_amount": (
            Decimal(str(average)).quantize(Decimal("0.01")) if average is not None else None
        ),
        "successful_payments": int(ok or 0),
        "failed_payments": int(ko or 0),
    }
