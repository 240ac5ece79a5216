# app/repositories/leads.py
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from sqlalchemy import case, select, update
from sqlalchemy.orm import Session

from app.core.clock import utcnow
from app.models.lead import Lead, LeadAccess, LeadStatus


def get_lead_by_id(db: Session, lead_id: int, *, fresh: bool = False) -> Lead | None:
    stmt = select(Lead).where(Lead.id == lead_id)
    if fresh:
        # negeer de identity map, we willen de rij zoals hij nu in de DB staat
        stmt = stmt.execution_options(populate_existing=True)
    return db.execute(stmt).scalar_one_or_none()


def list_open_leads(db: Session, *, limit: int = 100, offset: int = 0) -> list[Lead]:
    return (
        db.query(Lead)
        .filter(Lead.status == LeadStatus.OPEN.value)
        .order_by(Lead.created_at.desc(), Lead.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def list_leads(
    db: Session,
    *,
    status: Optional[str] = None,
    payment_active: Optional[bool] = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Lead]:
    q = db.query(Lead)
    if status:
        q = q.filter(Lead.status == LeadStatus(status).value)
    if payment_active is not None:
        q = q.filter(Lead.payment_active.is_(payment_active))
    return q.order_by(Lead.id.desc()).offset(offset).limit(limit).all()


def list_customer_leads(db: Session, customer_id: int) -> list[Lead]:
    return (
        db.query(Lead)
        .filter(Lead.customer_id == customer_id)
        .order_by(Lead.id.desc())
        .all()
    )


def list_painter_leads(db: Session, painter_id: int) -> list[Lead]:
    """Leads the painter holds an access grant for."""
    return (
        db.query(Lead)
        .join(LeadAccess, LeadAccess.lead_id == Lead.id)
        .filter(LeadAccess.painter_id == painter_id)
        .order_by(LeadAccess.granted_at.desc())
        .all()
    )


def create_lead(
    db: Session,
    *,
    customer_name: str,
    customer_email: str,
    job_title: str,
    lead_price: Decimal,
    max_payments: int,
    customer_id: Optional[int] = None,
    customer_phone: Optional[str] = None,
    job_description: Optional[str] = None,
    location: Optional[str] = None,
    postcode: Optional[str] = None,
) -> Lead:
    lead = Lead(
        customer_id=customer_id,
        customer_name=customer_name,
        customer_email=customer_email,
        customer_phone=customer_phone,
        job_title=job_title,
        job_description=job_description,
        location=location,
        postcode=postcode,
        status=LeadStatus.OPEN.value,
        lead_price=lead_price,
        payment_count=0,
        max_payments=max_payments,
        payment_active=True,
    )
    db.add(lead)
    db.flush()
    return lead


def increment_payment_count(db: Session, lead_id: int) -> int | None:
    """
    Compare-and-swap increment of ``payment_count``.

    Only succeeds while ``payment_count < max_payments``; the same statement
    flips ``payment_active`` off when the new count reaches the cap. Returns
    the new count, or ``None`` when the cap was already reached.
    """
    result = db.execute(
        update(Lead)
        .where(Lead.id == lead_id, Lead.payment_count < Lead.max_payments)
        .values(
            payment_count=Lead.payment_count + 1,
            payment_active=case(
                (Lead.payment_count + 1 >= Lead.max_payments, False),
                else_=Lead.payment_active,
            ),
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return None
    lead = get_lead_by_id(db, lead_id, fresh=True)
    return lead.payment_count if lead else None


def _transition(db: Session, lead_id: int, from_status: LeadStatus, values: dict) -> bool:
    result = db.execute(
        update(Lead)
        .where(Lead.id == lead_id, Lead.status == from_status.value)
        .values(updated_at=utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False
    get_lead_by_id(db, lead_id, fresh=True)
    return True


def assign_lead(db: Session, lead_id: int, painter_id: int) -> bool:
    """open -> assigned. False when the lead was no longer open."""
    return _transition(
        db,
        lead_id,
        LeadStatus.OPEN,
        {"status": LeadStatus.ASSIGNED.value, "assigned_painter_id": painter_id},
    )


def close_lead(db: Session, lead_id: int) -> bool:
    """assigned -> closed."""
    return _transition(db, lead_id, LeadStatus.ASSIGNED, {"status": LeadStatus.CLOSED.value})
