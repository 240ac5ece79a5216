# app/repositories/bids.py
from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from app.core.clock import utcnow
from app.models.bid import Bid, BidStatus


def get_bid_by_id(db: Session, bid_id: int, *, fresh: bool = False) -> Bid | None:
    stmt = select(Bid).where(Bid.id == bid_id)
    if fresh:
        stmt = stmt.execution_options(populate_existing=True)
    return db.execute(stmt).scalar_one_or_none()


def get_bids_by_lead(db: Session, lead_id: int, *, include_withdrawn: bool = False) -> list[Bid]:
    q = db.query(Bid).filter(Bid.lead_id == lead_id)
    if not include_withdrawn:
        q = q.filter(Bid.status != BidStatus.WITHDRAWN.value)
    return q.order_by(Bid.bid_amount.asc(), Bid.id.asc()).all()


def get_active_bid(db: Session, lead_id: int, painter_id: int) -> Bid | None:
    """The painter's non-withdrawn bid on this lead, if any."""
    return (
        db.query(Bid)
        .filter(
            Bid.lead_id == lead_id,
            Bid.painter_id == painter_id,
            Bid.status != BidStatus.WITHDRAWN.value,
        )
        .first()
    )


def list_painter_bids(db: Session, painter_id: int) -> list[Bid]:
    return (
        db.query(Bid)
        .filter(Bid.painter_id == painter_id)
        .order_by(Bid.submitted_at.desc(), Bid.id.desc())
        .all()
    )


def insert_bid(
    db: Session,
    *,
    lead_id: int,
    painter_id: int,
    bid_amount: Decimal,
    message: str,
    timeline: str,
    materials_included: bool = False,
    warranty_months: int = 0,
    warranty_details: Optional[str] = None,
    project_approach: Optional[str] = None,
) -> Bid:
    bid = Bid(
        lead_id=lead_id,
        painter_id=painter_id,
        bid_amount=bid_amount,
        message=message,
        timeline=timeline,
        materials_included=materials_included,
        warranty_months=warranty_months,
        warranty_details=warranty_details,
        project_approach=project_approach,
        status=BidStatus.PENDING.value,
    )
    db.add(bid)
    db.flush()
    return bid


def transition_bid(
    db: Session,
    bid_id: int,
    from_statuses: Iterable[BidStatus],
    to_status: BidStatus,
    **values,
) -> bool:
    """Guarded status update; False when the bid is not in one of ``from_statuses``."""
    allowed = [s.value for s in from_statuses]
    result = db.execute(
        update(Bid)
        .where(Bid.id == bid_id, Bid.status.in_(allowed))
        .values(status=to_status.value, updated_at=utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False
    get_bid_by_id(db, bid_id, fresh=True)
    return True


def reject_other_pending(db: Session, lead_id: int, keep_bid_id: int) -> list[Bid]:
    others = (
        db.query(Bid)
        .filter(
            Bid.lead_id == lead_id,
            Bid.id != keep_bid_id,
            Bid.status == BidStatus.PENDING.value,
        )
        .all()
    )
    rejected = []
    for bid in others:
        if transition_bid(db, bid.id, [BidStatus.PENDING], BidStatus.REJECTED):
            rejected.append(bid)
    return rejected


def bid_stats(db: Session, lead_id: int) -> dict:
    """Anonymised figures over the lead's non-withdrawn bids."""
    row = db.execute(
        select(
            func.count(Bid.id),
            func.min(Bid.bid_amount),
            func.max(Bid.bid_amount),
            func.avg(Bid.bid_amount),
        ).where(Bid.lead_id == lead_id, Bid.status != BidStatus.WITHDRAWN.value)
    ).one()
    count, lowest, highest, average = row
    return {
        "total_bids": int(count or 0),
        "lowest_bid": Decimal(str(lowest)) if lowest is not None else None,
        "highest_bid": Decimal(str(highest)) if highest is not None else None,
        "average_bid": (
            Decimal(str(average)).quantize(Decimal("0.01")) if average is not None else None
        ),
    }


def bid_position(db: Session, lead_id: int, bid_amount: Decimal) -> int:
    """1-based rank of ``bid_amount`` among the lead's bids, cheapest first."""
    cheaper = db.execute(
        select(func.count(Bid.id)).where(
            Bid.lead_id == lead_id,
            Bid.status != BidStatus.WITHDRAWN.value,
            Bid.bid_amount < bid_amount,
        )
    ).scalar_one()
    return int(cheaper) + 1
