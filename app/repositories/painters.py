# app/repositories/painters.py
from __future__ import annotations

from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.core.clock import utcnow
from app.models.painter import Painter, PainterPaymentMethod


def get_painter_by_id(db: Session, painter_id: int) -> Painter | None:
    return db.get(Painter, painter_id)


def get_painter_by_user_id(db: Session, user_id: int) -> Painter | None:
    return db.query(Painter).filter(Painter.user_id == user_id).first()


def list_painters_by_ids(db: Session, painter_ids: list[int]) -> list[Painter]:
    if not painter_ids:
        return []
    return db.query(Painter).filter(Painter.id.in_(painter_ids)).all()


def update_painter(db: Session, painter_id: int, **fields) -> Painter | None:
    painter = get_painter_by_id(db, painter_id)
    if painter is None:
        return None
    for key, value in fields.items():
        if value is not None:
            setattr(painter, key, value)
    db.flush()
    return painter


# --- payment methods ---


def list_payment_methods(db: Session, painter_id: int) -> list[PainterPaymentMethod]:
    return (
        db.query(PainterPaymentMethod)
        .filter(
            PainterPaymentMethod.painter_id == painter_id,
            PainterPaymentMethod.is_active.is_(True),
        )
        .order_by(PainterPaymentMethod.is_default.desc(), PainterPaymentMethod.created_at.desc())
        .all()
    )


def get_payment_method(
    db: Session, painter_id: int, provider_pm_id: str
) -> PainterPaymentMethod | None:
    return (
        db.query(PainterPaymentMethod)
        .filter(
            PainterPaymentMethod.painter_id == painter_id,
            PainterPaymentMethod.provider_payment_method_id == provider_pm_id,
            PainterPaymentMethod.is_active.is_(True),
        )
        .first()
    )


def get_default_payment_method(db: Session, painter_id: int) -> PainterPaymentMethod | None:
    methods = list_payment_methods(db, painter_id)
    return methods[0] if methods else None


def insert_payment_method(
    db: Session,
    *,
    painter_id: int,
    provider_customer_id: str,
    provider_pm_id: str,
    payment_method_type: str = "card",
    card_brand: Optional[str] = None,
    card_last4: Optional[str] = None,
    is_default: bool = False,
) -> PainterPaymentMethod:
    if is_default:
        clear_default(db, painter_id)

    # eerder verwijderde kaart opnieuw toegevoegd: rij heractiveren
    method = (
        db.query(PainterPaymentMethod)
        .filter(PainterPaymentMethod.provider_payment_method_id == provider_pm_id)
        .first()
    )
    if method is None:
        method = PainterPaymentMethod(provider_payment_method_id=provider_pm_id)
        db.add(method)
    method.painter_id = painter_id
    method.provider_customer_id = provider_customer_id
    method.payment_method_type = payment_method_type
    method.card_brand = card_brand
    method.card_last4 = card_last4
    method.is_default = is_default
    method.is_active = True
    db.flush()
    return method


def clear_default(db: Session, painter_id: int) -> None:
    db.execute(
        update(PainterPaymentMethod)
        .where(PainterPaymentMethod.painter_id == painter_id)
        .values(is_default=False, updated_at=utcnow())
        .execution_options(synchronize_session="evaluate")
    )


def deactivate_payment_method(db: Session, method: PainterPaymentMethod) -> None:
    method.is_active = False
    method.is_default = False
    db.flush()
