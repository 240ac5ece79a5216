# app/repositories/config.py
from sqlalchemy.orm import Session

from app.models.payment_config import PaymentConfigEntry


def load_config_entries(db: Session) -> dict[str, str]:
    rows = db.query(PaymentConfigEntry).all()
    return {r.config_key: r.config_value for r in rows}


def upsert_config(db: Session, entries: dict[str, str]) -> None:
    existing = {
        r.config_key: r
        for r in db.query(PaymentConfigEntry)
        .filter(PaymentConfigEntry.config_key.in_(list(entries)))
        .all()
    }
    for key, value in entries.items():
        row = existing.get(key)
        if row is None:
            db.add(PaymentConfigEntry(config_key=key, config_value=value))
        elif row.config_value != value:
            row.config_value = value
    db.flush()
