# scripts/seed_dev.py
"""
Vult een lokale database met een admin, een klant, twee schilders en een paar leads.

    python -m scripts.seed_dev

Idempotent: bestaande gebruikers (op e-mail) worden overgeslagen.
"""
from __future__ import annotations

from decimal import Decimal

from app.auth.passwords import hash_password
from app.core.context import MarketplaceConfig
from app.db import Base, SessionLocal, engine
from app import models  # noqa: F401  (registreert SQLAlchemy modellen)
from app.models.painter import Painter, PainterStatus, VerificationStatus
from app.models.user import Role, User
from app.repositories import config as config_repo
from app.repositories import leads as leads_repo
from app.repositories import painters as painters_repo
from app.repositories import sessions as sessions_repo

PASSWORD = "devpass123"

PAINTERS = [
    ("painter1@dev.local", "Brush & Co", "Sam Carter", "pm_card_visa"),
    ("painter2@dev.local", "Fresh Coat Ltd", "Alex Morgan", "pm_card_mastercard"),
]

LEADS = [
    ("Repaint living room", "Two coats on walls and ceiling, furniture moved by owner.", "Leeds", "LS1 4AP"),
    ("Exterior render", "Front elevation, roughly 40 m2, some cracks to fill.", "York", "YO1 7HH"),
    ("Kitchen cabinets", "Spray finish on 14 cabinet doors.", "Harrogate", "HG1 2RQ"),
]


def get_or_create_user(db, email: str, role: Role, full_name: str) -> User:
    user = sessions_repo.get_user_by_email(db, email)
    if user:
        print(f"= {role.value:8} {email} bestaat al")
        return user
    user = User(
        email=email,
        password_hash=hash_password(PASSWORD),
        full_name=full_name,
        role=role.value,
        is_active=True,
    )
    db.add(user)
    db.flush()
    print(f"+ {role.value:8} {email}")
    return user


def main():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        # admin wijzigingen niet overschrijven
        entries = config_repo.load_config_entries(db)
        config = MarketplaceConfig.from_entries(entries)
        if not entries:
            config_repo.upsert_config(db, config.as_entries())

        get_or_create_user(db, "admin@dev.local", Role.ADMIN, "Dev Admin")
        customer = get_or_create_user(db, "customer@dev.local", Role.CUSTOMER, "Jane Doe")

        for email, company, contact, pm_id in PAINTERS:
            user = get_or_create_user(db, email, Role.PAINTER, contact)
            if painters_repo.get_painter_by_user_id(db, user.id):
                continue
            painter = Painter(
                user_id=user.id,
                company_name=company,
                contact_name=contact,
                email=email,
                status=PainterStatus.ACTIVE.value,
                verification_status=VerificationStatus.VERIFIED.value,
            )
            db.add(painter)
            db.flush()
            # Stripe test kaarten; klant id wordt bij de eerste echte kaart aangemaakt
            painters_repo.insert_payment_method(
                db,
                painter_id=painter.id,
                provider_customer_id=f"cus_dev_{painter.id}",
                provider_pm_id=pm_id,
                card_brand=pm_id.rsplit("_", 1)[-1],
                card_last4="4242",
                is_default=True,
            )

        if not leads_repo.list_customer_leads(db, customer.id):
            for title, description, location, postcode in LEADS:
                leads_repo.create_lead(
                    db,
                    customer_id=customer.id,
                    customer_name=customer.full_name,
                    customer_email=customer.email,
                    customer_phone="07700 900123",
                    job_title=title,
                    job_description=description,
                    location=location,
                    postcode=postcode,
                    lead_price=Decimal(config.default_lead_price),
                    max_payments=config.max_payments_per_lead,
                )
            print(f"+ {len(LEADS)} leads voor {customer.email}")

        db.commit()
        print(f"Klaar. Wachtwoord voor alle accounts: {PASSWORD}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
