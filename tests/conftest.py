import os
import threading

# settings worden bij import gelezen: eerst env zetten
os.environ.setdefault("ENVIRONMENT", "local")
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_painter_leads.db")
os.environ.setdefault("ADMIN_EMAIL", "admin@example.com")
os.environ.pop("SMTP_HOST", None)

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app import models  # noqa: F401  (registreert SQLAlchemy modellen)
from app.auth.deps import principal_for_user
from app.auth.passwords import hash_password
from app.auth.sessions import issue_session
from app.core.context import MarketplaceConfig, RequestContext
from app.core.rate_limit import limiter
from app.db import Base, get_db
from app.dependencies import get_notifier, get_payment_gateway
from app.main import app
from app.models.lead import AccessSource
from app.models.painter import Painter, PainterPaymentMethod
from app.models.user import Role, User
from app.repositories import config as config_repo
from app.repositories import leads as leads_repo
from app.repositories import payments as payments_repo
from app.services.payment_gateway import ChargeResult, StripeGateway
from helpers import WEBHOOK_SECRET

limiter.enabled = False


# ----------------------------------------------------
# Fakes
# ----------------------------------------------------
class FakeGateway(StripeGateway):
    """StripeGateway met de netwerk-calls vervangen; de rest is echte code."""

    def __init__(self):
        super().__init__(
            secret_key="sk_test_fake",
            webhook_secret=WEBHOOK_SECRET,
            currency="gbp",
            return_url="http://testserver/return",
        )
        self.next_status = "succeeded"
        self.fail_with = None
        self.refund_fails_with = None
        self.on_charge = None
        self.charges = []
        self.intents = {}
        self.refunds = []
        self.detached = []
        self._by_key = {}
        self._lock = threading.Lock()

    def create_charge(self, painter, amount, payment_method_id, metadata, idempotency_key, customer_id=None):
        self.charges.append(
            {
                "painter_id": painter.id,
                "amount": amount,
                "payment_method_id": payment_method_id,
                "customer_id": customer_id,
                "metadata": dict(metadata),
                "idempotency_key": idempotency_key,
            }
        )
        if self.on_charge is not None:
            self.on_charge(metadata)
        if self.fail_with is not None:
            raise self.fail_with

        # zelfde idempotency key -> zelfde intent, net als bij Stripe
        with self._lock:
            if idempotency_key in self._by_key:
                return self.intents[self._by_key[idempotency_key]]

            intent_id = f"pi_test_{len(self.intents) + 1}"
            result = ChargeResult(
                intent_id=intent_id,
                status=self.next_status,
                client_secret=f"{intent_id}_secret_abc",
            )
            self.intents[intent_id] = result
            self._by_key[idempotency_key] = intent_id
            return result

    def retrieve_charge(self, intent_id):
        return self.intents[intent_id]

    def settle(self, intent_id, status="succeeded"):
        self.intents[intent_id].status = status

    def refund_charge(self, intent_id, reason):
        if self.refund_fails_with is not None:
            raise self.refund_fails_with
        self.refunds.append((intent_id, reason))
        return f"re_{intent_id}"

    def _create_customer(self, painter):
        return f"cus_test_{painter.id}"

    def _attach_payment_method(self, customer_id, provider_pm_id):
        return {"type": "card", "brand": "visa", "last4": "4242"}

    def _set_default_on_customer(self, customer_id, provider_pm_id):
        return None

    def _detach_payment_method(self, provider_pm_id):
        self.detached.append(provider_pm_id)


class RecordingNotifier:
    def __init__(self, fail=False):
        self.events = []
        self.fail = fail

    def notify(self, event_type, recipients, template_data):
        self.events.append((event_type, list(recipients), dict(template_data)))
        if self.fail:
            raise RuntimeError("smtp down")

    def types(self):
        return [e[0] for e in self.events]

    def of(self, event_type):
        return [e for e in self.events if e[0] == event_type]


# ----------------------------------------------------
# Database
# ----------------------------------------------------
@pytest.fixture
def engine(tmp_path):
    eng = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def broken_notifier():
    return RecordingNotifier(fail=True)


@pytest.fixture
def client(session_factory, gateway, notifier):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()


# ----------------------------------------------------
# Factories
# ----------------------------------------------------
@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role=Role.CUSTOMER, email=None, password="secret123", full_name=None, is_active=True):
        counter["n"] += 1
        user = User(
            email=email or f"{role.value}{counter['n']}@example.com",
            password_hash=hash_password(password),
            full_name=full_name or f"{role.value.title()} {counter['n']}",
            role=role.value,
            is_active=is_active,
        )
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def make_painter(db, make_user):
    def _make(status="active", card=True, company_name=None):
        user = make_user(Role.PAINTER)
        painter = Painter(
            user_id=user.id,
            company_name=company_name or f"{user.full_name} Decorating",
            contact_name=user.full_name,
            email=user.email,
            status=status,
            stripe_customer_id=f"cus_seed_{user.id}",
        )
        db.add(painter)
        db.flush()
        if card:
            db.add(
                PainterPaymentMethod(
                    painter_id=painter.id,
                    provider_customer_id=painter.stripe_customer_id,
                    provider_payment_method_id=f"pm_card_{painter.id}",
                    payment_method_type="card",
                    card_brand="visa",
                    card_last4="4242",
                    is_default=True,
                    is_active=True,
                )
            )
        db.commit()
        return user, painter

    return _make


@pytest.fixture
def make_lead(db):
    def _make(customer=None, max_payments=3, lead_price="15.00", job_title="Repaint living room"):
        lead = leads_repo.create_lead(
            db,
            customer_id=customer.id if customer else None,
            customer_name=customer.full_name if customer else "Jane Doe",
            customer_email=customer.email if customer else "jane@example.com",
            customer_phone="07700 900123",
            job_title=job_title,
            job_description="Two coats on walls and ceiling.",
            location="Leeds",
            postcode="LS1 4AP",
            lead_price=Decimal(lead_price),
            max_payments=max_payments,
        )
        db.commit()
        return lead

    return _make


@pytest.fixture
def grant(db):
    def _grant(lead, painter):
        payments_repo.grant_access(db, lead.id, painter.id, source=AccessSource.MANUAL)
        db.commit()

    return _grant


@pytest.fixture
def ctx_for(db):
    def _ctx(user=None, **config):
        principal = principal_for_user(db, user) if user is not None else None
        return RequestContext(db=db, config=MarketplaceConfig(**config), principal=principal)

    return _ctx


@pytest.fixture
def auth_headers(db):
    def _headers(user):
        return {"Authorization": f"Bearer {issue_session(db, user)}"}

    return _headers


@pytest.fixture
def set_config(db):
    def _set(**values):
        config_repo.upsert_config(db, MarketplaceConfig(**values).as_entries())
        db.commit()

    return _set
