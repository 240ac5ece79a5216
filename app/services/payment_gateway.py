# app/services/payment_gateway.py
"""
Thin wrapper around the Stripe SDK.

Everything the rest of the app needs from the payment provider goes through
``StripeGateway``: charging a saved card for lead access, looking up and
refunding those charges, verifying webhook deliveries and managing the cards
a painter keeps on file. Provider errors never leak out as ``stripe``
exceptions; card/request problems become ``PaymentFailed`` and
connectivity/auth/rate-limit problems become ``ExternalServiceError``.
Nothing here retries on its own.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional

import stripe
from sqlalchemy.orm import Session

from app.core.errors import (
    ExternalServiceError,
    PaymentFailed,
    PaymentMethodNotFound,
    SignatureError,
)
from app.core.logging_config import get_logger
from app.core.settings import settings
from app.models.painter import Painter, PainterPaymentMethod
from app.repositories import painters as painters_repo

log = get_logger(__name__)

SUCCEEDED = "succeeded"
REQUIRES_ACTION = "requires_action"
PROCESSING = "processing"
_DECLINED = ("requires_payment_method", "canceled")


@dataclass
class ChargeResult:
    intent_id: str
    status: str
    client_secret: Optional[str] = None
    failure_reason: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == SUCCEEDED

    @property
    def requires_action(self) -> bool:
        return self.status in (REQUIRES_ACTION, "requires_confirmation")


@dataclass
class WebhookEvent:
    id: str
    type: str
    data_object: dict

    @property
    def intent_id(self) -> Optional[str]:
        return self.data_object.get("id")

    @property
    def metadata(self) -> dict:
        return self.data_object.get("metadata") or {}

    @property
    def failure_reason(self) -> Optional[str]:
        err = self.data_object.get("last_payment_error") or {}
        return err.get("message")


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _translate(e: Exception) -> Exception:
    if isinstance(e, stripe.CardError):
        return PaymentFailed(e.user_message or "Your card was declined.", code=e.code)
    if isinstance(e, stripe.InvalidRequestError):
        return PaymentFailed(e.user_message or "The payment could not be processed.")
    if isinstance(
        e,
        (
            stripe.APIConnectionError,
            stripe.RateLimitError,
            stripe.AuthenticationError,
            stripe.APIError,
        ),
    ):
        return ExternalServiceError()
    return PaymentFailed(getattr(e, "user_message", None) or "Payment provider error.")


class StripeGateway:
    def __init__(
        self,
        secret_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        currency: Optional[str] = None,
        return_url: Optional[str] = None,
        webhook_tolerance: Optional[int] = None,
    ):
        self.secret_key = secret_key if secret_key is not None else settings.STRIPE_SECRET_KEY
        self.webhook_secret = (
            webhook_secret if webhook_secret is not None else settings.STRIPE_WEBHOOK_SECRET
        )
        self.currency = (currency or settings.STRIPE_CURRENCY).lower()
        self.return_url = return_url or settings.PAYMENT_RETURN_URL
        self.webhook_tolerance = (
            webhook_tolerance
            if webhook_tolerance is not None
            else settings.STRIPE_WEBHOOK_TOLERANCE_SEC
        )
        if self.secret_key:
            stripe.api_key = self.secret_key

    def _call(self, op: str, fn, *args, **kwargs):
        if not self.secret_key:
            log.error("stripe_not_configured", op=op)
            raise ExternalServiceError("Payments are not configured.")
        try:
            return fn(*args, **kwargs)
        except stripe.StripeError as e:
            log.warning(
                "stripe_error",
                op=op,
                error_type=type(e).__name__,
                code=getattr(e, "code", None),
                request_id=getattr(e, "request_id", None),
            )
            raise _translate(e) from e

    # ------------------------------------------------------------------
    # charges
    # ------------------------------------------------------------------

    def create_charge(
        self,
        painter: Painter,
        amount: Decimal,
        payment_method_id: str,
        metadata: dict[str, Any],
        idempotency_key: str,
        customer_id: Optional[str] = None,
    ) -> ChargeResult:
        """Create and confirm a PaymentIntent on the painter's saved card."""
        intent = self._call(
            "payment_intent.create",
            stripe.PaymentIntent.create,
            amount=to_minor_units(amount),
            currency=self.currency,
            customer=customer_id or painter.stripe_customer_id,
            payment_method=payment_method_id,
            payment_method_types=["card"],
            confirm=True,
            return_url=self.return_url,
            description=f"Lead access #{metadata.get('lead_id')}",
            metadata={k: str(v) for k, v in metadata.items()},
            receipt_email=painter.email,
            idempotency_key=idempotency_key,
        )
        result = self._to_result(intent)
        if result.status in _DECLINED:
            raise PaymentFailed(result.failure_reason or "Your card was declined.")
        return result

    def retrieve_charge(self, intent_id: str) -> ChargeResult:
        intent = self._call("payment_intent.retrieve", stripe.PaymentIntent.retrieve, intent_id)
        return self._to_result(intent)

    def refund_charge(self, intent_id: str, reason: str) -> str:
        refund = self._call(
            "refund.create",
            stripe.Refund.create,
            payment_intent=intent_id,
            metadata={"reason": reason},
            idempotency_key=f"refund-{intent_id}",
        )
        log.info("charge_refunded", intent_id=intent_id, refund_id=refund.id, reason=reason)
        return refund.id

    @staticmethod
    def _to_result(intent) -> ChargeResult:
        error = getattr(intent, "last_payment_error", None)
        return ChargeResult(
            intent_id=intent.id,
            status=intent.status,
            client_secret=getattr(intent, "client_secret", None),
            failure_reason=getattr(error, "message", None) if error else None,
        )

    # ------------------------------------------------------------------
    # webhooks
    # ------------------------------------------------------------------

    def verify_webhook_signature(
        self, raw_payload: bytes, signature_header: Optional[str], secret: Optional[str] = None
    ) -> bool:
        secret = secret or self.webhook_secret
        if not signature_header or not secret:
            return False
        try:
            payload = raw_payload.decode("utf-8") if isinstance(raw_payload, bytes) else raw_payload
            stripe.WebhookSignature.verify_header(
                payload, signature_header, secret, tolerance=self.webhook_tolerance
            )
        except (stripe.SignatureVerificationError, UnicodeDecodeError):
            return False
        return True

    def parse_webhook_event(
        self, raw_payload: bytes, signature_header: Optional[str]
    ) -> WebhookEvent:
        if not self.verify_webhook_signature(raw_payload, signature_header):
            raise SignatureError()
        try:
            body = json.loads(raw_payload)
        except ValueError as e:
            raise SignatureError("Malformed webhook payload.") from e
        data_object = (body.get("data") or {}).get("object") or {}
        return WebhookEvent(id=body.get("id", ""), type=body.get("type", ""), data_object=data_object)

    # ------------------------------------------------------------------
    # payment methods (scoped per painter)
    # ------------------------------------------------------------------

    def _create_customer(self, painter: Painter) -> str:
        customer = self._call(
            "customer.create",
            stripe.Customer.create,
            email=painter.email,
            name=painter.company_name,
            metadata={"painter_id": str(painter.id)},
            idempotency_key=f"painter-customer-{painter.id}",
        )
        return customer.id

    def _attach_payment_method(self, customer_id: str, provider_pm_id: str) -> dict:
        pm = self._call(
            "payment_method.attach",
            stripe.PaymentMethod.attach,
            provider_pm_id,
            customer=customer_id,
        )
        card = getattr(pm, "card", None)
        return {
            "type": getattr(pm, "type", "card") or "card",
            "brand": getattr(card, "brand", None) if card else None,
            "last4": getattr(card, "last4", None) if card else None,
        }

    def _set_default_on_customer(self, customer_id: str, provider_pm_id: str) -> None:
        self._call(
            "customer.modify",
            stripe.Customer.modify,
            customer_id,
            invoice_settings={"default_payment_method": provider_pm_id},
        )

    def _detach_payment_method(self, provider_pm_id: str) -> None:
        self._call("payment_method.detach", stripe.PaymentMethod.detach, provider_pm_id)

    def ensure_customer(self, db: Session, painter: Painter) -> str:
        if painter.stripe_customer_id:
            return painter.stripe_customer_id
        customer_id = self._create_customer(painter)
        painters_repo.update_painter(db, painter.id, stripe_customer_id=customer_id)
        log.info("stripe_customer_created", painter_id=painter.id, customer_id=customer_id)
        return customer_id

    def save_payment_method(
        self, db: Session, painter: Painter, provider_pm_id: str, is_default: bool = False
    ) -> PainterPaymentMethod:
        customer_id = self.ensure_customer(db, painter)
        card = self._attach_payment_method(customer_id, provider_pm_id)

        # eerste kaart wordt automatisch de standaard
        if not painters_repo.list_payment_methods(db, painter.id):
            is_default = True
        if is_default:
            self._set_default_on_customer(customer_id, provider_pm_id)

        method = painters_repo.insert_payment_method(
            db,
            painter_id=painter.id,
            provider_customer_id=customer_id,
            provider_pm_id=provider_pm_id,
            payment_method_type=card["type"],
            card_brand=card["brand"],
            card_last4=card["last4"],
            is_default=is_default,
        )
        db.commit()
        log.info("payment_method_saved", painter_id=painter.id, pm_id=provider_pm_id)
        return method

    def list_payment_methods(self, db: Session, painter_id: int) -> list[PainterPaymentMethod]:
        return painters_repo.list_payment_methods(db, painter_id)

    def remove_payment_method(self, db: Session, painter_id: int, provider_pm_id: str) -> None:
        method = painters_repo.get_payment_method(db, painter_id, provider_pm_id)
        if method is None:
            raise PaymentMethodNotFound()
        self._detach_payment_method(provider_pm_id)
        painters_repo.deactivate_payment_method(db, method)
        db.commit()
        log.info("payment_method_removed", painter_id=painter_id, pm_id=provider_pm_id)


def get_gateway() -> StripeGateway:
    return StripeGateway()
