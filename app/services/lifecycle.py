# app/services/lifecycle.py
"""
Lead lifecycle: claims (paid lead access), bids and lead decisions.

Lead:  open -> open (payment_active=False, at the cap) -> assigned -> closed
Bid:   pending -> accepted
       pending -> rejected -> pending (resubmit)
       pending -> withdrawn

Every state change is a guarded UPDATE (``... WHERE status = <expected>``), so
concurrent requests and webhook replays cannot move a row twice. The payment
cap is enforced by a compare-and-swap on ``leads.payment_count``.

Notifications are best effort. A failing notifier is logged and never undoes
or fails the operation that triggered it.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.clock import utcnow
from app.core.context import MarketplaceConfig, RequestContext
from app.core.errors import (
    AlreadyClaimed,
    AuthorizationError,
    BidNotFound,
    DuplicateBid,
    ExternalServiceError,
    InvalidState,
    LeadNotFound,
    LeadNotOpen,
    NoAccess,
    NotFound,
    NotOwner,
    NotPending,
    PaymentCapReached,
    PaymentFailed,
    PaymentMethodNotFound,
    PaymentsDisabled,
    ReconciliationRequired,
    SignatureError,
    UnknownPaymentIntent,
    ValidationError,
)
from app.core.logging_config import get_logger
from app.core.settings import settings
from app.models.bid import Bid, BidStatus
from app.models.lead import AccessSource, Lead, LeadPayment, LeadStatus, PaymentStatus
from app.models.painter import Painter
from app.models.user import Role
from app.observability.metrics import bid_counter, claim_counter, webhook_counter
from app.repositories import bids as bids_repo
from app.repositories import leads as leads_repo
from app.repositories import painters as painters_repo
from app.repositories import payments as payments_repo
from app.services.payment_gateway import ChargeResult, WebhookEvent

log = get_logger(__name__)

EVENT_SUCCEEDED = "payment_intent.succeeded"
EVENT_FAILED = "payment_intent.payment_failed"

REFUNDED_AFTER_FAILURE = "This payment had already failed; the charge has been refunded. Please try again."


# ----------------------------------------------------------------------
# result types
# ----------------------------------------------------------------------


@dataclass
class ClaimResult:
    success: bool
    claim_id: int
    status: str
    payment_number: Optional[int] = None
    requires_action: bool = False
    client_secret: Optional[str] = None
    payment_intent_id: Optional[str] = None


@dataclass
class BidFields:
    bid_amount: Any
    message: str
    timeline: str
    materials_included: bool = False
    warranty_months: int = 0
    warranty_details: Optional[str] = None
    project_approach: Optional[str] = None


@dataclass
class _Finalized:
    outcome: str  # finalized | replay | refunded
    payment_number: Optional[int] = None


# ----------------------------------------------------------------------
# helpers
# ----------------------------------------------------------------------


def _notify(notifier, event_type: str, recipients, data: dict) -> None:
    if notifier is None:
        return
    try:
        notifier.notify(event_type, recipients, data)
    except Exception:
        log.exception("notify_failed", event_type=event_type)


def _require_lead(db: Session, lead_id: int) -> Lead:
    lead = leads_repo.get_lead_by_id(db, lead_id)
    if lead is None:
        raise LeadNotFound()
    return lead


def _require_bid(db: Session, bid_id: int) -> Bid:
    bid = bids_repo.get_bid_by_id(db, bid_id)
    if bid is None:
        raise BidNotFound()
    return bid


def _current_painter(ctx: RequestContext) -> Painter:
    principal = ctx.require_active_painter()
    painter = painters_repo.get_painter_by_id(ctx.db, principal.painter_id)
    if painter is None or not painter.is_active:
        raise AuthorizationError("Your painter account is not active.")
    return painter


def _require_lead_owner(ctx: RequestContext, lead: Lead) -> None:
    principal = ctx.require(Role.CUSTOMER, Role.ADMIN)
    if principal.is_admin:
        return
    if lead.customer_id != principal.user_id:
        raise AuthorizationError("This lead belongs to another customer.")


def _painter_name(painter: Optional[Painter]) -> str:
    if painter is None:
        return "A painter"
    return painter.company_name or painter.contact_name or painter.email


def _money(value) -> str:
    return f"{Decimal(str(value)):.2f}"


def parse_amount(value: Any, field: str = "bid_amount") -> Decimal:
    try:
        amount = Decimal(str(value).strip().lstrip("£"))
    except (InvalidOperation, AttributeError):
        raise ValidationError(errors={field: "Please enter a valid amount."})
    if not amount.is_finite():
        raise ValidationError(errors={field: "Please enter a valid amount."})
    if amount != amount.quantize(Decimal("0.01")):
        raise ValidationError(errors={field: "Amounts can have at most two decimals."})
    return amount


def _check_amount(config: MarketplaceConfig, amount: Decimal) -> Optional[str]:
    if amount <= 0:
        return "Please enter a valid bid amount greater than £0."
    if amount < config.bid_min_amount:
        return f"Minimum bid amount is £{config.bid_min_amount:.2f}."
    if amount > config.bid_max_amount:
        return (
            f"Maximum bid amount is £{config.bid_max_amount:,.2f}. "
            "For larger projects, please contact us directly."
        )
    return None


def validate_bid_fields(config: MarketplaceConfig, fields: BidFields) -> BidFields:
    """Normalised copy of ``fields``, or ``ValidationError`` listing every problem."""
    errors: dict[str, str] = {}

    amount: Optional[Decimal] = None
    try:
        amount = parse_amount(fields.bid_amount)
    except ValidationError as e:
        errors.update(e.errors)
    if amount is not None:
        problem = _check_amount(config, amount)
        if problem:
            errors["bid_amount"] = problem

    message = (fields.message or "").strip()
    if len(message) < config.bid_message_min_length:
        errors["message"] = (
            "Please provide a detailed message "
            f"(minimum {config.bid_message_min_length} characters) explaining your approach."
        )
    elif len(message) > config.bid_message_max_length:
        errors["message"] = f"Message cannot exceed {config.bid_message_max_length:,} characters."

    timeline = (fields.timeline or "").strip()
    if not timeline:
        errors["timeline"] = "Please specify your estimated project timeline."

    warranty_months = int(fields.warranty_months or 0)
    warranty_details = (fields.warranty_details or "").strip() or None
    if warranty_months < 0:
        errors["warranty_months"] = "Warranty period cannot be negative."
    elif warranty_months > 0 and not warranty_details:
        errors["warranty_details"] = "Please provide warranty details if offering a warranty period."

    if errors:
        raise ValidationError(errors=errors)

    return BidFields(
        bid_amount=amount,
        message=message,
        timeline=timeline,
        materials_included=bool(fields.materials_included),
        warranty_months=warranty_months,
        warranty_details=warranty_details,
        project_approach=(fields.project_approach or "").strip() or None,
    )


# ----------------------------------------------------------------------
# claims
# ----------------------------------------------------------------------


def claim_lead(
    ctx: RequestContext,
    lead_id: int,
    payment_method_ref: Optional[str] = None,
    *,
    gateway,
    notifier=None,
) -> ClaimResult:
    """
    Pay for access to a lead.

    A pending claim row is written before any money moves; the partial unique
    index on (lead, painter) turns a concurrent duplicate into
    ``AlreadyClaimed``. A pending claim left behind by an earlier attempt is
    resumed with the same idempotency key instead of charging twice.
    """
    db = ctx.db
    painter = _current_painter(ctx)
    if not ctx.config.payment_enabled:
        raise PaymentsDisabled()

    lead = _require_lead(db, lead_id)
    if lead.status != LeadStatus.OPEN.value:
        raise LeadNotOpen()

    existing = payments_repo.get_active_claim(db, lead.id, painter.id)
    if existing is not None and existing.payment_status == PaymentStatus.SUCCEEDED.value:
        claim_counter.labels(result="already_claimed").inc()
        raise AlreadyClaimed()
    if existing is None and payments_repo.has_lead_access(db, lead.id, painter.id):
        claim_counter.labels(result="already_claimed").inc()
        raise AlreadyClaimed("You already have access to this lead.")

    if existing is not None:
        log.info("claim_resumed", claim_id=existing.id, lead_id=lead.id, painter_id=painter.id)
        return _resume_claim(ctx, lead, painter, existing, gateway=gateway, notifier=notifier)

    if not lead.payment_active or lead.payment_count >= lead.max_payments:
        claim_counter.labels(result="cap_reached").inc()
        raise PaymentCapReached()

    if payment_method_ref:
        method = painters_repo.get_payment_method(db, painter.id, payment_method_ref)
        if method is None:
            raise PaymentMethodNotFound()
    else:
        method = painters_repo.get_default_payment_method(db, painter.id)
        if method is None:
            raise ValidationError(
                "Add a payment method before purchasing leads.",
                errors={"payment_method_id": "No saved payment method."},
            )

    try:
        claim = payments_repo.insert_claim(
            db,
            lead_id=lead.id,
            painter_id=painter.id,
            amount=lead.lead_price,
            currency=settings.STRIPE_CURRENCY,
            provider_customer_id=method.provider_customer_id,
            payment_method_id=method.provider_payment_method_id,
        )
        db.commit()
    except IntegrityError:
        db.rollback()
        claim_counter.labels(result="already_claimed").inc()
        raise AlreadyClaimed()

    log.info("claim_created", claim_id=claim.id, lead_id=lead.id, painter_id=painter.id)
    return _charge_claim(ctx, lead, painter, claim, gateway=gateway, notifier=notifier)


def _charge_claim(ctx, lead: Lead, painter: Painter, claim: LeadPayment, *, gateway, notifier) -> ClaimResult:
    db = ctx.db
    try:
        charge = gateway.create_charge(
            painter,
            claim.amount,
            claim.payment_method_id,
            metadata={
                "lead_id": lead.id,
                "painter_id": painter.id,
                "lead_payment_id": claim.id,
            },
            idempotency_key=f"lead-payment-{claim.id}",
            customer_id=claim.provider_customer_id,
        )
    except PaymentFailed as e:
        _mark_failed(db, claim, e.message, lead=lead, painter=painter, notifier=notifier)
        raise
    except ExternalServiceError:
        # onbekend of er geld is afgeschreven: claim blijft pending, webhook of retry beslist
        claim_counter.labels(result="error").inc()
        log.error("claim_charge_unknown", claim_id=claim.id, lead_id=lead.id)
        raise

    _store_intent(db, claim, charge)
    return _apply_charge(ctx, lead, painter, claim, charge, gateway=gateway, notifier=notifier)


def _resume_claim(ctx, lead: Lead, painter: Painter, claim: LeadPayment, *, gateway, notifier) -> ClaimResult:
    if claim.provider_intent_id is None:
        # vorige poging stierf voor/tijdens de charge: zelfde idempotency key
        return _charge_claim(ctx, lead, painter, claim, gateway=gateway, notifier=notifier)
    charge = gateway.retrieve_charge(claim.provider_intent_id)
    return _apply_charge(ctx, lead, painter, claim, charge, gateway=gateway, notifier=notifier)


def _store_intent(db: Session, claim: LeadPayment, charge: ChargeResult) -> None:
    if not charge.intent_id or claim.provider_intent_id == charge.intent_id:
        return
    try:
        payments_repo.set_intent_id(db, claim, charge.intent_id)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log.error(
            "claim_intent_not_stored",
            claim_id=claim.id,
            intent_id=charge.intent_id,
            charge_status=charge.status,
        )
        if charge.succeeded:
            raise ReconciliationRequired(intent_id=charge.intent_id) from e
        raise ExternalServiceError() from e


def _apply_charge(ctx, lead: Lead, painter: Painter, claim: LeadPayment, charge: ChargeResult, *, gateway, notifier) -> ClaimResult:
    if charge.succeeded:
        done = _finalize(ctx.db, claim, gateway=gateway, notifier=notifier)
        if done.outcome == "refunded":
            raise PaymentFailed(REFUNDED_AFTER_FAILURE)
        claim_counter.labels(result="succeeded").inc()
        return ClaimResult(
            success=True,
            claim_id=claim.id,
            status=PaymentStatus.SUCCEEDED.value,
            payment_number=done.payment_number,
            payment_intent_id=charge.intent_id,
        )

    if charge.requires_action:
        claim_counter.labels(result="requires_action").inc()
        log.info("claim_requires_action", claim_id=claim.id, intent_id=charge.intent_id)
        return ClaimResult(
            success=False,
            claim_id=claim.id,
            status=PaymentStatus.PENDING.value,
            requires_action=True,
            client_secret=charge.client_secret,
            payment_intent_id=charge.intent_id,
        )

    if charge.status == "processing":
        return ClaimResult(
            success=False,
            claim_id=claim.id,
            status=PaymentStatus.PENDING.value,
            payment_intent_id=charge.intent_id,
        )

    reason = charge.failure_reason or "Your card was declined."
    _mark_failed(ctx.db, claim, reason, lead=lead, painter=painter, notifier=notifier)
    raise PaymentFailed(reason)


def _mark_failed(db: Session, claim: LeadPayment, reason: str, *, lead=None, painter=None, notifier=None) -> bool:
    moved = payments_repo.set_payment_status(
        db,
        claim.id,
        PaymentStatus.PENDING,
        PaymentStatus.FAILED,
        failure_reason=(reason or "")[:500],
    )
    db.commit()
    if not moved:
        return False
    claim_counter.labels(result="failed").inc()
    log.info("claim_failed", claim_id=claim.id, lead_id=claim.lead_id, reason=reason)

    lead = lead or leads_repo.get_lead_by_id(db, claim.lead_id)
    painter = painter or painters_repo.get_painter_by_id(db, claim.painter_id)
    if painter is not None:
        _notify(
            notifier,
            "payment_failed",
            [painter.email],
            {
                "painter_name": _painter_name(painter),
                "lead_id": claim.lead_id,
                "job_title": lead.job_title if lead else "",
                "amount": _money(claim.amount),
                "reason": reason,
            },
        )
    return True


def _finalize(db: Session, claim: LeadPayment, *, gateway, notifier) -> _Finalized:
    """
    Book a charge the provider reports as succeeded: pending -> succeeded,
    CAS-increment of the lead's payment_count, payment_number, access grant.

    Safe to call from the request path and the webhook at the same time;
    whoever loses the guarded status update sees ``replay``. When the cap was
    reached in the meantime the charge is refunded and ``PaymentCapReached``
    raised.
    """
    intent_id = claim.provider_intent_id
    try:
        if not payments_repo.set_payment_status(
            db, claim.id, PaymentStatus.PENDING, PaymentStatus.SUCCEEDED
        ):
            db.rollback()
            current = payments_repo.get_payment_by_id(db, claim.id, fresh=True)
            if current is not None and current.payment_status == PaymentStatus.SUCCEEDED.value:
                return _Finalized("replay", current.payment_number)
            _refund_after_failure(claim, gateway=gateway)
            return _Finalized("refunded")

        new_count = leads_repo.increment_payment_count(db, claim.lead_id)
        if new_count is None:
            db.rollback()
            _refund_cap_lost(db, claim, gateway=gateway)

        claim.payment_number = new_count
        payments_repo.grant_access(
            db,
            claim.lead_id,
            claim.painter_id,
            source=AccessSource.PAYMENT,
            payment_id=claim.id,
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        log.error(
            "payment_bookkeeping_failed",
            claim_id=claim.id,
            intent_id=intent_id,
            lead_id=claim.lead_id,
            painter_id=claim.painter_id,
        )
        raise ReconciliationRequired(intent_id=intent_id) from e

    log.info(
        "lead_claimed",
        claim_id=claim.id,
        lead_id=claim.lead_id,
        painter_id=claim.painter_id,
        payment_number=new_count,
    )
    _notify_claimed(db, claim, new_count, notifier)
    return _Finalized("finalized", new_count)


def _refund_after_failure(claim: LeadPayment, *, gateway) -> None:
    """
    Provider reports success for a claim we already marked failed (e.g. a
    3-D Secure retry after ``payment_failed``). No access is granted, so the
    money goes back. The refund key is per intent: repeats are no-ops.
    """
    intent_id = claim.provider_intent_id
    log.warning("late_success_on_failed_claim", claim_id=claim.id, lead_id=claim.lead_id, intent_id=intent_id)
    if not intent_id:
        raise ReconciliationRequired(claim_id=claim.id)
    try:
        gateway.refund_charge(intent_id, reason="claim_already_failed")
    except (ExternalServiceError, PaymentFailed) as e:
        log.error("late_success_refund_failed", claim_id=claim.id, intent_id=intent_id)
        raise ReconciliationRequired(intent_id=intent_id) from e
    claim_counter.labels(result="refunded").inc()


def _refund_cap_lost(db: Session, claim: LeadPayment, *, gateway) -> None:
    """Charge went through but the last slot was taken meanwhile: refund and fail."""
    intent_id = claim.provider_intent_id
    log.warning("claim_cap_lost", claim_id=claim.id, lead_id=claim.lead_id, intent_id=intent_id)
    try:
        gateway.refund_charge(intent_id, reason="lead_payment_cap_reached")
    except (ExternalServiceError, PaymentFailed) as e:
        log.error("cap_lost_refund_failed", claim_id=claim.id, intent_id=intent_id)
        raise ReconciliationRequired(intent_id=intent_id) from e

    payments_repo.set_payment_status(
        db,
        claim.id,
        PaymentStatus.PENDING,
        PaymentStatus.FAILED,
        failure_reason="Lead reached its payment limit; charge refunded.",
    )
    db.commit()
    claim_counter.labels(result="refunded").inc()
    raise PaymentCapReached("This lead filled up while your payment was processed. You have been refunded.")


def _notify_claimed(db: Session, claim: LeadPayment, payment_number: int, notifier) -> None:
    lead = leads_repo.get_lead_by_id(db, claim.lead_id)
    painter = painters_repo.get_painter_by_id(db, claim.painter_id)
    if lead is None:
        return
    data = {
        "painter_name": _painter_name(painter),
        "job_title": lead.job_title,
        "lead_id": lead.id,
        "amount": _money(claim.amount),
        "payment_number": payment_number,
        "max_payments": lead.max_payments,
    }
    if painter is not None:
        _notify(notifier, "lead_access_granted", [painter.email], data)
    _notify(notifier, "admin_payment_alert", [settings.ADMIN_EMAIL], data)

    if payment_number >= lead.max_payments:
        log.info("lead_payments_deactivated", lead_id=lead.id, max_payments=lead.max_payments)
        _notify(
            notifier,
            "lead_deactivated",
            [lead.customer_email, settings.ADMIN_EMAIL],
            {"lead_id": lead.id, "job_title": lead.job_title, "max_payments": lead.max_payments},
        )


def confirm_payment(ctx: RequestContext, payment_intent_id: str, *, gateway, notifier=None) -> ClaimResult:
    """Painter-side re-check after 3-D Secure. Idempotent."""
    db = ctx.db
    painter = _current_painter(ctx)
    claim = payments_repo.get_payment_by_intent(db, payment_intent_id)
    if claim is None or claim.painter_id != painter.id:
        raise NotFound("Payment not found.")

    if claim.payment_status == PaymentStatus.SUCCEEDED.value:
        return ClaimResult(
            success=True,
            claim_id=claim.id,
            status=claim.payment_status,
            payment_number=claim.payment_number,
            payment_intent_id=payment_intent_id,
        )
    charge = gateway.retrieve_charge(payment_intent_id)
    if claim.payment_status == PaymentStatus.FAILED.value:
        if charge.succeeded:
            _refund_after_failure(claim, gateway=gateway)
            raise PaymentFailed(REFUNDED_AFTER_FAILURE)
        raise PaymentFailed(claim.failure_reason)

    lead = _require_lead(db, claim.lead_id)
    return _apply_charge(ctx, lead, painter, claim, charge, gateway=gateway, notifier=notifier)


def _claim_for_event(db: Session, event: WebhookEvent) -> Optional[LeadPayment]:
    if event.intent_id:
        claim = payments_repo.get_payment_by_intent(db, event.intent_id)
        if claim is not None:
            return claim

    # request stierf voordat het intent id was opgeslagen
    raw_id = event.metadata.get("lead_payment_id")
    if not raw_id or not str(raw_id).isdigit():
        return None
    claim = payments_repo.get_payment_by_id(db, int(raw_id))
    if claim is None or claim.provider_intent_id not in (None, event.intent_id):
        return None
    if claim.provider_intent_id is None and event.intent_id:
        payments_repo.set_intent_id(db, claim, event.intent_id)
        db.commit()
    return claim


def confirm_payment_webhook(
    ctx: RequestContext,
    raw_payload: bytes,
    signature: Optional[str],
    *,
    gateway,
    notifier=None,
) -> dict:
    """
    Handle a signed provider event. Returns normally only once the event has
    been fully (and idempotently) processed; ``SignatureError`` and
    ``UnknownPaymentIntent`` make the provider retry.
    """
    db = ctx.db
    try:
        event = gateway.parse_webhook_event(raw_payload, signature)
    except SignatureError:
        webhook_counter.labels(event_type="unknown", result="bad_signature").inc()
        log.warning("webhook_bad_signature")
        raise

    if event.type not in (EVENT_SUCCEEDED, EVENT_FAILED):
        webhook_counter.labels(event_type=event.type, result="ignored").inc()
        log.info("webhook_ignored", event_id=event.id, event_type=event.type)
        return {"success": True, "event_type": event.type, "result": "ignored"}

    claim = _claim_for_event(db, event)
    if claim is None:
        webhook_counter.labels(event_type=event.type, result="unknown_intent").inc()
        log.warning("webhook_unknown_intent", event_id=event.id, intent_id=event.intent_id)
        raise UnknownPaymentIntent()

    if event.type == EVENT_SUCCEEDED:
        try:
            done = _finalize(db, claim, gateway=gateway, notifier=notifier)
            result = "processed" if done.outcome == "finalized" else done.outcome
        except PaymentCapReached:
            result = "refunded"
    else:
        reason = event.failure_reason or "Payment failed."
        result = "processed" if _mark_failed(db, claim, reason, notifier=notifier) else "replay"

    webhook_counter.labels(event_type=event.type, result=result).inc()
    log.info(
        "webhook_processed",
        event_id=event.id,
        event_type=event.type,
        claim_id=claim.id,
        result=result,
    )
    return {"success": True, "event_type": event.type, "result": result}


def grant_manual_access(ctx: RequestContext, lead_id: int, painter_id: int) -> dict:
    """Admin-only grant without payment (historical grants). payment_count is untouched."""
    principal = ctx.require(Role.ADMIN)
    db = ctx.db
    lead = _require_lead(db, lead_id)
    painter = painters_repo.get_painter_by_id(db, painter_id)
    if painter is None:
        raise NotFound("Painter not found.")

    existed = payments_repo.has_lead_access(db, lead.id, painter.id)
    grant = payments_repo.grant_access(db, lead.id, painter.id, source=AccessSource.MANUAL)
    db.commit()
    log.info(
        "manual_access_granted",
        lead_id=lead.id,
        painter_id=painter.id,
        admin_user_id=principal.user_id,
        already_had_access=existed,
    )
    return {"success": True, "lead_id": lead.id, "painter_id": painter.id, "source": grant.source, "created": not existed}


# ----------------------------------------------------------------------
# bids
# ----------------------------------------------------------------------


def submit_bid(ctx: RequestContext, lead_id: int, fields: BidFields, *, notifier=None) -> dict:
    db = ctx.db
    painter = _current_painter(ctx)
    lead = _require_lead(db, lead_id)

    if not payments_repo.has_lead_access(db, lead.id, painter.id):
        raise NoAccess()
    if lead.status != LeadStatus.OPEN.value:
        raise LeadNotOpen()

    clean = validate_bid_fields(ctx.config, fields)

    if bids_repo.get_active_bid(db, lead.id, painter.id) is not None:
        raise DuplicateBid()

    try:
        bid = bids_repo.insert_bid(
            db,
            lead_id=lead.id,
            painter_id=painter.id,
            bid_amount=clean.bid_amount,
            message=clean.message,
            timeline=clean.timeline,
            materials_included=clean.materials_included,
            warranty_months=clean.warranty_months,
            warranty_details=clean.warranty_details,
            project_approach=clean.project_approach,
        )
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DuplicateBid()

    bid_counter.labels(action="submitted").inc()
    log.info("bid_submitted", bid_id=bid.id, lead_id=lead.id, painter_id=painter.id, amount=str(bid.bid_amount))

    stats = bids_repo.bid_stats(db, lead.id)
    base = {
        "lead_id": lead.id,
        "job_title": lead.job_title,
        "bid_id": bid.id,
        "bid_amount": _money(bid.bid_amount),
        "painter_name": _painter_name(painter),
        "timeline": bid.timeline,
    }
    _notify(
        notifier,
        "bid_submitted",
        [painter.email],
        {
            **base,
            "position": bids_repo.bid_position(db, lead.id, bid.bid_amount),
            "total_bids": stats["total_bids"],
        },
    )
    _notify(notifier, "bid_admin_alert", [settings.ADMIN_EMAIL], base)
    _notify(notifier, "bid_received", [lead.customer_email], {**base, "customer_name": lead.customer_name})

    return {"success": True, "bid_id": bid.id}


def _own_bid(ctx: RequestContext, bid_id: int) -> tuple[Painter, Bid]:
    painter = _current_painter(ctx)
    bid = _require_bid(ctx.db, bid_id)
    if bid.painter_id != painter.id:
        raise NotOwner()
    return painter, bid


def withdraw_bid(ctx: RequestContext, bid_id: int) -> dict:
    painter, bid = _own_bid(ctx, bid_id)
    if not bids_repo.transition_bid(ctx.db, bid.id, [BidStatus.PENDING], BidStatus.WITHDRAWN):
        ctx.db.rollback()
        raise NotPending()
    ctx.db.commit()
    bid_counter.labels(action="withdrawn").inc()
    log.info("bid_withdrawn", bid_id=bid.id, painter_id=painter.id)
    return {"success": True, "bid_id": bid.id, "status": BidStatus.WITHDRAWN.value}


def resubmit_bid(ctx: RequestContext, bid_id: int, new_amount: Any, *, notifier=None) -> dict:
    painter, bid = _own_bid(ctx, bid_id)
    db = ctx.db

    if bid.status not in (BidStatus.PENDING.value, BidStatus.REJECTED.value):
        raise InvalidState()
    lead = _require_lead(db, bid.lead_id)
    if lead.status != LeadStatus.OPEN.value:
        raise InvalidState("This lead is no longer accepting bids.")

    amount = parse_amount(new_amount)
    problem = _check_amount(ctx.config, amount)
    if problem:
        raise ValidationError(errors={"bid_amount": problem})

    moved = bids_repo.transition_bid(
        db,
        bid.id,
        [BidStatus.PENDING, BidStatus.REJECTED],
        BidStatus.PENDING,
        bid_amount=amount,
        submitted_at=utcnow(),
    )
    if not moved:
        db.rollback()
        raise InvalidState()
    db.commit()

    bid_counter.labels(action="resubmitted").inc()
    log.info("bid_resubmitted", bid_id=bid.id, painter_id=painter.id, amount=str(amount))
    _notify(
        notifier,
        "bid_received",
        [lead.customer_email],
        {
            "customer_name": lead.customer_name,
            "painter_name": _painter_name(painter),
            "job_title": lead.job_title,
            "lead_id": lead.id,
            "bid_amount": _money(amount),
            "timeline": bid.timeline,
        },
    )
    return {"success": True, "bid_id": bid.id, "status": BidStatus.PENDING.value, "bid_amount": amount}


def _status_mail(notifier, lead: Lead, bid: Bid, painter: Optional[Painter], status: BidStatus) -> None:
    if painter is None:
        return
    _notify(
        notifier,
        "bid_status_changed",
        [painter.email],
        {
            "painter_name": _painter_name(painter),
            "job_title": lead.job_title,
            "lead_id": lead.id,
            "bid_amount": _money(bid.bid_amount),
            "status": status.value,
        },
    )


def accept_bid(ctx: RequestContext, bid_id: int, *, notifier=None) -> dict:
    db = ctx.db
    bid = _require_bid(db, bid_id)
    lead = _require_lead(db, bid.lead_id)
    _require_lead_owner(ctx, lead)

    if bid.status != BidStatus.PENDING.value:
        raise NotPending()
    if lead.status != LeadStatus.OPEN.value:
        raise LeadNotOpen()

    if not bids_repo.transition_bid(db, bid.id, [BidStatus.PENDING], BidStatus.ACCEPTED):
        db.rollback()
        raise NotPending()
    if not leads_repo.assign_lead(db, lead.id, bid.painter_id):
        db.rollback()
        raise LeadNotOpen()
    rejected = bids_repo.reject_other_pending(db, lead.id, bid.id)
    db.commit()

    bid_counter.labels(action="accepted").inc()
    log.info(
        "bid_accepted",
        bid_id=bid.id,
        lead_id=lead.id,
        painter_id=bid.painter_id,
        auto_rejected=[b.id for b in rejected],
    )

    _status_mail(notifier, lead, bid, painters_repo.get_painter_by_id(db, bid.painter_id), BidStatus.ACCEPTED)
    for other in rejected:
        _status_mail(notifier, lead, other, painters_repo.get_painter_by_id(db, other.painter_id), BidStatus.REJECTED)

    return {
        "success": True,
        "bid_id": bid.id,
        "lead_id": lead.id,
        "assigned_painter_id": bid.painter_id,
        "rejected_bid_ids": [b.id for b in rejected],
    }


def reject_bid(ctx: RequestContext, bid_id: int, *, notifier=None) -> dict:
    db = ctx.db
    bid = _require_bid(db, bid_id)
    lead = _require_lead(db, bid.lead_id)
    _require_lead_owner(ctx, lead)

    if not bids_repo.transition_bid(db, bid.id, [BidStatus.PENDING], BidStatus.REJECTED):
        db.rollback()
        raise NotPending()
    db.commit()

    bid_counter.labels(action="rejected").inc()
    log.info("bid_rejected", bid_id=bid.id, lead_id=lead.id)
    _status_mail(notifier, lead, bid, painters_repo.get_painter_by_id(db, bid.painter_id), BidStatus.REJECTED)
    return {"success": True, "bid_id": bid.id, "status": BidStatus.REJECTED.value}


def close_lead(ctx: RequestContext, lead_id: int) -> dict:
    db = ctx.db
    lead = _require_lead(db, lead_id)
    _require_lead_owner(ctx, lead)
    if not leads_repo.close_lead(db, lead.id):
        db.rollback()
        raise InvalidState("Only assigned leads can be closed.")
    db.commit()
    log.info("lead_closed", lead_id=lead.id)
    return {"success": True, "lead_id": lead.id, "status": LeadStatus.CLOSED.value}


# ----------------------------------------------------------------------
# read side
# ----------------------------------------------------------------------


def lead_access(ctx: RequestContext, lead_id: int) -> dict:
    painter = _current_painter(ctx)
    lead = _require_lead(ctx.db, lead_id)
    grant = payments_repo.get_access(ctx.db, lead.id, painter.id)
    claim = payments_repo.get_active_claim(ctx.db, lead.id, painter.id)
    return {
        "lead_id": lead.id,
        "has_access": grant is not None,
        "source": grant.source if grant else None,
        "payment_status": claim.payment_status if claim else None,
        "can_purchase": (
            grant is None
            and claim is None
            and ctx.config.payment_enabled
            and lead.status == LeadStatus.OPEN.value
            and lead.payment_active
            and lead.payment_count < lead.max_payments
        ),
    }


def _public_lead(lead: Lead) -> dict:
    return {
        "id": lead.id,
        "job_title": lead.job_title,
        "job_description": lead.job_description,
        "location": lead.location,
        "postcode": lead.postcode,
        "status": lead.status,
        "lead_price": lead.lead_price,
        "payment_count": lead.payment_count,
        "max_payments": lead.max_payments,
        "payment_active": lead.payment_active,
        "remaining_slots": lead.remaining_slots,
        "created_at": lead.created_at,
    }


def _contact(lead: Lead) -> dict:
    return {
        "customer_name": lead.customer_name,
        "customer_email": lead.customer_email,
        "customer_phone": lead.customer_phone,
    }


def lead_detail(ctx: RequestContext, lead_id: int) -> dict:
    """Lead as the caller may see it; contact details only with an access grant."""
    principal = ctx.require()
    db = ctx.db
    lead = _require_lead(db, lead_id)
    out = _public_lead(lead)

    if principal.role == Role.PAINTER.value:
        painter = _current_painter(ctx)
        has_access = payments_repo.has_lead_access(db, lead.id, painter.id)
        if not has_access and lead.status != LeadStatus.OPEN.value:
            raise LeadNotFound()
        out["has_access"] = has_access
        if has_access:
            out.update(_contact(lead))
            own = bids_repo.get_active_bid(db, lead.id, painter.id)
            out["my_bid_id"] = own.id if own else None
        return out

    if not principal.is_admin and lead.customer_id != principal.user_id:
        raise LeadNotFound()
    out.update(_contact(lead))
    out["assigned_painter_id"] = lead.assigned_painter_id
    out["has_access"] = True
    return out


def bid_stats(ctx: RequestContext, lead_id: int) -> dict:
    ctx.require()
    lead = _require_lead(ctx.db, lead_id)
    return {"lead_id": lead.id, **bids_repo.bid_stats(ctx.db, lead.id)}
