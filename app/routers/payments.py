# app/routers/payments.py
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request

from app.auth.deps import get_context, get_marketplace_config, require_painter
from app.core.context import MarketplaceConfig, RequestContext
from app.core.logging_config import get_logger
from app.core.rate_limit import limiter
from app.core.settings import settings
from app.dependencies import get_notifier, get_payment_gateway
from app.repositories import payments as payments_repo
from app.repositories import painters as painters_repo
from app.schemas.payments import (
    ClaimOut,
    ConfirmPaymentPayload,
    LeadAccessOut,
    PaymentHistoryItem,
    PaymentMethodOut,
    PaymentMethodPayload,
    PublicConfig,
    PurchaseLeadPayload,
    RemovePaymentMethodPayload,
)
from app.services import lifecycle

router = APIRouter(tags=["payments"])
log = get_logger(__name__)


async def raw_body(request: Request) -> bytes:
    # webhook signature wordt over de onbewerkte bytes berekend
    return await request.body()


@router.get("/config", response_model=PublicConfig)
def public_config(config: MarketplaceConfig = Depends(get_marketplace_config)):
    return PublicConfig(
        publishable_key=settings.STRIPE_PUBLISHABLE_KEY,
        default_lead_price=config.default_lead_price,
        currency=settings.STRIPE_CURRENCY.upper(),
        payment_enabled=config.payment_enabled,
        max_payments_per_lead=config.max_payments_per_lead,
    )


@router.post("/purchase-lead", response_model=ClaimOut)
@limiter.limit(settings.rate_limit_purchase)
def purchase_lead(
    request: Request,
    payload: PurchaseLeadPayload,
    ctx: RequestContext = Depends(require_painter),
    gateway=Depends(get_payment_gateway),
    notifier=Depends(get_notifier),
):
    result = lifecycle.claim_lead(
        ctx,
        payload.lead_id,
        payload.payment_method_id,
        gateway=gateway,
        notifier=notifier,
    )
    return ClaimOut(**result.__dict__)


@router.get("/lead-access", response_model=LeadAccessOut)
def lead_access(
    lead_id: int = Query(...),
    ctx: RequestContext = Depends(require_painter),
):
    return lifecycle.lead_access(ctx, lead_id)


@router.post("/confirm-payment", response_model=ClaimOut)
def confirm_payment(
    payload: ConfirmPaymentPayload,
    ctx: RequestContext = Depends(require_painter),
    gateway=Depends(get_payment_gateway),
    notifier=Depends(get_notifier),
):
    result = lifecycle.confirm_payment(
        ctx, payload.payment_intent_id, gateway=gateway, notifier=notifier
    )
    return ClaimOut(**result.__dict__)


@router.get("/payment-methods", response_model=list[PaymentMethodOut])
def list_payment_methods(
    ctx: RequestContext = Depends(require_painter),
    gateway=Depends(get_payment_gateway),
):
    principal = ctx.require_active_painter()
    return gateway.list_payment_methods(ctx.db, principal.painter_id)


@router.post("/payment-methods", response_model=PaymentMethodOut)
def add_payment_method(
    payload: PaymentMethodPayload,
    ctx: RequestContext = Depends(require_painter),
    gateway=Depends(get_payment_gateway),
    notifier=Depends(get_notifier),
):
    principal = ctx.require_active_painter()
    painter = painters_repo.get_painter_by_id(ctx.db, principal.painter_id)
    method = gateway.save_payment_method(
        ctx.db, painter, payload.payment_method_id, payload.set_as_default
    )
    notifier.notify(
        "payment_method_added",
        [painter.email],
        {
            "painter_name": painter.contact_name or painter.company_name,
            "card_brand": method.card_brand,
            "card_last4": method.card_last4,
        },
    )
    return method


@router.delete("/payment-method")
def remove_payment_method(
    payload: RemovePaymentMethodPayload,
    ctx: RequestContext = Depends(require_painter),
    gateway=Depends(get_payment_gateway),
    notifier=Depends(get_notifier),
):
    principal = ctx.require_active_painter()
    painter = painters_repo.get_painter_by_id(ctx.db, principal.painter_id)
    method = painters_repo.get_payment_method(ctx.db, painter.id, payload.payment_method_id)
    gateway.remove_payment_method(ctx.db, painter.id, payload.payment_method_id)
    notifier.notify(
        "payment_method_removed",
        [painter.email],
        {
            "painter_name": painter.contact_name or painter.company_name,
            "card_brand": method.card_brand if method else None,
            "card_last4": method.card_last4 if method else None,
        },
    )
    return {"success": True}


@router.get("/payment-history", response_model=list[PaymentHistoryItem])
def payment_history(ctx: RequestContext = Depends(require_painter)):
    principal = ctx.require_active_painter()
    rows = payments_repo.payment_history(ctx.db, principal.painter_id)
    return [
        PaymentHistoryItem(
            id=p.id,
            lead_id=p.lead_id,
            job_title=lead.job_title,
            amount=p.amount,
            currency=p.currency,
            payment_status=p.payment_status,
            payment_number=p.payment_number,
            failure_reason=p.failure_reason,
            created_at=p.created_at,
        )
        for p, lead in rows
    ]


@router.post("/webhook")
def webhook(
    body: bytes = Depends(raw_body),
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    ctx: RequestContext = Depends(get_context),
    gateway=Depends(get_payment_gateway),
    notifier=Depends(get_notifier),
):
    return lifecycle.confirm_payment_webhook(
        ctx, body, stripe_signature, gateway=gateway, notifier=notifier
    )
