# app/routers/bids.py
from fastapi import APIRouter, Depends, Request

from app.auth.deps import require_customer_or_admin, require_painter
from app.core.context import RequestContext
from app.core.rate_limit import limiter
from app.core.settings import settings
from app.dependencies import get_notifier
from app.repositories import bids as bids_repo
from app.schemas.bids import BidOut, BidPayload, ResubmitPayload
from app.services import lifecycle

router = APIRouter(prefix="/bids", tags=["bids"])


@router.post("")
@limiter.limit(settings.rate_limit_bids)
def submit_bid(
    request: Request,
    payload: BidPayload,
    ctx: RequestContext = Depends(require_painter),
    notifier=Depends(get_notifier),
):
    fields = lifecycle.BidFields(
        bid_amount=payload.bid_amount,
        message=payload.message,
        timeline=payload.timeline,
        materials_included=payload.materials_included,
        warranty_months=payload.warranty_months,
        warranty_details=payload.warranty_details,
        project_approach=payload.project_approach,
    )
    return lifecycle.submit_bid(ctx, payload.lead_id, fields, notifier=notifier)


@router.get("", response_model=list[BidOut])
def my_bids(ctx: RequestContext = Depends(require_painter)):
    principal = ctx.require_active_painter()
    return bids_repo.list_painter_bids(ctx.db, principal.painter_id)


@router.post("/{bid_id}/withdraw")
def withdraw_bid(bid_id: int, ctx: RequestContext = Depends(require_painter)):
    return lifecycle.withdraw_bid(ctx, bid_id)


@router.post("/{bid_id}/resubmit")
def resubmit_bid(
    bid_id: int,
    payload: ResubmitPayload,
    ctx: RequestContext = Depends(require_painter),
    notifier=Depends(get_notifier),
):
    return lifecycle.resubmit_bid(ctx, bid_id, payload.bid_amount, notifier=notifier)


@router.post("/{bid_id}/accept")
def accept_bid(
    bid_id: int,
    ctx: RequestContext = Depends(require_customer_or_admin),
    notifier=Depends(get_notifier),
):
    return lifecycle.accept_bid(ctx, bid_id, notifier=notifier)


@router.post("/{bid_id}/reject")
def reject_bid(
    bid_id: int,
    ctx: RequestContext = Depends(require_customer_or_admin),
    notifier=Depends(get_notifier),
):
    return lifecycle.reject_bid(ctx, bid_id, notifier=notifier)
