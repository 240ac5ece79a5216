# app/routers/leads.py
from typing import Literal

from fastapi import APIRouter, Depends, Query

from app.auth.deps import require_any_user, require_customer_or_admin, require_painter
from app.core.context import RequestContext
from app.repositories import leads as leads_repo
from app.schemas.leads import BidStatsOut, LeadDetail, LeadSummary
from app.services import lifecycle

router = APIRouter(prefix="/leads", tags=["leads"])


@router.get("", response_model=list[LeadSummary])
def list_leads(
    scope: Literal["open", "purchased"] = "open",
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    ctx: RequestContext = Depends(require_painter),
):
    principal = ctx.require_active_painter()
    if scope == "purchased":
        return leads_repo.list_painter_leads(ctx.db, principal.painter_id)
    return leads_repo.list_open_leads(ctx.db, limit=limit, offset=offset)


@router.get("/{lead_id}", response_model=LeadDetail)
def get_lead(lead_id: int, ctx: RequestContext = Depends(require_any_user)):
    return lifecycle.lead_detail(ctx, lead_id)


@router.get("/{lead_id}/bid-stats", response_model=BidStatsOut)
def get_bid_stats(lead_id: int, ctx: RequestContext = Depends(require_any_user)):
    return lifecycle.bid_stats(ctx, lead_id)


@router.post("/{lead_id}/close")
def close_lead(lead_id: int, ctx: RequestContext = Depends(require_customer_or_admin)):
    return lifecycle.close_lead(ctx, lead_id)
