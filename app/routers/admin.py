# app/routers/admin.py
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query

from app.auth.deps import require_admin
from app.core.context import RequestContext
from app.core.errors import NotFound
from app.core.logging_config import get_logger
from app.models.lead import LeadStatus
from app.repositories import config as config_repo
from app.repositories import leads as leads_repo
from app.repositories import painters as painters_repo
from app.repositories import payments as payments_repo
from app.schemas.admin import AnalyticsOut, GrantAccessPayload, PainterOut, PainterUpdatePayload
from app.schemas.leads import CustomerLead
from app.services import lifecycle

router = APIRouter(prefix="/admin", tags=["admin"])
log = get_logger(__name__)


@router.get("/config")
def get_config(ctx: RequestContext = Depends(require_admin)):
    return ctx.config.model_dump(mode="json")


@router.put("/config")
def update_config(
    updates: dict[str, Any] = Body(...),
    ctx: RequestContext = Depends(require_admin),
):
    new_config = ctx.config.merged(updates)
    config_repo.upsert_config(ctx.db, {k: v for k, v in new_config.as_entries().items() if k in updates})
    ctx.db.commit()
    log.info("marketplace_config_updated", keys=sorted(updates), admin_user_id=ctx.principal.user_id)
    return new_config.model_dump(mode="json")


@router.get("/analytics", response_model=AnalyticsOut)
def analytics(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    ctx: RequestContext = Depends(require_admin),
):
    return payments_repo.payment_analytics(ctx.db, start, end)


@router.get("/leads", response_model=list[CustomerLead])
def list_leads(
    status: Optional[LeadStatus] = None,
    payment_active: Optional[bool] = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    ctx: RequestContext = Depends(require_admin),
):
    return leads_repo.list_leads(
        ctx.db,
        status=status.value if status else None,
        payment_active=payment_active,
        limit=limit,
        offset=offset,
    )


@router.post("/leads/{lead_id}/grant-access")
def grant_access(
    lead_id: int,
    payload: GrantAccessPayload,
    ctx: RequestContext = Depends(require_admin),
):
    return lifecycle.grant_manual_access(ctx, lead_id, payload.painter_id)


@router.patch("/painters/{painter_id}", response_model=PainterOut)
def update_painter(
    painter_id: int,
    payload: PainterUpdatePayload,
    ctx: RequestContext = Depends(require_admin),
):
    painter = painters_repo.update_painter(
        ctx.db,
        painter_id,
        status=payload.status.value if payload.status else None,
        verification_status=(
            payload.verification_status.value if payload.verification_status else None
        ),
    )
    if painter is None:
        raise NotFound("Painter not found.")
    ctx.db.commit()
    log.info("painter_updated", painter_id=painter_id, **payload.model_dump(exclude_none=True, mode="json"))
    return PainterOut(
        id=painter.id,
        company_name=painter.company_name,
        email=painter.email,
        status=painter.status,
        verification_status=painter.verification_status,
    )
