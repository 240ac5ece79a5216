# app/routers/customer.py
from fastapi import APIRouter, Depends

from app.auth.deps import require_customer
from app.core.context import RequestContext
from app.core.errors import LeadNotFound
from app.models.painter import VerificationStatus
from app.repositories import bids as bids_repo
from app.repositories import leads as leads_repo
from app.repositories import painters as painters_repo
from app.schemas.bids import CustomerBidOut
from app.schemas.leads import CustomerLead

router = APIRouter(prefix="/customer", tags=["customer"])


@router.get("/leads", response_model=list[CustomerLead])
def my_leads(ctx: RequestContext = Depends(require_customer)):
    return leads_repo.list_customer_leads(ctx.db, ctx.principal.user_id)


@router.get("/leads/{lead_id}/bids", response_model=list[CustomerBidOut])
def lead_bids(lead_id: int, ctx: RequestContext = Depends(require_customer)):
    lead = leads_repo.get_lead_by_id(ctx.db, lead_id)
    if lead is None or lead.customer_id != ctx.principal.user_id:
        raise LeadNotFound()

    bids = bids_repo.get_bids_by_lead(ctx.db, lead.id)
    painters = {
        p.id: p
        for p in painters_repo.list_painters_by_ids(ctx.db, list({b.painter_id for b in bids}))
    }
    out = []
    for bid in bids:
        painter = painters.get(bid.painter_id)
        item = CustomerBidOut.model_validate(bid)
        if painter is not None:
            item.painter_company = painter.company_name
            item.painter_verified = painter.verification_status == VerificationStatus.VERIFIED.value
        out.append(item)
    return out
