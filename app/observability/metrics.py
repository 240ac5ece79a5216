# app/observability/metrics.py
from fastapi import APIRouter
from starlette.responses import Response

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

router = APIRouter(tags=["observability"])

claim_counter = Counter(
    "painter_leads_claims_total",
    "Aantal lead claims",
    ["result"],  # succeeded|requires_action|failed|cap_reached|already_claimed|refunded|error
)

bid_counter = Counter(
    "painter_leads_bids_total",
    "Bid lifecycle acties",
    ["action"],  # submitted|withdrawn|resubmitted|accepted|rejected
)

webhook_counter = Counter(
    "painter_leads_webhook_events_total",
    "Payment provider webhook events",
    ["event_type", "result"],  # processed|replay|ignored|bad_signature|unknown_intent
)

notification_counter = Counter(
    "painter_leads_notifications_total",
    "Verstuurde notificaties",
    ["event_type", "result"],  # sent|skipped|error
)

latency_hist = Histogram(
    "painter_leads_api_latency_seconds",
    "API latency per route",
    ["route"],
)


@router.get("/metrics", include_in_schema=True)
def metrics() -> Response:
    # Prometheus expects text/plain; version=0.0.4
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
