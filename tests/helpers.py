import hashlib
import hmac
import json
import time

WEBHOOK_SECRET = "whsec_test_secret"


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Stripe-Signature header zoals Stripe hem zou sturen."""
    ts = timestamp or int(time.time())
    signature = hmac.new(
        secret.encode("utf-8"), f"{ts}.{payload}".encode("utf-8"), hashlib.sha256
    ).hexdigest()
    return f"t={ts},v1={signature}"


def intent_event(event_type: str, intent_id: str, metadata=None, error=None, event_id="evt_test_1") -> str:
    obj = {"id": intent_id, "object": "payment_intent", "metadata": metadata or {}}
    if error:
        obj["last_payment_error"] = {"message": error}
    return json.dumps({"id": event_id, "type": event_type, "data": {"object": obj}})
