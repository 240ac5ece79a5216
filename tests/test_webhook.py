import pytest

from app.core.errors import ExternalServiceError
from app.models.lead import LeadPayment
from app.repositories import payments as payments_repo
from app.services import lifecycle
from helpers import intent_event, sign_payload


def _post(client, payload, signature=None):
    return client.post(
        "/webhook",
        content=payload,
        headers={
            "Content-Type": "application/json",
            "Stripe-Signature": signature if signature is not None else sign_payload(payload),
        },
    )


@pytest.fixture
def pending_claim(db, ctx_for, make_painter, make_lead, gateway):
    """A claim waiting on 3-D Secure: intent id known, status pending."""
    user, painter = make_painter()
    lead = make_lead()
    gateway.next_status = "requires_action"
    result = lifecycle.claim_lead(ctx_for(user), lead.id, gateway=gateway)
    return lead, painter, result.payment_intent_id, user


def test_bad_signature_is_rejected(client, pending_claim):
    _, _, intent_id, _ = pending_claim
    payload = intent_event("payment_intent.succeeded", intent_id)

    resp = _post(client, payload, signature="t=1,v1=deadbeef")

    assert resp.status_code == 400
    assert resp.json()["error"] == "bad_signature"


def test_signature_with_other_secret_is_rejected(client, pending_claim):
    _, _, intent_id, _ = pending_claim
    payload = intent_event("payment_intent.succeeded", intent_id)

    resp = _post(client, payload, signature=sign_payload(payload, secret="whsec_other"))

    assert resp.status_code == 400


def test_succeeded_event_finalizes_once(db, client, pending_claim, notifier):
    lead, painter, intent_id, _ = pending_claim
    payload = intent_event("payment_intent.succeeded", intent_id)

    first = _post(client, payload)
    replay = _post(client, payload)

    assert first.status_code == 200
    assert first.json()["result"] == "processed"
    assert replay.status_code == 200
    assert replay.json()["result"] == "replay"

    db.expire_all()
    assert lead.payment_count == 1
    assert payments_repo.has_lead_access(db, lead.id, painter.id)
    assert notifier.types().count("lead_access_granted") == 1


def test_webhook_and_confirm_race_counts_once(db, client, ctx_for, pending_claim, gateway):
    lead, _, intent_id, user = pending_claim
    gateway.settle(intent_id)
    _post(client, intent_event("payment_intent.succeeded", intent_id))

    result = lifecycle.confirm_payment(ctx_for(user), intent_id, gateway=gateway)

    assert result.success is True
    assert result.payment_number == 1
    db.expire_all()
    assert lead.payment_count == 1


def test_unknown_intent_is_not_acknowledged(client, pending_claim):
    resp = _post(client, intent_event("payment_intent.succeeded", "pi_never_issued"))

    assert resp.status_code == 404
    assert resp.json()["error"] == "unknown_payment_intent"


def test_metadata_fallback_when_intent_id_was_never_stored(db, client, ctx_for, make_painter, make_lead, gateway):
    user, painter = make_painter()
    lead = make_lead()
    gateway.fail_with = ExternalServiceError()
    with pytest.raises(ExternalServiceError):
        lifecycle.claim_lead(ctx_for(user), lead.id, gateway=gateway)
    claim = payments_repo.get_active_claim(db, lead.id, painter.id)
    assert claim.provider_intent_id is None

    payload = intent_event(
        "payment_intent.succeeded",
        "pi_from_provider",
        metadata={"lead_id": str(lead.id), "lead_payment_id": str(claim.id)},
    )
    resp = _post(client, payload)

    assert resp.status_code == 200
    assert resp.json()["result"] == "processed"
    db.expire_all()
    assert claim.provider_intent_id == "pi_from_provider"
    assert claim.payment_status == "succeeded"
    assert claim.payment_number == 1


def test_other_event_types_are_ignored(client):
    payload = intent_event("charge.refunded", "pi_whatever")

    resp = _post(client, payload)

    assert resp.status_code == 200
    assert resp.json()["result"] == "ignored"


def test_payment_failed_event_marks_claim_failed(db, client, pending_claim, notifier):
    lead, painter, intent_id, _ = pending_claim
    payload = intent_event(
        "payment_intent.payment_failed", intent_id, error="Authentication was not completed."
    )

    first = _post(client, payload)
    replay = _post(client, payload)

    assert first.json()["result"] == "processed"
    assert replay.json()["result"] == "replay"
    db.expire_all()
    claim = db.query(LeadPayment).filter(LeadPayment.provider_intent_id == intent_id).one()
    assert claim.payment_status == "failed"
    assert claim.failure_reason == "Authentication was not completed."
    assert notifier.types() == ["payment_failed"]
    assert lead.payment_count == 0


def test_late_success_after_cap_is_refunded(db, client, ctx_for, make_painter, make_lead, gateway):
    lead = make_lead(max_payments=1)
    slow_user, slow_painter = make_painter()
    gateway.next_status = "requires_action"
    slow = lifecycle.claim_lead(ctx_for(slow_user), lead.id, gateway=gateway)

    fast_user, _ = make_painter()
    gateway.next_status = "succeeded"
    lifecycle.claim_lead(ctx_for(fast_user), lead.id, gateway=gateway)

    resp = _post(client, intent_event("payment_intent.succeeded", slow.payment_intent_id))

    assert resp.status_code == 200
    assert resp.json()["result"] == "refunded"
    assert [r[0] for r in gateway.refunds] == [slow.payment_intent_id]
    db.expire_all()
    assert lead.payment_count == 1
    assert not payments_repo.has_lead_access(db, lead.id, slow_painter.id)


def test_success_after_failed_event_is_refunded(db, client, pending_claim, gateway):
    lead, painter, intent_id, _ = pending_claim
    failed = intent_event("payment_intent.payment_failed", intent_id, error="Authentication failed.", event_id="evt_1")
    assert _post(client, failed).json()["result"] == "processed"

    # klant rondt 3-D Secure alsnog af: Stripe boekt het geld toch
    gateway.settle(intent_id)
    succeeded = intent_event("payment_intent.succeeded", intent_id, event_id="evt_2")
    resp = _post(client, succeeded)

    assert resp.status_code == 200
    assert resp.json()["result"] == "refunded"
    assert gateway.refunds == [(intent_id, "claim_already_failed")]
    db.expire_all()
    claim = db.query(LeadPayment).filter(LeadPayment.provider_intent_id == intent_id).one()
    assert claim.payment_status == "failed"
    assert claim.payment_number is None
    assert lead.payment_count == 0
    assert not payments_repo.has_lead_access(db, lead.id, painter.id)


def test_late_success_refund_failure_is_retried_by_provider(db, client, pending_claim, gateway):
    lead, painter, intent_id, _ = pending_claim
    _post(client, intent_event("payment_intent.payment_failed", intent_id, event_id="evt_1"))
    gateway.settle(intent_id)
    gateway.refund_fails_with = ExternalServiceError()

    resp = _post(client, intent_event("payment_intent.succeeded", intent_id, event_id="evt_2"))

    assert resp.status_code == 500
    assert resp.json()["error"] == "reconciliation_required"
    assert gateway.refunds == []
    db.expire_all()
    assert not payments_repo.has_lead_access(db, lead.id, painter.id)


def test_non_utf8_body_is_rejected(client):
    resp = _post(client, b"\xff\xfe{}", signature="t=1,v1=deadbeef")

    assert resp.status_code == 400
    assert resp.json()["error"] == "bad_signature"
