import threading
from decimal import Decimal

import pytest
from sqlalchemy import update

from app.auth.deps import principal_for_user
from app.core.context import MarketplaceConfig, RequestContext
from app.core.errors import (
    AlreadyClaimed,
    AuthorizationError,
    ExternalServiceError,
    LeadNotOpen,
    PaymentCapReached,
    PaymentFailed,
    PaymentMethodNotFound,
    PaymentsDisabled,
    ReconciliationRequired,
    ValidationError,
)
from app.models.lead import Lead, LeadAccess, LeadPayment
from app.models.user import Role
from app.repositories import leads as leads_repo
from app.repositories import payments as payments_repo
from app.services import lifecycle


def _claim(ctx_for, user, lead, gateway, notifier=None, **config):
    return lifecycle.claim_lead(ctx_for(user, **config), lead.id, gateway=gateway, notifier=notifier)


def test_claim_grants_access_and_counts_payment(db, ctx_for, make_painter, make_lead, gateway, notifier):
    user, painter = make_painter()
    lead = make_lead()

    result = _claim(ctx_for, user, lead, gateway, notifier)

    assert result.success is True
    assert result.status == "succeeded"
    assert result.payment_number == 1
    db.refresh(lead)
    assert lead.payment_count == 1
    assert lead.payment_active is True
    assert payments_repo.has_lead_access(db, lead.id, painter.id)

    charge = gateway.charges[0]
    assert charge["amount"] == Decimal("15.00")
    assert charge["payment_method_id"] == f"pm_card_{painter.id}"
    assert charge["idempotency_key"] == f"lead-payment-{result.claim_id}"
    assert charge["metadata"]["lead_payment_id"] == result.claim_id
    assert notifier.types() == ["lead_access_granted", "admin_payment_alert"]


def test_third_claim_fills_lead_and_fourth_is_refused(db, ctx_for, make_painter, make_lead, gateway, notifier):
    lead = make_lead(max_payments=3)
    painters = [make_painter() for _ in range(4)]

    numbers = [_claim(ctx_for, u, lead, gateway, notifier).payment_number for u, _ in painters[:3]]
    assert numbers == [1, 2, 3]

    db.refresh(lead)
    assert lead.payment_count == 3
    assert lead.payment_active is False
    assert lead.status == "open"
    assert "lead_deactivated" in notifier.types()

    with pytest.raises(PaymentCapReached):
        _claim(ctx_for, painters[3][0], lead, gateway, notifier)
    # geen geld afgeschreven voor de vierde
    assert len(gateway.charges) == 3


def test_k_of_n_painters_succeed(db, ctx_for, make_painter, make_lead, gateway):
    lead = make_lead(max_payments=2)
    outcomes = []
    for _ in range(5):
        user, _painter = make_painter()
        try:
            outcomes.append(_claim(ctx_for, user, lead, gateway).payment_number)
        except PaymentCapReached:
            outcomes.append("cap")

    assert outcomes == [1, 2, "cap", "cap", "cap"]
    db.refresh(lead)
    assert lead.payment_count == 2
    assert db.query(LeadAccess).filter(LeadAccess.lead_id == lead.id).count() == 2


def test_second_claim_by_same_painter_is_already_claimed(db, ctx_for, make_painter, make_lead, gateway):
    user, _ = make_painter()
    lead = make_lead()
    _claim(ctx_for, user, lead, gateway)

    with pytest.raises(AlreadyClaimed):
        _claim(ctx_for, user, lead, gateway)

    db.refresh(lead)
    assert lead.payment_count == 1
    assert len(gateway.charges) == 1


def test_manual_access_counts_as_claimed(ctx_for, make_painter, make_lead, grant, gateway):
    user, painter = make_painter()
    lead = make_lead()
    grant(lead, painter)

    with pytest.raises(AlreadyClaimed):
        _claim(ctx_for, user, lead, gateway)
    assert gateway.charges == []


def test_claims_blocked_when_payments_disabled(ctx_for, make_painter, make_lead, gateway):
    user, _ = make_painter()
    lead = make_lead()

    with pytest.raises(PaymentsDisabled):
        _claim(ctx_for, user, lead, gateway, payment_enabled=False)
    assert gateway.charges == []


def test_inactive_painter_cannot_claim(ctx_for, make_painter, make_lead, gateway):
    user, _ = make_painter(status="pending")
    lead = make_lead()

    with pytest.raises(AuthorizationError):
        _claim(ctx_for, user, lead, gateway)


def test_claim_on_assigned_lead_is_refused(db, ctx_for, make_painter, make_lead, gateway):
    user, painter = make_painter()
    lead = make_lead()
    leads_repo.assign_lead(db, lead.id, painter.id)
    db.commit()

    with pytest.raises(LeadNotOpen):
        _claim(ctx_for, user, lead, gateway)


def test_claim_needs_a_payment_method(ctx_for, make_painter, make_lead, gateway):
    user, _ = make_painter(card=False)
    lead = make_lead()

    with pytest.raises(ValidationError):
        _claim(ctx_for, user, lead, gateway)

    other_user, _ = make_painter()
    with pytest.raises(PaymentMethodNotFound):
        lifecycle.claim_lead(ctx_for(other_user), lead.id, "pm_someone_else", gateway=gateway)


def test_declined_card_marks_claim_failed_and_allows_retry(db, ctx_for, make_painter, make_lead, gateway, notifier):
    user, painter = make_painter()
    lead = make_lead()
    gateway.fail_with = PaymentFailed("Your card was declined.")

    with pytest.raises(PaymentFailed):
        _claim(ctx_for, user, lead, gateway, notifier)

    failed = db.query(LeadPayment).filter(LeadPayment.painter_id == painter.id).one()
    assert failed.payment_status == "failed"
    assert failed.failure_reason == "Your card was declined."
    db.refresh(lead)
    assert lead.payment_count == 0
    assert not payments_repo.has_lead_access(db, lead.id, painter.id)
    assert notifier.types() == ["payment_failed"]

    gateway.fail_with = None
    result = _claim(ctx_for, user, lead, gateway, notifier)
    assert result.payment_number == 1
    assert result.claim_id != failed.id


def test_provider_outage_leaves_claim_pending_and_resumes_with_same_key(db, ctx_for, make_painter, make_lead, gateway):
    user, painter = make_painter()
    lead = make_lead()
    gateway.fail_with = ExternalServiceError()

    with pytest.raises(ExternalServiceError):
        _claim(ctx_for, user, lead, gateway)

    pending = payments_repo.get_active_claim(db, lead.id, painter.id)
    assert pending.payment_status == "pending"
    assert pending.provider_intent_id is None

    gateway.fail_with = None
    result = _claim(ctx_for, user, lead, gateway)

    assert result.claim_id == pending.id
    assert result.payment_number == 1
    keys = {c["idempotency_key"] for c in gateway.charges}
    assert keys == {f"lead-payment-{pending.id}"}


def test_three_d_secure_then_confirm(db, ctx_for, make_painter, make_lead, gateway, notifier):
    user, painter = make_painter()
    lead = make_lead()
    gateway.next_status = "requires_action"

    first = _claim(ctx_for, user, lead, gateway, notifier)
    assert first.success is False
    assert first.requires_action is True
    assert first.client_secret
    db.refresh(lead)
    assert lead.payment_count == 0
    assert not payments_repo.has_lead_access(db, lead.id, painter.id)

    gateway.settle(first.payment_intent_id)
    confirmed = lifecycle.confirm_payment(
        ctx_for(user), first.payment_intent_id, gateway=gateway, notifier=notifier
    )
    assert confirmed.success is True
    assert confirmed.payment_number == 1

    # nogmaals bevestigen telt niet dubbel
    again = lifecycle.confirm_payment(ctx_for(user), first.payment_intent_id, gateway=gateway)
    assert again.payment_number == 1
    db.refresh(lead)
    assert lead.payment_count == 1


def test_pending_claim_is_resumed_via_retrieve(db, ctx_for, make_painter, make_lead, gateway):
    user, _ = make_painter()
    lead = make_lead()
    gateway.next_status = "processing"

    first = _claim(ctx_for, user, lead, gateway)
    assert first.status == "pending"

    gateway.settle(first.payment_intent_id)
    second = _claim(ctx_for, user, lead, gateway)
    assert second.success is True
    assert second.claim_id == first.claim_id
    assert len(gateway.charges) == 1


def test_cap_lost_after_charge_is_refunded(db, session_factory, ctx_for, make_painter, make_lead, gateway, notifier):
    user, painter = make_painter()
    lead = make_lead(max_payments=1)

    def fill_lead(metadata):
        # een andere painter pakt de laatste plek terwijl onze charge loopt
        other = session_factory()
        other.execute(update(Lead).where(Lead.id == lead.id).values(payment_count=1, payment_active=False))
        other.commit()
        other.close()

    gateway.on_charge = fill_lead

    with pytest.raises(PaymentCapReached):
        _claim(ctx_for, user, lead, gateway, notifier)

    assert [r[0] for r in gateway.refunds] == ["pi_test_1"]
    claim = db.query(LeadPayment).filter(LeadPayment.painter_id == painter.id).one()
    db.refresh(claim)
    assert claim.payment_status == "failed"
    assert "refunded" in claim.failure_reason
    db.refresh(lead)
    assert lead.payment_count == 1
    assert not payments_repo.has_lead_access(db, lead.id, painter.id)
    assert "lead_access_granted" not in notifier.types()


def test_refund_failure_requires_reconciliation(db, session_factory, ctx_for, make_painter, make_lead, gateway):
    user, _ = make_painter()
    lead = make_lead(max_payments=1)

    def fill_lead(metadata):
        other = session_factory()
        other.execute(update(Lead).where(Lead.id == lead.id).values(payment_count=1, payment_active=False))
        other.commit()
        other.close()

    gateway.on_charge = fill_lead
    gateway.refund_fails_with = ExternalServiceError()

    with pytest.raises(ReconciliationRequired) as exc:
        _claim(ctx_for, user, lead, gateway)
    assert exc.value.details["intent_id"] == "pi_test_1"


def test_confirm_after_failed_claim_refunds_late_success(db, ctx_for, make_painter, make_lead, gateway, notifier):
    user, painter = make_painter()
    lead = make_lead()
    gateway.next_status = "requires_action"
    first = _claim(ctx_for, user, lead, gateway)
    claim = db.query(LeadPayment).filter(LeadPayment.id == first.claim_id).one()
    lifecycle._mark_failed(db, claim, "Authentication was not completed.")

    gateway.settle(first.payment_intent_id)
    with pytest.raises(PaymentFailed) as exc:
        lifecycle.confirm_payment(ctx_for(user), first.payment_intent_id, gateway=gateway, notifier=notifier)

    assert exc.value.message == lifecycle.REFUNDED_AFTER_FAILURE
    assert gateway.refunds == [(first.payment_intent_id, "claim_already_failed")]
    db.expire_all()
    assert lead.payment_count == 0
    assert not payments_repo.has_lead_access(db, lead.id, painter.id)
    assert "lead_access_granted" not in notifier.types()


def test_confirm_after_failed_claim_without_charge_keeps_reason(db, ctx_for, make_painter, make_lead, gateway):
    user, _ = make_painter()
    lead = make_lead()
    gateway.next_status = "requires_action"
    first = _claim(ctx_for, user, lead, gateway)
    claim = db.query(LeadPayment).filter(LeadPayment.id == first.claim_id).one()
    lifecycle._mark_failed(db, claim, "Authentication was not completed.")

    with pytest.raises(PaymentFailed) as exc:
        lifecycle.confirm_payment(ctx_for(user), first.payment_intent_id, gateway=gateway)

    assert exc.value.message == "Authentication was not completed."
    assert gateway.refunds == []


def test_concurrent_claims_never_exceed_cap(db, session_factory, make_painter, make_lead, gateway):
    lead = make_lead(max_payments=2)
    principals = [principal_for_user(db, make_painter()[0]) for _ in range(6)]
    barrier = threading.Barrier(len(principals))
    outcomes = []
    errors = []

    def claim(principal):
        # eigen sessie per thread, net als per request
        session = session_factory()
        try:
            ctx = RequestContext(db=session, config=MarketplaceConfig(), principal=principal)
            barrier.wait(timeout=10)
            try:
                outcomes.append(lifecycle.claim_lead(ctx, lead.id, gateway=gateway).payment_number)
            except PaymentCapReached:
                outcomes.append("cap")
        except Exception as e:
            errors.append(e)
        finally:
            session.close()

    threads = [threading.Thread(target=claim, args=(p,)) for p in principals]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert errors == []
    assert sorted(o for o in outcomes if o != "cap") == [1, 2]
    assert outcomes.count("cap") == 4
    db.expire_all()
    assert lead.payment_count == 2
    assert lead.payment_active is False
    succeeded = (
        db.query(LeadPayment)
        .filter(LeadPayment.lead_id == lead.id, LeadPayment.payment_status == "succeeded")
        .count()
    )
    assert succeeded == 2


def test_failing_notifier_does_not_fail_the_claim(db, ctx_for, make_painter, make_lead, gateway, broken_notifier):
    user, painter = make_painter()
    lead = make_lead()
    broken = broken_notifier

    result = _claim(ctx_for, user, lead, gateway, broken)

    assert result.success is True
    assert payments_repo.has_lead_access(db, lead.id, painter.id)
    assert broken.types() == ["lead_access_granted", "admin_payment_alert"]


def test_lead_access_view(db, ctx_for, make_painter, make_lead, gateway):
    user, painter = make_painter()
    lead = make_lead()

    before = lifecycle.lead_access(ctx_for(user), lead.id)
    assert before["has_access"] is False
    assert before["can_purchase"] is True

    _claim(ctx_for, user, lead, gateway)
    after = lifecycle.lead_access(ctx_for(user), lead.id)
    assert after["has_access"] is True
    assert after["source"] == "payment"
    assert after["payment_status"] == "succeeded"
    assert after["can_purchase"] is False


def test_manual_grant_does_not_touch_payment_count(db, ctx_for, make_user, make_painter, make_lead):
    admin = make_user(Role.ADMIN)
    _, painter = make_painter()
    lead = make_lead()

    out = lifecycle.grant_manual_access(ctx_for(admin), lead.id, painter.id)
    again = lifecycle.grant_manual_access(ctx_for(admin), lead.id, painter.id)

    assert out["created"] is True
    assert again["created"] is False
    assert payments_repo.get_access(db, lead.id, painter.id).source == "manual"
    db.refresh(lead)
    assert lead.payment_count == 0
