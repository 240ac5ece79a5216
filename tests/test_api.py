from decimal import Decimal

from app.models.user import Role

MESSAGE = "Full prep, two coats, tidy finish and all materials supplied."


def test_health_and_metrics(client):
    assert client.get("/health").json() == {"status": "ok"}
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "painter_leads_claims_total" in resp.text


def test_public_config_reflects_marketplace_settings(client, set_config):
    set_config(default_lead_price=Decimal("22.50"), payment_enabled=False)

    body = client.get("/config").json()

    assert Decimal(body["default_lead_price"]) == Decimal("22.50")
    assert body["payment_enabled"] is False
    assert body["currency"] == "GBP"


def test_purchase_flow_over_http(db, client, make_painter, make_lead, auth_headers, notifier):
    user, painter = make_painter()
    lead = make_lead()
    headers = auth_headers(user)

    before = client.get("/lead-access", params={"lead_id": lead.id}, headers=headers).json()
    assert before["can_purchase"] is True

    resp = client.post("/purchase-lead", json={"lead_id": lead.id}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["payment_number"] == 1

    again = client.post("/purchase-lead", json={"lead_id": lead.id}, headers=headers)
    assert again.status_code == 409
    assert again.json()["error"] == "already_claimed"

    history = client.get("/payment-history", headers=headers).json()
    assert [(h["lead_id"], h["payment_status"]) for h in history] == [(lead.id, "succeeded")]
    assert "lead_access_granted" in notifier.types()


def test_purchase_blocked_when_payments_disabled(client, make_painter, make_lead, auth_headers, set_config):
    user, _ = make_painter()
    lead = make_lead()
    set_config(payment_enabled=False)

    resp = client.post("/purchase-lead", json={"lead_id": lead.id}, headers=auth_headers(user))

    assert resp.status_code == 409
    assert resp.json()["error"] == "payments_disabled"


def test_declined_purchase_is_402(client, make_painter, make_lead, auth_headers, gateway):
    from app.core.errors import PaymentFailed

    user, _ = make_painter()
    lead = make_lead()
    gateway.fail_with = PaymentFailed("Your card was declined.")

    resp = client.post("/purchase-lead", json={"lead_id": lead.id}, headers=auth_headers(user))

    assert resp.status_code == 402
    assert resp.json()["detail"] == "Your card was declined."


def test_confirm_payment_over_http(client, make_painter, make_lead, auth_headers, gateway):
    user, _ = make_painter()
    lead = make_lead()
    headers = auth_headers(user)
    gateway.next_status = "requires_action"

    first = client.post("/purchase-lead", json={"lead_id": lead.id}, headers=headers).json()
    assert first["requires_action"] is True
    gateway.settle(first["payment_intent_id"])

    resp = client.post(
        "/confirm-payment", json={"payment_intent_id": first["payment_intent_id"]}, headers=headers
    )
    assert resp.status_code == 200
    assert resp.json()["success"] is True

    other_user, _ = make_painter()
    stolen = client.post(
        "/confirm-payment",
        json={"payment_intent_id": first["payment_intent_id"]},
        headers=auth_headers(other_user),
    )
    assert stolen.status_code == 404


def test_payment_methods_endpoints(client, make_painter, auth_headers, notifier, gateway):
    user, painter = make_painter()
    headers = auth_headers(user)

    added = client.post(
        "/payment-methods", json={"payment_method_id": "pm_extra", "set_as_default": True}, headers=headers
    )
    assert added.status_code == 200
    assert added.json()["is_default"] is True

    listed = client.get("/payment-methods", headers=headers).json()
    assert [m["provider_payment_method_id"] for m in listed] == ["pm_extra", f"pm_card_{painter.id}"]

    removed = client.request(
        "DELETE", "/payment-method", json={"payment_method_id": "pm_extra"}, headers=headers
    )
    assert removed.status_code == 200
    missing = client.request(
        "DELETE", "/payment-method", json={"payment_method_id": "pm_extra"}, headers=headers
    )
    assert missing.status_code == 404
    assert notifier.types() == ["payment_method_added", "payment_method_removed"]


def test_lead_detail_hides_contact_without_access(client, make_painter, make_lead, auth_headers, grant):
    user, painter = make_painter()
    lead = make_lead()
    headers = auth_headers(user)

    hidden = client.get(f"/leads/{lead.id}", headers=headers).json()
    assert hidden["has_access"] is False
    assert hidden["customer_email"] is None

    grant(lead, painter)
    shown = client.get(f"/leads/{lead.id}", headers=headers).json()
    assert shown["has_access"] is True
    assert shown["customer_email"] == "jane@example.com"


def test_browse_open_and_purchased_leads(client, make_painter, make_lead, auth_headers, grant):
    user, painter = make_painter()
    first = make_lead(job_title="Fence")
    second = make_lead(job_title="Kitchen")
    grant(second, painter)
    headers = auth_headers(user)

    open_ids = {lead["id"] for lead in client.get("/leads", headers=headers).json()}
    purchased = client.get("/leads", params={"scope": "purchased"}, headers=headers).json()

    assert open_ids == {first.id, second.id}
    assert [lead["id"] for lead in purchased] == [second.id]


def test_bid_round_trip_over_http(db, client, make_user, make_painter, make_lead, auth_headers, grant):
    customer = make_user(Role.CUSTOMER)
    lead = make_lead(customer=customer)
    user, painter = make_painter(company_name="Brush & Co")
    grant(lead, painter)
    painter_headers = auth_headers(user)
    customer_headers = auth_headers(customer)

    too_low = client.post(
        "/bids",
        json={"lead_id": lead.id, "bid_amount": "49.99", "message": MESSAGE, "timeline": "1 week"},
        headers=painter_headers,
    )
    assert too_low.status_code == 422
    assert too_low.json()["details"]["errors"]["bid_amount"] == "Minimum bid amount is £50.00."

    created = client.post(
        "/bids",
        json={"lead_id": lead.id, "bid_amount": "480.00", "message": MESSAGE, "timeline": "1 week"},
        headers=painter_headers,
    )
    assert created.status_code == 200
    bid_id = created.json()["bid_id"]

    mine = client.get("/bids", headers=painter_headers).json()
    assert [b["id"] for b in mine] == [bid_id]

    customer_view = client.get(f"/customer/leads/{lead.id}/bids", headers=customer_headers).json()
    assert customer_view[0]["painter_company"] == "Brush & Co"

    stats = client.get(f"/leads/{lead.id}/bid-stats", headers=painter_headers).json()
    assert stats["total_bids"] == 1

    rejected = client.post(f"/bids/{bid_id}/reject", headers=customer_headers)
    assert rejected.json()["status"] == "rejected"

    resubmitted = client.post(f"/bids/{bid_id}/resubmit", json={"bid_amount": "450.00"}, headers=painter_headers)
    assert resubmitted.status_code == 200
    assert float(resubmitted.json()["bid_amount"]) == 450.0

    accepted = client.post(f"/bids/{bid_id}/accept", headers=customer_headers)
    assert accepted.json()["assigned_painter_id"] == painter.id

    closed = client.post(f"/leads/{lead.id}/close", headers=customer_headers)
    assert closed.json()["status"] == "closed"

    leads = client.get("/customer/leads", headers=customer_headers).json()
    assert leads[0]["status"] == "closed"


def test_painter_cannot_accept_bids(client, make_painter, make_lead, auth_headers):
    user, _ = make_painter()

    resp = client.post("/bids/1/accept", headers=auth_headers(user))

    assert resp.status_code == 403


def test_request_validation_uses_error_envelope(client, make_painter, auth_headers):
    user, _ = make_painter()

    resp = client.post("/bids", json={"bid_amount": "100"}, headers=auth_headers(user))

    assert resp.status_code == 422
    body = resp.json()
    assert body["success"] is False
    assert "lead_id" in body["details"]["errors"]
