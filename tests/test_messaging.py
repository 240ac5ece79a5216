import pytest

from app.core.errors import ConversationNotFound, LeadNotFound, NoAccess, ValidationError
from app.models.user import Role
from app.services import messaging


@pytest.fixture
def thread(db, ctx_for, make_user, make_painter, make_lead, grant):
    """Customer with a lead and a painter who holds access to it."""
    customer = make_user(Role.CUSTOMER, full_name="Jane Doe")
    lead = make_lead(customer=customer)
    painter_user, painter = make_painter(company_name="Brush & Co")
    grant(lead, painter)
    return customer, lead, painter_user, painter


def test_painter_needs_access_to_open_a_conversation(ctx_for, make_user, make_painter, make_lead):
    customer = make_user(Role.CUSTOMER)
    lead = make_lead(customer=customer)
    user, _ = make_painter()

    with pytest.raises(NoAccess):
        messaging.open_conversation(ctx_for(user), lead.id)


def test_open_conversation_is_get_or_create(ctx_for, thread):
    customer, lead, painter_user, painter = thread

    first = messaging.open_conversation(ctx_for(painter_user), lead.id)
    second = messaging.open_conversation(ctx_for(customer), lead.id, painter.id)

    assert first.id == second.id
    assert (first.lead_id, first.customer_id, first.painter_id) == (lead.id, customer.id, painter.id)


def test_customer_must_own_the_lead_and_name_a_painter(ctx_for, make_user, thread):
    customer, lead, _, painter = thread
    stranger = make_user(Role.CUSTOMER)

    with pytest.raises(LeadNotFound):
        messaging.open_conversation(ctx_for(stranger), lead.id, painter.id)
    with pytest.raises(ValidationError) as exc:
        messaging.open_conversation(ctx_for(customer), lead.id)
    assert "painter_id" in exc.value.errors


def test_customer_cannot_message_painter_without_access(ctx_for, make_painter, thread):
    customer, lead, _, _ = thread
    _, outsider = make_painter()

    with pytest.raises(NoAccess):
        messaging.open_conversation(ctx_for(customer), lead.id, outsider.id)


def test_send_notifies_the_other_party(ctx_for, notifier, thread):
    customer, lead, painter_user, painter = thread
    conv = messaging.open_conversation(ctx_for(painter_user), lead.id)

    msg = messaging.send_message(ctx_for(painter_user), conv.id, "  When suits you for a visit?  ", notifier=notifier)

    assert msg.body == "When suits you for a visit?"
    _, recipients, data = notifier.of("new_message")[0]
    assert recipients == [customer.email]
    assert data["sender_name"] == "Brush & Co"
    assert data["conversation_id"] == conv.id


def test_unread_count_and_mark_read(ctx_for, thread):
    customer, lead, painter_user, _ = thread
    conv = messaging.open_conversation(ctx_for(painter_user), lead.id)
    messaging.send_message(ctx_for(painter_user), conv.id, "Hello")
    messaging.send_message(ctx_for(painter_user), conv.id, "Are you around on Friday?")

    assert messaging.unread_count(ctx_for(customer)) == 2
    # eigen berichten tellen niet mee
    assert messaging.unread_count(ctx_for(painter_user)) == 0

    messages = messaging.list_messages(ctx_for(customer), conv.id)

    assert [m.body for m in messages] == ["Hello", "Are you around on Friday?"]
    assert all(m.read_at is not None for m in messages)
    assert messaging.unread_count(ctx_for(customer)) == 0


def test_non_participants_get_not_found(ctx_for, make_user, make_painter, thread):
    _, lead, painter_user, _ = thread
    conv = messaging.open_conversation(ctx_for(painter_user), lead.id)
    other_customer = make_user(Role.CUSTOMER)
    other_painter, _ = make_painter()

    for outsider in (other_customer, other_painter):
        with pytest.raises(ConversationNotFound):
            messaging.list_messages(ctx_for(outsider), conv.id)
        with pytest.raises(ConversationNotFound):
            messaging.send_message(ctx_for(outsider), conv.id, "hi")


def test_empty_message_is_rejected(ctx_for, thread):
    _, lead, painter_user, _ = thread
    conv = messaging.open_conversation(ctx_for(painter_user), lead.id)

    with pytest.raises(ValidationError) as exc:
        messaging.send_message(ctx_for(painter_user), conv.id, "   ")
    assert exc.value.errors == {"body": "Message cannot be empty."}


def test_list_conversations_per_side(ctx_for, make_painter, thread):
    customer, lead, painter_user, _ = thread
    messaging.open_conversation(ctx_for(painter_user), lead.id)
    idle_user, _ = make_painter()

    assert len(messaging.list_conversations(ctx_for(customer))) == 1
    assert len(messaging.list_conversations(ctx_for(painter_user))) == 1
    assert messaging.list_conversations(ctx_for(idle_user)) == []


def test_conversation_endpoints(client, auth_headers, thread):
    customer, lead, painter_user, painter = thread
    customer_headers = auth_headers(customer)

    opened = client.post("/conversations", json={"lead_id": lead.id, "painter_id": painter.id}, headers=customer_headers)
    assert opened.status_code == 200
    conv_id = opened.json()["id"]

    sent = client.post(f"/conversations/{conv_id}/messages", json={"body": "Can you start Monday?"}, headers=customer_headers)
    assert sent.status_code == 200

    painter_headers = auth_headers(painter_user)
    assert client.get("/conversations/unread-count", headers=painter_headers).json() == {"unread": 1}
    listed = client.get(f"/conversations/{conv_id}/messages", headers=painter_headers).json()
    assert [m["body"] for m in listed] == ["Can you start Monday?"]
    assert client.get("/conversations/unread-count", headers=painter_headers).json() == {"unread": 0}
