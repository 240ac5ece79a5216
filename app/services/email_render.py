# app/services/email_render.py
import re
from pathlib import Path
from typing import Any, Mapping

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

from app.core.settings import settings

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates" / "email"

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(["html", "xml"]),
    undefined=StrictUndefined,
)
_env.globals["site_name"] = settings.SMTP_FROM_NAME
# onderwerpregels zijn plain text, geen HTML escaping
_subject_env = Environment(undefined=StrictUndefined)

SUBJECTS: dict[str, str] = {
    "bid_submitted": "Your bid for \"{{ job_title }}\" has been submitted",
    "bid_admin_alert": "New bid: £{{ bid_amount }} on lead #{{ lead_id }}",
    "bid_received": "You have a new quote for \"{{ job_title }}\"",
    "bid_status_changed": "Your bid for \"{{ job_title }}\" was {{ status }}",
    "lead_access_granted": "Lead access confirmed: {{ job_title }}",
    "payment_failed": "Payment failed for lead #{{ lead_id }}",
    "lead_deactivated": "Lead #{{ lead_id }} has reached its painter limit",
    "admin_payment_alert": "Lead payment received: £{{ amount }} (lead #{{ lead_id }})",
    "payment_method_added": "A payment method was added to your account",
    "payment_method_removed": "A payment method was removed from your account",
    "new_message": "New message about \"{{ job_title }}\"",
}

_TAG_RE = re.compile(r"<[^>]+>")
_BLANK_RE = re.compile(r"\n\s*\n+")


def render_email(event_type: str, context: Mapping[str, Any]) -> tuple[str, str, str]:
    """
    Render ``(subject, html_body, text_body)`` for a notification event.

    Raises ``KeyError`` for an unknown event type and jinja errors when the
    template data is incomplete.
    """
    subject = _subject_env.from_string(SUBJECTS[event_type]).render(**context)
    html = _env.get_template(f"{event_type}.html").render(**context)
    text = _BLANK_RE.sub("\n\n", _TAG_RE.sub("", html)).strip()
    return subject.strip(), html, text
