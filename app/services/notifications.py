# app/services/notifications.py
"""
Transactional e-mail for lifecycle events.

``NotificationDispatcher.notify`` is fire-and-forget: it renders the event's
template, sends one mail per recipient and logs (never raises) whatever goes
wrong. In request handlers the dispatcher is wrapped in ``DeferredNotifier``
so the sending happens in a FastAPI background task after the response.
"""
from __future__ import annotations

from typing import Any, Callable, Iterable, Mapping, Optional

from fastapi import BackgroundTasks

from app.core.logging_config import get_logger
from app.observability.metrics import notification_counter
from app.services.email_render import SUBJECTS, render_email
from app.services.email_service import send_email

log = get_logger(__name__)

EVENT_TYPES = frozenset(SUBJECTS)

Sender = Callable[[str, str, str, str], None]


class NotificationDispatcher:
    def __init__(self, *, enabled: bool = True, sender: Optional[Sender] = None):
        self.enabled = enabled
        self.sender = sender or send_email

    def notify(
        self,
        event_type: str,
        recipients: Iterable[Optional[str]],
        template_data: Mapping[str, Any],
    ) -> None:
        try:
            self._notify(event_type, recipients, template_data)
        except Exception:
            notification_counter.labels(event_type=event_type, result="error").inc()
            log.exception("notification_failed", event_type=event_type)

    def _notify(self, event_type, recipients, template_data) -> None:
        to = [r for r in dict.fromkeys(recipients) if r]
        if not self.enabled or not to:
            notification_counter.labels(event_type=event_type, result="skipped").inc()
            log.info("notification_skipped", event_type=event_type, enabled=self.enabled)
            return

        if event_type not in EVENT_TYPES:
            raise ValueError(f"unknown notification event: {event_type}")
        subject, html, text = render_email(event_type, template_data)

        for recipient in to:
            try:
                self.sender(recipient, subject, html, text)
                notification_counter.labels(event_type=event_type, result="sent").inc()
            except Exception:
                # één mislukte ontvanger stopt de rest niet
                notification_counter.labels(event_type=event_type, result="error").inc()
                log.exception("notification_delivery_failed", event_type=event_type, to=recipient)


class DeferredNotifier:
    """Queues ``notify`` calls on the request's background tasks."""

    def __init__(self, background_tasks: BackgroundTasks, dispatcher: NotificationDispatcher):
        self.background_tasks = background_tasks
        self.dispatcher = dispatcher

    def notify(self, event_type: str, recipients, template_data) -> None:
        self.background_tasks.add_task(
            self.dispatcher.notify, event_type, list(recipients), dict(template_data)
        )
