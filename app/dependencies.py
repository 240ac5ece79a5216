# app/dependencies.py
from __future__ import annotations

from fastapi import BackgroundTasks, Depends

from app.auth.deps import get_marketplace_config
from app.core.context import MarketplaceConfig
from app.services.notifications import DeferredNotifier, NotificationDispatcher
from app.services.payment_gateway import StripeGateway, get_gateway


def get_payment_gateway() -> StripeGateway:
    """Eén gateway per request; tests overschrijven deze dependency met een fake."""
    return get_gateway()


def get_dispatcher(
    config: MarketplaceConfig = Depends(get_marketplace_config),
) -> NotificationDispatcher:
    return NotificationDispatcher(enabled=config.email_notifications_enabled)


def get_notifier(
    background_tasks: BackgroundTasks,
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
) -> DeferredNotifier:
    # mails pas na de response versturen
    return DeferredNotifier(background_tasks, dispatcher)
