# Routers package

from . import admin, auth, bids, customer, leads, messaging, payments

__all__ = [
    "admin",
    "auth",
    "bids",
    "customer",
    "leads",
    "messaging",
    "payments",
]
