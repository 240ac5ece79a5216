# app/core/errors.py
"""
Domain error taxonomy.

Every error knows its HTTP status, a stable machine-readable ``code`` and a
message that is safe to show to the end user. Handlers raise these; the
exception handler in ``app.main`` renders them.
"""
from __future__ import annotations

from typing import Any, Optional


class MarketplaceError(Exception):
    status_code: int = 400
    code: str = "error"
    message: str = "Request could not be processed."

    def __init__(self, message: Optional[str] = None, **details: Any):
        self.message = message or self.message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body: dict[str, Any] = {"success": False, "error": self.code, "detail": self.message}
        if self.details:
            body["details"] = self.details
        return body


# --- user-correctable input ---


class ValidationError(MarketplaceError):
    status_code = 422
    code = "validation_error"
    message = "Please correct the highlighted fields."

    def __init__(self, message: Optional[str] = None, errors: Optional[dict[str, str]] = None):
        super().__init__(message, **({"errors": errors} if errors else {}))
        self.errors = errors or {}


# --- auth ---


class AuthorizationError(MarketplaceError):
    status_code = 403
    code = "forbidden"
    message = "You are not allowed to do this."


class Unauthenticated(AuthorizationError):
    status_code = 401
    code = "unauthenticated"
    message = "Authentication required."


class NoAccess(AuthorizationError):
    code = "no_access"
    message = "You need to claim this lead before bidding on it."


class NotOwner(AuthorizationError):
    code = "not_owner"
    message = "This bid belongs to another painter."


# --- lookups ---


class NotFound(MarketplaceError):
    status_code = 404
    code = "not_found"
    message = "Not found."


class LeadNotFound(NotFound):
    code = "lead_not_found"
    message = "Lead not found."


class BidNotFound(NotFound):
    code = "bid_not_found"
    message = "Bid not found."


class PaymentMethodNotFound(NotFound):
    code = "payment_method_not_found"
    message = "Payment method not found."


class ConversationNotFound(NotFound):
    code = "conversation_not_found"
    message = "Conversation not found."


# --- lifecycle conflicts ---


class StateConflict(MarketplaceError):
    status_code = 409
    code = "state_conflict"
    message = "This action is not possible in the current state."


class AlreadyClaimed(StateConflict):
    code = "already_claimed"
    message = "You have already paid for access to this lead."


class LeadNotOpen(StateConflict):
    code = "lead_not_open"
    message = "This lead is no longer open."


class PaymentCapReached(StateConflict):
    code = "payment_cap_reached"
    message = "This lead is no longer accepting payments."


class PaymentsDisabled(StateConflict):
    code = "payments_disabled"
    message = "Lead purchases are temporarily disabled."


class DuplicateBid(StateConflict):
    code = "duplicate_bid"
    message = "You have already bid on this lead."


class NotPending(StateConflict):
    code = "not_pending"
    message = "Only pending bids can be changed."


class InvalidState(StateConflict):
    code = "invalid_state"
    message = "This bid cannot be changed any more."


# --- payments & external systems ---


class PaymentFailed(MarketplaceError):
    status_code = 402
    code = "payment_failed"
    message = "Your payment could not be processed."


class ExternalServiceError(MarketplaceError):
    status_code = 503
    code = "service_unavailable"
    message = "Something went wrong on our side, please try again."


class ReconciliationRequired(ExternalServiceError):
    status_code = 500
    code = "reconciliation_required"
    message = "Your payment was taken but we could not record it. Our team has been alerted."


class SignatureError(MarketplaceError):
    status_code = 400
    code = "bad_signature"
    message = "Invalid webhook signature."


class UnknownPaymentIntent(NotFound):
    code = "unknown_payment_intent"
    message = "Unknown payment intent."
