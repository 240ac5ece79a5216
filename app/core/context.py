# app/core/context.py
"""
Request-scoped context.

Every lifecycle operation receives a ``RequestContext``: who is calling
(``Principal``), the marketplace configuration as it was when the request
started (``MarketplaceConfig``) and the database session of the request.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from app.core.errors import AuthorizationError, Unauthenticated, ValidationError
from app.core.logging_config import get_logger
from app.models.user import Role

log = get_logger(__name__)


class MarketplaceConfig(BaseModel):
    """Immutable snapshot of the admin-editable marketplace settings."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    default_lead_price: Decimal = Field(Decimal("15.00"), gt=0, decimal_places=2)
    max_payments_per_lead: int = Field(3, ge=1, le=50)
    payment_enabled: bool = True
    email_notifications_enabled: bool = True
    bid_min_amount: Decimal = Field(Decimal("50.00"), gt=0, decimal_places=2)
    bid_max_amount: Decimal = Field(Decimal("50000.00"), gt=0, decimal_places=2)
    bid_message_min_length: int = Field(20, ge=0)
    bid_message_max_length: int = Field(1500, ge=1)

    @model_validator(mode="after")
    def _check_ranges(self) -> "MarketplaceConfig":
        if self.bid_min_amount > self.bid_max_amount:
            raise ValueError("bid_min_amount must not exceed bid_max_amount")
        if self.bid_message_min_length > self.bid_message_max_length:
            raise ValueError("bid_message_min_length must not exceed bid_message_max_length")
        return self

    @classmethod
    def keys(cls) -> list[str]:
        return list(cls.model_fields)

    @classmethod
    def from_entries(cls, entries: dict[str, str]) -> "MarketplaceConfig":
        """Build from raw key/value rows. Keys we don't know about are skipped."""
        known = {k: v for k, v in entries.items() if k in cls.model_fields}
        try:
            return cls.model_validate(known)
        except PydanticValidationError as e:
            # kapotte rij in de config tabel mag de site niet platleggen
            log.error("marketplace_config_invalid", errors=str(e))
            return cls()

    def merged(self, updates: dict[str, Any]) -> "MarketplaceConfig":
        unknown = sorted(set(updates) - set(self.model_fields))
        if unknown:
            raise ValidationError(
                "Unknown configuration keys.",
                errors={k: "unknown setting" for k in unknown},
            )
        try:
            return self.model_validate({**self.model_dump(), **updates})
        except PydanticValidationError as e:
            errors: dict[str, str] = {}
            for err in e.errors():
                field = ".".join(str(p) for p in err["loc"]) or "__root__"
                errors[field] = err["msg"]
            raise ValidationError("Invalid configuration values.", errors=errors)

    def as_entries(self) -> dict[str, str]:
        out: dict[str, str] = {}
        for key, value in self.model_dump().items():
            if isinstance(value, bool):
                out[key] = "true" if value else "false"
            else:
                out[key] = str(value)
        return out


@dataclass(frozen=True)
class Principal:
    user_id: int
    email: str
    role: str
    full_name: Optional[str] = None
    painter_id: Optional[int] = None
    painter_active: bool = False

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value


@dataclass(frozen=True)
class RequestContext:
    db: Session
    config: MarketplaceConfig
    principal: Optional[Principal] = None

    def require(self, *roles: Role) -> Principal:
        if self.principal is None:
            raise Unauthenticated()
        allowed = {r.value if isinstance(r, Role) else r for r in roles}
        if allowed and self.principal.role not in allowed:
            raise AuthorizationError()
        return self.principal

    def require_active_painter(self) -> Principal:
        principal = self.require(Role.PAINTER)
        if principal.painter_id is None or not principal.painter_active:
            raise AuthorizationError("Your painter account is not active.")
        return principal
