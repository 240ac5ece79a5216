# app/auth/deps.py
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.auth.sessions import resolve_session
from app.core.context import MarketplaceConfig, Principal, RequestContext
from app.core.settings import settings
from app.db import get_db
from app.models.user import Role, User
from app.repositories import config as config_repo
from app.repositories import painters as painters_repo

security = HTTPBearer(auto_error=False)  # <- niet auto-error, cookie mag ook


def extract_token(
    request: Request, creds: Optional[HTTPAuthorizationCredentials]
) -> Optional[str]:
    # 1) cookie
    cookie_token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if cookie_token:
        return cookie_token

    # 2) Authorization header
    if creds and creds.credentials:
        return creds.credentials

    return None


def get_principal(
    request: Request,
    creds: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> Optional[Principal]:
    token = extract_token(request, creds)
    if not token:
        return None

    user = resolve_session(db, token)
    if user is None:
        return None
    return principal_for_user(db, user)


def principal_for_user(db: Session, user: User) -> Principal:
    painter_id = None
    painter_active = False
    if user.role == Role.PAINTER.value:
        painter = painters_repo.get_painter_by_user_id(db, user.id)
        if painter is not None:
            painter_id = painter.id
            painter_active = painter.is_active

    return Principal(
        user_id=user.id,
        email=user.email,
        role=user.role,
        full_name=user.full_name,
        painter_id=painter_id,
        painter_active=painter_active,
    )


def get_marketplace_config(db: Session = Depends(get_db)) -> MarketplaceConfig:
    # één keer per request geladen, daarna onveranderlijk
    return MarketplaceConfig.from_entries(config_repo.load_config_entries(db))


def get_context(
    db: Session = Depends(get_db),
    principal: Optional[Principal] = Depends(get_principal),
    config: MarketplaceConfig = Depends(get_marketplace_config),
) -> RequestContext:
    return RequestContext(db=db, config=config, principal=principal)


def require_role(*roles: Role):
    """
    Dependency factory: the request context, once the caller is known to hold
    one of ``roles``. Raises ``Unauthenticated`` (401) without a live session
    and ``AuthorizationError`` (403) for the wrong role.
    """

    def _dep(ctx: RequestContext = Depends(get_context)) -> RequestContext:
        ctx.require(*roles)
        return ctx

    return _dep


require_painter = require_role(Role.PAINTER)
require_customer = require_role(Role.CUSTOMER)
require_admin = require_role(Role.ADMIN)
require_customer_or_admin = require_role(Role.CUSTOMER, Role.ADMIN)
require_any_user = require_role()
