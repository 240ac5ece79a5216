# app/routers/auth.py
from fastapi import APIRouter, Depends, Request, Response
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from app.auth.deps import extract_token, principal_for_user, require_any_user, security
from app.auth.sessions import authenticate, end_session, issue_session
from app.core.context import Principal, RequestContext
from app.core.errors import Unauthenticated
from app.core.logging_config import get_logger
from app.core.rate_limit import limiter
from app.core.settings import settings
from app.db import get_db
from app.schemas.auth import LoginPayload, LoginResponse, PrincipalOut

router = APIRouter(prefix="/auth", tags=["auth"])
log = get_logger(__name__)


def _principal_out(p: Principal) -> PrincipalOut:
    return PrincipalOut(
        user_id=p.user_id,
        email=p.email,
        role=p.role,
        full_name=p.full_name,
        painter_id=p.painter_id,
        painter_active=p.painter_active,
    )


@router.post("/login", response_model=LoginResponse)
@limiter.limit(settings.rate_limit_login)
def login(
    request: Request,
    response: Response,
    payload: LoginPayload,
    db: Session = Depends(get_db),
):
    user = authenticate(db, payload.email, payload.password)
    if user is None:
        log.info("login_failed", email=payload.email)
        raise Unauthenticated("Invalid email or password.")

    token = issue_session(db, user)
    ttl = settings.SESSION_TTL_MINUTES * 60
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="lax",
        secure=settings.SESSION_COOKIE_SECURE,
        max_age=ttl,
        path="/",
    )

    principal = principal_for_user(db, user)
    log.info("login_ok", user_id=user.id, role=user.role)
    return LoginResponse(token=token, expires_in=ttl, user=_principal_out(principal))


@router.post("/logout")
def logout(
    request: Request,
    response: Response,
    creds: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
):
    token = extract_token(request, creds)
    revoked = end_session(db, token) if token else False
    response.delete_cookie(settings.SESSION_COOKIE_NAME, path="/")
    return {"success": True, "revoked": revoked}


@router.get("/me", response_model=PrincipalOut)
def me(ctx: RequestContext = Depends(require_any_user)):
    return _principal_out(ctx.principal)
