# app/main.py
import time
import uuid

import sentry_sdk
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from sentry_sdk.integrations.fastapi import FastApiIntegration
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError

from app.core.errors import ExternalServiceError, MarketplaceError
from app.core.logging_config import logger, setup_logging
from app.core.rate_limit import limiter
from app.core.settings import settings
from app.db import Base, engine
from app import models  # noqa: F401  (registreert SQLAlchemy modellen)
from app.observability.metrics import latency_hist, router as metrics_router
from app.routers import admin, auth, bids, customer, leads, messaging, payments


# ----------------------------------------------------
# App init
# ----------------------------------------------------
setup_logging()

if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.app_env,
        integrations=[FastApiIntegration()],
        traces_sample_rate=0.1,
    )

app = FastAPI(title="Painter Leads", version="0.1.0")
logger.info("startup", service="painter-leads-api", env=settings.app_env)


# ----------------------------------------------------
# Health
# ----------------------------------------------------
@app.get("/health", include_in_schema=True)
def health() -> dict:
    return {"status": "ok"}


# ----------------------------------------------------
# Logging middleware
# ----------------------------------------------------
@app.middleware("http")
async def logging_middleware(request: Request, call_next):
    start = time.time()

    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    client_ip = request.client.host if request.client else "unknown"

    bound_logger = logger.bind(
        request_id=request_id,
        ip=client_ip,
        endpoint=str(request.url.path),
        method=request.method,
    )

    bound_logger.info("request_started")
    response = await call_next(request)
    elapsed = time.time() - start

    route = request.scope.get("route")
    latency_hist.labels(route=getattr(route, "path", "unmatched")).observe(elapsed)

    response.headers["X-Request-ID"] = request_id
    bound_logger.bind(
        status_code=response.status_code, latency_ms=round(elapsed * 1000, 2)
    ).info("request_finished")
    return response


# ----------------------------------------------------
# Middleware
# ----------------------------------------------------
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ----------------------------------------------------
# Errors
# ----------------------------------------------------
@app.exception_handler(RateLimitExceeded)
def ratelimit_handler(request: Request, exc: RateLimitExceeded):
    return PlainTextResponse(str(exc), status_code=429)


@app.exception_handler(MarketplaceError)
def marketplace_error_handler(request: Request, exc: MarketplaceError):
    if exc.status_code >= 500:
        logger.error(
            "request_failed",
            error=exc.code,
            endpoint=str(request.url.path),
            details=exc.details,
        )
    else:
        logger.info("request_rejected", error=exc.code, endpoint=str(request.url.path))
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = {}
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        errors[".".join(loc) or "body"] = err.get("msg", "invalid")
    body = {
        "success": False,
        "error": "validation_error",
        "detail": "Please correct the highlighted fields.",
        "details": {"errors": errors},
    }
    return JSONResponse(status_code=422, content=body)


@app.exception_handler(SQLAlchemyError)
def db_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("database_error", endpoint=str(request.url.path))
    err = ExternalServiceError()
    return JSONResponse(status_code=err.status_code, content=err.to_dict())


# ----------------------------------------------------
# Routers
# ----------------------------------------------------
app.include_router(auth.router)
app.include_router(payments.router)
app.include_router(leads.router)
app.include_router(bids.router)
app.include_router(customer.router)
app.include_router(messaging.router)
app.include_router(admin.router)
app.include_router(metrics_router)  # /metrics


# ----------------------------------------------------
# Startup
# ----------------------------------------------------
@app.on_event("startup")
def on_startup():
    Base.metadata.create_all(bind=engine)
