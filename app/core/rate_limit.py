# app/core/rate_limit.py
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.settings import settings


def _rate_key(req) -> str:
    # sessie-token in de key zodat painters achter één NAT elkaar niet blokkeren
    token = req.cookies.get(settings.SESSION_COOKIE_NAME) or req.headers.get(
        "authorization", "anon"
    )
    return f"{get_remote_address(req)}:{token[-12:]}"


# 1 gedeelde Limiter voor de hele app
limiter = Limiter(key_func=_rate_key)
