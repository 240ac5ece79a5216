# app/infra/retry.py
import random
import time
from typing import Callable, Optional, TypeVar

from app.core.logging_config import get_logger

T = TypeVar("T")
log = get_logger(__name__)


def _sleep_with_jitter(base: float, factor: float, attempt: int, cap: float) -> float:
    # exponential backoff met jitter
    delay = min(base * (factor ** attempt), cap)
    jitter = random.uniform(0, delay * 0.25)
    return delay + jitter


def retry_on(
    fn: Callable[[], T],
    *,
    attempts: int = 3,
    base: float = 0.2,
    factor: float = 2.0,
    cap: float = 2.0,
    is_retryable: Optional[Callable[[Exception], bool]] = None,
    sleep: Optional[Callable[[float], None]] = None,
    op: str = "call",
) -> T:
    """Call ``fn`` up to ``attempts`` times; only errors ``is_retryable`` accepts are retried."""
    for i in range(attempts):
        try:
            return fn()
        except Exception as e:
            if is_retryable is not None and not is_retryable(e):
                raise
            if i == attempts - 1:
                raise
            sleep_s = _sleep_with_jitter(base, factor, i, cap)
            log.warning("retrying", op=op, attempt=i + 1, sleep_s=round(sleep_s, 2), error=repr(e))
            (sleep or time.sleep)(sleep_s)
    raise RuntimeError("retry_on called with attempts < 1")
