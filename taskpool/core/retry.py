"""
Bounded retry with exponential backoff for Transient failures.
Everything else propagates on the first attempt.
"""

import datetime
import logging
import random
import time
from typing import Callable, Optional, TypeVar

from taskpool.core import config
from taskpool.core.errors import Transient
from taskpool.core.helpers import utcnow

logger = logging.getLogger("uvicorn.error")

T = TypeVar("T")

# runtime-overrides (tests set these to zero backoff)
_runtime_max_retries: Optional[int] = None
_runtime_backoff_base: Optional[float] = None
_runtime_max_backoff: Optional[float] = None


def configure_retry(
    max_retries: Optional[int] = None, backoff_base: Optional[float] = None, max_backoff: Optional[float] = None
):
    """Override the environment defaults at runtime."""
    global _runtime_max_retries, _runtime_backoff_base, _runtime_max_backoff
    if max_retries is not None:
        _runtime_max_retries = int(max_retries)
    if backoff_base is not None:
        _runtime_backoff_base = float(backoff_base)
    if max_backoff is not None:
        _runtime_max_backoff = float(max_backoff)


def _resolve(value, runtime, default):
    if value is not None:
        return value
    if runtime is not None:
        return runtime
    return default


def compute_wait_seconds(backoff: float, max_backoff: float) -> float:
    return min(backoff + random.uniform(0, backoff), max_backoff)


def retry_transient(
    fn: Callable[[], T],
    max_retries: Optional[int] = None,
    backoff_base: Optional[float] = None,
    max_backoff: Optional[float] = None,
    deadline: Optional[datetime.datetime] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call fn, retrying up to max_retries extra times while it raises Transient.
    No new attempt starts once the caller's deadline (naive UTC) has passed.
    """
    retries = int(_resolve(max_retries, _runtime_max_retries, config.MAX_RETRIES))
    backoff = float(_resolve(backoff_base, _runtime_backoff_base, config.BACKOFF_BASE))
    ceiling = float(_resolve(max_backoff, _runtime_max_backoff, config.MAX_BACKOFF))

    attempt = 0
    while True:
        try:
            return fn()
        except Transient as e:
            if attempt >= retries:
                raise
            if deadline is not None and utcnow() >= deadline:
                raise
            wait = compute_wait_seconds(backoff, ceiling) if backoff > 0 else 0.0
            logger.warning("Transient failure (attempt %s/%s), retrying in %.2fs: %s", attempt + 1, retries + 1, wait, e.detail)
            if wait:
                sleep(wait)
            backoff = min(backoff * 2, ceiling)
            attempt += 1


__all__ = ["configure_retry", "retry_transient"]
