import logging
import math
import time
from dataclasses import dataclass
from functools import wraps
from typing import Optional

import redis
from flask import current_app, request
from limits import RateLimitItem, RateLimitItemPerSecond
from limits.storage import RedisStorage, Storage
from limits.strategies import MovingWindowRateLimiter

from nubia.core.exceptions import RateLimitError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitPolicy:
    limit: int
    window_seconds: int

    @property
    def item(self) -> RateLimitItem:
        return RateLimitItemPerSecond(self.limit, self.window_seconds, namespace="nubia")


DEFAULT = RateLimitPolicy(limit=10, window_seconds=10)
AUTH = RateLimitPolicy(limit=5, window_seconds=60)
PAYMENT = RateLimitPolicy(limit=10, window_seconds=60)
FORM = RateLimitPolicy(limit=2, window_seconds=60)


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    retry_after: int = 0


def init_rate_limit(app) -> None:
    """Attach the limits storage, or None when REDIS_URL is empty."""
    cfg = app.config["NUBIA"].redis
    storage = None
    if cfg.url:
        storage = RedisStorage(cfg.url, socket_timeout=cfg.socket_timeout)
    app.extensions["rate_limit_storage"] = storage


def get_storage() -> Optional[Storage]:
    return current_app.extensions.get("rate_limit_storage")


class RateLimiter:
    """
    Moving-window limiter backed by `limits`.

    Fails open: a Redis outage must not take checkout down with it.
    """

    def __init__(self, storage: Optional[Storage]):
        self.strategy = MovingWindowRateLimiter(storage) if storage is not None else None

    def hit(self, key: str, policy: RateLimitPolicy) -> RateLimitResult:
        if self.strategy is None:
            return RateLimitResult(allowed=True, remaining=policy.limit)

        item = policy.item
        try:
            allowed = self.strategy.hit(item, key)
            reset_time, remaining = self.strategy.get_window_stats(item, key)
        except redis.RedisError as e:
            logger.warning(f"Rate limiter unavailable, allowing request for {key}: {e}")
            return RateLimitResult(allowed=True, remaining=policy.limit)

        if not allowed:
            retry_after = max(1, math.ceil(reset_time - time.time()))
            return RateLimitResult(allowed=False, remaining=0, retry_after=retry_after)
        return RateLimitResult(allowed=True, remaining=remaining)


def client_ip() -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.headers.get("X-Real-IP") or request.remote_addr or "global"


def rate_limit(prefix: str, policy: RateLimitPolicy = DEFAULT):
    """Route decorator keyed on `<prefix>:<client ip>`."""

    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            result = RateLimiter(get_storage()).hit(f"{prefix}:{client_ip()}", policy)
            if not result.allowed:
                logger.info(f"Rate limit hit for {prefix} from {client_ip()}")
                raise RateLimitError(
                    "Too many requests. Please try again shortly.",
                    retry_after=result.retry_after,
                )
            return view(*args, **kwargs)

        return wrapper

    return decorator
