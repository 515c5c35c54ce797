import json
import logging
from typing import Any, Optional

import redis
from flask import current_app

logger = logging.getLogger(__name__)


def init_redis(app) -> None:
    """Attach a Redis client to the app, or None when REDIS_URL is empty."""
    cfg = app.config["NUBIA"].redis
    client = None
    if cfg.url:
        client = redis.Redis.from_url(
            cfg.url,
            decode_responses=cfg.decode_responses,
            socket_timeout=cfg.socket_timeout,
        )
    app.extensions["redis"] = client


def get_redis() -> Optional[redis.Redis]:
    return current_app.extensions.get("redis")


class IdempotencyStore:
    """
    Remembers the first response for an Idempotency-Key so a retried
    checkout returns the same order instead of creating a second one.

    Lookups and writes never raise: if Redis is down the request simply
    proceeds as a non-idempotent call.
    """

    def __init__(self, client: Optional[redis.Redis], namespace: str, ttl_seconds: int = 900):
        self.client = client
        self.namespace = namespace
        self.ttl_seconds = ttl_seconds

    def _key(self, key: str) -> str:
        return f"idem:{self.namespace}:{key}"

    def get(self, key: Optional[str]) -> Optional[Any]:
        if not key or self.client is None:
            return None
        try:
            cached = self.client.get(self._key(key))
        except redis.RedisError as e:
            logger.warning(f"Idempotency lookup failed for {self.namespace}: {e}")
            return None
        return json.loads(cached) if cached else None

    def put(self, key: Optional[str], value: Any) -> None:
        if not key or self.client is None:
            return
        try:
            self.client.set(self._key(key), json.dumps(value, default=str), ex=self.ttl_seconds)
        except redis.RedisError as e:
            logger.warning(f"Idempotency store failed for {self.namespace}: {e}")
