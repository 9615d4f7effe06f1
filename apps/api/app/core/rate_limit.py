"""Rate limiting configuration for the API."""

import logging
import os

from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.config import settings

logger = logging.getLogger(__name__)

IS_TESTING = os.getenv("TESTING", "").lower() in ("1", "true", "yes")

# Applied per route with @limiter.limit(SEND_RATE_LIMIT)
SEND_RATE_LIMIT = f"{max(settings.RATE_LIMIT_SEND, 1)}/minute"


def _storage_uri() -> str:
    """Use Redis when configured and reachable, otherwise in-memory storage."""
    if IS_TESTING or not settings.REDIS_URL:
        return "memory://"
    try:
        import redis

        client = redis.from_url(settings.REDIS_URL, socket_connect_timeout=1)
        client.ping()
        return settings.REDIS_URL
    except Exception as e:
        logger.warning("Redis unavailable for rate limiting, using in-memory: %s", e)
        return "memory://"


limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=_storage_uri(),
    enabled=settings.RATE_LIMIT_SEND > 0,
)
