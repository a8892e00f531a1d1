"""Per-client request limits for the API and the public link endpoints.

Every route gets ``DEFAULT_LIMITS`` through ``SlowAPIMiddleware``; the public
questionnaire and booking mutations add the tighter ``PUBLIC_LIMIT``.
Counters live in Redis so limits hold across workers.
"""

import logging

import redis
from slowapi import Limiter
from slowapi.util import get_remote_address

from rentema.core.config import Settings, settings

logger = logging.getLogger(__name__)

MEMORY_STORAGE = "memory://"


def default_limits(config: Settings) -> list[str]:
    if config.RATE_LIMIT_API <= 0:
        return []
    return [f"{config.RATE_LIMIT_API}/minute"]


def storage_uri(config: Settings) -> str:
    """Redis when reachable, otherwise process-local counters."""
    if config.TESTING:
        return MEMORY_STORAGE
    try:
        redis.from_url(config.REDIS_URL, socket_connect_timeout=1).ping()
    except (redis.RedisError, ValueError) as exc:
        logger.warning(f"Redis unavailable for rate limiting, counting in memory: {exc}")
        return MEMORY_STORAGE
    return config.REDIS_URL


def build_limiter(config: Settings) -> Limiter:
    return Limiter(
        key_func=get_remote_address,
        storage_uri=storage_uri(config),
        default_limits=default_limits(config),
        enabled=not config.TESTING,
    )


DEFAULT_LIMITS = default_limits(settings)
PUBLIC_LIMIT = f"{max(settings.RATE_LIMIT_PUBLIC, 1)}/minute"
limiter = build_limiter(settings)
