"""
Webhook delivery rate limits, a Redis sorted-set sliding window per key.

Two windows guard the ingress: one per client IP (a misbehaving sender) and one per
tenant path segment (a runaway campaign). Limits come from Settings. Redis being down
lets deliveries through: losing leads is worse than an unmetered minute.
"""
import logging
import time
import uuid
from typing import Optional

from leadledger.config import Settings, get_settings
from leadledger.utils.cache import get_redis, make_key
from leadledger.utils.logging import short_tenant_id

logger = logging.getLogger(__name__)


async def check_rate_limit(
    key: str,
    limit: int,
    window: int,
) -> tuple[bool, Optional[int]]:
    """
    Count this delivery against `key` and report whether it fits in the window.

    Returns: (allowed: bool, retry_after_seconds: int | None)
    """
    if limit <= 0:
        return True, None

    try:
        redis = await get_redis()

        redis_key = make_key("ratelimit", key)
        now = time.time()
        window_start = now - window

        pipe = redis.pipeline()
        pipe.zremrangebyscore(redis_key, 0, window_start)
        # Unique member so deliveries landing on the same timestamp all count
        pipe.zadd(redis_key, {f"{now}:{uuid.uuid4().hex[:8]}": now})
        pipe.zcard(redis_key)
        pipe.expire(redis_key, window + 1)

        results = await pipe.execute()
        request_count = results[2]

        if request_count > limit:
            return False, window

        return True, None
    except Exception as e:
        logger.warning("Rate limiter Redis error: %s. Allowing delivery.", str(e))
        return True, None


async def check_webhook_rate_limits(
    client_ip: str,
    tenant_id: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> tuple[bool, Optional[int]]:
    """
    Check the IP window, then the tenant window.
    Returns (allowed, retry_after_seconds).
    """
    settings = settings or get_settings()
    window = settings.webhook_rate_limit_window_seconds

    ip_allowed, ip_retry = await check_rate_limit(
        f"ip:{client_ip}", settings.webhook_ip_rate_limit, window
    )
    if not ip_allowed:
        logger.warning(
            "Webhook rate limit exceeded for IP %s (limit %d per %ds)",
            client_ip, settings.webhook_ip_rate_limit, window,
            extra={"tenant_id": tenant_id, "reason": "ip_rate_limit"},
        )
        return False, ip_retry

    if tenant_id:
        tenant_allowed, tenant_retry = await check_rate_limit(
            f"tenant:{tenant_id}", settings.webhook_tenant_rate_limit, window
        )
        if not tenant_allowed:
            logger.warning(
                "Webhook rate limit exceeded for tenant %s (limit %d per %ds)",
                short_tenant_id(tenant_id), settings.webhook_tenant_rate_limit, window,
                extra={"tenant_id": tenant_id, "reason": "tenant_rate_limit"},
            )
            return False, tenant_retry

    return True, None
