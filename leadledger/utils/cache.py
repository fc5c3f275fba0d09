"""
Shared Redis connection (rate limiting, worker heartbeats).
"""
import logging

logger = logging.getLogger(__name__)

KEY_PREFIX = "leadledger"

# Redis client (lazily initialized)
_redis_client = None


async def get_redis():
    """Get or create Redis connection."""
    global _redis_client
    if _redis_client is None:
        import redis.asyncio as aioredis
        from leadledger.config import get_settings
        _redis_client = aioredis.from_url(
            get_settings().redis_url,
            decode_responses=True,
        )
    return _redis_client


def make_key(*parts: str) -> str:
    """Namespaced Redis key, e.g. leadledger:ratelimit:ip:1.2.3.4"""
    return ":".join((KEY_PREFIX,) + tuple(parts))
