"""
Tests for leadledger/utils/rate_limiter.py - Redis sliding-window limits from Settings.
"""
from unittest.mock import AsyncMock, MagicMock, patch

from leadledger.utils.rate_limiter import check_rate_limit, check_webhook_rate_limits

IP_LIMIT = 100
TENANT_LIMIT = 60
WINDOW = 60


def _settings(**overrides):
    s = MagicMock()
    s.webhook_ip_rate_limit = IP_LIMIT
    s.webhook_tenant_rate_limit = TENANT_LIMIT
    s.webhook_rate_limit_window_seconds = WINDOW
    for key, value in overrides.items():
        setattr(s, key, value)
    return s


def _redis_with_counts(*counts):
    """Redis mock whose pipeline reports the given request counts, one per call."""
    redis = MagicMock()
    pipe = MagicMock()
    pipe.execute = AsyncMock(side_effect=[[0, 1, c, True] for c in counts])
    redis.pipeline.return_value = pipe
    return redis


def _patch_redis(redis):
    return patch("leadledger.utils.rate_limiter.get_redis", new_callable=AsyncMock, return_value=redis)


class TestCheckRateLimit:
    async def test_under_limit_allowed(self):
        redis = _redis_with_counts(5)
        with _patch_redis(redis):
            allowed, retry = await check_rate_limit("ip:1.2.3.4", limit=10, window=WINDOW)
        assert allowed is True
        assert retry is None

    async def test_over_limit_blocked(self):
        redis = _redis_with_counts(11)
        with _patch_redis(redis):
            allowed, retry = await check_rate_limit("ip:1.2.3.4", limit=10, window=30)
        assert allowed is False
        assert retry == 30

    async def test_key_is_namespaced(self):
        redis = _redis_with_counts(1)
        with _patch_redis(redis):
            await check_rate_limit("tenant:abc", limit=10, window=WINDOW)
        pipe = redis.pipeline.return_value
        assert pipe.zadd.call_args[0][0] == "leadledger:ratelimit:tenant:abc"
        pipe.expire.assert_called_once_with("leadledger:ratelimit:tenant:abc", WINDOW + 1)

    async def test_same_instant_deliveries_are_distinct_members(self):
        redis = _redis_with_counts(1, 2)
        with _patch_redis(redis), patch("leadledger.utils.rate_limiter.time.time", return_value=1000.0):
            await check_rate_limit("ip:1.2.3.4", limit=10, window=WINDOW)
            await check_rate_limit("ip:1.2.3.4", limit=10, window=WINDOW)
        calls = redis.pipeline.return_value.zadd.call_args_list
        first, second = (list(c[0][1]) for c in calls)
        assert first != second

    async def test_zero_limit_disables_window(self):
        redis = _redis_with_counts()
        with _patch_redis(redis):
            allowed, retry = await check_rate_limit("tenant:abc", limit=0, window=WINDOW)
        assert allowed is True
        redis.pipeline.assert_not_called()

    async def test_redis_failure_fails_open(self):
        with patch(
            "leadledger.utils.rate_limiter.get_redis",
            new_callable=AsyncMock,
            side_effect=ConnectionError("redis down"),
        ):
            allowed, retry = await check_rate_limit("ip:1.2.3.4", limit=10, window=WINDOW)
        assert allowed is True
        assert retry is None


class TestCheckWebhookRateLimits:
    async def test_ip_and_tenant_checked(self):
        redis = _redis_with_counts(1, 1)
        with _patch_redis(redis):
            allowed, _ = await check_webhook_rate_limits("1.2.3.4", "tenant-1", settings=_settings())
        assert allowed is True
        assert redis.pipeline.return_value.execute.await_count == 2

    async def test_ip_limit_short_circuits(self):
        redis = _redis_with_counts(IP_LIMIT + 1)
        with _patch_redis(redis):
            allowed, retry = await check_webhook_rate_limits("1.2.3.4", "tenant-1", settings=_settings())
        assert allowed is False
        assert retry == WINDOW
        assert redis.pipeline.return_value.execute.await_count == 1

    async def test_tenant_limit(self):
        redis = _redis_with_counts(1, TENANT_LIMIT + 1)
        with _patch_redis(redis):
            allowed, _ = await check_webhook_rate_limits("1.2.3.4", "tenant-1", settings=_settings())
        assert allowed is False

    async def test_limits_read_from_settings(self):
        redis = _redis_with_counts(1, 6)
        settings = _settings(webhook_tenant_rate_limit=5, webhook_rate_limit_window_seconds=10)
        with _patch_redis(redis):
            allowed, retry = await check_webhook_rate_limits("1.2.3.4", "tenant-1", settings=settings)
        assert allowed is False
        assert retry == 10

    async def test_tenant_limit_off_checks_ip_only(self):
        redis = _redis_with_counts(1)
        settings = _settings(webhook_tenant_rate_limit=0)
        with _patch_redis(redis):
            allowed, _ = await check_webhook_rate_limits("1.2.3.4", "tenant-1", settings=settings)
        assert allowed is True
        assert redis.pipeline.return_value.execute.await_count == 1

    async def test_no_tenant_checks_ip_only(self):
        redis = _redis_with_counts(1)
        with _patch_redis(redis):
            allowed, _ = await check_webhook_rate_limits("1.2.3.4", settings=_settings())
        assert allowed is True
        assert redis.pipeline.return_value.execute.await_count == 1

    async def test_defaults_come_from_get_settings(self):
        redis = _redis_with_counts(4)
        settings = _settings(webhook_ip_rate_limit=3)
        with _patch_redis(redis), patch(
            "leadledger.utils.rate_limiter.get_settings", return_value=settings
        ):
            allowed, _ = await check_webhook_rate_limits("1.2.3.4")
        assert allowed is False
