"""
Test configuration and fixtures.
Uses a file-backed SQLite database per test (several sessions must see each
other's commits). Mocks all external services.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./leadledger-test.db")

import uuid
from contextlib import ExitStack
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.dialects.postgresql import JSONB, UUID

from leadledger.database import Base
import leadledger.models  # noqa: F401
from leadledger.models.balance import Balance
from leadledger.models.import_config import ImportConfig
from leadledger.models.tenant import Tenant
from leadledger.services.platform_fetcher import FetchResult


# Register JSONB as JSON for SQLite compatibility in tests
@compiles(JSONB, "sqlite")
def _compile_jsonb_sqlite(type_, compiler, **kw):
    return "JSON"


# UUID columns declared as UUID would get NUMERIC affinity on SQLite, which turns
# all-digit hex ids into REALs. Store them as text.
@compiles(UUID, "sqlite")
def _compile_uuid_sqlite(type_, compiler, **kw):
    return "CHAR(32)"


TENANT_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")
FORM_ID = "form_123"

STANDARD_MAPPING = {
    "first_name": "first_name",
    "last_name": "last_name",
    "email": "email",
    "phone": "phone_number",
    "city": "city",
    "state": "state",
}

# Scores 90: email + phone + full name + location
GOOD_LEAD_FIELDS = {
    "first_name": "Jane",
    "last_name": "Doe",
    "email": "jane@example.com",
    "phone_number": "+1 512 555 0100",
    "city": "Austin",
    "state": "TX",
}


class StubFetcher:
    """Stands in for FacebookLeadFetcher; returns a canned FetchResult."""

    platform = "facebook"

    def __init__(self, result: FetchResult | None = None):
        self.result = result or FetchResult(ok=True, fields=dict(GOOD_LEAD_FIELDS), status_code=200)
        self.calls: list[tuple[str, str | None]] = []

    async def fetch(self, lead_id, access_token):
        self.calls.append((lead_id, access_token))
        if isinstance(self.result, list):
            return self.result.pop(0)
        return self.result


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    """A session for arranging test data. Commit before exercising services."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def tenant(session_factory):
    async with session_factory() as session:
        tenant = Tenant(
            id=TENANT_ID,
            name="Test Solar Co",
            email="ops@testsolar.com",
            stripe_customer_id="cus_test_123",
            stripe_payment_method_id="pm_test_123",
            is_active=True,
        )
        session.add(tenant)
        await session.commit()
        return tenant


@pytest.fixture
async def facebook_config(session_factory, tenant):
    async with session_factory() as session:
        config = ImportConfig(
            tenant_id=tenant.id,
            source_platform="facebook",
            campaign_id=FORM_ID,
            campaign_name="Spring campaign",
            api_credentials={"access_token": "page-token"},
            lead_mapping=dict(STANDARD_MAPPING),
            pricing={"cost_per_lead_cents": 2500, "auto_recharge": False},
            filters={},
            active=True,
        )
        session.add(config)
        await session.commit()
        return config


@pytest.fixture
def good_lead_fields():
    return dict(GOOD_LEAD_FIELDS)


@pytest.fixture
def make_fetcher():
    """Factory: make_fetcher(result | [results]) -> StubFetcher."""
    return StubFetcher


@pytest.fixture
def set_balance(session_factory):
    """Factory: await set_balance(tenant_id, cents) writes the balance row directly."""
    async def _set(tenant_id: uuid.UUID, cents: int) -> None:
        async with session_factory() as session:
            result = await session.execute(select(Balance).where(Balance.tenant_id == tenant_id))
            balance = result.scalar_one_or_none()
            if balance is None:
                session.add(Balance(tenant_id=tenant_id, balance_cents=cents))
            else:
                balance.balance_cents = cents
            await session.commit()
    return _set


@pytest.fixture
def update_config(session_factory):
    """Factory: await update_config(config_id, **columns)."""
    async def _update(config_id: uuid.UUID, **values) -> None:
        async with session_factory() as session:
            config = await session.get(ImportConfig, config_id)
            for key, value in values.items():
                setattr(config, key, value)
            await session.commit()
    return _update


@pytest.fixture
def mock_redis():
    """Mock for async Redis - prevents real Redis calls in tests."""
    redis_mock = AsyncMock()
    redis_mock.set = AsyncMock(return_value=True)
    redis_mock.ping = AsyncMock(return_value=True)
    targets = (
        "leadledger.utils.rate_limiter.get_redis",
        "leadledger.workers.pending_lead_sweeper.get_redis",
        "leadledger.api.health.get_redis",
    )
    with ExitStack() as stack:
        for target in targets:
            stack.enter_context(patch(target, new_callable=AsyncMock, return_value=redis_mock))
        yield redis_mock
