"""
Seed a test tenant with a Facebook import config, a custom-webhook token and
a starting balance.

Usage:
    python scripts/seed_test_tenant.py
    python scripts/seed_test_tenant.py --form-id 123456 --balance 10000
"""
import argparse
import asyncio
import logging
import secrets

from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from leadledger.config import get_settings
from leadledger.models.balance import Balance
from leadledger.models.balance_transaction import BalanceTransaction, TX_PAYMENT_RECHARGE
from leadledger.models.import_config import ImportConfig
from leadledger.models.tenant import Tenant
from leadledger.models.webhook_token import WebhookToken

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

TEST_TENANT_NAME = "Austin Solar Leads"

TEST_LEAD_MAPPING = {
    "first_name": "first_name",
    "last_name": "last_name",
    "email": "email",
    "phone": "phone_number",
    "city": "city",
    "state": "state",
}


async def seed(form_id: str, balance_cents: int, access_token: str):
    settings = get_settings()
    engine = create_async_engine(settings.database_url, echo=False)
    async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with async_session() as session:
        result = await session.execute(select(Tenant).where(Tenant.name == TEST_TENANT_NAME))
        tenant = result.scalar_one_or_none()

        if tenant:
            logger.info("Test tenant already exists (id=%s). Skipping.", tenant.id)
            await engine.dispose()
            return

        tenant = Tenant(name=TEST_TENANT_NAME, email="ops@austinsolarleads.com", is_active=True)
        session.add(tenant)
        await session.flush()

        session.add(ImportConfig(
            tenant_id=tenant.id,
            source_platform="facebook",
            campaign_id=form_id,
            campaign_name="Spring solar quotes",
            api_credentials={"access_token": access_token},
            lead_mapping=TEST_LEAD_MAPPING,
            pricing={"cost_per_lead_cents": 2500, "auto_recharge": False},
            filters={"quality_score_min": 50, "geo_restrictions": ["TX"]},
            active=True,
        ))

        token = secrets.token_urlsafe(32)
        session.add(WebhookToken(tenant_id=tenant.id, token=token, label="seed", active=True))

        session.add(Balance(tenant_id=tenant.id, balance_cents=balance_cents))
        if balance_cents > 0:
            session.add(BalanceTransaction(
                tenant_id=tenant.id,
                type=TX_PAYMENT_RECHARGE,
                amount_cents=balance_cents,
                description="Seed balance",
            ))

        await session.commit()
        logger.info("Seeded test tenant: %s (id=%s)", tenant.name, tenant.id)
        logger.info("Facebook webhook: /api/v1/webhooks/leads/facebook/%s", tenant.id)
        logger.info("Custom webhook bearer token: %s", token)

    await engine.dispose()


def main():
    parser = argparse.ArgumentParser(description="Seed a test tenant")
    parser.add_argument("--form-id", default="1234567890")
    parser.add_argument("--balance", type=int, default=10000)
    parser.add_argument("--access-token", default="test-page-access-token")
    args = parser.parse_args()
    asyncio.run(seed(args.form_id, args.balance, args.access_token))


if __name__ == "__main__":
    main()
