"""
Auto-recharge gateways - top up a tenant's balance by charging a saved card.

The ledger only needs "try to collect N cents, tell me if it worked"; card
processing itself belongs to Stripe. Stripe calls are synchronous and run via
run_in_executor to avoid blocking the asyncio event loop.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leadledger.models.tenant import Tenant

logger = logging.getLogger(__name__)


@dataclass
class RechargeResult:
    success: bool
    payment_intent_id: Optional[str] = None
    error: Optional[str] = None


class RechargeGateway:
    """Interface: collect `amount_cents` from the tenant's payment method."""

    async def charge(self, tenant_id: uuid.UUID, amount_cents: int) -> RechargeResult:
        raise NotImplementedError


class DisabledRechargeGateway(RechargeGateway):
    """Used when no payment processor is configured: every recharge fails."""

    async def charge(self, tenant_id: uuid.UUID, amount_cents: int) -> RechargeResult:
        logger.info(
            "Auto-recharge requested for tenant %s but no processor is configured",
            str(tenant_id)[:8],
        )
        return RechargeResult(success=False, error="Auto-recharge not configured")


async def _run_sync(func, *args, **kwargs):
    """Run a synchronous Stripe SDK call in the default thread pool executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, lambda: func(*args, **kwargs))


def _get_stripe():
    import stripe
    stripe.max_network_retries = 1
    return stripe


class StripeRechargeGateway(RechargeGateway):
    """Off-session PaymentIntent against the tenant's saved payment method."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        secret_key: str,
        currency: str = "usd",
    ):
        self.session_factory = session_factory
        self.secret_key = secret_key
        self.currency = currency

    async def charge(self, tenant_id: uuid.UUID, amount_cents: int) -> RechargeResult:
        async with self.session_factory() as db:
            tenant = await db.get(Tenant, tenant_id)

        if tenant is None or not tenant.stripe_customer_id or not tenant.stripe_payment_method_id:
            return RechargeResult(success=False, error="No saved payment method")

        try:
            stripe = _get_stripe()
            intent = await _run_sync(
                stripe.PaymentIntent.create,
                api_key=self.secret_key,
                amount=amount_cents,
                currency=self.currency,
                customer=tenant.stripe_customer_id,
                payment_method=tenant.stripe_payment_method_id,
                off_session=True,
                confirm=True,
                metadata={"tenant_id": str(tenant_id), "type": "auto_recharge"},
            )
        except Exception as e:
            logger.error(
                "Stripe auto-recharge failed for tenant %s: %s",
                str(tenant_id)[:8], str(e),
            )
            return RechargeResult(success=False, error=str(e))

        if intent.status != "succeeded":
            logger.warning(
                "Auto-recharge payment intent %s ended in status %s",
                intent.id, intent.status,
            )
            return RechargeResult(
                success=False,
                payment_intent_id=intent.id,
                error=f"Payment {intent.status}",
            )

        logger.info(
            "Auto-recharge charged %d cents for tenant %s (%s)",
            amount_cents, str(tenant_id)[:8], intent.id,
        )
        return RechargeResult(success=True, payment_intent_id=intent.id)


def build_recharge_gateway(session_factory, settings) -> RechargeGateway:
    if settings.stripe_secret_key:
        return StripeRechargeGateway(
            session_factory, settings.stripe_secret_key, settings.stripe_currency
        )
    return DisabledRechargeGateway()
