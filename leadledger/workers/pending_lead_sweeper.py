"""
Pending lead sweeper - repairs leads left in `pending` by an interrupted settlement.
Runs every 5 minutes.

A lead row is written as pending before the balance is charged, so a crash between
the charge and the final status update leaves it stranded. The ledger's transaction
trail is the source of truth:
- a deduction exists for the lead (or it was free)  -> delivered, tenant notified
- no deduction                                      -> failed ("Settlement interrupted")
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leadledger.models.balance_transaction import BalanceTransaction, TX_DEDUCTION
from leadledger.models.imported_lead import (
    ImportedLead,
    LEAD_STATUS_DELIVERED,
    LEAD_STATUS_FAILED,
    LEAD_STATUS_PENDING,
)
from leadledger.services.notifications import Notifier
from leadledger.utils.cache import get_redis, make_key

logger = logging.getLogger(__name__)

SWEEP_INTERVAL_SECONDS = 300
SWEEP_BATCH_SIZE = 100
SETTLEMENT_INTERRUPTED = "Settlement interrupted"


async def _heartbeat():
    """Store heartbeat timestamp in Redis."""
    try:
        redis = await get_redis()
        await redis.set(
            make_key("worker_health", "pending_lead_sweeper"),
            datetime.now(timezone.utc).isoformat(),
            ex=SWEEP_INTERVAL_SECONDS * 2,
        )
    except Exception as e:
        logger.debug("Sweeper heartbeat failed: %s", str(e))


async def sweep_pending_leads(
    session_factory: async_sessionmaker[AsyncSession],
    timeout_minutes: int,
    now: datetime | None = None,
    notifier: Notifier | None = None,
) -> int:
    """Resolve leads pending for longer than `timeout_minutes`. Returns count resolved."""
    notifier = notifier or Notifier(session_factory)
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(minutes=timeout_minutes)

    async with session_factory() as db:
        result = await db.execute(
            select(ImportedLead).where(
                and_(
                    ImportedLead.status == LEAD_STATUS_PENDING,
                    ImportedLead.imported_at < cutoff,
                )
            ).limit(SWEEP_BATCH_SIZE)
        )
        stuck_leads = result.scalars().all()
        if not stuck_leads:
            return 0

        charged = await db.execute(
            select(BalanceTransaction.lead_id).where(
                and_(
                    BalanceTransaction.type == TX_DEDUCTION,
                    BalanceTransaction.lead_id.in_([lead.id for lead in stuck_leads]),
                )
            )
        )
        charged_ids = set(charged.scalars().all())

        for lead in stuck_leads:
            if lead.id in charged_ids or lead.cost_cents == 0:
                lead.status = LEAD_STATUS_DELIVERED
            else:
                lead.status = LEAD_STATUS_FAILED
                lead.failure_reason = SETTLEMENT_INTERRUPTED
                lead.extra_data = {**(lead.extra_data or {}), "reason": SETTLEMENT_INTERRUPTED}
            logger.warning(
                "Pending lead %s resolved as %s",
                str(lead.id)[:8], lead.status,
                extra={"tenant_id": str(lead.tenant_id), "lead_id": str(lead.id)},
            )

        await db.commit()

    # The interrupted settlement never got as far as its new_lead notification
    for lead in stuck_leads:
        if lead.status == LEAD_STATUS_DELIVERED:
            await notifier.lead_imported(lead)

    return len(stuck_leads)


async def run_pending_lead_sweeper():
    """Main sweeper loop. Runs continuously every 5 minutes."""
    from leadledger.config import get_settings
    from leadledger.database import get_session_factory

    logger.info("Pending lead sweeper started")
    settings = get_settings()

    while True:
        try:
            found = await sweep_pending_leads(
                get_session_factory(), settings.pending_lead_timeout_minutes
            )
            if found > 0:
                logger.info("Pending lead sweeper resolved %d lead(s)", found)
        except Exception as e:
            logger.error("Pending lead sweeper error: %s", str(e), exc_info=True)

        await _heartbeat()
        await asyncio.sleep(SWEEP_INTERVAL_SECONDS)
