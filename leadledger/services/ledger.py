"""
Balance ledger - the only code allowed to move money on a tenant's prepaid balance.

Every mutation is a single conditional UPDATE executed by the database plus an
append-only BalanceTransaction row, committed together:

    UPDATE balances SET balance_cents = balance_cents - :cost
    WHERE tenant_id = :tenant AND balance_cents >= :cost

If the UPDATE matches no row the charge is refused. The balance is never read into
Python, modified and written back, so concurrent settlements cannot overdraw it and
no in-process lock is needed.

Settlement flow per lead:
    check -> (insufficient? auto-recharge -> credit) -> deduct
The check is advisory (it only decides whether to try a recharge); the deduct is
the authoritative guard.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leadledger.models.balance import (
    Balance,
    DEFAULT_RECHARGE_AMOUNT_CENTS,
    DEFAULT_RECHARGE_THRESHOLD_CENTS,
)
from leadledger.models.balance_transaction import (
    BalanceTransaction,
    TX_AUTO_RECHARGE,
    TX_DEDUCTION,
)
from leadledger.services.notifications import Notifier
from leadledger.services.recharge import DisabledRechargeGateway, RechargeGateway

logger = logging.getLogger(__name__)

INSUFFICIENT_BALANCE = "Insufficient balance"
RECHARGE_FAILED = "Insufficient balance and auto-recharge failed"


@dataclass
class LedgerOutcome:
    success: bool
    reason: Optional[str] = None
    recharged: bool = False


@dataclass
class CreditResult:
    applied: bool  # False when the reference was already credited
    balance_cents: int


class BalanceLedger:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        recharge_gateway: Optional[RechargeGateway] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.session_factory = session_factory
        self.recharge_gateway = recharge_gateway or DisabledRechargeGateway()
        self.notifier = notifier

    async def _get_or_create(self, db: AsyncSession, tenant_id: uuid.UUID) -> Balance:
        result = await db.execute(select(Balance).where(Balance.tenant_id == tenant_id))
        balance = result.scalar_one_or_none()
        if balance is not None:
            return balance

        balance = Balance(
            tenant_id=tenant_id,
            balance_cents=0,
            reserved_cents=0,
            auto_recharge_enabled=False,
            recharge_threshold_cents=DEFAULT_RECHARGE_THRESHOLD_CENTS,
            recharge_amount_cents=DEFAULT_RECHARGE_AMOUNT_CENTS,
        )
        db.add(balance)
        try:
            await db.commit()
        except IntegrityError:
            # Another settlement created it first
            await db.rollback()
            result = await db.execute(select(Balance).where(Balance.tenant_id == tenant_id))
            return result.scalar_one()

        logger.info("Created balance row for tenant %s", str(tenant_id)[:8])
        return balance

    async def get_balance(self, tenant_id: uuid.UUID) -> Balance:
        """Current balance row, created at zero on first access."""
        async with self.session_factory() as db:
            return await self._get_or_create(db, tenant_id)

    async def deduct(
        self,
        db: AsyncSession,
        tenant_id: uuid.UUID,
        amount_cents: int,
        lead_id: Optional[uuid.UUID] = None,
    ) -> bool:
        """
        Atomically charge `amount_cents`. Returns False (and changes nothing) when
        the balance cannot cover it. Commits on success.
        """
        result = await db.execute(
            update(Balance)
            .where(
                Balance.tenant_id == tenant_id,
                Balance.balance_cents >= amount_cents,
            )
            .values(
                balance_cents=Balance.balance_cents - amount_cents,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await db.rollback()
            logger.info(
                "Deduction of %d cents refused for tenant %s",
                amount_cents, str(tenant_id)[:8],
            )
            return False

        db.add(BalanceTransaction(
            tenant_id=tenant_id,
            type=TX_DEDUCTION,
            amount_cents=-amount_cents,
            description="Lead import charge",
            lead_id=lead_id,
        ))
        await db.commit()
        return True

    async def credit(
        self,
        tenant_id: uuid.UUID,
        amount_cents: int,
        type: str,
        reference_id: Optional[str] = None,
        description: Optional[str] = None,
    ) -> CreditResult:
        """
        Atomically add `amount_cents` and record a positive transaction.
        A reference_id that was already credited is a no-op (applied=False).
        """
        if amount_cents <= 0:
            raise ValueError("Credit amount must be positive")

        async with self.session_factory() as db:
            await self._get_or_create(db, tenant_id)

            values = {
                "balance_cents": Balance.balance_cents + amount_cents,
                "updated_at": datetime.now(timezone.utc),
            }
            if type == TX_AUTO_RECHARGE:
                values["last_recharge_at"] = datetime.now(timezone.utc)

            await db.execute(
                update(Balance)
                .where(Balance.tenant_id == tenant_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            db.add(BalanceTransaction(
                tenant_id=tenant_id,
                type=type,
                amount_cents=amount_cents,
                description=description,
                reference_id=reference_id,
            ))
            try:
                await db.commit()
                applied = True
            except IntegrityError:
                await db.rollback()
                logger.info(
                    "Credit %s already applied for tenant %s",
                    reference_id, str(tenant_id)[:8],
                )
                applied = False

            result = await db.execute(
                select(Balance.balance_cents).where(Balance.tenant_id == tenant_id)
            )
            return CreditResult(applied=applied, balance_cents=result.scalar_one())

    async def _auto_recharge(self, tenant_id: uuid.UUID, amount_cents: int) -> bool:
        try:
            charge = await self.recharge_gateway.charge(tenant_id, amount_cents)
        except Exception as e:
            logger.error(
                "Recharge gateway error for tenant %s: %s",
                str(tenant_id)[:8], str(e),
                exc_info=True,
            )
            charge = None

        if charge is None or not charge.success:
            error = charge.error if charge is not None else "Recharge gateway error"
            if self.notifier is not None:
                await self.notifier.auto_recharge_failed(tenant_id, amount_cents, error)
            return False

        await self.credit(
            tenant_id,
            amount_cents,
            TX_AUTO_RECHARGE,
            reference_id=charge.payment_intent_id,
            description="Auto-recharge",
        )
        if self.notifier is not None:
            await self.notifier.auto_recharge_succeeded(
                tenant_id, amount_cents, charge.payment_intent_id
            )
        return True

    async def settle(
        self,
        tenant_id: uuid.UUID,
        cost_cents: int,
        lead_id: Optional[uuid.UUID] = None,
        auto_recharge: bool = False,
        recharge_amount_cents: Optional[int] = None,
    ) -> LedgerOutcome:
        """Charge one lead, recharging first when allowed and needed."""
        recharged = False
        balance = await self.get_balance(tenant_id)

        if balance.balance_cents < cost_cents:
            # only an amount named by the config is ever charged
            if not auto_recharge or (recharge_amount_cents or 0) <= 0:
                return LedgerOutcome(success=False, reason=INSUFFICIENT_BALANCE)

            logger.info(
                "Balance %d below cost %d for tenant %s, attempting auto-recharge",
                balance.balance_cents, cost_cents, str(tenant_id)[:8],
            )
            if not await self._auto_recharge(tenant_id, recharge_amount_cents):
                return LedgerOutcome(success=False, reason=RECHARGE_FAILED)
            recharged = True

        async with self.session_factory() as db:
            if not await self.deduct(db, tenant_id, cost_cents, lead_id):
                return LedgerOutcome(
                    success=False, reason=INSUFFICIENT_BALANCE, recharged=recharged
                )

        return LedgerOutcome(success=True, recharged=recharged)
