"""
Balance ledger tests - atomic deduct, credit, lazy balances and auto-recharge.
"""
import asyncio
import uuid
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from leadledger.models.balance import Balance
from leadledger.models.balance_transaction import (
    BalanceTransaction,
    TX_AUTO_RECHARGE,
    TX_DEDUCTION,
    TX_PAYMENT_RECHARGE,
)
from leadledger.services.ledger import (
    BalanceLedger,
    INSUFFICIENT_BALANCE,
    RECHARGE_FAILED,
)
from leadledger.services.notifications import Notifier
from leadledger.services.recharge import RechargeResult


async def _balance_cents(session_factory, tenant_id) -> int:
    async with session_factory() as s:
        result = await s.execute(select(Balance.balance_cents).where(Balance.tenant_id == tenant_id))
        return result.scalar_one()


async def _transactions(session_factory, tenant_id) -> list[BalanceTransaction]:
    async with session_factory() as s:
        result = await s.execute(
            select(BalanceTransaction)
            .where(BalanceTransaction.tenant_id == tenant_id)
            .order_by(BalanceTransaction.created_at)
        )
        return list(result.scalars().all())


def _gateway(result: RechargeResult | None = None, side_effect=None):
    gateway = AsyncMock()
    gateway.charge = AsyncMock(return_value=result, side_effect=side_effect)
    return gateway


class TestGetBalance:
    async def test_created_lazily_with_defaults(self, session_factory, tenant):
        ledger = BalanceLedger(session_factory)
        balance = await ledger.get_balance(tenant.id)

        assert balance.balance_cents == 0
        assert balance.reserved_cents == 0
        assert balance.auto_recharge_enabled is False
        assert balance.recharge_threshold_cents == 10000
        assert balance.recharge_amount_cents == 50000

    async def test_second_read_returns_same_row(self, session_factory, tenant):
        ledger = BalanceLedger(session_factory)
        first = await ledger.get_balance(tenant.id)
        second = await ledger.get_balance(tenant.id)
        assert first.id == second.id


class TestDeduct:
    async def test_deducts_and_records_transaction(self, session_factory, tenant, set_balance):
        await set_balance(tenant.id, 5000)
        ledger = BalanceLedger(session_factory)

        async with session_factory() as s:
            assert await ledger.deduct(s, tenant.id, 2000) is True

        assert await _balance_cents(session_factory, tenant.id) == 3000
        txs = await _transactions(session_factory, tenant.id)
        assert len(txs) == 1
        assert txs[0].type == TX_DEDUCTION
        assert txs[0].amount_cents == -2000
        assert txs[0].description == "Lead import charge"

    async def test_refuses_overdraft(self, session_factory, tenant, set_balance):
        await set_balance(tenant.id, 1000)
        ledger = BalanceLedger(session_factory)

        async with session_factory() as s:
            assert await ledger.deduct(s, tenant.id, 2000) is False

        assert await _balance_cents(session_factory, tenant.id) == 1000
        assert await _transactions(session_factory, tenant.id) == []

    async def test_exact_balance_goes_to_zero(self, session_factory, tenant, set_balance):
        await set_balance(tenant.id, 2000)
        ledger = BalanceLedger(session_factory)

        async with session_factory() as s:
            assert await ledger.deduct(s, tenant.id, 2000) is True
        assert await _balance_cents(session_factory, tenant.id) == 0

    async def test_no_balance_row(self, session_factory, tenant):
        ledger = BalanceLedger(session_factory)
        async with session_factory() as s:
            assert await ledger.deduct(s, tenant.id, 1) is False

    async def test_concurrent_deductions_never_overdraw(self, session_factory, tenant, set_balance):
        """10 concurrent charges of 3000 against 10000: exactly floor(10000/3000) succeed."""
        await set_balance(tenant.id, 10000)
        ledger = BalanceLedger(session_factory)

        async def attempt():
            async with session_factory() as s:
                return await ledger.deduct(s, tenant.id, 3000)

        results = await asyncio.gather(*(attempt() for _ in range(10)))

        assert sum(results) == 3
        assert await _balance_cents(session_factory, tenant.id) == 1000
        assert len(await _transactions(session_factory, tenant.id)) == 3


class TestCredit:
    async def test_credit_increments(self, session_factory, tenant, set_balance):
        await set_balance(tenant.id, 100)
        ledger = BalanceLedger(session_factory)

        result = await ledger.credit(tenant.id, 900, TX_PAYMENT_RECHARGE, reference_id="pi_1")

        assert result.applied is True
        assert result.balance_cents == 1000
        txs = await _transactions(session_factory, tenant.id)
        assert [(t.type, t.amount_cents, t.reference_id) for t in txs] == [
            (TX_PAYMENT_RECHARGE, 900, "pi_1"),
        ]

    async def test_credit_creates_balance_row(self, session_factory, tenant):
        ledger = BalanceLedger(session_factory)
        result = await ledger.credit(tenant.id, 500, TX_PAYMENT_RECHARGE)
        assert result.balance_cents == 500

    async def test_same_reference_credited_once(self, session_factory, tenant):
        ledger = BalanceLedger(session_factory)
        await ledger.credit(tenant.id, 500, TX_PAYMENT_RECHARGE, reference_id="pi_dup")
        replay = await ledger.credit(tenant.id, 500, TX_PAYMENT_RECHARGE, reference_id="pi_dup")

        assert replay.applied is False
        assert replay.balance_cents == 500
        assert len(await _transactions(session_factory, tenant.id)) == 1

    async def test_auto_recharge_sets_last_recharge_at(self, session_factory, tenant):
        ledger = BalanceLedger(session_factory)
        await ledger.credit(tenant.id, 500, TX_AUTO_RECHARGE, reference_id="pi_auto")
        balance = await ledger.get_balance(tenant.id)
        assert balance.last_recharge_at is not None

    @pytest.mark.parametrize("amount", [0, -100])
    async def test_non_positive_amount_rejected(self, session_factory, tenant, amount):
        ledger = BalanceLedger(session_factory)
        with pytest.raises(ValueError):
            await ledger.credit(tenant.id, amount, TX_PAYMENT_RECHARGE)


class TestSettle:
    async def test_sufficient_balance(self, session_factory, tenant, set_balance):
        await set_balance(tenant.id, 5000)
        gateway = _gateway()
        ledger = BalanceLedger(session_factory, recharge_gateway=gateway)

        outcome = await ledger.settle(tenant.id, 2500)

        assert outcome.success is True
        assert outcome.recharged is False
        gateway.charge.assert_not_called()
        assert await _balance_cents(session_factory, tenant.id) == 2500

    async def test_insufficient_without_auto_recharge(self, session_factory, tenant, set_balance):
        await set_balance(tenant.id, 1000)
        gateway = _gateway()
        ledger = BalanceLedger(session_factory, recharge_gateway=gateway)

        outcome = await ledger.settle(tenant.id, 2500, auto_recharge=False)

        assert outcome.success is False
        assert outcome.reason == INSUFFICIENT_BALANCE
        gateway.charge.assert_not_called()
        assert await _balance_cents(session_factory, tenant.id) == 1000
        assert await _transactions(session_factory, tenant.id) == []

    async def test_auto_recharge_then_deduct(self, session_factory, tenant, set_balance):
        await set_balance(tenant.id, 1000)
        gateway = _gateway(RechargeResult(success=True, payment_intent_id="pi_auto_1"))
        notifier = AsyncMock(spec=Notifier)
        ledger = BalanceLedger(session_factory, recharge_gateway=gateway, notifier=notifier)

        outcome = await ledger.settle(
            tenant.id, 2500, auto_recharge=True, recharge_amount_cents=10000,
        )

        assert outcome.success is True
        assert outcome.recharged is True
        gateway.charge.assert_awaited_once_with(tenant.id, 10000)
        assert await _balance_cents(session_factory, tenant.id) == 8500
        txs = await _transactions(session_factory, tenant.id)
        assert sorted((t.type, t.amount_cents) for t in txs) == [
            (TX_AUTO_RECHARGE, 10000),
            (TX_DEDUCTION, -2500),
        ]
        notifier.auto_recharge_succeeded.assert_awaited_once_with(tenant.id, 10000, "pi_auto_1")

    @pytest.mark.parametrize("amount", [None, 0])
    async def test_auto_recharge_without_config_amount_charges_nothing(
        self, session_factory, tenant, amount,
    ):
        gateway = _gateway(RechargeResult(success=True, payment_intent_id="pi_auto_2"))
        ledger = BalanceLedger(session_factory, recharge_gateway=gateway)

        outcome = await ledger.settle(
            tenant.id, 2500, auto_recharge=True, recharge_amount_cents=amount,
        )

        assert outcome.success is False
        assert outcome.reason == INSUFFICIENT_BALANCE
        assert outcome.recharged is False
        gateway.charge.assert_not_awaited()
        assert await _transactions(session_factory, tenant.id) == []

    async def test_auto_recharge_failure(self, session_factory, tenant, set_balance):
        await set_balance(tenant.id, 1000)
        gateway = _gateway(RechargeResult(success=False, error="card_declined"))
        notifier = AsyncMock(spec=Notifier)
        ledger = BalanceLedger(session_factory, recharge_gateway=gateway, notifier=notifier)

        outcome = await ledger.settle(
            tenant.id, 2500, auto_recharge=True, recharge_amount_cents=10000,
        )

        assert outcome.success is False
        assert outcome.reason == RECHARGE_FAILED
        assert await _balance_cents(session_factory, tenant.id) == 1000
        assert await _transactions(session_factory, tenant.id) == []
        notifier.auto_recharge_failed.assert_awaited_once_with(tenant.id, 10000, "card_declined")

    async def test_gateway_exception_is_a_failed_recharge(self, session_factory, tenant, set_balance):
        await set_balance(tenant.id, 0)
        gateway = _gateway(side_effect=RuntimeError("network down"))
        ledger = BalanceLedger(session_factory, recharge_gateway=gateway)

        outcome = await ledger.settle(
            tenant.id, 2500, auto_recharge=True, recharge_amount_cents=10000,
        )

        assert outcome.success is False
        assert outcome.reason == RECHARGE_FAILED

    async def test_recharge_too_small(self, session_factory, tenant, set_balance):
        await set_balance(tenant.id, 0)
        gateway = _gateway(RechargeResult(success=True, payment_intent_id="pi_small"))
        ledger = BalanceLedger(session_factory, recharge_gateway=gateway)

        outcome = await ledger.settle(
            tenant.id, 2500, auto_recharge=True, recharge_amount_cents=1000,
        )

        assert outcome.success is False
        assert outcome.reason == INSUFFICIENT_BALANCE
        assert outcome.recharged is True
        assert await _balance_cents(session_factory, tenant.id) == 1000

    async def test_default_gateway_is_disabled(self, session_factory):
        ledger = BalanceLedger(session_factory)
        result = await ledger.recharge_gateway.charge(uuid.uuid4(), 100)
        assert result.success is False
