"""
Balance endpoints - read a tenant's prepaid balance and consume completed top-ups
from the checkout subsystem. Both are internal: callers present X-Internal-Api-Key.
"""
import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from leadledger.api.dependencies import get_ledger, require_internal_api_key
from leadledger.database import get_db
from leadledger.models.balance_transaction import TX_PAYMENT_RECHARGE
from leadledger.models.tenant import Tenant
from leadledger.schemas.api_responses import BalanceResponse, TopUpRequest, TopUpResponse
from leadledger.services.ledger import BalanceLedger

logger = logging.getLogger(__name__)
router = APIRouter(
    prefix="/api/v1/balance",
    tags=["balance"],
    dependencies=[Depends(require_internal_api_key)],
)


async def _require_tenant(db: AsyncSession, tenant_id: str) -> uuid.UUID:
    try:
        tenant_uuid = uuid.UUID(tenant_id)
    except ValueError:
        raise HTTPException(status_code=404, detail="Tenant not found")
    if await db.get(Tenant, tenant_uuid) is None:
        raise HTTPException(status_code=404, detail="Tenant not found")
    return tenant_uuid


@router.get("/{tenant_id}", response_model=BalanceResponse)
async def get_balance(
    tenant_id: str,
    db: AsyncSession = Depends(get_db),
    ledger: BalanceLedger = Depends(get_ledger),
):
    tenant_uuid = await _require_tenant(db, tenant_id)
    balance = await ledger.get_balance(tenant_uuid)
    return BalanceResponse(
        tenant_id=str(balance.tenant_id),
        balance_cents=balance.balance_cents,
        reserved_cents=balance.reserved_cents,
        auto_recharge_enabled=balance.auto_recharge_enabled,
        recharge_threshold_cents=balance.recharge_threshold_cents,
        recharge_amount_cents=balance.recharge_amount_cents,
        last_recharge_at=balance.last_recharge_at,
    )


@router.post("/{tenant_id}/top-up", response_model=TopUpResponse)
async def top_up_balance(
    tenant_id: str,
    payload: TopUpRequest,
    db: AsyncSession = Depends(get_db),
    ledger: BalanceLedger = Depends(get_ledger),
):
    """
    Credit a completed checkout payment. Replaying the same payment_intent_id
    does not credit twice.
    """
    tenant_uuid = await _require_tenant(db, tenant_id)
    if payload.amount_cents <= 0:
        raise HTTPException(status_code=400, detail="Invalid amount")
    if not payload.payment_intent_id:
        raise HTTPException(status_code=400, detail="Missing payment_intent_id")

    result = await ledger.credit(
        tenant_uuid,
        payload.amount_cents,
        TX_PAYMENT_RECHARGE,
        reference_id=payload.payment_intent_id,
        description="Balance top-up",
    )

    if not result.applied:
        return TopUpResponse(
            success=True,
            message="Top-up already applied",
            amount_added=0,
            balance_cents=result.balance_cents,
        )

    logger.info(
        "Balance topped up by %d cents for tenant %s",
        payload.amount_cents, tenant_id[:8],
        extra={"tenant_id": tenant_id},
    )
    if ledger.notifier is not None:
        await ledger.notifier.balance_recharged(
            tenant_uuid, payload.amount_cents, payload.payment_intent_id
        )

    return TopUpResponse(
        success=True,
        message="Balance updated successfully",
        amount_added=payload.amount_cents,
        balance_cents=result.balance_cents,
    )
