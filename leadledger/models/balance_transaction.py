"""
Balance transaction - append-only audit record of a single ledger mutation.
Deductions are negative, credits positive.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Integer, DateTime, ForeignKey, Index
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column
from leadledger.database import Base

TX_DEDUCTION = "deduction"
TX_AUTO_RECHARGE = "auto_recharge"
TX_PAYMENT_RECHARGE = "payment_recharge"


class BalanceTransaction(Base):
    __tablename__ = "balance_transactions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False
    )
    type: Mapped[str] = mapped_column(
        String(30), nullable=False
    )  # deduction, auto_recharge, payment_recharge
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(255))
    lead_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("imported_leads.id")
    )
    reference_id: Mapped[Optional[str]] = mapped_column(String(255))  # payment intent id
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        Index("ix_balance_transactions_tenant_id", "tenant_id"),
        Index("ix_balance_transactions_lead_id", "lead_id"),
        # one credit per payment intent; NULLs (deductions) never collide
        Index("uq_balance_transactions_reference_id", "reference_id", unique=True),
    )
