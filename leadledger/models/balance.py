"""
Prepaid balance - one row per tenant, in minor currency units.
Never mutated by read-modify-write: only by the ledger's conditional UPDATEs.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import Integer, Boolean, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column
from leadledger.database import Base

DEFAULT_RECHARGE_THRESHOLD_CENTS = 10000  # $100
DEFAULT_RECHARGE_AMOUNT_CENTS = 50000  # $500


class Balance(Base):
    __tablename__ = "balances"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False, unique=True
    )
    balance_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reserved_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    auto_recharge_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    recharge_threshold_cents: Mapped[int] = mapped_column(
        Integer, default=DEFAULT_RECHARGE_THRESHOLD_CENTS
    )
    recharge_amount_cents: Mapped[int] = mapped_column(
        Integer, default=DEFAULT_RECHARGE_AMOUNT_CENTS
    )
    last_recharge_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        CheckConstraint("balance_cents >= 0", name="ck_balances_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<Balance tenant={str(self.tenant_id)[:8]} cents={self.balance_cents}>"
