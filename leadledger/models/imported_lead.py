"""
Imported lead - the canonical, mapped record of one platform lead.
Lifecycle: pending -> delivered | failed.
The row is written as pending BEFORE the balance is charged so an interrupted
settlement is always visible to the pending-lead sweeper.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Integer, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column
from leadledger.database import Base

LEAD_STATUS_PENDING = "pending"
LEAD_STATUS_DELIVERED = "delivered"
LEAD_STATUS_FAILED = "failed"


class ImportedLead(Base):
    __tablename__ = "imported_leads"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False
    )
    config_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("import_configs.id")
    )
    campaign_id: Mapped[str] = mapped_column(String(255), nullable=False)
    source_platform: Mapped[str] = mapped_column(String(30), nullable=False)
    source_lead_id: Mapped[str] = mapped_column(String(255), nullable=False)

    lead_data: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    quality_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cost_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=LEAD_STATUS_PENDING
    )  # pending, delivered, failed
    failure_reason: Mapped[Optional[str]] = mapped_column(String(255))
    extra_data: Mapped[Optional[dict]] = mapped_column("metadata", JSONB, default=dict)

    imported_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "campaign_id", "source_lead_id",
            name="uq_imported_leads_source_lead",
        ),
        Index("ix_imported_leads_tenant_id", "tenant_id"),
        Index("ix_imported_leads_status", "status"),
        Index("ix_imported_leads_imported_at", "imported_at"),
    )

    def __repr__(self) -> str:
        return f"<ImportedLead {self.source_platform}:{self.source_lead_id} status={self.status}>"
