"""
Import configuration - binds a tenant's ad campaign/form on a source platform to
credentials, a field mapping, pricing and quality filters.

At most one active config per (tenant, campaign_id, source_platform); enforced by a
partial unique index.
"""
import uuid
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import String, Boolean, DateTime, ForeignKey, Index, text
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from leadledger.database import Base


class ImportConfig(Base):
    __tablename__ = "import_configs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("tenants.id"), nullable=False
    )
    source_platform: Mapped[str] = mapped_column(
        String(30), nullable=False
    )  # facebook, google, linkedin, twitter, custom
    campaign_id: Mapped[str] = mapped_column(String(255), nullable=False)
    campaign_name: Mapped[Optional[str]] = mapped_column(String(255))

    # {"access_token": ...}
    api_credentials: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    # canonical field -> dotted source path
    lead_mapping: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    # see schemas.import_config.PricingConfig
    pricing: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    # see schemas.import_config.FilterConfig
    filters: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)

    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    tenant: Mapped["Tenant"] = relationship(back_populates="import_configs")

    __table_args__ = (
        Index("ix_import_configs_tenant_id", "tenant_id"),
        Index(
            "uq_import_configs_active_campaign",
            "tenant_id", "campaign_id", "source_platform",
            unique=True,
            postgresql_where=text("active"),
            sqlite_where=text("active"),
        ),
    )

    def __repr__(self) -> str:
        return f"<ImportConfig {self.source_platform}:{self.campaign_id} active={self.active}>"
