"""
Import config resolution.
A missing config is a normal outcome (the lead is rejected with a reason), so these
helpers return None rather than raising.
"""
import logging
import uuid
from typing import Optional

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from leadledger.models.import_config import ImportConfig

logger = logging.getLogger(__name__)


async def resolve_active_config(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    campaign_id: str,
    source_platform: str,
) -> Optional[ImportConfig]:
    """The single active config for (tenant, campaign/form, platform), or None."""
    result = await db.execute(
        select(ImportConfig).where(
            and_(
                ImportConfig.tenant_id == tenant_id,
                ImportConfig.campaign_id == campaign_id,
                ImportConfig.source_platform == source_platform,
                ImportConfig.active.is_(True),
            )
        ).order_by(ImportConfig.updated_at.desc()).limit(1)
    )
    config = result.scalar_one_or_none()
    if config is None:
        logger.info(
            "No active %s config for campaign %s (tenant %s)",
            source_platform, campaign_id, str(tenant_id)[:8],
        )
    return config


async def get_active_config_by_id(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    config_id: uuid.UUID,
) -> Optional[ImportConfig]:
    """Custom integrations address their config directly by id."""
    result = await db.execute(
        select(ImportConfig).where(
            and_(
                ImportConfig.id == config_id,
                ImportConfig.tenant_id == tenant_id,
                ImportConfig.active.is_(True),
            )
        )
    )
    return result.scalar_one_or_none()
