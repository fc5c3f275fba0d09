"""
Lead settlement - turns one inbound lead event into either a delivered, paid-for
ImportedLead or a recorded rejection.

State machine for one lead:
    received -> config_resolved -> lead_fetched -> mapped -> scored -> funded
             -> persisted(pending) -> settled(delivered)
with rejected(reason) exits at every step that can fail.

The lead row is inserted as `pending` BEFORE the ledger runs. If the process dies
between the charge and the final status update, the pending-lead sweeper repairs
the row from the ledger's transaction trail.

Nothing here raises to the caller: expected failures come back as a
SettlementResult, infrastructure errors are logged and converted at the boundary.
Each phase uses its own short-lived session so that sibling leads of one webhook
batch can settle concurrently.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

from sqlalchemy import select, update, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leadledger.models.import_config import ImportConfig
from leadledger.models.imported_lead import (
    ImportedLead,
    LEAD_STATUS_DELIVERED,
    LEAD_STATUS_FAILED,
    LEAD_STATUS_PENDING,
)
from leadledger.schemas.import_config import ApiCredentials, FilterConfig, PricingConfig
from leadledger.services.config_resolver import get_active_config_by_id, resolve_active_config
from leadledger.services.field_mapper import map_lead_fields
from leadledger.services.ledger import BalanceLedger
from leadledger.services.notifications import Notifier
from leadledger.services.platform_fetcher import FetchResult
from leadledger.services.quality_scorer import (
    DEFAULT_DEMOGRAPHICS_MIN_KEYS,
    lead_region,
    score_lead,
)
from leadledger.utils.logging import bind_log_context

logger = logging.getLogger(__name__)

NO_ACTIVE_CONFIG = "No active configuration"
FETCH_FAILED = "Failed to fetch lead data"
QUALITY_BELOW_THRESHOLD = "Lead quality below threshold"
LOCATION_NOT_ALLOWED = "Lead location not in allowed regions"
INTERNAL_ERROR = "Internal error"


class SettlementState(str, Enum):
    RECEIVED = "received"
    CONFIG_RESOLVED = "config_resolved"
    LEAD_FETCHED = "lead_fetched"
    MAPPED = "mapped"
    SCORED = "scored"
    FUNDED = "funded"
    PERSISTED = "persisted"
    SETTLED = "settled"
    REJECTED = "rejected"


@dataclass
class SettlementResult:
    success: bool
    state: SettlementState
    lead_id: Optional[uuid.UUID] = None
    error: Optional[str] = None
    duplicate: bool = False


def _rejected(reason: str, lead_id: Optional[uuid.UUID] = None) -> SettlementResult:
    return SettlementResult(
        success=False, state=SettlementState.REJECTED, lead_id=lead_id, error=reason
    )


def _is_retryable(result: FetchResult) -> bool:
    """Timeouts, transport errors, 429 and 5xx are worth another attempt."""
    if result.status_code is None:
        return result.error == "Timeout" or (result.error or "").startswith("Transport error")
    return result.status_code == 429 or result.status_code >= 500


class LeadSettlementService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        fetchers: Mapping[str, Any],
        ledger: BalanceLedger,
        notifier: Notifier,
        fetch_attempts: int = 1,
        fetch_backoff_seconds: float = 0.5,
        demographics_min_keys: int = DEFAULT_DEMOGRAPHICS_MIN_KEYS,
    ):
        self.session_factory = session_factory
        self.fetchers = dict(fetchers)
        self.ledger = ledger
        self.notifier = notifier
        self.fetch_attempts = max(1, fetch_attempts)
        self.fetch_backoff_seconds = fetch_backoff_seconds
        self.demographics_min_keys = demographics_min_keys

    # Entry points

    async def settle(
        self,
        tenant_id: uuid.UUID,
        campaign_id: str,
        source_lead_id: str,
        platform: str = "facebook",
    ) -> SettlementResult:
        """Settle a lead announced by a platform webhook (fetch required)."""
        with bind_log_context(
            tenant_id=tenant_id, campaign_id=campaign_id,
            source_lead_id=source_lead_id, source=platform,
        ):
            try:
                return await self._settle_platform_lead(
                    tenant_id, campaign_id, source_lead_id, platform
                )
            except Exception as e:
                logger.error(
                    "Settlement of %s lead %s failed: %s",
                    platform, source_lead_id, str(e),
                    exc_info=True,
                )
                return _rejected(INTERNAL_ERROR)

    async def settle_payload(
        self,
        tenant_id: uuid.UUID,
        config_id: uuid.UUID,
        raw_payload: Mapping[str, Any],
        source_lead_id: str,
    ) -> SettlementResult:
        """Settle a lead pushed in full by a custom integration (no fetch)."""
        with bind_log_context(tenant_id=tenant_id, source_lead_id=source_lead_id, source="custom"):
            try:
                async with self.session_factory() as db:
                    config = await get_active_config_by_id(db, tenant_id, config_id)
                if config is None:
                    return _rejected(NO_ACTIVE_CONFIG)

                existing = await self._find_existing(tenant_id, config.campaign_id, source_lead_id)
                if existing is not None:
                    return self._duplicate(existing)

                return await self._settle_fields(config, source_lead_id, raw_payload)
            except Exception as e:
                logger.error(
                    "Settlement of custom lead %s failed: %s",
                    source_lead_id, str(e),
                    exc_info=True,
                )
                return _rejected(INTERNAL_ERROR)

    # Phases

    async def _settle_platform_lead(
        self,
        tenant_id: uuid.UUID,
        campaign_id: str,
        source_lead_id: str,
        platform: str,
    ) -> SettlementResult:
        existing = await self._find_existing(tenant_id, campaign_id, source_lead_id)
        if existing is not None:
            return self._duplicate(existing)

        async with self.session_factory() as db:
            config = await resolve_active_config(db, tenant_id, campaign_id, platform)
        if config is None:
            return _rejected(NO_ACTIVE_CONFIG)

        fetcher = self.fetchers.get(platform)
        if fetcher is None:
            logger.warning("No lead fetcher registered for platform %s", platform)
            return _rejected(FETCH_FAILED)

        credentials = ApiCredentials.model_validate(config.api_credentials or {})
        fetched = await self._fetch(fetcher, source_lead_id, credentials.access_token)
        if not fetched.ok:
            logger.info(
                "Lead fetch failed: %s",
                fetched.error,
                extra={"state": SettlementState.CONFIG_RESOLVED.value, "reason": fetched.error},
            )
            return _rejected(FETCH_FAILED)

        return await self._settle_fields(config, source_lead_id, fetched.fields)

    async def _fetch(self, fetcher, lead_id: str, access_token: Optional[str]) -> FetchResult:
        result = await fetcher.fetch(lead_id, access_token)
        attempt = 1
        while not result.ok and attempt < self.fetch_attempts and _is_retryable(result):
            await asyncio.sleep(self.fetch_backoff_seconds)
            attempt += 1
            logger.info("Retrying fetch of lead %s (attempt %d)", lead_id, attempt)
            result = await fetcher.fetch(lead_id, access_token)
        return result

    async def _settle_fields(
        self,
        config: ImportConfig,
        source_lead_id: str,
        raw_fields: Mapping[str, Any],
    ) -> SettlementResult:
        with bind_log_context(campaign_id=config.campaign_id, source=config.source_platform):
            return await self._score_and_charge(config, source_lead_id, raw_fields)

    async def _score_and_charge(
        self,
        config: ImportConfig,
        source_lead_id: str,
        raw_fields: Mapping[str, Any],
    ) -> SettlementResult:
        tenant_id = config.tenant_id

        lead_data = map_lead_fields(raw_fields, config.lead_mapping or {})
        quality_score = score_lead(lead_data, self.demographics_min_keys)

        filters = FilterConfig.model_validate(config.filters or {})
        if filters.quality_score_min and quality_score < filters.quality_score_min:
            logger.info(
                "Lead rejected: score %d below %d",
                quality_score, filters.quality_score_min,
                extra={"reason": QUALITY_BELOW_THRESHOLD},
            )
            return _rejected(QUALITY_BELOW_THRESHOLD)

        if filters.geo_restrictions:
            region = lead_region(lead_data)
            if region is not None and region not in filters.geo_restrictions:
                logger.info(
                    "Lead rejected: region %s not allowed",
                    region,
                    extra={"reason": LOCATION_NOT_ALLOWED},
                )
                return _rejected(LOCATION_NOT_ALLOWED)

        pricing = PricingConfig.model_validate(config.pricing or {})
        cost_cents = max(0, pricing.cost_per_lead_cents)

        lead = ImportedLead(
            id=uuid.uuid4(),
            tenant_id=tenant_id,
            config_id=config.id,
            campaign_id=config.campaign_id,
            source_platform=config.source_platform,
            source_lead_id=source_lead_id,
            lead_data=lead_data,
            quality_score=quality_score,
            cost_cents=cost_cents,
            status=LEAD_STATUS_PENDING,
            extra_data={},
        )
        async with self.session_factory() as db:
            db.add(lead)
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                existing = await self._find_existing(
                    tenant_id, config.campaign_id, source_lead_id
                )
                if existing is None:
                    raise
                return self._duplicate(existing)

        if cost_cents > 0:
            outcome = await self.ledger.settle(
                tenant_id,
                cost_cents,
                lead_id=lead.id,
                auto_recharge=pricing.auto_recharge,
                recharge_amount_cents=pricing.recharge_amount_cents,
            )
            if not outcome.success:
                await self._set_status(lead.id, LEAD_STATUS_FAILED, outcome.reason)
                logger.info(
                    "Lead %s failed at ledger: %s",
                    str(lead.id)[:8], outcome.reason,
                    extra={"lead_id": lead.id, "reason": outcome.reason},
                )
                return _rejected(outcome.reason or INTERNAL_ERROR, lead_id=lead.id)

        await self._set_status(lead.id, LEAD_STATUS_DELIVERED)
        lead.status = LEAD_STATUS_DELIVERED
        logger.info(
            "Lead %s delivered (score=%d, cost=%d)",
            str(lead.id)[:8], quality_score, cost_cents,
            extra={"lead_id": lead.id, "state": SettlementState.SETTLED.value},
        )

        try:
            await self.notifier.lead_imported(lead)
        except Exception as e:
            logger.error(
                "Lead notification failed for %s: %s", str(lead.id)[:8], str(e),
                exc_info=True,
                extra={"lead_id": lead.id},
            )

        return SettlementResult(success=True, state=SettlementState.SETTLED, lead_id=lead.id)

    # Persistence helpers

    async def _find_existing(
        self, tenant_id: uuid.UUID, campaign_id: str, source_lead_id: str,
    ) -> Optional[ImportedLead]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(ImportedLead).where(
                    and_(
                        ImportedLead.tenant_id == tenant_id,
                        ImportedLead.campaign_id == campaign_id,
                        ImportedLead.source_lead_id == source_lead_id,
                    )
                )
            )
            return result.scalar_one_or_none()

    async def _set_status(
        self, lead_id: uuid.UUID, status: str, reason: Optional[str] = None,
    ) -> None:
        values = {"status": status}
        if reason is not None:
            values["failure_reason"] = reason
            values["extra_data"] = {"reason": reason}
        async with self.session_factory() as db:
            await db.execute(
                update(ImportedLead)
                .where(ImportedLead.id == lead_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await db.commit()

    @staticmethod
    def _duplicate(existing: ImportedLead) -> SettlementResult:
        logger.info(
            "Duplicate lead %s ignored (existing status %s)",
            existing.source_lead_id, existing.status,
            extra={"lead_id": existing.id, "state": existing.status},
        )
        return SettlementResult(
            success=True,
            state=SettlementState.SETTLED,
            lead_id=existing.id,
            duplicate=True,
        )
