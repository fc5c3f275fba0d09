"""
Lead webhook endpoints - receive lead events from ad platforms and custom integrations.

Security layers (in order):
1. Rate limiting (IP + tenant-level)
2. Signature / bearer token validation
3. Audit trail (webhook_events table)
4. Settlement, one task per lead

A syntactically valid batch always gets a 200 with per-lead results, even when
every lead in it failed. Only a malformed envelope is a 400.
"""
import asyncio
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from leadledger.api.dependencies import get_settlement_service
from leadledger.api.webhook_sources import custom_source_lead_id, parse_facebook_lead_events
from leadledger.config import get_settings
from leadledger.database import get_db
from leadledger.models.tenant import Tenant
from leadledger.models.webhook_event import WebhookEvent
from leadledger.models.webhook_token import WebhookToken
from leadledger.schemas.api_responses import (
    CustomWebhookResponse,
    LeadResult,
    WebhookBatchResponse,
)
from leadledger.schemas.webhook_payloads import FacebookWebhookPayload, LeadEvent
from leadledger.services.settlement import (
    LeadSettlementService,
    NO_ACTIVE_CONFIG,
    SettlementResult,
)
from leadledger.utils.logging import get_correlation_id
from leadledger.utils.rate_limiter import check_webhook_rate_limits
from leadledger.utils.webhook_signatures import (
    compute_payload_hash,
    validate_facebook_signature,
    verify_subscription_token,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/webhooks/leads", tags=["webhooks"])


def _parse_uuid(raw: str, what: str) -> uuid.UUID:
    try:
        return uuid.UUID(raw)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"{what} not found")


async def _load_tenant(db: AsyncSession, tenant_id: str) -> Tenant:
    tenant = await db.get(Tenant, _parse_uuid(tenant_id, "Tenant"))
    if tenant is None or not tenant.is_active:
        raise HTTPException(status_code=404, detail="Tenant not found")
    return tenant


async def _record_webhook_event(
    db: AsyncSession,
    source: str,
    event_type: str,
    raw_payload: dict,
    payload_hash: str,
    tenant_id: Optional[uuid.UUID] = None,
) -> WebhookEvent:
    """Record a webhook event in the audit trail before processing."""
    event = WebhookEvent(
        source=source,
        event_type=event_type,
        payload_hash=payload_hash,
        raw_payload=raw_payload,
        tenant_id=tenant_id,
        processing_status="processing",
        correlation_id=get_correlation_id(),
    )
    db.add(event)
    # Persisted before any lead is settled
    await db.commit()
    return event


def _complete_webhook_event(
    event: WebhookEvent,
    status: str = "completed",
    error_message: Optional[str] = None,
) -> None:
    """Update webhook event status after processing."""
    event.processing_status = status
    event.error_message = error_message
    event.processed_at = datetime.now(timezone.utc)


async def _enforce_rate_limit(request: Request, tenant_id: Optional[str] = None) -> None:
    """Check rate limits and raise 429 if exceeded."""
    client_ip = request.client.host if request.client else "unknown"
    allowed, retry_after = await check_webhook_rate_limits(client_ip, tenant_id)
    if not allowed:
        raise HTTPException(
            status_code=429,
            detail="Rate limit exceeded",
            headers={"Retry-After": str(retry_after or 60)},
        )


def _validate_signature(request: Request, body: bytes) -> None:
    """Validate the delivery signature and raise 401 if invalid."""
    if not validate_facebook_signature(request, body):
        client_ip = request.client.host if request.client else "unknown"
        logger.warning("Invalid webhook signature: source=facebook ip=%s", client_ip)
        raise HTTPException(status_code=401, detail="Invalid webhook signature")


async def _settle_batch(
    service: LeadSettlementService,
    tenant_id: uuid.UUID,
    events: list[LeadEvent],
    max_concurrency: int,
) -> list[SettlementResult]:
    """Settle every lead of a batch concurrently. Results keep the input order."""
    semaphore = asyncio.Semaphore(max(1, max_concurrency))

    async def _settle_one(event: LeadEvent) -> SettlementResult:
        async with semaphore:
            return await service.settle(
                tenant_id, event.campaign_id, event.source_lead_id, platform="facebook"
            )

    return list(await asyncio.gather(*(_settle_one(e) for e in events)))


def _batch_status(results: list[SettlementResult]) -> str:
    succeeded = sum(1 for r in results if r.success)
    if succeeded == len(results):
        return "completed"
    return "partial" if succeeded else "failed"


@router.get("/facebook/{tenant_id}", response_class=PlainTextResponse)
async def facebook_verify(
    tenant_id: str,
    hub_mode: Optional[str] = Query(default=None, alias="hub.mode"),
    hub_verify_token: Optional[str] = Query(default=None, alias="hub.verify_token"),
    hub_challenge: Optional[str] = Query(default=None, alias="hub.challenge"),
):
    """Subscription handshake: echo hub.challenge when the verify token matches."""
    settings = get_settings()
    if not verify_subscription_token(hub_mode, hub_verify_token, settings.facebook_verify_token):
        logger.warning("Facebook webhook verification failed for tenant %s", tenant_id[:8])
        raise HTTPException(status_code=403, detail="Verification failed")
    logger.info("Facebook webhook verified for tenant %s", tenant_id[:8])
    return PlainTextResponse(hub_challenge or "")


@router.post(
    "/facebook/{tenant_id}",
    response_model=WebhookBatchResponse,
    response_model_exclude_none=True,
)
async def facebook_lead_webhook(
    tenant_id: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    service: LeadSettlementService = Depends(get_settlement_service),
):
    """Facebook Lead Ads delivery: settle every leadgen change in the envelope."""
    await _enforce_rate_limit(request, tenant_id)
    tenant = await _load_tenant(db, tenant_id)

    body = await request.body()
    _validate_signature(request, body)

    try:
        payload = json.loads(body)
        envelope = FacebookWebhookPayload.model_validate(payload)
    except (json.JSONDecodeError, ValidationError) as e:
        logger.warning("Malformed facebook webhook body: %s", str(e)[:200])
        raise HTTPException(status_code=400, detail="Malformed webhook payload")
    if not envelope.entry:
        raise HTTPException(status_code=400, detail="Missing entry")

    event = await _record_webhook_event(
        db, source="facebook", event_type="leadgen",
        raw_payload=payload, payload_hash=compute_payload_hash(body),
        tenant_id=tenant.id,
    )

    lead_events = parse_facebook_lead_events(envelope)
    results = await _settle_batch(
        service, tenant.id, lead_events, get_settings().webhook_max_concurrency
    )

    failures = [
        f"{e.source_lead_id}: {r.error}" for e, r in zip(lead_events, results) if not r.success
    ]
    _complete_webhook_event(
        event, _batch_status(results), "; ".join(failures)[:2000] or None,
    )
    logger.info(
        "Facebook batch processed: %d lead(s), %d failed",
        len(results), len(failures),
        extra={"tenant_id": str(tenant.id)},
    )

    return WebhookBatchResponse(
        success=True,
        results=[
            LeadResult(
                leadgen_id=e.source_lead_id,
                success=r.success,
                error=r.error,
                lead_id=str(r.lead_id) if r.success and r.lead_id else None,
                duplicate=True if r.duplicate else None,
            )
            for e, r in zip(lead_events, results)
        ],
    )


@router.post(
    "/custom/{tenant_id}/{config_id}",
    response_model=CustomWebhookResponse,
    response_model_exclude_none=True,
)
async def custom_lead_webhook(
    tenant_id: str,
    config_id: str,
    request: Request,
    authorization: Optional[str] = Header(default=None),
    db: AsyncSession = Depends(get_db),
    service: LeadSettlementService = Depends(get_settlement_service),
):
    """Custom integration: the body is the full lead, authenticated by bearer token."""
    await _enforce_rate_limit(request, tenant_id)
    tenant = await _load_tenant(db, tenant_id)
    config_uuid = _parse_uuid(config_id, "Import configuration")

    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing bearer token")
    token = authorization[len("Bearer "):].strip()
    result = await db.execute(
        select(WebhookToken.id).where(
            and_(
                WebhookToken.tenant_id == tenant.id,
                WebhookToken.token == token,
                WebhookToken.active.is_(True),
            )
        )
    )
    if result.scalar_one_or_none() is None:
        logger.warning("Invalid custom webhook token for tenant %s", tenant_id[:8])
        raise HTTPException(status_code=401, detail="Invalid webhook token")

    body = await request.body()
    try:
        payload = json.loads(body)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Lead payload must be a JSON object")

    event = await _record_webhook_event(
        db, source="custom", event_type="lead",
        raw_payload=payload, payload_hash=compute_payload_hash(body),
        tenant_id=tenant.id,
    )

    outcome = await service.settle_payload(
        tenant.id, config_uuid, payload, custom_source_lead_id(payload)
    )

    if not outcome.success:
        _complete_webhook_event(event, "failed", outcome.error)
        # Keep the audit row even though the request fails
        await db.commit()
        if outcome.error == NO_ACTIVE_CONFIG:
            raise HTTPException(status_code=404, detail="Import configuration not found")
        raise HTTPException(status_code=400, detail=outcome.error)

    _complete_webhook_event(event)
    return CustomWebhookResponse(
        success=True,
        lead_id=str(outcome.lead_id),
        message="Duplicate lead ignored" if outcome.duplicate else "Lead imported successfully",
    )
