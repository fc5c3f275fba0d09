"""
FastAPI dependencies that assemble the settlement services from settings.
Services take their collaborators by constructor; this is the only place that
reaches for the shared session factory and HTTP client.
"""
import hmac
from typing import Optional

import httpx
from fastapi import Header, HTTPException, Request

from leadledger.config import get_settings
from leadledger.database import get_session_factory
from leadledger.services.ledger import BalanceLedger
from leadledger.services.notifications import Notifier
from leadledger.services.platform_fetcher import FacebookLeadFetcher
from leadledger.services.recharge import build_recharge_gateway
from leadledger.services.settlement import LeadSettlementService


def build_ledger(session_factory, settings) -> BalanceLedger:
    notifier = Notifier(session_factory)
    return BalanceLedger(
        session_factory,
        recharge_gateway=build_recharge_gateway(session_factory, settings),
        notifier=notifier,
    )


def build_settlement_service(
    session_factory, http_client: httpx.AsyncClient, settings,
) -> LeadSettlementService:
    ledger = build_ledger(session_factory, settings)
    fetcher = FacebookLeadFetcher(
        http_client,
        base_url=settings.graph_api_base_url,
        api_version=settings.graph_api_version,
        timeout=settings.platform_fetch_timeout_seconds,
    )
    return LeadSettlementService(
        session_factory,
        fetchers={fetcher.platform: fetcher},
        ledger=ledger,
        notifier=ledger.notifier,
        fetch_attempts=settings.platform_fetch_attempts,
        fetch_backoff_seconds=settings.platform_fetch_backoff_seconds,
        demographics_min_keys=settings.quality_demographics_min_keys,
    )


def get_ledger() -> BalanceLedger:
    return build_ledger(get_session_factory(), get_settings())


def get_settlement_service(request: Request) -> LeadSettlementService:
    return build_settlement_service(
        get_session_factory(), request.app.state.http_client, get_settings()
    )


async def require_internal_api_key(
    x_internal_api_key: Optional[str] = Header(default=None),
) -> None:
    """Internal callers (checkout subsystem) authenticate with a shared key."""
    expected = get_settings().internal_api_key
    if not expected or not x_internal_api_key:
        raise HTTPException(status_code=401, detail="Missing API key")
    if not hmac.compare_digest(x_internal_api_key.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="Invalid API key")
