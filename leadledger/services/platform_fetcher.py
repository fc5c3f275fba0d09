"""
Platform lead fetcher - pulls the full lead from the Facebook Graph API.

Webhook deliveries only carry the leadgen id; the answers have to be fetched with
the tenant's page access token. Graph returns each answer as a list:
    {"id": "...", "field_data": [{"name": "email", "values": ["a@b.com"]}, ...]}
Only the first value of each field is authoritative.

Every failure mode (transport error, timeout, non-2xx, malformed JSON) comes back
as a failed FetchResult. Nothing here raises and nothing here retries.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://graph.facebook.com"
DEFAULT_API_VERSION = "v18.0"
DEFAULT_TIMEOUT = 10.0


@dataclass
class FetchResult:
    ok: bool
    fields: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    status_code: Optional[int] = None


def flatten_field_data(payload: dict) -> dict[str, Any]:
    """
    Flatten Graph `field_data` into {name: first value}.
    Raises ValueError when field_data is present but not a list.
    """
    field_data = payload.get("field_data")
    if field_data is None:
        return {}
    if not isinstance(field_data, list):
        raise ValueError("field_data is not a list")

    flattened: dict[str, Any] = {}
    for item in field_data:
        if not isinstance(item, dict):
            continue
        name = item.get("name")
        values = item.get("values")
        if not name or not isinstance(values, list) or not values:
            continue
        flattened[name] = values[0]
    return flattened


class FacebookLeadFetcher:
    """Graph API client for leadgen records. The httpx client is owned by the caller."""

    platform = "facebook"

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str = DEFAULT_BASE_URL,
        api_version: str = DEFAULT_API_VERSION,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")
        self.api_version = api_version
        self.timeout = timeout

    def lead_url(self, lead_id: str) -> str:
        return f"{self.base_url}/{self.api_version}/{lead_id}"

    async def fetch(self, lead_id: str, access_token: Optional[str]) -> FetchResult:
        if not access_token:
            return FetchResult(ok=False, error="Missing access token")

        try:
            response = await self.http_client.get(
                self.lead_url(lead_id),
                params={"access_token": access_token},
                timeout=self.timeout,
            )
        except httpx.TimeoutException:
            logger.warning("Graph API timeout fetching lead %s", lead_id)
            return FetchResult(ok=False, error="Timeout")
        except httpx.HTTPError as e:
            logger.warning("Graph API transport error for lead %s: %s", lead_id, str(e))
            return FetchResult(ok=False, error=f"Transport error: {type(e).__name__}")

        if not response.is_success:
            logger.warning(
                "Graph API error for lead %s: %d %s",
                lead_id, response.status_code, response.reason_phrase,
            )
            return FetchResult(
                ok=False,
                error=f"HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
            if not isinstance(payload, dict):
                raise ValueError("Graph response is not an object")
            fields = flatten_field_data(payload)
        except ValueError as e:
            logger.warning("Malformed Graph payload for lead %s: %s", lead_id, str(e))
            return FetchResult(
                ok=False, error="Malformed payload", status_code=response.status_code
            )

        return FetchResult(ok=True, fields=fields, status_code=response.status_code)
