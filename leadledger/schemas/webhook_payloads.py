"""
Webhook payload schemas - raw input from lead-ads platforms.

Only the envelope shape is enforced. Change values stay untyped so that change
kinds we do not settle can never fail a batch that also carries leads.
"""
from typing import Any, Optional, Union
from pydantic import BaseModel


class FacebookChange(BaseModel):
    field: Optional[str] = None
    value: Any = None


class FacebookEntry(BaseModel):
    id: Optional[Union[str, int]] = None
    time: Optional[int] = None
    changes: Optional[list[FacebookChange]] = None


class FacebookWebhookPayload(BaseModel):
    """Facebook Lead Ads delivery: entry[] -> changes[] -> {field, value}."""
    object: Optional[str] = None
    entry: list[FacebookEntry]


class LeadEvent(BaseModel):
    """One lead to settle, extracted from a platform envelope."""
    campaign_id: str
    source_lead_id: str
    page_id: Optional[str] = None
