"""
API request/response schemas for webhook and balance endpoints.
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class LeadResult(BaseModel):
    """Per-lead outcome inside a webhook batch response."""
    model_config = ConfigDict(populate_by_name=True)

    leadgen_id: Optional[str] = None
    success: bool
    error: Optional[str] = None
    lead_id: Optional[str] = Field(default=None, alias="leadId")
    duplicate: Optional[bool] = None


class WebhookBatchResponse(BaseModel):
    success: bool
    results: list[LeadResult] = Field(default_factory=list)


class CustomWebhookResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    lead_id: Optional[str] = Field(default=None, alias="leadId")
    message: str


class BalanceResponse(BaseModel):
    tenant_id: str
    balance_cents: int
    reserved_cents: int
    auto_recharge_enabled: bool
    recharge_threshold_cents: int
    recharge_amount_cents: int
    last_recharge_at: Optional[datetime] = None


class TopUpRequest(BaseModel):
    amount_cents: int
    payment_intent_id: str


class TopUpResponse(BaseModel):
    success: bool
    message: str
    amount_added: int
    balance_cents: Optional[int] = None
