"""
Import configuration sections - stored as JSONB on the ImportConfig model.
"""
from typing import Optional
from pydantic import BaseModel, Field


class PricingConfig(BaseModel):
    cost_per_lead_cents: int = 0
    auto_recharge: bool = False
    recharge_amount_cents: Optional[int] = None


class FilterConfig(BaseModel):
    quality_score_min: Optional[int] = None
    geo_restrictions: list[str] = Field(default_factory=list)


class ApiCredentials(BaseModel):
    access_token: Optional[str] = None
