"""
Lead quality scoring - deterministic completeness/validity score in [0, 100].

Point table (summed, then capped at 100):
    valid email                              30
    valid phone                              25
    first + last name                        20  (only one of them: 10)
    city + state (top level or address.*)    15
    demographics with > N keys               10

The weights and patterns are what historical quality_score_min thresholds were
tuned against. Changing them silently reclassifies stored configs.
"""
import re
from typing import Any, Mapping

EMAIL_POINTS = 30
PHONE_POINTS = 25
FULL_NAME_POINTS = 20
PARTIAL_NAME_POINTS = 10
LOCATION_POINTS = 15
DEMOGRAPHICS_POINTS = 10
MAX_SCORE = 100
DEFAULT_DEMOGRAPHICS_MIN_KEYS = 2

# Digits are ASCII only; whitespace follows the Unicode definition.
EMAIL_RE = re.compile(r"[^\s@]+@[^\s@]+\.[^\s@]+")
PHONE_RE = re.compile(r"\+?[0-9\s\-()]{10,}")


def is_valid_email(value: Any) -> bool:
    return bool(value) and EMAIL_RE.fullmatch(str(value)) is not None


def is_valid_phone(value: Any) -> bool:
    return bool(value) and PHONE_RE.fullmatch(str(value)) is not None


def _has_location(lead: Mapping[str, Any]) -> bool:
    if lead.get("city") and lead.get("state"):
        return True
    address = lead.get("address")
    return isinstance(address, Mapping) and bool(address.get("city")) and bool(address.get("state"))


def score_lead(
    lead: Mapping[str, Any],
    demographics_min_keys: int = DEFAULT_DEMOGRAPHICS_MIN_KEYS,
) -> int:
    """Score a canonical lead. Pure: same input, same score."""
    score = 0

    if is_valid_email(lead.get("email")):
        score += EMAIL_POINTS

    if is_valid_phone(lead.get("phone")):
        score += PHONE_POINTS

    first_name = lead.get("first_name")
    last_name = lead.get("last_name")
    if first_name and last_name:
        score += FULL_NAME_POINTS
    elif first_name or last_name:
        score += PARTIAL_NAME_POINTS

    if _has_location(lead):
        score += LOCATION_POINTS

    demographics = lead.get("demographics")
    if isinstance(demographics, Mapping) and len(demographics) > demographics_min_keys:
        score += DEMOGRAPHICS_POINTS

    return min(score, MAX_SCORE)


def lead_region(lead: Mapping[str, Any]) -> str | None:
    """State/region used by geo filters: address.state first, then top-level state."""
    address = lead.get("address")
    if isinstance(address, Mapping) and address.get("state"):
        return str(address["state"])
    state = lead.get("state")
    return str(state) if state else None
