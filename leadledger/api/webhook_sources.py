"""
Platform envelope parsers - turn a webhook body into the flat list of lead events
to settle. Parsers are pure; they never touch the database.
"""
import logging
import secrets
import time
from typing import Any, Mapping

from leadledger.schemas.webhook_payloads import FacebookWebhookPayload, LeadEvent

logger = logging.getLogger(__name__)


def parse_facebook_lead_events(payload: FacebookWebhookPayload) -> list[LeadEvent]:
    """
    Every `leadgen` change across all entries, in delivery order.
    Other change kinds are ignored; leadgen changes without a leadgen_id are skipped.
    """
    events: list[LeadEvent] = []
    for entry in payload.entry:
        for change in entry.changes or []:
            if change.field != "leadgen":
                continue
            value = change.value
            if not isinstance(value, dict):
                logger.warning("Skipping leadgen change without a value object (entry %s)", entry.id)
                continue
            leadgen_id = value.get("leadgen_id")
            if not leadgen_id:
                logger.warning("Skipping leadgen change without leadgen_id (entry %s)", entry.id)
                continue
            form_id = value.get("form_id")
            page_id = value.get("page_id")
            events.append(LeadEvent(
                campaign_id=str(form_id) if form_id is not None else "",
                source_lead_id=str(leadgen_id),
                page_id=str(page_id) if page_id is not None else None,
            ))
    return events


def custom_source_lead_id(payload: Mapping[str, Any]) -> str:
    """The integration's own lead id when it sends one, otherwise a generated one."""
    for key in ("id", "lead_id"):
        value = payload.get(key)
        if value not in (None, ""):
            return str(value)
    return f"custom_{int(time.time() * 1000)}_{secrets.token_hex(4)}"
