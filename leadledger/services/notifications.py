"""
Notification service - in-app notifications for imported leads and balance events.

Fire-and-forget: every public method catches its own errors and returns a bool.
A notification that fails to write never affects the settlement that triggered it.
"""
import logging
import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leadledger.models.imported_lead import ImportedLead
from leadledger.models.notification import Notification

logger = logging.getLogger(__name__)


def _format_dollars(cents: int) -> str:
    return f"${cents / 100:.2f}"


def _lead_display_name(lead_data: dict) -> str:
    parts = [lead_data.get("first_name"), lead_data.get("last_name")]
    name = " ".join(str(p) for p in parts if p)
    return name or "Unknown contact"


class Notifier:
    """Writes Notification rows in their own session."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def send(
        self,
        tenant_id: uuid.UUID,
        type: str,
        title: str,
        message: str,
        data: Optional[dict] = None,
    ) -> bool:
        try:
            async with self.session_factory() as db:
                db.add(Notification(
                    tenant_id=tenant_id,
                    type=type,
                    title=title,
                    message=message,
                    data=data or {},
                ))
                await db.commit()
            return True
        except Exception as e:
            logger.error(
                "Failed to write %s notification for tenant %s: %s",
                type, str(tenant_id)[:8], str(e),
                exc_info=True,
            )
            return False

    async def lead_imported(self, lead: ImportedLead) -> bool:
        return await self.send(
            lead.tenant_id,
            type="new_lead",
            title="New Lead Imported",
            message=(
                f"New {lead.source_platform} lead imported: "
                f"{_lead_display_name(lead.lead_data or {})}"
            ),
            data={
                "lead_id": str(lead.id),
                "source": lead.source_platform,
                "cost": lead.cost_cents,
            },
        )

    async def balance_recharged(
        self, tenant_id: uuid.UUID, amount_cents: int, payment_intent_id: str,
    ) -> bool:
        return await self.send(
            tenant_id,
            type="balance_recharge",
            title="Balance Recharged",
            message=f"Your account has been recharged with {_format_dollars(amount_cents)}",
            data={"amount_cents": amount_cents, "payment_intent_id": payment_intent_id},
        )

    async def auto_recharge_succeeded(
        self, tenant_id: uuid.UUID, amount_cents: int, payment_intent_id: Optional[str],
    ) -> bool:
        return await self.send(
            tenant_id,
            type="auto_recharge_success",
            title="Auto-Recharge Successful",
            message=f"Your account has been recharged with {_format_dollars(amount_cents)}",
            data={"amount_cents": amount_cents, "payment_intent_id": payment_intent_id},
        )

    async def auto_recharge_failed(
        self, tenant_id: uuid.UUID, amount_cents: int, error: Optional[str],
    ) -> bool:
        return await self.send(
            tenant_id,
            type="auto_recharge_failed",
            title="Auto-Recharge Failed",
            message=f"Auto-recharge failed: {error or 'payment declined'}",
            data={"amount_cents": amount_cents, "error": error},
        )
