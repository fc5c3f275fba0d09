"""
Database models - import all models here so Alembic can discover them.
"""
from leadledger.models.tenant import Tenant
from leadledger.models.import_config import ImportConfig
from leadledger.models.imported_lead import ImportedLead
from leadledger.models.balance import Balance
from leadledger.models.balance_transaction import BalanceTransaction
from leadledger.models.notification import Notification
from leadledger.models.webhook_event import WebhookEvent
from leadledger.models.webhook_token import WebhookToken

__all__ = [
    "Tenant",
    "ImportConfig",
    "ImportedLead",
    "Balance",
    "BalanceTransaction",
    "Notification",
    "WebhookEvent",
    "WebhookToken",
]
