"""
Structured JSON logging for webhook intake and lead settlement.

Each line is one JSON object: timestamp, level, correlation_id, module, message, plus
the settlement fields below when known. Fields come from two places:
- `bind_log_context(...)` for everything logged while one webhook or one lead is
  being settled (held in a ContextVar, so sibling leads settling concurrently under
  asyncio.gather never see each other's ids)
- `extra={...}` on a single call, which wins over the bound value

Ids are logged, lead contact fields never are. Tenant ids are cut to their first
8 characters.
"""
import json
import logging
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

correlation_id_ctx: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
settlement_ctx: ContextVar[dict[str, Any]] = ContextVar("settlement_log_context", default={})

SETTLEMENT_FIELDS = (
    "tenant_id",
    "lead_id",
    "campaign_id",
    "source_lead_id",
    "source",
    "state",
    "reason",
)
TENANT_ID_LOG_CHARS = 8


def get_correlation_id() -> Optional[str]:
    return correlation_id_ctx.get()


def set_correlation_id(cid: str) -> None:
    correlation_id_ctx.set(cid)


def generate_correlation_id() -> str:
    """UUID4 hex, 32 chars."""
    return uuid.uuid4().hex


def short_tenant_id(tenant_id: Any) -> Optional[str]:
    if tenant_id is None:
        return None
    return str(tenant_id)[:TENANT_ID_LOG_CHARS]


@contextmanager
def bind_log_context(**fields: Any) -> Iterator[None]:
    """
    Attach settlement fields to every log line emitted inside the block.

    Unknown keys are ignored and None values leave an outer binding in place.
    Nested blocks add to the outer binding and restore it on exit.
    """
    current = settlement_ctx.get()
    merged = dict(current)
    for key, value in fields.items():
        if key in SETTLEMENT_FIELDS and value is not None:
            merged[key] = value
    token = settlement_ctx.set(merged)
    try:
        yield
    finally:
        settlement_ctx.reset(token)


def get_log_context() -> dict[str, Any]:
    return dict(settlement_ctx.get())


class StructuredJsonFormatter(logging.Formatter):
    """
    Formats log records as single-line JSON objects.

    Output format:
    {"timestamp": "...", "level": "INFO", "correlation_id": "...", "module": "...",
     "message": "...", "tenant_id": "1a2b3c4d", "source_lead_id": "...", ...}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": record.levelname,
            "correlation_id": get_correlation_id(),
            "module": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)

        fields = get_log_context()
        for key in SETTLEMENT_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                fields[key] = val

        for key in SETTLEMENT_FIELDS:
            if key not in fields:
                continue
            val = fields[key]
            if key == "tenant_id":
                val = short_tenant_id(val)
            elif isinstance(val, uuid.UUID):
                val = str(val)
            log_entry[key] = val

        return json.dumps(log_entry, default=str)


def configure_structured_logging(log_level: str = "INFO") -> None:
    """
    Replace default logging with structured JSON logging.
    Call once at application startup before any log calls.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    formatter = StructuredJsonFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    root_logger.addHandler(stream_handler)

    # Query echo and outbound HTTP chatter would bury settlement lines
    for noisy in ("uvicorn.access", "sqlalchemy.engine", "asyncpg", "httpcore", "httpx", "stripe"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
