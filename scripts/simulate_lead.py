"""
Simulate an inbound lead delivery against a running instance.

Usage:
    python scripts/simulate_lead.py --tenant <uuid>
    python scripts/simulate_lead.py --tenant <uuid> --source custom --config <uuid> --token <bearer>
    python scripts/simulate_lead.py --tenant <uuid> --secret <facebook app secret>
"""
import argparse
import asyncio
import hashlib
import hmac
import json
import logging
import time

import httpx

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

BASE_URL = "http://localhost:8000"


async def simulate_facebook(tenant_id: str, form_id: str, leadgen_id: str, secret: str | None):
    """Send a Facebook leadgen envelope. The service will fetch the lead from Graph."""
    payload = {
        "object": "page",
        "entry": [{
            "id": "page_1",
            "time": int(time.time()),
            "changes": [{
                "field": "leadgen",
                "value": {"form_id": form_id, "leadgen_id": leadgen_id, "page_id": "page_1"},
            }],
        }],
    }
    body = json.dumps(payload).encode()
    headers = {"Content-Type": "application/json"}
    if secret:
        digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
        headers["X-Hub-Signature-256"] = f"sha256={digest}"

    async with httpx.AsyncClient(timeout=30) as client:
        resp = await client.post(
            f"{BASE_URL}/api/v1/webhooks/leads/facebook/{tenant_id}",
            content=body,
            headers=headers,
        )
        logger.info("Facebook webhook response: %s %s", resp.status_code, resp.text)
        return resp


async def simulate_custom(tenant_id: str, config_id: str, token: str, name: str):
    """Push a complete lead through the custom integration webhook."""
    first, _, last = name.partition(" ")
    payload = {
        "first_name": first,
        "last_name": last,
        "email": f"{first.lower()}@example.com",
        "phone_number": "+1 512 555 9876",
        "city": "Austin",
        "state": "TX",
    }
    async with httpx.AsyncClient(timeout=30) as client:
        resp = await client.post(
            f"{BASE_URL}/api/v1/webhooks/leads/custom/{tenant_id}/{config_id}",
            json=payload,
            headers={"Authorization": f"Bearer {token}"},
        )
        logger.info("Custom webhook response: %s %s", resp.status_code, resp.text)
        return resp


async def main():
    parser = argparse.ArgumentParser(description="Simulate inbound lead deliveries")
    parser.add_argument("--tenant", required=True)
    parser.add_argument("--source", default="facebook", choices=["facebook", "custom"])
    parser.add_argument("--form-id", default="1234567890")
    parser.add_argument("--leadgen-id", default=f"lead_{int(time.time())}")
    parser.add_argument("--secret", default=None)
    parser.add_argument("--config", default=None)
    parser.add_argument("--token", default=None)
    parser.add_argument("--name", default="John Smith")
    args = parser.parse_args()

    if args.source == "facebook":
        await simulate_facebook(args.tenant, args.form_id, args.leadgen_id, args.secret)
    else:
        if not args.config or not args.token:
            parser.error("--config and --token are required for custom leads")
        await simulate_custom(args.tenant, args.config, args.token, args.name)


if __name__ == "__main__":
    asyncio.run(main())
