"""
Webhook signature validation - verify incoming webhooks are authentic.

Supported providers:
- Facebook: HMAC-SHA256 of the raw body via X-Hub-Signature-256 (app secret)
- Facebook subscription handshake: hub.verify_token comparison
"""
import hashlib
import hmac
import logging

logger = logging.getLogger(__name__)


def validate_hmac_sha256(
    secret: str,
    signature: str,
    body: bytes,
    header_prefix: str = "sha256=",
) -> bool:
    """
    Validate generic HMAC-SHA256 webhook signature.
    Handles signatures with optional prefix (e.g., "sha256=...").
    Returns True if valid, False if invalid.
    """
    if not secret or not signature:
        return False

    sig = signature
    if sig.startswith(header_prefix):
        sig = sig[len(header_prefix):]

    try:
        expected = hmac.new(
            secret.encode("utf-8"),
            body,
            hashlib.sha256,
        ).hexdigest()
        return hmac.compare_digest(expected, sig.lower())
    except Exception as e:
        logger.error("HMAC-SHA256 validation error: %s", str(e))
        return False


def compute_payload_hash(body: bytes) -> str:
    """Compute SHA-256 hash of raw payload for audit."""
    return hashlib.sha256(body).hexdigest()


def verify_subscription_token(mode: str | None, token: str | None, expected: str) -> bool:
    """Facebook GET handshake: mode must be 'subscribe' and the token must match."""
    if mode != "subscribe" or not token or not expected:
        return False
    return hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8"))


def validate_facebook_signature(request, body: bytes) -> bool:
    """
    Validate a Facebook delivery signature.
    Returns True if valid or if no app secret is configured outside production
    (soft enforcement).
    """
    from leadledger.config import get_settings
    settings = get_settings()
    strict_prod = settings.app_env == "production" and not settings.allow_unsigned_webhooks

    if not settings.facebook_app_secret:
        if strict_prod:
            logger.error(
                "Missing FACEBOOK_APP_SECRET in production - rejecting webhook"
            )
            return False
        logger.warning(
            "FACEBOOK_APP_SECRET not set - accepting facebook webhook without "
            "signature verification. Configure the secret for production."
        )
        return True

    sig = request.headers.get("X-Hub-Signature-256", "")
    return validate_hmac_sha256(settings.facebook_app_secret, sig, body)
