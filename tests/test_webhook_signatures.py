"""
Webhook signature validation tests.
"""
import hashlib
import hmac
from unittest.mock import MagicMock, patch

from leadledger.utils.webhook_signatures import (
    compute_payload_hash,
    validate_facebook_signature,
    validate_hmac_sha256,
    verify_subscription_token,
)

SECRET = "app-secret"
BODY = b'{"entry": []}'


def _sign(body: bytes, secret: str = SECRET) -> str:
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def _settings(**overrides):
    s = MagicMock()
    s.app_env = "development"
    s.allow_unsigned_webhooks = False
    s.facebook_app_secret = SECRET
    for key, value in overrides.items():
        setattr(s, key, value)
    return s


def _request(signature: str | None = None):
    req = MagicMock()
    req.headers = {"X-Hub-Signature-256": signature} if signature else {}
    return req


class TestHmacSha256:
    def test_valid_signature(self):
        assert validate_hmac_sha256(SECRET, _sign(BODY), BODY) is True

    def test_valid_without_prefix(self):
        assert validate_hmac_sha256(SECRET, _sign(BODY)[len("sha256="):], BODY) is True

    def test_tampered_body(self):
        assert validate_hmac_sha256(SECRET, _sign(BODY), BODY + b" ") is False

    def test_wrong_secret(self):
        assert validate_hmac_sha256(SECRET, _sign(BODY, "other"), BODY) is False

    def test_missing_signature(self):
        assert validate_hmac_sha256(SECRET, "", BODY) is False


class TestSubscriptionToken:
    def test_match(self):
        assert verify_subscription_token("subscribe", "tok", "tok") is True

    def test_wrong_mode(self):
        assert verify_subscription_token("unsubscribe", "tok", "tok") is False

    def test_wrong_token(self):
        assert verify_subscription_token("subscribe", "nope", "tok") is False

    def test_unconfigured_token_never_matches(self):
        assert verify_subscription_token("subscribe", "", "") is False


class TestFacebookSignature:
    def test_valid(self):
        with patch("leadledger.config.get_settings", return_value=_settings()):
            assert validate_facebook_signature(_request(_sign(BODY)), BODY) is True

    def test_invalid(self):
        with patch("leadledger.config.get_settings", return_value=_settings()):
            assert validate_facebook_signature(_request("sha256=deadbeef"), BODY) is False

    def test_no_secret_soft_outside_production(self):
        with patch("leadledger.config.get_settings", return_value=_settings(facebook_app_secret="")):
            assert validate_facebook_signature(_request(), BODY) is True

    def test_no_secret_strict_in_production(self):
        settings = _settings(facebook_app_secret="", app_env="production")
        with patch("leadledger.config.get_settings", return_value=settings):
            assert validate_facebook_signature(_request(), BODY) is False

    def test_production_override(self):
        settings = _settings(facebook_app_secret="", app_env="production", allow_unsigned_webhooks=True)
        with patch("leadledger.config.get_settings", return_value=settings):
            assert validate_facebook_signature(_request(), BODY) is True


def test_payload_hash_is_sha256_hex():
    assert compute_payload_hash(BODY) == hashlib.sha256(BODY).hexdigest()
