"""Unit tests for webhook signature verification."""

import hashlib
import hmac

from integrations.webhooks import compute_webhook_signature, verify_webhook_signature

BODY = b'{"event":"shipment_status_changed","tracking_number":"6800000000000"}'
SECRET = "whsec_test"


class TestWebhookSignature:
    """Test HMAC-SHA256 signatures over the raw body."""

    def test_compute_matches_hmac_sha256(self):
        expected = hmac.new(SECRET.encode(), BODY, hashlib.sha256).hexdigest()
        assert compute_webhook_signature(BODY, SECRET) == expected

    def test_bytes_and_str_secret_agree(self):
        assert compute_webhook_signature(BODY, SECRET) == compute_webhook_signature(BODY, SECRET.encode())

    def test_valid_signature(self):
        signature = compute_webhook_signature(BODY, SECRET)
        assert verify_webhook_signature(BODY, SECRET, signature) is True

    def test_signature_is_case_and_whitespace_tolerant(self):
        signature = compute_webhook_signature(BODY, SECRET)
        assert verify_webhook_signature(BODY, SECRET, f" {signature.upper()}\n") is True

    def test_modified_body_rejected(self):
        signature = compute_webhook_signature(BODY, SECRET)
        assert verify_webhook_signature(BODY + b" ", SECRET, signature) is False

    def test_wrong_secret_rejected(self):
        signature = compute_webhook_signature(BODY, "other")
        assert verify_webhook_signature(BODY, SECRET, signature) is False

    def test_empty_secret_or_signature_rejected(self):
        signature = compute_webhook_signature(BODY, SECRET)
        assert verify_webhook_signature(BODY, "", signature) is False
        assert verify_webhook_signature(BODY, SECRET, "") is False
