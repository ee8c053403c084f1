"""Webhook signature verification for carrier and marketplace callbacks."""

import hashlib
import hmac
from typing import Union


def compute_webhook_signature(body: bytes, secret: Union[str, bytes]) -> str:
    """Hex-encoded HMAC-SHA256 of the raw request body."""
    if isinstance(secret, str):
        secret = secret.encode("utf-8")
    return hmac.new(secret, body, hashlib.sha256).hexdigest()


def verify_webhook_signature(body: bytes, secret: Union[str, bytes], signature: str) -> bool:
    """
    Verify a webhook signature in constant time.

    Args:
        body: Raw request body exactly as received
        secret: Shared secret configured on the integration
        signature: Hex signature from the request header

    Returns:
        True if the signature matches, False otherwise (including empty input)
    """
    if not secret or not signature:
        return False
    expected = compute_webhook_signature(body, secret)
    return hmac.compare_digest(expected, signature.strip().lower())
