"""Webhook signature verification."""

import hashlib
import hmac

SIGNATURE_PREFIX = "sha256="


def sign_payload(payload: bytes, secret: str) -> str:
    """Compute the ``X-Hub-Signature-256`` value for a payload."""
    digest = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return SIGNATURE_PREFIX + digest


def verify_signature(payload: bytes, signature: str | None, secret: str | None) -> bool:
    """Verify a GitHub webhook signature over the raw request body.

    Never raises: a missing header or secret, or a header of the wrong
    length, simply fails verification.
    """
    if not signature or not secret:
        return False
    expected = sign_payload(payload, secret)
    if len(signature) != len(expected):
        return False
    return hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8"))
