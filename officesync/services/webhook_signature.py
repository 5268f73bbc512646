"""Inbound webhook signature verification.

The scheduling provider signs each request body with HMAC-SHA256 using the
shared webhook secret and sends the hex digest in ``X-Signature``. Either the
bare hex or ``sha256=<hex>`` form is accepted.

Typical signing (Python):
    import hashlib, hmac
    sig = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
"""
from __future__ import annotations

import hashlib
import hmac
from typing import Optional

SIGNATURE_HEADER = "X-Signature"


def sign(body: bytes, secret: str) -> str:
    """Return ``sha256=<hex>`` HMAC signature for *body* using *secret*."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify_signature(body: bytes, secret: Optional[str], provided_sig: Optional[str]) -> bool:
    """Constant-time comparison of *provided_sig* against the HMAC of *body*.

    A missing secret or a missing signature never verifies.
    """
    if not secret or not provided_sig:
        return False
    clean = provided_sig.strip()
    if clean.startswith("sha256="):
        clean = clean[len("sha256="):]
    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, clean.lower())
