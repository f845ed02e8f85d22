# backend/portfolio/services/signature.py
"""
Payment callback signature verification.

signature = hex(HMAC-SHA256(secret, "{order_id}|{payment_id}"))
"""

import hashlib
import hmac
from typing import Mapping


def compute_signature(order_id: str, payment_id: str, secret: str) -> str:
    message = f"{order_id}|{payment_id}"
    return hmac.new(
        secret.encode(),
        message.encode(),
        hashlib.sha256,
    ).hexdigest()


def verify_signature(payload: Mapping[str, str | None], secret: str) -> bool:
    """
    Check a gateway confirmation payload.

    payload: {"order_id": ..., "payment_id": ..., "signature": ...}
    """
    order_id = payload.get("order_id")
    payment_id = payload.get("payment_id")
    received = payload.get("signature")

    if not order_id or not payment_id or not received or not secret:
        return False

    expected = compute_signature(order_id, payment_id, secret)
    return hmac.compare_digest(expected.encode(), received.encode())
