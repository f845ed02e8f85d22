# backend/portfolio/utils/auth_data.py
"""
Signed identity tokens.

Issued by the login service, sent as "Authorization: Bearer <auth-data>".
auth-data is a query string: user_id, email, auth_date, hash where

    hash = HMAC-SHA256(sha256(secret), "\n".join(sorted "k=v"))
"""

import hashlib
import hmac
import time
from typing import Dict, Optional
from urllib.parse import parse_qsl, urlencode


def _data_check_string(data: Dict[str, str]) -> str:
    return "\n".join(f"{k}={v}" for k, v in sorted(data.items()))


def _calculate_hash(data: Dict[str, str], secret: str) -> str:
    secret_key = hashlib.sha256(secret.encode()).digest()
    return hmac.new(
        secret_key,
        _data_check_string(data).encode(),
        hashlib.sha256,
    ).hexdigest()


def sign_auth_data(
    secret: str,
    user_id: str,
    email: str,
    auth_date: Optional[int] = None,
) -> str:
    data = {
        "user_id": str(user_id),
        "email": email,
        "auth_date": str(auth_date if auth_date is not None else int(time.time())),
    }
    data["hash"] = _calculate_hash(data, secret)
    return urlencode(data)


def verify_auth_data(auth_data: str, secret: str, ttl_sec: int = 86400, now: Optional[float] = None) -> Dict:
    """
    Check signature + TTL of auth-data.

    Raises ValueError on any problem.
    """
    try:
        data = dict(parse_qsl(auth_data, strict_parsing=True))
    except ValueError:
        raise ValueError("Malformed auth data") from None

    if "hash" not in data:
        raise ValueError("Missing hash")

    received_hash = data.pop("hash")

    try:
        auth_date = int(data.get("auth_date", "0"))
    except ValueError:
        raise ValueError("Invalid auth_date") from None

    current = now if now is not None else time.time()
    if auth_date == 0 or current - auth_date > ttl_sec:
        raise ValueError("Auth data expired")

    if not hmac.compare_digest(_calculate_hash(data, secret), received_hash):
        raise ValueError("Invalid auth signature")

    return data
