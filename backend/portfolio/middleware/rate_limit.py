# backend/portfolio/middleware/rate_limit.py
"""
Rate limiting.

Limits:
- By IP (public clients)
- By UA hash (public clients)
- By token (authenticated clients)
"""

import hashlib
import logging
from typing import Optional

from fastapi import Request
from redis import Redis

from ..errors import error_response

logger = logging.getLogger(__name__)


# ============================================================
# RATE LIMIT CONFIGURATION
# ============================================================

RATE_LIMITS = {
    # Public clients: by IP and UA, 10 min window
    "public": {
        "ip": {"limit": 300, "window": 600},
        "ua": {"limit": 600, "window": 600},
    },

    # Signed-in users
    "user": {
        "token": {"limit": 600, "window": 600},
    },
}

EXEMPT_PATHS = ("/health",)


# ============================================================
# CORE FUNCTIONS
# ============================================================

def _digest(value: Optional[str], empty: str) -> str:
    """UA and token values are hashed before they become Redis keys."""
    if not value:
        return empty
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def _check_limit(redis: Redis, key: str, limit: int, window: int) -> tuple[bool, Optional[int]]:
    """
    Check a fixed-window counter. Returns (allowed, retry_after).

    limit=0 means disabled.
    """
    if limit <= 0:
        return True, None

    try:
        pipe = redis.pipeline()
        pipe.incr(key)
        pipe.ttl(key)
        count, ttl = pipe.execute()

        if ttl == -1:
            redis.expire(key, window)
            ttl = window

        if count > limit:
            return False, ttl

        return True, None

    except Exception as e:
        logger.error(f"Rate limit check failed: {e}")
        return True, None  # fail open


def check_rate_limit(
    redis: Redis,
    key_type: str,
    key_value: str,
    client_type: str = "public",
) -> tuple[bool, Optional[int]]:
    config = RATE_LIMITS.get(client_type, {}).get(key_type)
    if not config:
        return True, None

    key = f"rl:{key_type}:{key_value}"
    return _check_limit(redis, key, config["limit"], config["window"])


def _too_many(retry: Optional[int]):
    response = error_response(429, "Too many requests, please try again later.")
    if retry:
        response.headers["Retry-After"] = str(retry)
    return response


# ============================================================
# MIDDLEWARE
# ============================================================

async def rate_limit_middleware(request: Request, call_next):
    ctx = request.app.state.ctx
    if not ctx.settings.rate_limit_enabled or request.url.path in EXEMPT_PATHS:
        return await call_next(request)

    client_type = getattr(request.state, "client_type", None) or "public"
    headers = request.headers

    if client_type == "public":
        ip = headers.get("X-Real-IP") or (request.client.host if request.client else "unknown")

        allowed, retry = check_rate_limit(ctx.redis, "ip", ip, "public")
        if not allowed:
            return _too_many(retry)

        allowed, retry = check_rate_limit(ctx.redis, "ua", _digest(headers.get("User-Agent"), "no-ua"), "public")
        if not allowed:
            return _too_many(retry)
    else:
        token = headers.get("Authorization")
        if token:
            allowed, retry = check_rate_limit(ctx.redis, "token", _digest(token, "no-token"), client_type)
            if not allowed:
                return _too_many(retry)

    return await call_next(request)
