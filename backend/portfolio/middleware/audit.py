# One JSON line per request: who called what, outcome and latency.
# Never blocks the request and never touches the DB.

import json
import logging
import time

from fastapi import Request

logger = logging.getLogger("portfolio.audit")

QUIET_PATHS = ("/health",)


def _caller_ip(request: Request) -> str | None:
    forwarded = request.headers.get("X-Real-IP")
    if forwarded:
        return forwarded
    return request.client.host if request.client else None


async def audit_middleware(request: Request, call_next):
    started = time.perf_counter()

    response = await call_next(request)

    if request.url.path in QUIET_PATHS:
        return response

    identity = getattr(request.state, "identity", None) or {}
    record = {
        "ts": int(time.time()),
        "method": request.method,
        "path": request.url.path,
        "status": response.status_code,
        "client_type": getattr(request.state, "client_type", "unknown"),
        "user_id": identity.get("user_id"),
        "ip": _caller_ip(request),
        "ua": request.headers.get("User-Agent", ""),
        "duration_ms": int((time.perf_counter() - started) * 1000),
    }

    level = logging.WARNING if response.status_code >= 500 else logging.INFO
    logger.log(level, json.dumps(record, ensure_ascii=False))

    return response
