import logging

from fastapi import Depends, Request

from ..errors import Unauthorized, error_response
from ..services.booking_flow import Actor
from ..utils.auth_data import verify_auth_data

logger = logging.getLogger(__name__)


def _bearer(request: Request) -> str | None:
    header = request.headers.get("Authorization")
    if not header:
        return None
    scheme, _, value = header.partition(" ")
    if scheme.lower() != "bearer" or not value.strip():
        return None
    return value.strip()


async def auth_middleware(request: Request, call_next):
    """
    Resolve the caller identity from a signed bearer token.

    No token → anonymous (public). Bad token → 401.
    Endpoints that need a user depend on require_actor().
    """
    request.state.identity = None
    request.state.client_type = "public"

    auth_data = _bearer(request)
    if auth_data:
        settings = request.app.state.ctx.settings
        if not settings.auth_secret:
            logger.error("AUTH_SECRET is not configured, rejecting authenticated request")
            return error_response(401, "Authentication unavailable")

        try:
            data = verify_auth_data(auth_data, settings.auth_secret, settings.auth_ttl_seconds)
        except ValueError as e:
            return error_response(401, str(e))

        request.state.identity = {
            "user_id": data.get("user_id") or None,
            "email": (data.get("email") or "").lower() or None,
            "auth_date": int(data["auth_date"]),
        }
        request.state.client_type = "user"

    return await call_next(request)


def optional_actor(request: Request) -> Actor | None:
    identity = getattr(request.state, "identity", None)
    if not identity:
        return None
    return Actor(user_id=identity.get("user_id"), email=identity.get("email"))


def require_actor(actor: Actor | None = Depends(optional_actor)) -> Actor:
    if actor is None:
        raise Unauthorized("Not authorized to access this route")
    return actor
