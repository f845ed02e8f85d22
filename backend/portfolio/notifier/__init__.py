"""
Notification event dispatcher.

Events arrive from the Redis queue (pushed by booking/purchase flows).
The consumer loop reads the queue and calls process_event().
"""

import logging
from typing import Awaitable, Callable

from ..context import AppContext

logger = logging.getLogger(__name__)

EventHandler = Callable[[AppContext, dict], Awaitable[None]]

# Registry of event handlers
EVENT_HANDLERS: dict[str, EventHandler] = {}


def register_event(event_type: str):
    """Decorator to register an event handler."""
    def decorator(func: EventHandler):
        EVENT_HANDLERS[event_type] = func
        return func
    return decorator


async def process_event(ctx: AppContext, data: dict) -> None:
    """
    Dispatch an event to its registered handler.

    Args:
        data: {"type": "event_type", ...payload}
    """
    event_type = data.get("type")

    if not event_type:
        logger.warning("Event without type field, skipping")
        return

    handler = EVENT_HANDLERS.get(event_type)

    if handler:
        logger.info(f"Processing event: {event_type}")
        await handler(ctx, data)
    else:
        logger.warning(f"No handler for event type: {event_type}")


# Import handlers to trigger registration via decorators
from . import handlers  # noqa: E402, F401
