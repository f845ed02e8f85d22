"""
backend/portfolio/services/events.py

Event emitter: pushes notification events to a Redis queue consumed by
the notifier loop.

Queue:
- events:notify: confirmation emails and other outbound notices

Events are emitted only after the state transition they describe has
been committed.
"""

import json
import time
import logging

from redis import Redis

logger = logging.getLogger(__name__)

NOTIFY_QUEUE = "events:notify"
NOTIFY_RETRY_QUEUE = "events:notify:retry"
NOTIFY_DEAD_QUEUE = "events:notify:dead"


def emit_event(redis: Redis, event_type: str, payload: dict) -> None:
    """
    Emit a notification event.

    Pushed to Redis list `events:notify`. Failures are logged and
    swallowed: the request that triggered the event has already succeeded.
    """
    event = {
        "type": event_type,
        **payload,
        "ts": int(time.time()),
    }
    try:
        redis.rpush(NOTIFY_QUEUE, json.dumps(event))
        logger.info(f"Event emitted: {event_type} → {NOTIFY_QUEUE}")
    except Exception as e:
        logger.error(f"Failed to emit event {event_type}: {e}")
