"""
Redis notification consumer loops.

Two loops:
- notify_consumer_loop: delivers events from events:notify
- retry_consumer_loop: moves failed events from events:notify:retry back

Started as asyncio tasks in backend lifespan.
"""

import asyncio
import json
import logging

import redis.asyncio as aioredis

from ..context import AppContext
from ..services.events import NOTIFY_DEAD_QUEUE, NOTIFY_QUEUE, NOTIFY_RETRY_QUEUE
from . import process_event

logger = logging.getLogger(__name__)

MAX_RETRIES = 3


async def notify_consumer_loop(ctx: AppContext) -> None:
    """
    Consume events from events:notify.

    Uses BLPOP with 5s timeout to avoid busy-waiting.
    On failure, retries up to MAX_RETRIES, then moves to dead-letter queue.
    """
    r = aioredis.from_url(ctx.settings.redis_url, decode_responses=True)
    logger.info("notify_consumer_loop started")

    try:
        while True:
            try:
                result = await r.blpop(NOTIFY_QUEUE, timeout=5)
                if result is None:
                    continue

                _, raw = result
                await process_event_safe(ctx, r, raw)

            except asyncio.CancelledError:
                logger.info("notify_consumer_loop cancelled")
                raise
            except Exception:
                logger.exception("notify_consumer_loop error, retrying in 2s")
                await asyncio.sleep(2)
    finally:
        await r.aclose()


async def process_event_safe(ctx: AppContext, r: aioredis.Redis, raw: str) -> None:
    """
    Parse and process a single event with retry logic.

    On failure:
    - If attempts < MAX_RETRIES → push to retry queue
    - Otherwise → push to dead-letter queue
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.error(f"Invalid JSON in event queue: {raw[:200]}")
        await r.rpush(NOTIFY_DEAD_QUEUE, raw)
        return

    attempt = data.get("_attempt", 1)

    try:
        await process_event(ctx, data)
    except Exception:
        logger.exception(
            f"Failed to process event type={data.get('type')} "
            f"(attempt {attempt}/{MAX_RETRIES})"
        )

        if attempt < MAX_RETRIES:
            data["_attempt"] = attempt + 1
            await r.rpush(NOTIFY_RETRY_QUEUE, json.dumps(data))
            logger.info(f"Event re-queued to {NOTIFY_RETRY_QUEUE} (attempt {attempt + 1})")
        else:
            await r.rpush(NOTIFY_DEAD_QUEUE, json.dumps(data))
            logger.warning(
                f"Event moved to dead-letter queue {NOTIFY_DEAD_QUEUE}: "
                f"type={data.get('type')}"
            )


async def retry_consumer_loop(ctx: AppContext) -> None:
    """
    Move events from events:notify:retry back to events:notify with backoff.
    """
    r = aioredis.from_url(ctx.settings.redis_url, decode_responses=True)
    logger.info("retry_consumer_loop started")

    try:
        while True:
            try:
                if not await move_one_retry(r):
                    await asyncio.sleep(5)

            except asyncio.CancelledError:
                logger.info("retry_consumer_loop cancelled")
                raise
            except Exception:
                logger.exception("retry_consumer_loop error, retrying in 5s")
                await asyncio.sleep(5)
    finally:
        await r.aclose()


async def move_one_retry(r: aioredis.Redis) -> bool:
    raw = await r.lpop(NOTIFY_RETRY_QUEUE)
    if not raw:
        return False
    await r.rpush(NOTIFY_QUEUE, raw)
    logger.info(f"Retry: moved event from {NOTIFY_RETRY_QUEUE} → {NOTIFY_QUEUE}")
    return True
