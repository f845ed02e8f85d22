"""
Abandoned pending booking reaper.

Periodically releases pending bookings whose payment was never confirmed
within PENDING_BOOKING_TTL_MINUTES, freeing the slot.

Runs as an asyncio task in backend lifespan.
Uses synchronous DB (via asyncio.to_thread).
"""

import asyncio
import logging
from datetime import timedelta

from ..context import AppContext
from .booking_store import REAP_REASON, BookingStore

logger = logging.getLogger(__name__)


async def pending_reaper_loop(ctx: AppContext) -> None:
    """Periodic loop that cancels stale pending bookings."""
    interval = ctx.settings.reaper_interval_seconds
    logger.info("pending_reaper_loop started")

    try:
        while True:
            try:
                await asyncio.to_thread(reap_stale_bookings, ctx)
            except asyncio.CancelledError:
                logger.info("pending_reaper_loop cancelled")
                raise
            except Exception:
                logger.exception("pending_reaper_loop error")

            await asyncio.sleep(interval)
    except asyncio.CancelledError:
        pass


def reap_stale_bookings(ctx: AppContext) -> int:
    """Cancel pending bookings older than the TTL (synchronous). Returns count."""
    now = ctx.now()
    cutoff = now - timedelta(minutes=ctx.settings.pending_booking_ttl_minutes)

    db = ctx.session_factory()
    try:
        released = BookingStore(db).reap_pending(cutoff, now, REAP_REASON)
    finally:
        db.close()

    if released:
        logger.info(f"Released {released} abandoned pending booking(s) created before {cutoff.isoformat()}")
    return released
