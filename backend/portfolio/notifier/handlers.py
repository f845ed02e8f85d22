"""
Notification handlers.

booking_confirmed  → booking confirmation email to the customer
purchase_completed → purchase email with the download link
booking_created / booking_cancelled → logged only
"""

import asyncio
import logging
from html import escape

from ..context import AppContext
from ..models import Bookings, Purchases
from ..utils.timeutils import from_db_time
from . import register_event
from .email_sender import send_email

logger = logging.getLogger(__name__)


# ── Templates ────────────────────────────────────────────────────────────

BOOKING_CONFIRMED_HTML = """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2>Booking Confirmed!</h2>
  <p>Hi {name},</p>
  <p>Your booking for <strong>{service}</strong> has been confirmed.</p>
  <div style="background: #f5f5f5; padding: 20px; border-radius: 8px; margin: 20px 0;">
    <h3>Booking Details</h3>
    <p><strong>Service:</strong> {service}</p>
    <p><strong>Date &amp; Time:</strong> {when}</p>
    <p><strong>Duration:</strong> {duration} minutes</p>
    <p><strong>Amount Paid:</strong> {currency} {amount}</p>
  </div>
  <div style="text-align: center; margin: 30px 0;">
    <a href="{meeting_link}">Join Meeting</a>
  </div>
  <p>If you need to reschedule or have any questions, please contact us at least
  {window} hours in advance.</p>
</div>
"""

PURCHASE_COMPLETED_HTML = """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2>Thank you for your purchase!</h2>
  <p>Hi {name},</p>
  <p>Your purchase of <strong>{title}</strong> has been confirmed.</p>
  <div style="background: #f5f5f5; padding: 20px; border-radius: 8px; margin: 20px 0;">
    <h3>Purchase Details</h3>
    <p><strong>Item:</strong> {title}</p>
    <p><strong>Amount:</strong> {currency} {amount}</p>
    <p><strong>Payment ID:</strong> {payment_id}</p>
  </div>
  <div style="text-align: center; margin: 30px 0;">
    <a href="{download_url}">Download Now</a>
  </div>
  <ul>
    <li>This download link is valid for {link_hours} hours</li>
    <li>You can download the file up to {max_downloads} times</li>
  </ul>
</div>
"""


# ── Handlers ─────────────────────────────────────────────────────────────


@register_event("booking_confirmed")
async def on_booking_confirmed(ctx: AppContext, data: dict) -> None:
    message = await asyncio.to_thread(_render_booking_confirmed, ctx, data.get("booking_id"))
    if message is None:
        return
    to_email, subject, html = message
    await asyncio.to_thread(send_email, ctx.settings, to_email, subject, html)


@register_event("purchase_completed")
async def on_purchase_completed(ctx: AppContext, data: dict) -> None:
    message = await asyncio.to_thread(
        _render_purchase_completed, ctx, data.get("purchase_id"), data.get("download_url", "")
    )
    if message is None:
        return
    to_email, subject, html = message
    await asyncio.to_thread(send_email, ctx.settings, to_email, subject, html)


@register_event("booking_created")
@register_event("booking_cancelled")
async def on_booking_lifecycle(ctx: AppContext, data: dict) -> None:
    logger.info(f"{data.get('type')}: booking_id={data.get('booking_id')}")


# ── Rendering (synchronous DB access) ────────────────────────────────────


def _render_booking_confirmed(ctx: AppContext, booking_id) -> tuple[str, str, str] | None:
    db = ctx.session_factory()
    try:
        booking = db.get(Bookings, booking_id)
        if not booking:
            logger.error(f"Booking not found for confirmation email: {booking_id}")
            return None

        when = from_db_time(booking.scheduled_at).astimezone(ctx.business_tz)
        service_title = booking.service.title
        html = BOOKING_CONFIRMED_HTML.format(
            name=escape(booking.customer_name),
            service=escape(service_title),
            when=when.strftime("%A, %d %B %Y %H:%M %Z"),
            duration=booking.duration_minutes,
            currency=escape(booking.currency),
            amount=f"{booking.amount:g}",
            meeting_link=escape(booking.meeting_link or "", quote=True),
            window=ctx.settings.cancellation_window_hours,
        )
        return booking.customer_email, f"Booking Confirmed - {service_title}", html
    finally:
        db.close()


def _render_purchase_completed(
    ctx: AppContext,
    purchase_id,
    download_url: str,
) -> tuple[str, str, str] | None:
    db = ctx.session_factory()
    try:
        purchase = db.get(Purchases, purchase_id)
        if not purchase:
            logger.error(f"Purchase not found for confirmation email: {purchase_id}")
            return None

        title = purchase.resource.title
        html = PURCHASE_COMPLETED_HTML.format(
            name=escape(purchase.customer_name or "there"),
            title=escape(title),
            currency=escape(purchase.currency),
            amount=f"{purchase.amount:g}",
            payment_id=escape(purchase.payment_id),
            download_url=escape(download_url, quote=True),
            link_hours=ctx.settings.download_link_ttl_hours,
            max_downloads=purchase.max_downloads,
        )
        return purchase.customer_email, f"Purchase Confirmation - {title}", html
    finally:
        db.close()
