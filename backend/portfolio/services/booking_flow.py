# backend/portfolio/services/booking_flow.py
"""
Booking confirmation orchestrator.

State machine per booking:

    requested ──create──▶ pending ──confirm_payment──▶ confirmed
                             │                            │
                             └──────── cancel ────────────┴──▶ cancelled

- A failed signature check never mutates the booking.
- confirm_payment is idempotent: a retry with the same payment id returns
  the confirmed booking without bumping counters or re-sending email.
- Pending bookings that never get paid are released by pending_reaper.
- A late payment for a reaped booking takes the slot back if it is still
  free; otherwise it is recorded on the cancelled row for refund.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional, Sequence

from redis import Redis
from sqlalchemy.orm import Session

from ..errors import Forbidden, InvalidInput, InvalidSignature, NotFound, SlotConflict, TooLate
from ..models import ACTIVE_BOOKING_STATUSES, Bookings, BookingStatus, Services
from ..utils.timeutils import from_db_time, to_db_time
from .booking_store import REAP_REASON, BookingFilter, BookingStore, NewBooking
from .events import emit_event
from .payment_gateway import GatewayOrder, PaymentGateway, to_minor_units
from .signature import verify_signature
from .slots import is_service_slot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CustomerInfo:
    name: str
    email: str
    phone: Optional[str] = None
    additional_info: Optional[str] = None


@dataclass(frozen=True)
class Actor:
    """Authenticated caller."""
    user_id: Optional[str]
    email: Optional[str]


@dataclass(frozen=True)
class BookingCreated:
    booking: Bookings
    order: GatewayOrder


class BookingFlow:
    def __init__(
        self,
        db: Session,
        gateway: PaymentGateway,
        redis: Redis,
        payment_secret: str,
        meeting_link_base: str,
        cancellation_window: timedelta = timedelta(hours=24),
        business_tz: tzinfo = timezone.utc,
    ):
        self.db = db
        self.store = BookingStore(db)
        self.gateway = gateway
        self.redis = redis
        self.payment_secret = payment_secret
        self.meeting_link_base = meeting_link_base
        self.cancellation_window = cancellation_window
        self.business_tz = business_tz

    # ── create ───────────────────────────────────────────────────────────

    def create(
        self,
        service_id: int,
        scheduled_at: datetime,
        customer: CustomerInfo,
        now: datetime,
        requirements: Sequence[str] = (),
        user_id: Optional[str] = None,
    ) -> BookingCreated:
        """
        Reserve the slot as a pending booking and open a gateway order.

        Steps:
        1. Resolve service
        2. Check the time is on the service grid, then pre-check for an
           active booking on the slot
        3. Insert pending row (unique index closes the race)
        4. Create gateway order; release the row if that fails
        5. Attach order id, emit booking_created
        """
        # Step 1: Service
        service = self.db.get(Services, service_id)
        if not service or not service.is_active:
            raise NotFound("Service not found")

        if scheduled_at.tzinfo is None:
            raise InvalidInput("scheduledDateTime must include a timezone offset")
        if scheduled_at <= now:
            raise InvalidInput("scheduledDateTime must be in the future")
        if not is_service_slot(service, scheduled_at, self.business_tz):
            raise InvalidInput("Requested time is not an available slot")

        # Step 2: Pre-check
        slot = BookingFilter(
            service_id=service_id,
            scheduled_at=scheduled_at,
            statuses=ACTIVE_BOOKING_STATUSES,
        )
        if self.store.exists(slot):
            raise SlotConflict()

        # Step 3: Claim slot
        booking = self.store.insert_pending(
            NewBooking(
                service_id=service_id,
                scheduled_at=scheduled_at,
                duration_minutes=service.duration_min,
                amount=service.price,
                currency=service.currency,
                customer_name=customer.name,
                customer_email=customer.email,
                customer_phone=customer.phone,
                additional_info=customer.additional_info,
                requirements=requirements,
                user_id=user_id,
            ),
            now,
        )

        # Step 4: Gateway order
        try:
            order = self.gateway.create_order(
                amount=to_minor_units(service.price),
                currency=service.currency,
                receipt=f"booking_{booking.id}",
                notes={
                    "serviceId": service_id,
                    "serviceTitle": service.title,
                    "customerEmail": customer.email,
                    "scheduledDateTime": to_db_time(scheduled_at).isoformat() + "Z",
                },
            )
        except Exception:
            self.store.release(booking.id, "Payment order creation failed", now)
            logger.warning(f"Booking {booking.id} released: gateway order failed")
            raise

        # Step 5: Attach order
        self.store.attach_order(booking.id, order.id, now)
        self.store.refresh(booking)

        logger.info(
            f"Booking created: booking_id={booking.id}, service={service.title}, "
            f"at={booking.scheduled_at.isoformat()}, order={order.id}"
        )
        emit_event(self.redis, "booking_created", {"booking_id": booking.id})

        return BookingCreated(booking=booking, order=order)

    # ── confirm ──────────────────────────────────────────────────────────

    def confirm_payment(
        self,
        booking_id: int,
        order_id: str,
        payment_id: str,
        signature: str,
        now: datetime,
    ) -> Bookings:
        payload = {"order_id": order_id, "payment_id": payment_id, "signature": signature}
        if not verify_signature(payload, self.payment_secret):
            logger.warning(f"Invalid payment signature for booking {booking_id}")
            raise InvalidSignature()

        booking = self.store.get(booking_id)
        if not booking:
            raise NotFound("Booking not found")

        if booking.payment_order_id != order_id:
            logger.warning(
                f"Order mismatch for booking {booking_id}: "
                f"expected={booking.payment_order_id} got={order_id}"
            )
            raise InvalidSignature("Payment does not belong to this booking")

        confirmed = self.store.confirm_if_pending(
            booking_id,
            payment_id=payment_id,
            meeting_link=self.meeting_link_base,
            now=now,
        )
        self.store.refresh(booking)

        if not confirmed:
            if booking.status == BookingStatus.CONFIRMED.value and booking.payment_id == payment_id:
                logger.info(f"Booking {booking_id} already confirmed, retry ignored")
                return booking

            if booking.status != BookingStatus.CANCELLED.value:
                logger.warning(
                    f"Payment {payment_id} received for booking {booking_id} "
                    f"in status={booking.status}; needs manual follow-up"
                )
                raise InvalidInput("Booking is no longer pending")

            self._settle_late_payment(booking, payment_id, now)

        logger.info(f"Booking confirmed: booking_id={booking_id}, payment={payment_id}")
        emit_event(self.redis, "booking_confirmed", {"booking_id": booking_id})
        return booking

    def _settle_late_payment(self, booking: Bookings, payment_id: str, now: datetime) -> None:
        """
        A valid payment arrived after the booking was cancelled.

        A booking released by the reaper gets its slot back if nobody took it.
        Otherwise the payment is stored on the cancelled row for refund.
        """
        if booking.cancel_reason == REAP_REASON and self.store.confirm_if_reaped(
            booking.id,
            payment_id=payment_id,
            meeting_link=self.meeting_link_base,
            now=now,
        ):
            self.store.refresh(booking)
            logger.info(f"Reaped booking {booking.id} reinstated by late payment {payment_id}")
            return

        if self.store.record_unclaimed_payment(booking.id, payment_id, now):
            logger.error(f"Payment {payment_id} recorded on cancelled booking {booking.id}; refund owed")
        self.store.refresh(booking)
        raise InvalidInput("Booking is no longer available, the payment will be refunded")

    # ── cancel ───────────────────────────────────────────────────────────

    def cancel(
        self,
        booking_id: int,
        actor: Actor,
        reason: Optional[str],
        now: datetime,
    ) -> Bookings:
        booking = self.store.get(booking_id)
        if not booking:
            raise NotFound("Booking not found")

        if not _is_owner(booking, actor):
            raise Forbidden("Not authorized to cancel this booking")

        if from_db_time(booking.scheduled_at) - now < self.cancellation_window:
            hours = int(self.cancellation_window.total_seconds() // 3600)
            raise TooLate(f"Cannot cancel booking less than {hours} hours in advance")

        if not self.store.cancel_if_active(booking_id, reason, now):
            self.store.refresh(booking)
            raise InvalidInput(f"Booking cannot be cancelled in status {booking.status}")

        self.store.refresh(booking)
        logger.info(f"Booking cancelled: booking_id={booking_id}, by user={actor.user_id}")
        emit_event(self.redis, "booking_cancelled", {"booking_id": booking_id})
        return booking

    # ── list ─────────────────────────────────────────────────────────────

    def list_for_actor(self, actor: Actor) -> list[Bookings]:
        if not actor.user_id and not actor.email:
            return []
        return self.store.find(
            BookingFilter(owner_user_id=actor.user_id, owner_email=actor.email)
        )


def _is_owner(booking: Bookings, actor: Actor) -> bool:
    if actor.user_id and booking.user_id and booking.user_id == actor.user_id:
        return True
    if actor.email and booking.customer_email == actor.email.lower():
        return True
    return False
