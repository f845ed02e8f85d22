# backend/portfolio/services/booking_store.py
"""
Booking record store.

Every state change is a single conditional statement guarded by the
current status, so concurrent handlers cannot both win:

- insert_pending: partial unique index on (service_id, scheduled_at)
  for pending/confirmed rows → IntegrityError → SlotConflict
- confirm_if_pending: UPDATE ... WHERE status = 'pending'
- cancel_if_active: UPDATE ... WHERE status IN ('pending', 'confirmed')
- reap_pending: bulk UPDATE ... WHERE status = 'pending' AND created_at < cutoff
- confirm_if_reaped: UPDATE ... WHERE status = 'cancelled' AND cancel_reason = REAP_REASON;
  the unique index decides whether the slot can be taken back
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session

from ..errors import SlotConflict
from ..models import (
    ACTIVE_BOOKING_STATUSES,
    Bookings,
    BookingStatus,
    PaymentStatus,
    Services,
)
from ..utils.timeutils import to_db_time

logger = logging.getLogger(__name__)

REAP_REASON = "Payment not completed"


@dataclass(frozen=True)
class BookingFilter:
    """Explicit query filter; unset fields are not constrained."""
    service_id: Optional[int] = None
    scheduled_at: Optional[datetime] = None
    statuses: Optional[Sequence[str]] = None
    owner_user_id: Optional[str] = None
    owner_email: Optional[str] = None


@dataclass(frozen=True)
class NewBooking:
    service_id: int
    scheduled_at: datetime
    duration_minutes: int
    amount: float
    currency: str
    customer_name: str
    customer_email: str
    customer_phone: Optional[str] = None
    additional_info: Optional[str] = None
    requirements: Sequence[str] = ()
    user_id: Optional[str] = None


class BookingStore:
    def __init__(self, db: Session):
        self.db = db

    # ── Read ─────────────────────────────────────────────────────────────

    def get(self, booking_id: int) -> Optional[Bookings]:
        return self.db.get(Bookings, booking_id)

    def refresh(self, booking: Bookings) -> Bookings:
        self.db.refresh(booking)
        return booking

    def _query(self, flt: BookingFilter) -> Query:
        query = self.db.query(Bookings)
        if flt.service_id is not None:
            query = query.filter(Bookings.service_id == flt.service_id)
        if flt.scheduled_at is not None:
            query = query.filter(Bookings.scheduled_at == to_db_time(flt.scheduled_at))
        if flt.statuses:
            query = query.filter(Bookings.status.in_(list(flt.statuses)))

        owner_clauses = []
        if flt.owner_user_id:
            owner_clauses.append(Bookings.user_id == flt.owner_user_id)
        if flt.owner_email:
            owner_clauses.append(Bookings.customer_email == flt.owner_email.lower())
        if owner_clauses:
            query = query.filter(or_(*owner_clauses))
        return query

    def find(self, flt: BookingFilter) -> list[Bookings]:
        return (
            self._query(flt)
            .order_by(Bookings.created_at.desc(), Bookings.id.desc())
            .all()
        )

    def exists(self, flt: BookingFilter) -> bool:
        return self._query(flt).first() is not None

    # ── Write ────────────────────────────────────────────────────────────

    def insert_pending(self, data: NewBooking, now: datetime) -> Bookings:
        """Insert a pending booking and commit; the slot is claimed on success."""
        ts = to_db_time(now)
        booking = Bookings(
            service_id=data.service_id,
            user_id=data.user_id,
            customer_name=data.customer_name,
            customer_email=data.customer_email.lower(),
            customer_phone=data.customer_phone,
            additional_info=data.additional_info,
            requirements=json.dumps(list(data.requirements)),
            scheduled_at=to_db_time(data.scheduled_at),
            duration_minutes=data.duration_minutes,
            status=BookingStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            amount=data.amount,
            currency=data.currency,
            created_at=ts,
            updated_at=ts,
        )
        self.db.add(booking)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.info(
                f"Slot conflict on insert: service={data.service_id} "
                f"at={to_db_time(data.scheduled_at).isoformat()}"
            )
            raise SlotConflict() from None
        self.db.refresh(booking)
        return booking

    def attach_order(self, booking_id: int, order_id: str, now: datetime) -> None:
        self.db.execute(
            update(Bookings)
            .where(Bookings.id == booking_id)
            .values(payment_order_id=order_id, updated_at=to_db_time(now))
        )
        self.db.commit()

    def release(self, booking_id: int, reason: str, now: datetime) -> bool:
        """Give up a pending reservation whose payment never started."""
        ts = to_db_time(now)
        result = self.db.execute(
            update(Bookings)
            .where(
                Bookings.id == booking_id,
                Bookings.status == BookingStatus.PENDING.value,
            )
            .values(
                status=BookingStatus.CANCELLED.value,
                payment_status=PaymentStatus.FAILED.value,
                cancelled_at=ts,
                cancel_reason=reason,
                updated_at=ts,
            )
        )
        self.db.commit()
        return result.rowcount == 1

    def confirm_if_pending(
        self,
        booking_id: int,
        payment_id: str,
        meeting_link: str,
        now: datetime,
    ) -> bool:
        """
        pending → confirmed/paid and bump the service counter, one transaction.

        Returns False when the booking was not pending (nothing changed).
        """
        ts = to_db_time(now)
        result = self.db.execute(
            update(Bookings)
            .where(
                Bookings.id == booking_id,
                Bookings.status == BookingStatus.PENDING.value,
            )
            .values(
                status=BookingStatus.CONFIRMED.value,
                payment_status=PaymentStatus.PAID.value,
                payment_id=payment_id,
                meeting_link=meeting_link,
                confirmed_at=ts,
                updated_at=ts,
            )
        )
        if result.rowcount != 1:
            self.db.rollback()
            return False

        self._count_confirmed(booking_id)
        self.db.commit()
        return True

    def confirm_if_reaped(
        self,
        booking_id: int,
        payment_id: str,
        meeting_link: str,
        now: datetime,
    ) -> bool:
        """
        Reaped and unpaid → confirmed/paid, if the slot is still free.

        The active-slot unique index rejects the update when another booking
        holds the slot. Returns False when nothing changed.
        """
        ts = to_db_time(now)
        stmt = (
            update(Bookings)
            .where(
                Bookings.id == booking_id,
                Bookings.status == BookingStatus.CANCELLED.value,
                Bookings.cancel_reason == REAP_REASON,
                Bookings.payment_id.is_(None),
                Bookings.scheduled_at > ts,
            )
            .values(
                status=BookingStatus.CONFIRMED.value,
                payment_status=PaymentStatus.PAID.value,
                payment_id=payment_id,
                meeting_link=meeting_link,
                confirmed_at=ts,
                cancelled_at=None,
                cancel_reason=None,
                updated_at=ts,
            )
        )
        try:
            result = self.db.execute(stmt)
        except IntegrityError:
            self.db.rollback()
            logger.info(f"Slot of reaped booking {booking_id} was taken meanwhile")
            return False

        if result.rowcount != 1:
            self.db.rollback()
            return False

        self._count_confirmed(booking_id)
        self.db.commit()
        return True

    def record_unclaimed_payment(self, booking_id: int, payment_id: str, now: datetime) -> bool:
        """
        Store a payment that arrived for a cancelled booking.

        The row stays cancelled with payment_status=paid: a refund is owed.
        """
        result = self.db.execute(
            update(Bookings)
            .where(
                Bookings.id == booking_id,
                Bookings.status == BookingStatus.CANCELLED.value,
                Bookings.payment_id.is_(None),
            )
            .values(
                payment_id=payment_id,
                payment_status=PaymentStatus.PAID.value,
                updated_at=to_db_time(now),
            )
        )
        self.db.commit()
        return result.rowcount == 1

    def _count_confirmed(self, booking_id: int) -> None:
        service_id = self.db.query(Bookings.service_id).filter(Bookings.id == booking_id).scalar()
        self.db.execute(
            update(Services)
            .where(Services.id == service_id)
            .values(total_bookings=Services.total_bookings + 1)
        )

    def cancel_if_active(self, booking_id: int, reason: Optional[str], now: datetime) -> bool:
        ts = to_db_time(now)
        result = self.db.execute(
            update(Bookings)
            .where(
                Bookings.id == booking_id,
                Bookings.status.in_(ACTIVE_BOOKING_STATUSES),
            )
            .values(
                status=BookingStatus.CANCELLED.value,
                cancelled_at=ts,
                cancel_reason=reason,
                updated_at=ts,
            )
        )
        self.db.commit()
        return result.rowcount == 1

    def reap_pending(self, cutoff: datetime, now: datetime, reason: str) -> int:
        """Cancel pending bookings created before cutoff. Returns affected rows."""
        ts = to_db_time(now)
        result = self.db.execute(
            update(Bookings)
            .where(
                Bookings.status == BookingStatus.PENDING.value,
                Bookings.created_at < to_db_time(cutoff),
            )
            .values(
                status=BookingStatus.CANCELLED.value,
                payment_status=PaymentStatus.FAILED.value,
                cancelled_at=ts,
                cancel_reason=reason,
                updated_at=ts,
            )
        )
        self.db.commit()
        return result.rowcount
