# backend/portfolio/routers/bookings.py
# API: GET availability (public), POST create (public), POST confirm-payment (public),
#      GET my-bookings (auth), PUT cancel (auth)

from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..context import AppContext, get_ctx
from ..database import get_db
from ..middleware.auth import optional_actor, require_actor
from ..schemas.bookings import (
    BookingCreate,
    BookingCreatedRead,
    BookingRead,
    CancelBooking,
    ConfirmPayment,
    GatewayOrderRead,
    SlotRead,
)
from ..schemas.common import ok
from ..services.booking_flow import Actor, BookingFlow, CustomerInfo
from ..services.slots import calculate_service_slots

router = APIRouter(prefix="/bookings", tags=["bookings"])


def get_booking_flow(
    ctx: AppContext = Depends(get_ctx),
    db: Session = Depends(get_db),
) -> BookingFlow:
    settings = ctx.settings
    return BookingFlow(
        db=db,
        gateway=ctx.gateway,
        redis=ctx.redis,
        payment_secret=settings.payment_key_secret,
        meeting_link_base=settings.meeting_link_base,
        cancellation_window=timedelta(hours=settings.cancellation_window_hours),
        business_tz=ctx.business_tz,
    )


@router.get("/availability/{service_id}")
def get_availability(
    service_id: int,
    date: str = Query(..., description="YYYY-MM-DD"),
    ctx: AppContext = Depends(get_ctx),
    db: Session = Depends(get_db),
):
    slots = calculate_service_slots(db, service_id, date, ctx.now(), ctx.business_tz)
    return ok([SlotRead.model_validate(s) for s in slots])


@router.post("", status_code=status.HTTP_201_CREATED)
def create_booking(
    data: BookingCreate,
    ctx: AppContext = Depends(get_ctx),
    flow: BookingFlow = Depends(get_booking_flow),
    actor: Actor | None = Depends(optional_actor),
):
    customer = data.customer_info
    created = flow.create(
        service_id=data.service_id,
        scheduled_at=data.scheduled_date_time,
        customer=CustomerInfo(
            name=customer.name,
            email=customer.email,
            phone=customer.phone,
            additional_info=customer.additional_info,
        ),
        now=ctx.now(),
        requirements=data.requirements,
        user_id=actor.user_id if actor else None,
    )
    return ok(BookingCreatedRead(
        booking=BookingRead.model_validate(created.booking),
        gateway_order=GatewayOrderRead(
            id=created.order.id,
            amount=created.order.amount,
            currency=created.order.currency,
        ),
    ))


@router.post("/confirm-payment")
def confirm_payment(
    data: ConfirmPayment,
    ctx: AppContext = Depends(get_ctx),
    flow: BookingFlow = Depends(get_booking_flow),
):
    booking = flow.confirm_payment(
        booking_id=data.booking_id,
        order_id=data.order_id,
        payment_id=data.payment_id,
        signature=data.signature,
        now=ctx.now(),
    )
    return ok(BookingRead.model_validate(booking))


@router.get("/my-bookings")
def my_bookings(
    flow: BookingFlow = Depends(get_booking_flow),
    actor: Actor = Depends(require_actor),
):
    return ok([BookingRead.model_validate(b) for b in flow.list_for_actor(actor)])


@router.put("/{booking_id}/cancel")
def cancel_booking(
    booking_id: int,
    data: Optional[CancelBooking] = None,
    ctx: AppContext = Depends(get_ctx),
    flow: BookingFlow = Depends(get_booking_flow),
    actor: Actor = Depends(require_actor),
):
    reason = data.reason if data else None
    booking = flow.cancel(booking_id, actor, reason, ctx.now())
    return ok(BookingRead.model_validate(booking))
