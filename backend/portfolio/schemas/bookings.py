# backend/portfolio/schemas/bookings.py

import json
from datetime import datetime
from typing import Optional

from pydantic import AwareDatetime, Field, field_validator

from .common import CamelModel, CustomerInfoIn, UtcTimestampsModel


class BookingCreate(CamelModel):
    service_id: int
    scheduled_date_time: AwareDatetime
    customer_info: CustomerInfoIn
    requirements: list[str] = Field(default_factory=list, max_length=50)


class ConfirmPayment(CamelModel):
    booking_id: int
    order_id: str = Field(min_length=1)
    payment_id: str = Field(min_length=1)
    signature: str = Field(min_length=1)


class CancelBooking(CamelModel):
    reason: Optional[str] = Field(default=None, max_length=1000)


class SlotRead(CamelModel):
    time: str  # "HH:00" in business time
    starts_at: datetime = Field(validation_alias="datetime", serialization_alias="datetime")


class ServiceBrief(CamelModel):
    id: int
    title: str
    duration_min: int


class BookingRead(UtcTimestampsModel):
    id: int
    service_id: int
    service: Optional[ServiceBrief] = None
    user_id: Optional[str] = None

    customer_name: str
    customer_email: str
    customer_phone: Optional[str] = None
    additional_info: Optional[str] = None
    requirements: list[str] = []

    scheduled_date_time: datetime = Field(
        validation_alias="scheduled_at",
        serialization_alias="scheduledDateTime",
    )
    duration_minutes: int

    status: str
    payment_status: str
    payment_order_id: Optional[str] = None
    payment_id: Optional[str] = None
    amount: float
    currency: str

    meeting_link: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None

    created_at: datetime
    updated_at: datetime

    @field_validator("requirements", mode="before")
    @classmethod
    def parse_requirements(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return json.loads(v) if v else []
        return v


class GatewayOrderRead(CamelModel):
    id: str
    amount: int
    currency: str


class BookingCreatedRead(CamelModel):
    booking: BookingRead
    gateway_order: GatewayOrderRead
