# backend/portfolio/schemas/payments.py

from datetime import datetime
from typing import Optional

from pydantic import Field

from .common import CamelModel, CustomerInfoIn, UtcTimestampsModel


class CreateOrder(CamelModel):
    resource_id: int
    customer_info: CustomerInfoIn


class VerifyPayment(CamelModel):
    order_id: str = Field(min_length=1)
    payment_id: str = Field(min_length=1)
    signature: str = Field(min_length=1)
    resource_id: int
    customer_info: CustomerInfoIn


class ResourceBrief(CamelModel):
    id: int
    title: str
    price: float


class OrderRead(CamelModel):
    order_id: str
    amount: int
    currency: str
    resource: ResourceBrief


class VerifiedRead(CamelModel):
    purchase_id: int
    download_token: str
    download_url: str


class PurchaseRead(UtcTimestampsModel):
    id: int
    resource_id: int
    resource: Optional[ResourceBrief] = None
    user_id: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: str
    payment_id: str
    payment_order_id: Optional[str] = None
    amount: float
    currency: str
    status: str
    download_count: int
    max_downloads: int
    expires_at: datetime
    created_at: datetime
