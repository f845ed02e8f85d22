# backend/portfolio/routers/payments.py
# API: POST create-order, POST verify, GET download/{token} (302), GET purchases (auth)

from datetime import timedelta

from fastapi import APIRouter, Depends, status
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from ..context import AppContext, get_ctx
from ..database import get_db
from ..middleware.auth import optional_actor, require_actor
from ..schemas.common import CustomerInfoIn, ok
from ..schemas.payments import (
    CreateOrder,
    OrderRead,
    PurchaseRead,
    ResourceBrief,
    VerifiedRead,
    VerifyPayment,
)
from ..services.booking_flow import Actor, CustomerInfo
from ..services.purchases import PurchaseFlow

router = APIRouter(prefix="/payments", tags=["payments"])


def get_purchase_flow(
    ctx: AppContext = Depends(get_ctx),
    db: Session = Depends(get_db),
) -> PurchaseFlow:
    settings = ctx.settings
    return PurchaseFlow(
        db=db,
        gateway=ctx.gateway,
        redis=ctx.redis,
        payment_secret=settings.payment_key_secret,
        client_url=settings.client_url,
        link_ttl=timedelta(hours=settings.download_link_ttl_hours),
        purchase_ttl=timedelta(days=settings.purchase_ttl_days),
        max_downloads=settings.max_downloads,
    )


def _customer(info: CustomerInfoIn) -> CustomerInfo:
    return CustomerInfo(
        name=info.name,
        email=info.email,
        phone=info.phone,
        additional_info=info.additional_info,
    )


@router.post("/create-order")
def create_order(
    data: CreateOrder,
    flow: PurchaseFlow = Depends(get_purchase_flow),
):
    created = flow.create_order(data.resource_id, _customer(data.customer_info))
    return ok(OrderRead(
        order_id=created.order.id,
        amount=created.order.amount,
        currency=created.order.currency,
        resource=ResourceBrief.model_validate(created.resource),
    ))


@router.post("/verify")
def verify_payment(
    data: VerifyPayment,
    ctx: AppContext = Depends(get_ctx),
    flow: PurchaseFlow = Depends(get_purchase_flow),
    actor: Actor | None = Depends(optional_actor),
):
    issued = flow.verify_payment(
        order_id=data.order_id,
        payment_id=data.payment_id,
        signature=data.signature,
        resource_id=data.resource_id,
        customer=_customer(data.customer_info),
        now=ctx.now(),
        user_id=actor.user_id if actor else None,
    )
    return ok(VerifiedRead(
        purchase_id=issued.purchase.id,
        download_token=issued.token,
        download_url=issued.download_url,
    ))


@router.get("/download/{token}")
def download(
    token: str,
    ctx: AppContext = Depends(get_ctx),
    flow: PurchaseFlow = Depends(get_purchase_flow),
):
    file_url = flow.redeem(token, ctx.now())
    return RedirectResponse(file_url, status_code=status.HTTP_302_FOUND)


@router.get("/purchases")
def my_purchases(
    flow: PurchaseFlow = Depends(get_purchase_flow),
    actor: Actor = Depends(require_actor),
):
    return ok([PurchaseRead.model_validate(p) for p in flow.list_for_actor(actor)])
