# backend/portfolio/services/purchases.py
"""
Resource purchases and download tokens.

Flow:
1. create_order: gateway order for the resource price (nothing stored)
2. verify_payment: signature check, gateway order must pay for this
   resource → completed Purchase + 24h download link
3. redeem: single-use token → file URL

Redemption is one transaction of two guarded updates:
- link:     used = 0 AND expires_at > now        (single use)
- purchase: download_count < max_downloads        (quota)
If the second update matches nothing the first is rolled back.
"""

import logging
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from redis import Redis
from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import Expired, InvalidInput, InvalidSignature, LimitExceeded, NotFound
from ..models import DownloadLinks, Purchases, PurchaseStatus, Resources
from ..utils.timeutils import from_db_time, to_db_time
from .booking_flow import Actor, CustomerInfo
from .events import emit_event
from .payment_gateway import GatewayOrder, PaymentGateway, to_minor_units
from .signature import verify_signature

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PurchaseOrder:
    order: GatewayOrder
    resource: Resources


@dataclass(frozen=True)
class IssuedDownload:
    purchase: Purchases
    token: str
    download_url: str


class PurchaseFlow:
    def __init__(
        self,
        db: Session,
        gateway: PaymentGateway,
        redis: Redis,
        payment_secret: str,
        client_url: str,
        link_ttl: timedelta = timedelta(hours=24),
        purchase_ttl: timedelta = timedelta(days=30),
        max_downloads: int = 5,
    ):
        self.db = db
        self.gateway = gateway
        self.redis = redis
        self.payment_secret = payment_secret
        self.client_url = client_url.rstrip("/")
        self.link_ttl = link_ttl
        self.purchase_ttl = purchase_ttl
        self.max_downloads = max_downloads

    def _get_resource(self, resource_id: int) -> Resources:
        resource = self.db.get(Resources, resource_id)
        if not resource or not resource.is_active:
            raise NotFound("Resource not found")
        return resource

    def download_url(self, token: str) -> str:
        return f"{self.client_url}/download/{token}"

    # ── create_order ─────────────────────────────────────────────────────

    def create_order(self, resource_id: int, customer: CustomerInfo) -> PurchaseOrder:
        resource = self._get_resource(resource_id)

        order = self.gateway.create_order(
            amount=to_minor_units(resource.price),
            currency=resource.currency,
            receipt=f"resource_{resource_id}_{int(time.time() * 1000)}",
            notes={
                "resourceId": resource_id,
                "resourceTitle": resource.title,
                "customerEmail": customer.email,
                "customerName": customer.name,
            },
        )
        return PurchaseOrder(order=order, resource=resource)

    # ── verify_payment ───────────────────────────────────────────────────

    def verify_payment(
        self,
        order_id: str,
        payment_id: str,
        signature: str,
        resource_id: int,
        customer: CustomerInfo,
        now: datetime,
        user_id: Optional[str] = None,
    ) -> IssuedDownload:
        payload = {"order_id": order_id, "payment_id": payment_id, "signature": signature}
        if not verify_signature(payload, self.payment_secret):
            logger.warning(f"Invalid payment signature for resource {resource_id}")
            raise InvalidSignature()

        resource = self._get_resource(resource_id)

        # the signature does not cover the resource; the order does
        order = self.gateway.fetch_order(order_id)
        if (
            order.amount != to_minor_units(resource.price)
            or order.currency != resource.currency
            or str(order.notes.get("resourceId")) != str(resource.id)
        ):
            logger.warning(
                f"Order {order_id} ({order.amount} {order.currency}, "
                f"resourceId={order.notes.get('resourceId')}) does not pay for resource {resource.id}"
            )
            raise InvalidSignature("Payment does not match this resource")

        ts = to_db_time(now)

        purchase = Purchases(
            resource_id=resource.id,
            user_id=user_id,
            customer_name=customer.name,
            customer_email=customer.email.lower(),
            payment_id=payment_id,
            payment_order_id=order_id,
            amount=resource.price,
            currency=resource.currency,
            status=PurchaseStatus.COMPLETED.value,
            download_count=0,
            max_downloads=self.max_downloads,
            expires_at=to_db_time(now + self.purchase_ttl),
            created_at=ts,
        )
        self.db.add(purchase)
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            logger.warning(f"Payment {payment_id} already processed, replay rejected")
            raise InvalidInput("Payment already processed") from None

        token = secrets.token_hex(32)
        self.db.add(DownloadLinks(
            purchase_id=purchase.id,
            token=token,
            created_at=ts,
            expires_at=to_db_time(now + self.link_ttl),
            used=False,
        ))
        self.db.execute(
            update(Resources)
            .where(Resources.id == resource.id)
            .values(downloads=Resources.downloads + 1)
        )
        self.db.commit()
        self.db.refresh(purchase)

        url = self.download_url(token)
        logger.info(f"Purchase completed: purchase_id={purchase.id}, resource={resource.title}")
        emit_event(self.redis, "purchase_completed", {
            "purchase_id": purchase.id,
            "download_url": url,
        })

        return IssuedDownload(purchase=purchase, token=token, download_url=url)

    # ── redeem ───────────────────────────────────────────────────────────

    def redeem(self, token: str, now: datetime) -> str:
        """Consume a download token. Returns the file URL to redirect to."""
        ts = to_db_time(now)

        # Step 1: claim the link
        claimed = self.db.execute(
            update(DownloadLinks)
            .where(
                DownloadLinks.token == token,
                DownloadLinks.used == False,  # noqa: E712
                DownloadLinks.expires_at > ts,
            )
            .values(used=True, used_at=ts)
        )
        if claimed.rowcount != 1:
            self.db.rollback()
            link = self.db.query(DownloadLinks).filter(DownloadLinks.token == token).first()
            if link and not link.used and from_db_time(link.expires_at) <= now:
                raise Expired()
            raise NotFound("Invalid or expired download link")

        link = self.db.query(DownloadLinks).filter(DownloadLinks.token == token).one()

        # Step 2: count the download against the purchase quota
        counted = self.db.execute(
            update(Purchases)
            .where(
                Purchases.id == link.purchase_id,
                Purchases.status == PurchaseStatus.COMPLETED.value,
                Purchases.download_count < Purchases.max_downloads,
                Purchases.expires_at > ts,
            )
            .values(download_count=Purchases.download_count + 1)
        )
        if counted.rowcount != 1:
            purchase_id = link.purchase_id
            self.db.rollback()
            purchase = self.db.get(Purchases, purchase_id)
            if purchase and from_db_time(purchase.expires_at) <= now:
                raise Expired("Purchase has expired")
            if purchase and purchase.status != PurchaseStatus.COMPLETED.value:
                raise NotFound("Invalid or expired download link")
            raise LimitExceeded()

        purchase = self.db.get(Purchases, link.purchase_id)
        file_url = purchase.resource.file_url
        self.db.commit()

        logger.info(f"Download redeemed: purchase_id={purchase.id}, count={purchase.download_count}")
        return file_url

    # ── list ─────────────────────────────────────────────────────────────

    def list_for_actor(self, actor: Actor) -> list[Purchases]:
        clauses = []
        if actor.user_id:
            clauses.append(Purchases.user_id == actor.user_id)
        if actor.email:
            clauses.append(Purchases.customer_email == actor.email.lower())
        if not clauses:
            return []
        return (
            self.db.query(Purchases)
            .filter(or_(*clauses))
            .order_by(Purchases.created_at.desc(), Purchases.id.desc())
            .all()
        )
