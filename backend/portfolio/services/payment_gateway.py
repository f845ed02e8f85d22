# backend/portfolio/services/payment_gateway.py
"""
Remote payment orders (Razorpay Orders API).

Order creation is never retried: a retried POST could leave
a duplicate order at the provider. Order lookup is a read and
gets one retry on transport failure.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

import httpx

from ..errors import GatewayError

logger = logging.getLogger(__name__)

FETCH_ATTEMPTS = 2


@dataclass(frozen=True)
class GatewayOrder:
    id: str
    amount: int  # minor units
    currency: str
    notes: dict = field(default_factory=dict)


class PaymentGateway(Protocol):
    def create_order(
        self,
        amount: int,
        currency: str,
        receipt: str,
        notes: Optional[dict] = None,
    ) -> GatewayOrder:
        ...

    def fetch_order(self, order_id: str) -> GatewayOrder:
        ...


def to_minor_units(price: float) -> int:
    """Major units -> smallest currency unit (paise / cents)."""
    return int(round(price * 100))


def _parse_order(data) -> GatewayOrder:
    notes = data.get("notes")
    return GatewayOrder(
        id=str(data["id"]),
        amount=int(data["amount"]),
        currency=str(data["currency"]),
        # the API sends [] for an order without notes
        notes=dict(notes) if isinstance(notes, dict) else {},
    )


class RazorpayGateway:
    def __init__(
        self,
        key_id: str,
        key_secret: str,
        base_url: str = "https://api.razorpay.com/v1",
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.key_id = key_id
        self.key_secret = key_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(
            timeout=self.timeout,
            auth=(self.key_id, self.key_secret),
            transport=self._transport,
        )

    def create_order(
        self,
        amount: int,
        currency: str,
        receipt: str,
        notes: Optional[dict] = None,
    ) -> GatewayOrder:
        body = {
            "amount": amount,
            "currency": currency,
            "receipt": receipt,
            "notes": {k: str(v) for k, v in (notes or {}).items()},
        }

        try:
            with self._client() as client:
                resp = client.post(f"{self.base_url}/orders", json=body)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Gateway order rejected: receipt={receipt} "
                f"status={e.response.status_code} body={e.response.text[:200]}"
            )
            raise GatewayError("Unable to create payment order") from None
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Gateway order failed: receipt={receipt} error={e}")
            raise GatewayError("Payment provider unavailable") from None

        try:
            order = _parse_order(data)
        except (AttributeError, KeyError, TypeError, ValueError):
            logger.error(f"Malformed gateway order response: receipt={receipt}")
            raise GatewayError("Malformed payment provider response") from None

        logger.info(f"Gateway order created: {order.id} ({order.amount} {order.currency}) receipt={receipt}")
        return order

    def fetch_order(self, order_id: str) -> GatewayOrder:
        """GET /orders/{id}. Transport failures are retried once."""
        data = None
        with self._client() as client:
            for attempt in range(1, FETCH_ATTEMPTS + 1):
                try:
                    resp = client.get(f"{self.base_url}/orders/{order_id}")
                    resp.raise_for_status()
                    data = resp.json()
                    break
                except httpx.HTTPStatusError as e:
                    logger.error(
                        f"Gateway order lookup rejected: order={order_id} "
                        f"status={e.response.status_code}"
                    )
                    raise GatewayError("Unable to verify payment order") from None
                except httpx.TransportError as e:
                    logger.warning(f"Gateway order lookup failed: order={order_id} attempt={attempt} error={e}")
                    if attempt == FETCH_ATTEMPTS:
                        raise GatewayError("Payment provider unavailable") from None
                except httpx.HTTPError as e:
                    logger.error(f"Gateway order lookup failed: order={order_id} error={e}")
                    raise GatewayError("Payment provider unavailable") from None
                except ValueError:
                    logger.error(f"Gateway order lookup returned invalid JSON: order={order_id}")
                    raise GatewayError("Malformed payment provider response") from None

        try:
            return _parse_order(data)
        except (AttributeError, KeyError, TypeError, ValueError):
            logger.error(f"Malformed gateway order response: order={order_id}")
            raise GatewayError("Malformed payment provider response") from None
