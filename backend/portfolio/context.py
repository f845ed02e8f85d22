# backend/portfolio/context.py
"""
Application context.

Built once in create_app() and stored on app.state.ctx.
Routers and background loops receive it explicitly; nothing here is a
module-level singleton.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable
from zoneinfo import ZoneInfo

from fastapi import Request
from redis import Redis
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from .config import Settings
from .services.payment_gateway import PaymentGateway


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AppContext:
    settings: Settings
    engine: Engine
    session_factory: sessionmaker
    redis: Redis
    gateway: PaymentGateway
    clock: Callable[[], datetime] = field(default=utc_now)

    def now(self) -> datetime:
        """Current instant, timezone-aware UTC."""
        return self.clock()

    @property
    def business_tz(self) -> ZoneInfo:
        return ZoneInfo(self.settings.business_timezone)


def get_ctx(request: Request) -> AppContext:
    return request.app.state.ctx
