# backend/portfolio/main.py

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from redis import Redis
from redis.exceptions import RedisError

from .config import Settings
from .context import AppContext
from .database import create_db_engine, make_session_factory
from .errors import register_error_handlers
from .middleware.audit import audit_middleware
from .middleware.auth import auth_middleware
from .middleware.rate_limit import rate_limit_middleware
from .models import Base
from .routers import bookings, payments
from .services.payment_gateway import RazorpayGateway

logger = logging.getLogger(__name__)


def build_context(settings: Settings) -> AppContext:
    """Wire engine, Redis and the payment gateway from settings."""
    engine = create_db_engine(settings.resolved_database_url)
    Base.metadata.create_all(bind=engine)

    if not settings.payment_key_secret:
        logger.warning("PAYMENT_KEY_SECRET is empty, every payment signature will be rejected")

    return AppContext(
        settings=settings,
        engine=engine,
        session_factory=make_session_factory(engine),
        redis=Redis.from_url(settings.redis_url, decode_responses=True),
        gateway=RazorpayGateway(
            key_id=settings.payment_key_id,
            key_secret=settings.payment_key_secret,
            base_url=settings.payment_api_url,
            timeout=settings.gateway_timeout,
        ),
    )


def _background_loops(ctx: AppContext) -> list:
    from .notifier.consumer import notify_consumer_loop, retry_consumer_loop
    from .services.pending_reaper import pending_reaper_loop

    loops = []
    if ctx.settings.notifier_enabled:
        loops += [notify_consumer_loop(ctx), retry_consumer_loop(ctx)]
    if ctx.settings.reaper_enabled:
        loops.append(pending_reaper_loop(ctx))
    return loops


@asynccontextmanager
async def lifespan(app: FastAPI):
    ctx: AppContext = app.state.ctx
    tasks = [asyncio.create_task(loop) for loop in _background_loops(ctx)]
    logger.info(f"Portfolio API started, {len(tasks)} background task(s)")

    try:
        yield
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        ctx.engine.dispose()
        logger.info("Portfolio API stopped")


def create_app(settings: Optional[Settings] = None, ctx: Optional[AppContext] = None) -> FastAPI:
    if ctx is None:
        settings = settings or Settings()
        ctx = build_context(settings)
    settings = ctx.settings

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(title="Portfolio Booking API", lifespan=lifespan)
    app.state.ctx = ctx

    register_error_handlers(app)

    # ===== Middleware order (last added runs first) =====
    app.middleware("http")(audit_middleware)
    app.middleware("http")(rate_limit_middleware)
    app.middleware("http")(auth_middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.client_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(bookings.router)
    app.include_router(payments.router)

    @app.get("/health")
    def health(request: Request):
        try:
            alive = bool(request.app.state.ctx.redis.ping())
        except RedisError as e:
            logger.warning(f"Redis ping failed: {e}")
            alive = False
        return {"redis": alive}

    return app
