"""FastAPI application factory for the stride API."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from stride.config.schema import StrideConfig

logger = logging.getLogger(__name__)


def _storage_configured(config: StrideConfig) -> bool:
    return bool(config.storage.endpoint_url or config.storage.access_key_id)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Lifespan handler: set up DB, feed and integrations; tear down on shutdown."""
    from stride.chat.backend import RepositoryChatBackend
    from stride.chat.feed import ChangeFeed
    from stride.cli.app import _create_db

    config: StrideConfig = app.state.config
    factory, engine = await _create_db(config)
    feed = ChangeFeed()

    app.state.db_factory = factory
    app.state.engine = engine
    app.state.feed = feed
    app.state.chat_backend = RepositoryChatBackend(
        factory,
        feed,
        fetch_limit=config.chat.fetch_limit,
        max_content_length=config.chat.max_content_length,
    )

    app.state.storage = None
    if _storage_configured(config):
        from stride.storage.objects import ObjectStorage

        app.state.storage = ObjectStorage.from_config(config.storage)

    app.state.payments = None
    if config.payments.enabled and config.payments.secret_key:
        from stride.payments.stripe import StripePaymentsProvider

        app.state.payments = StripePaymentsProvider(
            config.payments.secret_key,
            webhook_secret=config.payments.webhook_secret,
        )

    logger.info(
        "stride API ready (storage=%s, payments=%s)",
        "on" if app.state.storage is not None else "off",
        "on" if app.state.payments is not None else "off",
    )

    yield

    feed.close()
    await engine.dispose()


def create_app(config: StrideConfig | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    from stride import __version__
    from stride.config.loader import load_config
    from stride.core.logging import setup_logging

    if config is None:
        config = load_config()
    setup_logging(config.logging)

    app = FastAPI(
        title="stride",
        description="Fitness community API: workouts, progress and threaded chat",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config

    # ── Middleware (Starlette runs in reverse order of addition) ──
    from fastapi.middleware.cors import CORSMiddleware

    from stride.api.middleware import RateLimitMiddleware, SessionIdentityMiddleware

    # CORS (outermost: added first, runs last)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Rate limiting (runs after identity so user_id is available)
    app.add_middleware(
        RateLimitMiddleware,
        rate_limit=config.api.rate_limit,
        window=config.api.rate_limit_window,
    )

    # Session identity (added last, runs first)
    app.add_middleware(SessionIdentityMiddleware)

    # Routes
    from stride.api.auth import callback_router
    from stride.api.auth import router as auth_router
    from stride.api.health import router as health_router
    from stride.api.routes.billing import router as billing_router
    from stride.api.routes.messages import router as messages_router
    from stride.api.routes.notifications import router as notifications_router
    from stride.api.routes.schedule import router as schedule_router
    from stride.api.routes.social import router as social_router
    from stride.api.routes.uploads import router as uploads_router
    from stride.api.routes.workouts import router as workouts_router
    from stride.api.routes.ws import router as ws_router

    app.include_router(auth_router)
    app.include_router(callback_router)
    app.include_router(health_router)
    app.include_router(messages_router)
    app.include_router(ws_router)
    app.include_router(uploads_router)
    app.include_router(workouts_router)
    app.include_router(notifications_router)
    app.include_router(social_router)
    app.include_router(schedule_router)
    app.include_router(billing_router)

    return app
