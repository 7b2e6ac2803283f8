"""FastAPI application factory and lifespan management."""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from paygate import __version__
from paygate.config import Settings
from paygate.logging_config import configure_logging

logger = logging.getLogger(__name__)


def _lifespan(settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Build components, recover the queue, run the reprocessor."""
        from paygate.services.wiring import build_services

        # Tests install their own services before startup
        services = getattr(app.state, "services", None)
        owns_services = services is None
        if owns_services:
            services = build_services(settings)
            app.state.services = services

        recovered = await services.store.reconcile()
        if recovered:
            logger.info("Removed %d pending files already present in sent", recovered)

        reprocessor = None
        if settings.webhook_reprocess_interval > 0:
            from paygate.workers.scheduler import run_webhook_reprocessor

            reprocessor = asyncio.create_task(
                run_webhook_reprocessor(app, settings.webhook_reprocess_interval)
            )

        logger.info("Payment gateway started (data_dir=%s)", settings.data_dir)
        yield

        if reprocessor is not None:
            reprocessor.cancel()
            try:
                await reprocessor
            except asyncio.CancelledError:
                pass
        if owns_services:
            await services.aclose()
        logger.info("Payment gateway shutdown complete")

    return lifespan


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or Settings()
    configure_logging(
        log_level=settings.log_level,
        json_output=settings.json_logs,
        log_file=settings.log_file,
    )

    app = FastAPI(
        title="Payment Gateway API",
        version=__version__,
        description="Routes payment instructions to LND and Liquid nodes with signed webhooks.",
        lifespan=_lifespan(settings),
    )
    app.state.settings = settings

    # Add middleware (order matters: last added = first executed)
    from paygate.api.middleware.auth import AuthMiddleware
    from paygate.api.middleware.trace_id import TraceIdMiddleware
    app.add_middleware(
        AuthMiddleware,
        allowed_ips=settings.allowed_ips,
        secret_key=settings.secret_key,
    )
    app.add_middleware(TraceIdMiddleware)

    # Register error handlers
    from paygate.errors.handlers import register_exception_handlers
    register_exception_handlers(app)

    # Import and mount routers
    from paygate.api.router import api_router
    app.include_router(api_router)

    return app
