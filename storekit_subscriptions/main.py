"""
Main Application - FastAPI application setup.
"""

import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.responses import PlainTextResponse
from prometheus_client import generate_latest

from storekit_subscriptions.api.dependencies import SubscriptionServices, build_services
from storekit_subscriptions.api.routes import router
from storekit_subscriptions.config import Settings, settings
from storekit_subscriptions.observability import get_logger, metrics, setup_logging

setup_logging()
logger = get_logger(__name__)


def create_app(
    app_settings: Settings = settings,
    services: SubscriptionServices | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        app_settings: Settings to wire the services with
        services: Pre-built services (tests inject a scripted local store)
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """
        Application lifespan manager.

        Starts the transaction listener once on startup and stops it once on
        shutdown.
        """
        app.state.services = services or build_services(app_settings)
        logger.info(
            "application_starting",
            service=app_settings.api_title,
            version=app_settings.api_version,
        )
        app.state.services.listener.start()

        yield

        logger.info("application_shutting_down")
        await app.state.services.listener.stop()

    app = FastAPI(
        title=app_settings.api_title,
        version=app_settings.api_version,
        description=app_settings.api_description,
        lifespan=lifespan,
    )

    @app.middleware("http")
    async def logging_middleware(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        """Log all HTTP requests with timing."""
        start_time = time.time()
        endpoint = request.url.path
        method = request.method

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.time() - start_time
            metrics.record_http_request(endpoint, method, 500, duration)
            metrics.record_error(type(e).__name__, "http_request")
            logger.error(
                "request_failed",
                method=method,
                path=endpoint,
                error=str(e),
                duration_seconds=duration,
                exc_info=True,
            )
            raise

        duration = time.time() - start_time
        metrics.record_http_request(endpoint, method, response.status_code, duration)
        logger.info(
            "request_completed",
            method=method,
            path=endpoint,
            status_code=response.status_code,
            duration_seconds=duration,
        )
        return response

    app.include_router(router)

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {
            "service": app_settings.api_title,
            "version": app_settings.api_version,
            "status": "running",
        }

    if app_settings.metrics_enabled:

        @app.get("/metrics")
        async def metrics_endpoint() -> Response:
            """
            Prometheus metrics endpoint.

            Returns metrics in Prometheus text format.
            """
            return PlainTextResponse(generate_latest())

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "storekit_subscriptions.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )
