"""FastAPI application factory and configuration."""

import logging
import traceback
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from config.settings import Settings, get_settings
from messaging.base import DriverFactory
from messaging.exceptions import GatewayError

from .dependencies import build_gateway
from .routes import router
from .websocket import router as ws_router

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    """Configure root logging once per process."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[logging.FileHandler(settings.log_file, encoding="utf-8", mode="a")],
    )
    # Suppress noisy uvicorn logs
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.error").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def create_app(
    settings: Optional[Settings] = None,
    driver_factory: Optional[DriverFactory] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        logger.info("Starting WhatsApp Gateway...")
        gateway = build_gateway(settings, driver_factory)
        app.state.gateway = gateway
        logger.info(f"Webhook relay target: {settings.webhook_url}")

        await gateway.start()

        yield

        await gateway.close()
        app.state.gateway = None
        logger.info("Server shutting down...")

    app = FastAPI(
        title="WhatsApp Gateway",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.include_router(router)
    app.include_router(ws_router)

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        """Return gateway errors in their structured form."""
        logger.error(f"Gateway Error: {exc.error_type} - {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_response())

    @app.exception_handler(Exception)
    async def general_error_handler(request: Request, exc: Exception):
        """Handle unexpected errors without leaking internals."""
        logger.error(f"General Error: {str(exc)}")
        logger.error(traceback.format_exc())
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "An unexpected error occurred.",
                "type": "internal_error",
            },
        )

    return app


def _default_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings)
    return create_app(settings)


# Default app instance for uvicorn
app = _default_app()
