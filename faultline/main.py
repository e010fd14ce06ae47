"""
Faultline: Reference Application Factory
========================================

What:  A FastAPI app wired with fault capture, request IDs and a health route.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   Run with uvicorn (uvicorn faultline.main:app) or copied as a starting
       point for wiring Faultline into another service.

Application Architecture:
    ┌─────────────────────────────────────────────────────┐
    │                   FastAPI App                       │
    │                                                     │
    │  Middleware Chain:                                  │
    │  ┌──────────────┐ ┌─────────────────┐               │
    │  │  Request ID  │→│  Fault Capture  │→ routes       │
    │  └──────────────┘ └─────────────────┘               │
    │                                                     │
    │  Routes:                                            │
    │  ┌──────────────┐                                   │
    │  │ GET /health  │                                   │
    │  └──────────────┘                                   │
    │                                                     │
    │  Exception Handlers:                                │
    │  ┌──────────────────────────────────────────────┐   │
    │  │ CapturedFaultError / Exception → 500 (JSON)  │   │
    │  └──────────────────────────────────────────────┘   │
    └─────────────────────────────────────────────────────┘

Lifecycle:
    Startup:
    1. Initialize logging
    2. Apply capture settings (context toggle, collector DSN)
    3. Tag reports with the request ID unless an extractor is already set

    Shutdown:
    1. Flush queued reports to the collector
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from faultline import __version__
from faultline.capture import capture_config, configure_from_settings, set_tags
from faultline.config import settings
from faultline.exceptions import CapturedFaultError
from faultline.middleware.capture import FaultCaptureMiddleware
from faultline.middleware.request_id import RequestIDMiddleware, request_id_tags, request_id_var
from faultline.routes import health

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure the root logger for the whole process.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s

    Fault tracebacks logged by the capture middleware go through this
    handler as well, so local output keeps the full stack trace even when
    the collector is unreachable.
    """
    log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("sentry_sdk.errors").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Startup: logging, then capture configuration.
    Shutdown: flush the collector client.

    configure_from_settings exits the process on a malformed SENTRY_DSN.
    """
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("Faultline %s starting up...", __version__)

    configure_from_settings(settings)
    if capture_config.snapshot().tag_extractor is None:
        set_tags(request_id_tags)
    logger.info(
        "Fault capture ready: collector=%s capture_context=%s",
        "configured" if capture_config.is_configured else "not_configured",
        settings.capture_context,
    )

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("Faultline shutting down...")
    capture_config.close(timeout=settings.sentry_shutdown_timeout)
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def register_exception_handlers(app: FastAPI) -> None:
    """
    Register the error responses for captured faults.

    Handler hierarchy:
        CapturedFaultError  → 500, fault already reported
        Exception (fallback) → 500, anything raised outside the capture boundary

    Neither response exposes the fault message; it is in the logs and in
    the report.
    """

    @app.exception_handler(CapturedFaultError)
    async def handle_captured_fault(request: Request, exc: CapturedFaultError):
        rid = exc.context.get("request_id", "")
        logger.info("[%s] Captured fault answered with 500 (%s)", rid, exc.fault_type)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred. Please try again or contact support.",
                "request_id": rid,
            },
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred. Please try again or contact support.",
                "request_id": rid,
            },
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    """
    Create and configure the reference FastAPI application.

    Middleware executes in reverse order of addition: FaultCapture is added
    first so it sits innermost, directly above the router, and RequestID
    wraps it.
    """
    app = FastAPI(
        title="Faultline",
        description="Request fault capture and reporting for ASGI services.",
        version=__version__,
        lifespan=lifespan,
    )

    # ── Register Middleware ───────────────────────────────────────────────
    app.add_middleware(FaultCaptureMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(health.router)

    return app


app = create_app()
