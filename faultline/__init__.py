"""
Faultline: Request Fault Capture for ASGI Applications
======================================================

What:  Middleware that reports unrecoverable request faults to Sentry, enriched
       with HTTP context, the request body and per-request tags, and then
       turns them into ordinary error responses.

Package layout:
    ┌─────────────────────────────────────────────┐
    │  middleware/   Fault capture, request IDs   │  ← ASGI layer
    ├─────────────────────────────────────────────┤
    │  capture.py    Shared config + setup API    │
    ├─────────────────────────────────────────────┤
    │  report.py     Report models and assembly   │  ← pure
    ├─────────────────────────────────────────────┤
    │  transport.py  Sentry client wrapper        │  ← network
    └─────────────────────────────────────────────┘

    main.py holds a reference FastAPI app wired with all of the above.
"""

__version__ = "1.0.0"

from faultline.capture import (  # noqa: E402
    CaptureConfig,
    TagExtractor,
    capture_config,
    configure_from_settings,
    set_dsn,
    set_tags,
    with_context,
)
from faultline.middleware.capture import FaultCaptureMiddleware, middleware  # noqa: E402
from faultline.report import FailureReport, HttpContext  # noqa: E402
from faultline.transport import ReportTransport, SentryTransport  # noqa: E402

__all__ = [
    "CaptureConfig",
    "FailureReport",
    "FaultCaptureMiddleware",
    "HttpContext",
    "ReportTransport",
    "SentryTransport",
    "TagExtractor",
    "__version__",
    "capture_config",
    "configure_from_settings",
    "middleware",
    "set_dsn",
    "set_tags",
    "with_context",
]
