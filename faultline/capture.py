"""
Faultline: Shared Capture Configuration
=======================================

What:  The process-wide configuration every capture reads, and the setup
       functions the host application calls to change it.
How:   A single `CaptureConfig` instance (`capture_config`) guards its fields
       with a lock. Captures never read fields one by one; they take a
       `CaptureSnapshot`, so a capture always sees one consistent view even
       while another thread reconfigures.
Who:   `set_dsn`, `with_context` and `set_tags` are called by the host at
       startup (or at any time during traffic); the capture middleware calls
       `snapshot()` once per fault.

Setup:
    from faultline import set_dsn, set_tags, with_context, middleware

    set_dsn("https://public@o0.ingest.sentry.io/1")
    with_context(True)
    set_tags(lambda request: {"tenant": request.headers.get("x-tenant", "-")})
    app = FastAPI(middleware=[middleware()])

Tags are not stored here. The extractor is called per capture and its result
travels with that capture's report only.
"""

import logging
import sys
import threading
from dataclasses import dataclass
from typing import Callable, Mapping, Optional

from starlette.requests import Request

from faultline.config import Settings, settings
from faultline.exceptions import ConfigurationError
from faultline.transport import ReportTransport, SentryTransport

logger = logging.getLogger(__name__)

# Request in, string tags out. Called synchronously once per captured fault.
TagExtractor = Callable[[Request], Mapping[str, str]]


@dataclass(frozen=True)
class CaptureSnapshot:
    """A consistent, read-only view of the configuration for one capture."""

    transport: Optional[ReportTransport]
    capture_context: bool
    tag_extractor: Optional[TagExtractor]


class CaptureConfig:
    """
    Mutable capture configuration shared by all concurrent requests.

    Attributes (read through `snapshot()`):
        transport:        Collector handle; None until a DSN is set.
        capture_context:  Attach HTTP context to reports (default True).
        tag_extractor:    Optional per-request tag function.
    """

    def __init__(
        self,
        transport: Optional[ReportTransport] = None,
        capture_context: bool = True,
        tag_extractor: Optional[TagExtractor] = None,
    ):
        self._lock = threading.Lock()
        self._transport = transport
        self._capture_context = capture_context
        self._tag_extractor = tag_extractor

    def snapshot(self) -> CaptureSnapshot:
        with self._lock:
            return CaptureSnapshot(
                transport=self._transport,
                capture_context=self._capture_context,
                tag_extractor=self._tag_extractor,
            )

    def set_transport(self, transport: Optional[ReportTransport]) -> None:
        with self._lock:
            self._transport = transport

    def set_capture_context(self, enabled: bool) -> None:
        with self._lock:
            self._capture_context = bool(enabled)

    def set_tag_extractor(self, fn: Optional[TagExtractor]) -> None:
        with self._lock:
            self._tag_extractor = fn

    @property
    def is_configured(self) -> bool:
        return self.snapshot().transport is not None

    def close(self, timeout: Optional[float] = None) -> None:
        """Flush and close the collector client, if any."""
        transport = self.snapshot().transport
        if transport is not None:
            transport.close(timeout=timeout)


# Process-wide instance used by the module-level setup functions and by
# FaultCaptureMiddleware when no explicit config is given.
capture_config = CaptureConfig()


# ══════════════════════════════════════════════════════════════════════════
# Setup API
# ══════════════════════════════════════════════════════════════════════════


def set_dsn(dsn: str, config: Optional[CaptureConfig] = None) -> None:
    """
    Create the collector client for `dsn` and install it.

    A malformed DSN is a deployment defect: it is logged at CRITICAL level and
    the process exits with status 1. The previously installed transport (if
    any) is left untouched.
    """
    config = config or capture_config
    try:
        transport = SentryTransport(
            dsn,
            environment=settings.sentry_environment,
            release=settings.sentry_release,
        )
    except ConfigurationError as e:
        logger.critical("Cannot configure error collector: %s", e.message)
        sys.exit(1)
    config.set_transport(transport)


def with_context(enabled: bool, config: Optional[CaptureConfig] = None) -> None:
    """Toggle HTTP context capture for every subsequent report."""
    (config or capture_config).set_capture_context(enabled)


def set_tags(fn: Optional[TagExtractor], config: Optional[CaptureConfig] = None) -> None:
    """
    Register the tag extractor, replacing any previous one.

    Tags can come from the request (headers, path, `request.state`) or be
    static, e.g. ``lambda request: {"app_version": APP_VERSION}``. Pass None to
    unregister.
    """
    (config or capture_config).set_tag_extractor(fn)


def configure_from_settings(
    app_settings: Optional[Settings] = None,
    config: Optional[CaptureConfig] = None,
) -> None:
    """Apply environment settings at startup (context toggle, then DSN if set)."""
    app_settings = app_settings or settings
    config = config or capture_config

    with_context(app_settings.capture_context, config=config)
    if app_settings.sentry_dsn:
        set_dsn(app_settings.sentry_dsn, config=config)
    else:
        logger.warning("SENTRY_DSN is not set; faults will be logged but not reported")
