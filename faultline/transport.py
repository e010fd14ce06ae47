"""
Faultline: Report Transport
===========================

What:  The contract for sending a `FailureReport` to a remote collector, and the
       Sentry-backed implementation used in production.
How:   `SentryTransport` validates the DSN up front, builds a dedicated
       `sentry_sdk.Client` (not bound to the global hub) and forwards each
       report as a raw event. The client queues events on its own background
       worker, so `send` returns without waiting on the network.
Who:   Constructed by `faultline.capture.set_dsn`; called by the capture
       middleware once per captured fault.

Delivery semantics:
    Fire-and-forget, single shot. No retries, no sampling, no offline queue.
    A collector that is down never changes the response the client receives.
"""

import logging
from typing import Any, Dict, Optional, Protocol

import sentry_sdk
from sentry_sdk.utils import BadDsn, Dsn

from faultline.exceptions import ConfigurationError
from faultline.report import FailureReport

logger = logging.getLogger(__name__)


class ReportTransport(Protocol):
    """Anything that can deliver one report. Must be safe for concurrent use."""

    # Options of the underlying Sentry client; shape how stack frames are
    # serialized. None means the SDK defaults.
    client_options: Optional[Dict[str, Any]]

    def send(self, report: FailureReport) -> Optional[str]:
        ...

    def close(self, timeout: Optional[float] = None) -> None:
        ...


def parse_dsn(dsn: str) -> Dsn:
    """
    Validate a collector DSN.

    Raises:
        ConfigurationError: The DSN is empty, uses an unsupported scheme, or
                            lacks a public key or numeric project id.
    """
    if not dsn or not dsn.strip():
        raise ConfigurationError("Error collector DSN is empty", dsn=dsn)
    try:
        return Dsn(dsn.strip())
    except BadDsn as e:
        raise ConfigurationError(f"Malformed error collector DSN: {e}", dsn=dsn) from e


class SentryTransport:
    """
    Sends failure reports to Sentry through a dedicated client.

    Attributes:
        dsn:     The parsed DSN (the secret key is never logged).
        client:  The underlying `sentry_sdk.Client`.

    The client is created with default integrations disabled: only the
    capture middleware produces events, nothing else hooks into the process.
    Its options (local variables, value truncation, in-app lists) are
    applied when the middleware serializes the stack.
    """

    def __init__(
        self,
        dsn: str,
        environment: Optional[str] = None,
        release: Optional[str] = None,
    ):
        self.dsn = parse_dsn(dsn)
        self.client = sentry_sdk.Client(
            dsn=dsn.strip(),
            environment=environment,
            release=release,
            default_integrations=False,
        )
        logger.info(
            "Error collector configured: host=%s project=%s environment=%s",
            self.dsn.host,
            self.dsn.project_id,
            environment,
        )

    @property
    def client_options(self) -> Dict[str, Any]:
        return self.client.options

    def send(self, report: FailureReport) -> Optional[str]:
        """Queue one report. Returns the event id, or None if the client dropped it."""
        event_id = self.client.capture_event(report.to_event())
        logger.debug("Queued failure report %s: %s", event_id, report.message)
        return event_id

    def close(self, timeout: Optional[float] = None) -> None:
        """Flush queued reports and shut the client down."""
        self.client.close(timeout=timeout)
