"""
Faultline: Application Configuration
====================================

What:  Environment-driven settings for the capture layer and the reference app.
How:   Pydantic Settings reads from environment variables (or a .env file),
       validates types, and exposes a singleton `settings` object.
Who:   Read by `faultline.capture.configure_from_settings` at startup and by
       `faultline.main` for logging and shutdown behaviour.
When:  Loaded once at module import time.

Note:
    The settings object is a startup snapshot. Runtime changes to the capture
    toggle or tag extractor go through `faultline.capture`, not through here.
"""

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Faultline settings loaded from environment variables.

    All settings have development-friendly defaults. An empty SENTRY_DSN
    leaves the collector unconfigured (faults are still logged and turned
    into 500 responses, but nothing is sent).
    """

    # ── Error Collector ───────────────────────────────────────────────────
    # Format: https://<public_key>@<host>/<project_id>
    sentry_dsn: str = Field(
        default="",
        description="Sentry DSN of the remote error collector",
    )
    sentry_environment: str = Field(default="production")
    sentry_release: Optional[str] = Field(default=None)

    # Seconds to wait for queued reports when the app shuts down
    sentry_shutdown_timeout: float = Field(default=2.0, ge=0, le=30)

    # ── Capture ───────────────────────────────────────────────────────────
    # What: Attach URL, method, headers and client address to each report
    capture_context: bool = Field(default=True)

    # ── Server ────────────────────────────────────────────────────────────
    # Valid: DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    # ── Pydantic Settings Config ──────────────────────────────────────────
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }


settings = Settings()
