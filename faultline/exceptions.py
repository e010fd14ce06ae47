"""
Faultline: Exception Hierarchy
==============================

What:  Errors raised by the capture layer itself.
How:   Each exception carries a human-readable message and an optional context
       dict. The context is logged and attached to reports; it is never sent
       back to HTTP clients.
Who:   Raised by the transport (configuration) and the capture middleware
       (normalized faults); handled by setup code and host exception handlers.

Exception Hierarchy:
    FaultlineError (base)
    ├── ConfigurationError   → invalid collector DSN (fatal at setup time)
    └── CapturedFaultError   → unrecoverable fault, normalized after capture
"""

from typing import Any, Dict, Optional


class FaultlineError(Exception):
    """
    Base exception for all Faultline errors.

    Attributes:
        message:  Human-readable description.
        context:  Additional debug info (logged, never returned to clients).
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ConfigurationError(FaultlineError):
    """
    Raised when the error collector cannot be configured.

    When:    The DSN is empty or malformed (bad scheme, missing key or project).
    Handled: `faultline.capture.set_dsn` logs it and terminates the process.
    """

    def __init__(
        self,
        message: str = "Invalid error collector configuration",
        dsn: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if dsn is not None:
            ctx["dsn"] = dsn
        super().__init__(message=message, context=ctx)


class CapturedFaultError(FaultlineError):
    """
    A request fault after it has been intercepted and reported.

    What:    Wraps the original exception (available as ``__cause__``) under the
             normalized message that was sent to the collector.
    When:    Re-signalled by the capture middleware to the host application's
             exception handlers once the report has been dispatched.
    HTTP:    500 Internal Server Error (whatever the host handler renders).
    """

    def __init__(
        self,
        message: str,
        fault: Optional[BaseException] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if fault is not None:
            ctx["fault_type"] = type(fault).__name__
        super().__init__(message=message, context=ctx)
        self.fault_type = ctx.get("fault_type")
        self.__cause__ = fault
