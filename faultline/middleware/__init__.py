# Middleware package init
"""
Faultline: Middleware Package
=============================

What:  ASGI middleware applied around the host application's routes.

Middleware Chain (reference app, outermost first):
    Request → [Request ID] → [Fault Capture] → Route Handler

    - Request ID runs first so the id is available to tag extractors
      (`request.state.request_id`) and to the error response.
    - Fault Capture sits directly above the router: anything the router's
      exception handling lets through is captured here.
"""

from faultline.middleware.capture import FaultCaptureMiddleware, middleware, signal_error
from faultline.middleware.request_id import RequestIDMiddleware, request_id_tags, request_id_var

__all__ = [
    "FaultCaptureMiddleware",
    "RequestIDMiddleware",
    "middleware",
    "request_id_tags",
    "request_id_var",
    "signal_error",
]
