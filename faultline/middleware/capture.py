"""
Faultline: Fault Capture Middleware
===================================

What:  Catches unrecoverable faults raised anywhere below it in the ASGI stack,
       reports them to the error collector, and turns them into a normal error
       response.
How:   Pure ASGI middleware. `receive` is wrapped so every body chunk the
       application consumes is recorded; `send` is wrapped to know whether a
       response has already started. A single try/except around the
       downstream app is the fault boundary.
Who:   Added once to the host's middleware chain (see `middleware()`).
When:  On every HTTP request; a no-op unless the downstream app raises.

Capture sequence (fixed order):
    1. log the fault with its traceback
    2. normalize the fault into a message
    3. snapshot the stack (STACK_SKIP_FRAMES, CONTEXT_LINES)
    4. HTTP context from the request, or the empty placeholder
    5. tags from the registered extractor
    6. request body (recorded chunks + rest of the stream, which is drained)
    7. assemble the report
    8. dispatch it
    9. re-signal CapturedFaultError to the host's exception handlers

What counts as a fault:
    Any Exception except starlette's HTTPException, which is an ordinary
    error and is re-raised untouched. Exceptions that the framework already
    turned into responses never reach this middleware. BaseException
    subclasses outside Exception (cancellation, SystemExit) are not caught.

Known limitation:
    Step 6 consumes the request stream. Anything reading the body after the
    capture sees it exhausted.
"""

import inspect
import logging
from typing import Dict, List, Optional

from starlette.exceptions import HTTPException
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from faultline.capture import CaptureConfig, CaptureSnapshot, capture_config
from faultline.exceptions import CapturedFaultError
from faultline.middleware.request_id import request_id_var
from faultline.report import (
    HttpContext,
    build_report,
    exception_record,
    http_context_from_request,
    normalize_fault_message,
)

logger = logging.getLogger(__name__)


class _BodyRecorder:
    """
    `receive` wrapper that keeps a copy of every request body chunk.

    `read_all()` returns the whole body: the chunks already consumed by the
    application plus whatever is still pending on the stream.
    """

    def __init__(self, receive: Receive):
        self._receive = receive
        self._chunks: List[bytes] = []
        self._complete = False

    async def __call__(self) -> Message:
        message = await self._receive()
        self._record(message)
        return message

    def _record(self, message: Message) -> None:
        if message["type"] == "http.request":
            self._chunks.append(message.get("body", b""))
            if not message.get("more_body", False):
                self._complete = True
        elif message["type"] == "http.disconnect":
            self._complete = True

    async def read_all(self) -> bytes:
        while not self._complete:
            self._record(await self._receive())
        return b"".join(self._chunks)


class FaultCaptureMiddleware:
    """
    Reports unrecoverable request faults and absorbs them.

    Args:
        app:     The downstream ASGI application.
        config:  Capture configuration; defaults to the process-wide
                 `faultline.capture.capture_config`.

    After a capture the middleware returns normally. The caller sees the
    response produced by the host's handler for CapturedFaultError (or a
    plain 500), never the original exception.
    """

    def __init__(self, app: ASGIApp, config: Optional[CaptureConfig] = None):
        self.app = app
        self.config = config or capture_config

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        recorder = _BodyRecorder(receive)
        response_started = False

        async def send_wrapper(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, recorder, send_wrapper)
        except HTTPException:
            raise
        except Exception as exc:
            error = await self._capture(scope, recorder, exc)
            if response_started:
                logger.warning(
                    "Response already started for %s %s; cannot send error response",
                    scope.get("method"),
                    scope.get("path"),
                )
                return
            await signal_error(scope, recorder, send, error)

    async def _capture(
        self, scope: Scope, recorder: _BodyRecorder, exc: Exception
    ) -> CapturedFaultError:
        snapshot = self.config.snapshot()
        request = Request(scope)

        logger.error(
            "Unhandled fault on %s %s: %r",
            request.method,
            request.url.path,
            exc,
            exc_info=exc,
        )

        message = normalize_fault_message(exc)
        record = exception_record(
            exc,
            message=message,
            client_options=snapshot.transport.client_options if snapshot.transport else None,
        )

        http = http_context_from_request(request) if snapshot.capture_context else HttpContext()
        tags = self._extract_tags(snapshot, request)

        body = await recorder.read_all()
        report = build_report(
            message,
            record,
            http=http,
            body=body.decode("utf-8", errors="replace"),
            tags=tags,
        )

        if snapshot.transport is None:
            logger.warning("No error collector configured; dropping report for: %s", message)
        else:
            try:
                snapshot.transport.send(report)
            except Exception:
                logger.exception("Failed to dispatch failure report for: %s", message)

        context = {"method": request.method, "path": request.url.path}
        rid = request_id_var.get()
        if rid:
            context["request_id"] = rid
        return CapturedFaultError(message, fault=exc, context=context)

    @staticmethod
    def _extract_tags(snapshot: CaptureSnapshot, request: Request) -> Dict[str, str]:
        if snapshot.tag_extractor is None:
            return {}
        try:
            tags = snapshot.tag_extractor(request)
            return {str(key): str(value) for key, value in (tags or {}).items()}
        except Exception:
            logger.exception("Tag extractor failed; reporting without tags")
            return {}


async def signal_error(
    scope: Scope, receive: Receive, send: Send, error: CapturedFaultError
) -> None:
    """
    Hand `error` to the host application's exception handler and send the result.

    Handlers are looked up on the Starlette/FastAPI app in `scope["app"]`,
    first by the error's class hierarchy, then by status code 500. Sync and
    async handlers are both accepted. Without a matching handler, or when
    the handler itself raises, a plain 500 response is sent; the handler's
    exception is logged and never propagates.
    """
    handlers = getattr(scope.get("app"), "exception_handlers", None) or {}
    handler = None
    for cls in type(error).__mro__:
        if cls in handlers:
            handler = handlers[cls]
            break
    if handler is None:
        handler = handlers.get(500)

    request = Request(scope, receive=receive)
    response: Optional[Response] = None
    if handler is not None:
        try:
            response = handler(request, error)
            if inspect.isawaitable(response):
                response = await response
        except Exception:
            logger.exception("Exception handler failed for captured fault: %s", error.message)
            response = None
    if response is None:
        response = PlainTextResponse("Internal Server Error", status_code=500)
    await response(scope, receive, send)


def middleware(config: Optional[CaptureConfig] = None) -> Middleware:
    """
    Middleware entry for the host's middleware list.

        app = FastAPI(middleware=[middleware()])
    """
    return Middleware(FaultCaptureMiddleware, config=config)
