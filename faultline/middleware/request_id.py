"""
Faultline: Request ID Middleware
================================

What:  Gives every request a correlation ID that travels with its failure
       report and comes back in the error response.
How:   Pure ASGI middleware. The client's X-Request-ID header is reused when
       present, otherwise a short id is generated. The id is stored in
       `scope["state"]` (readable as `request.state.request_id`) and in a
       ContextVar for the duration of the request only; the var is reset on
       the way out. The response header is added on `http.response.start`,
       so error responses sent after a fault capture carry it too.
When:  Outermost middleware of the reference app.

Because it runs in the same task as the capture middleware, the id is
visible there and is stamped onto every CapturedFaultError's context.
To also tag reports with it:

    set_tags(request_id_tags)
"""

import uuid
from contextvars import ContextVar
from typing import Dict

from starlette.datastructures import MutableHeaders
from starlette.requests import Request
from starlette.types import ASGIApp, Message, Receive, Scope, Send

REQUEST_ID_HEADER = "X-Request-ID"

request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def request_id_tags(request: Request) -> Dict[str, str]:
    """Tag extractor: the request's correlation ID, if one was assigned."""
    rid = getattr(request.state, "request_id", "")
    return {"request_id": rid} if rid else {}


class RequestIDMiddleware:
    """Assign a request ID, expose it to the capture path, echo it in the response."""

    def __init__(self, app: ASGIApp, header_name: str = REQUEST_ID_HEADER):
        self.app = app
        self.header_name = header_name

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        rid = Request(scope).headers.get(self.header_name) or uuid.uuid4().hex[:8]
        scope.setdefault("state", {})["request_id"] = rid

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                MutableHeaders(scope=message)[self.header_name] = rid
            await send(message)

        token = request_id_var.set(rid)
        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            request_id_var.reset(token)
