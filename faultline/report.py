"""
Faultline: Failure Report Assembly
==================================

What:  Pydantic models for the report sent to the error collector, plus the
       pure functions that build them from a caught exception and a request.
How:   The capture middleware calls the helpers below in a fixed order and
       hands the resulting `FailureReport` to a transport. Exceptions and stack
       frames are serialized by the Sentry SDK (`sentry_sdk.utils`); the
       models below are a typed view over its output.

Report shapes:
    Two distinct shapes exist, depending on the request body at fault time:

    without body                       with body
    {                                  {
      "message": "boom",                 "message": "boom",
      "exception": {...},                "exception": {...},
      "request": {...},                  "request": {...},
      "tags": {...}                      "extra": {"requestBody": "..."},
    }                                    "tags": {...}
                                       }

    The "extra" key is absent, not null, when the body is empty.
"""

from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, Field
from sentry_sdk.consts import DEFAULT_OPTIONS
from sentry_sdk.utils import (
    AnnotatedValue,
    exc_info_from_error,
    exceptions_from_error_tuple,
    safe_repr,
    set_in_app_in_frames,
)
from starlette.requests import Request

# Frames at the head of a captured traceback that belong to the capture
# middleware. A traceback caught in FaultCaptureMiddleware.__call__ starts at
# that frame, so exactly one frame is dropped.
STACK_SKIP_FRAMES = 1

# Source lines kept before and after the failing line of every frame
CONTEXT_LINES = 3

# Key of the request body inside the report's extra section
EXTRA_BODY_KEY = "requestBody"


# ══════════════════════════════════════════════════════════════════════════
# Report Models
# ══════════════════════════════════════════════════════════════════════════


class StackFrame(BaseModel):
    """One frame of a captured stack trace, oldest call first."""

    filename: str
    abs_path: Optional[str] = None
    function: str
    module: Optional[str] = None
    lineno: int
    context_line: Optional[str] = None
    pre_context: Tuple[str, ...] = ()
    post_context: Tuple[str, ...] = ()
    in_app: Optional[bool] = None
    vars: Optional[Dict[str, str]] = None

    model_config = {"frozen": True}


class ExceptionRecord(BaseModel):
    """
    What:  Identity of the fault: exception type, message and stack snapshot.
    When:  Built once per capture; frozen afterwards.
    """

    type: str = Field(description="Exception class name")
    value: str = Field(description="Normalized fault message")
    module: Optional[str] = Field(default=None, description="Module defining the exception class, None for builtins")
    stacktrace: Tuple[StackFrame, ...] = Field(default=())

    model_config = {"frozen": True}


class HttpContext(BaseModel):
    """
    What:  The HTTP side of a report: where the failing request went and who sent it.
    How:   Built from the live Starlette request by `http_context_from_request`.
           `HttpContext()` with every field empty is the placeholder used when
           context capture is switched off.

    The user agent is duplicated out of the headers so the collector can derive
    browser, device and OS hints from it.
    """

    url: str = ""
    method: str = ""
    query_string: str = ""
    cookies: str = ""
    headers: Dict[str, str] = Field(default_factory=dict)
    env: Dict[str, str] = Field(default_factory=dict)
    user_agent: str = ""

    model_config = {"frozen": True}

    @property
    def is_empty(self) -> bool:
        return self == HttpContext()

    def to_event(self) -> Dict[str, object]:
        """Sentry request interface; the placeholder renders as an empty dict."""
        return self.model_dump(exclude={"user_agent"}, exclude_defaults=True)


class FailureReport(BaseModel):
    """
    What:  Everything sent to the collector for one captured fault.
    Who:   Built by `build_report`, consumed by a `ReportTransport`.

    Lifetime:
        Owned by a single capture and discarded after dispatch. Tags are the
        value computed for this capture only; they are never shared between
        requests.
    """

    message: str
    exception: ExceptionRecord
    request: HttpContext = Field(default_factory=HttpContext)
    extra: Optional[Dict[str, str]] = None
    tags: Dict[str, str] = Field(default_factory=dict)
    level: str = "error"

    model_config = {"frozen": True}

    @property
    def request_body(self) -> Optional[str]:
        if self.extra is None:
            return None
        return self.extra.get(EXTRA_BODY_KEY)

    def to_event(self) -> Dict[str, object]:
        """
        Render the report as a Sentry event payload.

        Frames are sent oldest first, which is the order Sentry expects.
        """
        exception = self.exception
        event: Dict[str, object] = {
            "level": self.level,
            "message": self.message,
            "exception": {
                "values": [
                    {
                        "type": exception.type,
                        "value": exception.value,
                        "module": exception.module,
                        "stacktrace": {
                            "frames": [
                                frame.model_dump(mode="json", exclude_none=True)
                                for frame in exception.stacktrace
                            ],
                        },
                    }
                ]
            },
            "request": self.request.to_event(),
            "tags": dict(self.tags),
        }
        if self.extra is not None:
            event["extra"] = dict(self.extra)
        return event


# ══════════════════════════════════════════════════════════════════════════
# Builders
# ══════════════════════════════════════════════════════════════════════════


def normalize_fault_message(exc: BaseException) -> str:
    """
    Turn an exception into the report message.

    `str(exc)` is used as-is; exceptions raised without arguments (e.g. a bare
    `raise KeyError`) fall back to their class name so the message is never empty.
    """
    message = str(exc)
    return message if message else type(exc).__name__


def _text(value: Any) -> Optional[str]:
    # Values the SDK truncated to max_value_length come back annotated
    if isinstance(value, AnnotatedValue):
        value = value.value
    return value if value is None or isinstance(value, str) else safe_repr(value)


def _frame_from_sentry(frame: Dict[str, Any], context_lines: int) -> StackFrame:
    pre_context = [_text(line) or "" for line in frame.get("pre_context") or ()]
    post_context = [_text(line) or "" for line in frame.get("post_context") or ()]
    local_vars = frame.get("vars")
    return StackFrame(
        filename=frame.get("filename") or frame.get("abs_path") or "<unknown>",
        abs_path=frame.get("abs_path"),
        function=frame.get("function") or "<unknown>",
        module=frame.get("module"),
        lineno=frame.get("lineno") or 0,
        context_line=_text(frame.get("context_line")),
        pre_context=tuple(pre_context[max(len(pre_context) - context_lines, 0):]),
        post_context=tuple(post_context[:context_lines]),
        in_app=frame.get("in_app"),
        vars={str(k): _text(v) or "" for k, v in local_vars.items()}
        if isinstance(local_vars, dict)
        else None,
    )


def _sentry_exception(
    exc: BaseException, client_options: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """
    Serialize `exc` with the Sentry SDK and return the entry of the exception
    itself. Chained causes come first in the SDK's list, so it is the last one.
    """
    options = client_options if client_options is not None else DEFAULT_OPTIONS
    values = exceptions_from_error_tuple(exc_info_from_error(exc), client_options=options)
    return values[-1]


def stacktrace_from_exception(
    exc: BaseException,
    skip: int = STACK_SKIP_FRAMES,
    context_lines: int = CONTEXT_LINES,
    client_options: Optional[Dict[str, Any]] = None,
) -> Tuple[StackFrame, ...]:
    """
    Snapshot the traceback of `exc` as an immutable tuple of frames.

    Args:
        exc:            The caught exception; its traceback runs from the
                        catching frame down to the raising frame.
        skip:           Number of head frames to drop (the capture machinery).
        context_lines:  Source lines kept on each side of the failing line.
        client_options: Options of the Sentry client the report goes to. Local
                        variables, value truncation and in-app marking follow
                        them; the SDK defaults apply when omitted.
    """
    return exception_record(
        exc, skip=skip, context_lines=context_lines, client_options=client_options
    ).stacktrace


def exception_record(
    exc: BaseException,
    message: Optional[str] = None,
    skip: int = STACK_SKIP_FRAMES,
    context_lines: int = CONTEXT_LINES,
    client_options: Optional[Dict[str, Any]] = None,
) -> ExceptionRecord:
    """
    Build the exception identity plus stack snapshot for a caught fault.

    Serialization is done by `sentry_sdk.utils.exceptions_from_error_tuple`;
    this only drops the head frames, trims the source context and marks
    in-app frames with the client's include/exclude lists.
    """
    options = client_options if client_options is not None else DEFAULT_OPTIONS
    payload = _sentry_exception(exc, client_options=options)

    frames = list((payload.get("stacktrace") or {}).get("frames") or ())[skip:]
    set_in_app_in_frames(
        frames,
        options.get("in_app_exclude"),
        options.get("in_app_include"),
        project_root=options.get("project_root"),
    )

    return ExceptionRecord(
        type=payload.get("type") or type(exc).__name__,
        value=message if message is not None else normalize_fault_message(exc),
        module=payload.get("module"),
        stacktrace=tuple(_frame_from_sentry(frame, context_lines) for frame in frames),
    )


def http_context_from_request(request: Request) -> HttpContext:
    """
    Extract the HTTP context from a live request.

    The Cookie header is moved into `cookies`; repeated headers are joined
    with commas. Only request metadata is read here, never the body.
    """
    url = request.url
    headers: Dict[str, str] = {}
    for key, value in request.headers.items():
        if key == "cookie":
            continue
        headers[key] = f"{headers[key]},{value}" if key in headers else value

    env: Dict[str, str] = {}
    if request.client:
        env["REMOTE_ADDR"] = str(request.client.host)
        env["REMOTE_PORT"] = str(request.client.port)

    return HttpContext(
        url=f"{url.scheme}://{url.netloc}{url.path}",
        method=request.method,
        query_string=url.query,
        cookies=request.headers.get("cookie", ""),
        headers=headers,
        env=env,
        user_agent=request.headers.get("user-agent", ""),
    )


def build_report(
    message: str,
    exception: ExceptionRecord,
    http: Optional[HttpContext] = None,
    body: Optional[str] = None,
    tags: Optional[Dict[str, str]] = None,
) -> FailureReport:
    """
    Assemble a `FailureReport`. Pure: no I/O, no shared state.

    The body goes into the extra section only when it is non-empty; an empty
    or missing body produces a report without an extra section.
    """
    return FailureReport(
        message=message,
        exception=exception,
        request=http if http is not None else HttpContext(),
        extra={EXTRA_BODY_KEY: body} if body else None,
        tags=dict(tags or {}),
    )
