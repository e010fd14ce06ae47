"""
Faultline: Report Assembly Unit Tests
=====================================

What:  Tests for the pure report builders in faultline.report.
How:   Real exceptions raised from small helper functions, hand-built ASGI
       scopes for the HTTP context. No app, no transport.
"""

from sentry_sdk.consts import DEFAULT_OPTIONS
from starlette.requests import Request

from faultline.report import (
    CONTEXT_LINES,
    EXTRA_BODY_KEY,
    STACK_SKIP_FRAMES,
    HttpContext,
    build_report,
    exception_record,
    http_context_from_request,
    normalize_fault_message,
    stacktrace_from_exception,
)


class _ReportingFault(Exception):
    pass


def _explode():
    raise RuntimeError("boom")


def _catch_explosion() -> RuntimeError:
    try:
        _explode()
    except RuntimeError as exc:
        return exc
    raise AssertionError("_explode did not raise")


def _make_request() -> Request:
    return Request(
        {
            "type": "http",
            "method": "POST",
            "scheme": "https",
            "server": ("example.com", 443),
            "path": "/items",
            "raw_path": b"/items",
            "root_path": "",
            "query_string": b"a=1",
            "headers": [
                (b"host", b"example.com"),
                (b"user-agent", b"Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X)"),
                (b"cookie", b"sid=abc"),
                (b"x-multi", b"1"),
                (b"x-multi", b"2"),
            ],
            "client": ("10.0.0.1", 5555),
        }
    )


class TestFaultMessage:

    def test_message_is_str_of_exception(self):
        assert normalize_fault_message(RuntimeError("boom")) == "boom"

    def test_empty_message_falls_back_to_type_name(self):
        assert normalize_fault_message(ValueError()) == "ValueError"


class TestStacktrace:
    """The stack snapshot skips the catching frame and carries source context."""

    def test_skip_constant_drops_catching_frame(self):
        assert STACK_SKIP_FRAMES == 1
        exc = _catch_explosion()

        frames = stacktrace_from_exception(exc)

        assert [f.function for f in frames] == ["_explode"]

    def test_no_skip_keeps_catching_frame(self):
        exc = _catch_explosion()

        frames = stacktrace_from_exception(exc, skip=0)

        assert [f.function for f in frames] == ["_catch_explosion", "_explode"]

    def test_frame_carries_source_context(self):
        frame = stacktrace_from_exception(_catch_explosion())[-1]

        assert frame.context_line.strip() == 'raise RuntimeError("boom")'
        assert frame.filename.endswith("test_report.py")
        assert frame.module == __name__
        assert 0 < len(frame.pre_context) <= CONTEXT_LINES
        assert len(frame.post_context) <= CONTEXT_LINES
        assert frame.pre_context[-1].strip() == "def _explode():"

    def test_context_lines_bounded(self):
        frame = stacktrace_from_exception(_catch_explosion(), skip=0, context_lines=1)[0]
        assert len(frame.pre_context) == 1
        assert len(frame.post_context) == 1

    def test_frames_follow_client_options(self):
        options = {
            **DEFAULT_OPTIONS,
            "include_local_variables": False,
            "in_app_exclude": [__name__],
        }

        frame = stacktrace_from_exception(_catch_explosion(), client_options=options)[-1]

        assert frame.vars is None
        assert frame.in_app is False

    def test_local_variables_captured_by_default(self):
        frame = stacktrace_from_exception(_catch_explosion(), skip=0)[0]
        assert isinstance(frame.vars, dict)

    def test_snapshot_is_immutable(self):
        frames = stacktrace_from_exception(_catch_explosion())
        assert isinstance(frames, tuple)

    def test_exception_record_identity(self):
        record = exception_record(_catch_explosion(), message="boom")

        assert record.type == "RuntimeError"
        assert record.value == "boom"
        assert record.module is None
        assert record.stacktrace[-1].function == "_explode"

    def test_exception_record_keeps_custom_exception_module(self):
        try:
            raise _ReportingFault("disk full")
        except _ReportingFault as exc:
            record = exception_record(exc, skip=0)

        assert record.type == "_ReportingFault"
        assert record.module == __name__
        assert record.value == "disk full"


class TestHttpContext:

    def test_context_from_request(self):
        http = http_context_from_request(_make_request())

        assert http.url == "https://example.com/items"
        assert http.method == "POST"
        assert http.query_string == "a=1"
        assert http.cookies == "sid=abc"
        assert "cookie" not in http.headers
        assert http.headers["x-multi"] == "1,2"
        assert http.user_agent.startswith("Mozilla/5.0 (iPhone")
        assert http.env == {"REMOTE_ADDR": "10.0.0.1", "REMOTE_PORT": "5555"}
        assert not http.is_empty

    def test_placeholder_is_empty(self):
        assert HttpContext().is_empty
        assert HttpContext().to_event() == {}

    def test_event_omits_user_agent_field(self):
        event = http_context_from_request(_make_request()).to_event()
        assert "user_agent" not in event
        assert event["headers"]["user-agent"].startswith("Mozilla/5.0")


class TestBuildReport:
    """Body present and body absent produce two distinct payload shapes."""

    def setup_method(self):
        self.record = exception_record(_catch_explosion())

    def test_report_without_body_has_no_extra(self):
        report = build_report("boom", self.record, http=HttpContext(), body="", tags={})

        event = report.to_event()
        assert report.extra is None
        assert set(event) == {"level", "message", "exception", "request", "tags"}

    def test_report_with_body_has_extra(self):
        report = build_report("boom", self.record, body='{"x":1}')

        event = report.to_event()
        assert event["extra"] == {EXTRA_BODY_KEY: '{"x":1}'}
        assert report.request_body == '{"x":1}'

    def test_missing_http_context_defaults_to_placeholder(self):
        report = build_report("boom", self.record)
        assert report.request.is_empty
        assert report.tags == {}

    def test_tags_copied_into_report(self):
        tags = {"env": "prod"}
        report = build_report("boom", self.record, tags=tags)
        tags["env"] = "staging"

        assert report.tags == {"env": "prod"}

    def test_event_exception_payload(self):
        report = build_report("boom", self.record)

        value = report.to_event()["exception"]["values"][0]
        assert value["type"] == "RuntimeError"
        assert value["value"] == "boom"
        frames = value["stacktrace"]["frames"]
        assert frames[-1]["function"] == "_explode"
        assert isinstance(frames[-1]["pre_context"], list)
