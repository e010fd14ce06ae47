"""
Faultline: Test Configuration (conftest.py)
===========================================

What:  Shared pytest fixtures for the entire test suite.
How:   A recording transport stands in for Sentry; a small FastAPI app with
       well-known fault routes is wrapped in FaultCaptureMiddleware and driven
       through httpx's ASGITransport (no server, no network).

Fixture Hierarchy (all function-scoped):
    ├── transport:     RecordingTransport collecting every dispatched report
    ├── capture_cfg:   Fresh CaptureConfig using `transport`
    ├── fault_app_factory: builds the fault-route app for any CaptureConfig
    ├── fault_app:     `fault_app_factory` applied to `capture_cfg`
    └── client:        httpx AsyncClient bound to `fault_app`
"""

import os
import threading
from typing import List, Optional

import pytest
import pytest_asyncio
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from httpx import ASGITransport, AsyncClient

# Override settings for testing BEFORE any faultline imports
os.environ["SENTRY_DSN"] = ""
os.environ["LOG_LEVEL"] = "WARNING"

from faultline.capture import CaptureConfig, capture_config  # noqa: E402
from faultline.middleware.capture import FaultCaptureMiddleware  # noqa: E402
from faultline.report import FailureReport  # noqa: E402


class RecordingTransport:
    """In-memory ReportTransport: keeps every report instead of sending it."""

    client_options = None

    def __init__(self):
        self.reports: List[FailureReport] = []
        self.closed_with: Optional[float] = None
        self._lock = threading.Lock()

    def send(self, report: FailureReport) -> Optional[str]:
        with self._lock:
            self.reports.append(report)
        return f"event-{len(self.reports)}"

    def close(self, timeout: Optional[float] = None) -> None:
        self.closed_with = timeout

    @property
    def last(self) -> FailureReport:
        assert self.reports, "no report was dispatched"
        return self.reports[-1]


def build_fault_app(config: CaptureConfig) -> FastAPI:
    """
    FastAPI app exposing one route per behaviour under test.

    Routes:
        GET  /ok              → 200
        GET  /not-found       → HTTPException(404), an ordinary error
        GET  /bad-request     → 400 response returned by the handler
        GET  /boom            → RuntimeError("boom")
        POST /echo-boom       → reads the body, then RuntimeError("boom")
        POST /silent-boom     → RuntimeError("boom") without touching the body
        GET  /index           → IndexError from a sync (threadpool) handler
        GET  /bare            → bare KeyError (empty message)
    """
    app = FastAPI()
    app.add_middleware(FaultCaptureMiddleware, config=config)

    @app.get("/ok")
    async def ok_route():
        return {"ok": True}

    @app.get("/not-found")
    async def not_found_route():
        raise HTTPException(status_code=404, detail="missing")

    @app.get("/bad-request")
    async def bad_request_route():
        return JSONResponse({"error": "bad"}, status_code=400)

    @app.get("/boom")
    async def boom_route():
        raise RuntimeError("boom")

    @app.post("/echo-boom")
    async def echo_boom_route(request: Request):
        await request.body()
        raise RuntimeError("boom")

    @app.post("/silent-boom")
    async def silent_boom_route():
        raise RuntimeError("boom")

    @app.get("/index")
    def index_route():
        items: List[int] = []
        return items[1]

    @app.get("/bare")
    async def bare_route():
        raise KeyError

    return app


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def capture_cfg(transport) -> CaptureConfig:
    """Isolated configuration: context capture on, no extractor."""
    return CaptureConfig(transport=transport)


@pytest.fixture
def fault_app_factory():
    """Build the fault-route app around a caller-supplied CaptureConfig."""
    return build_fault_app


@pytest.fixture
def fault_app(fault_app_factory, capture_cfg) -> FastAPI:
    return fault_app_factory(capture_cfg)


@pytest_asyncio.fixture
async def client(fault_app):
    """HTTPX AsyncClient routed straight into `fault_app`."""
    transport = ASGITransport(app=fault_app)
    async with AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client


@pytest.fixture
def global_capture_config(transport):
    """
    Point the process-wide capture_config at the recording transport and
    restore a clean state afterwards.
    """
    capture_config.set_transport(transport)
    capture_config.set_capture_context(True)
    capture_config.set_tag_extractor(None)
    yield capture_config
    capture_config.set_transport(None)
    capture_config.set_capture_context(True)
    capture_config.set_tag_extractor(None)
