"""
Pytest configuration and fixtures.
"""
import asyncio
import json
from typing import Any, AsyncGenerator, Callable, Dict, List, Optional, Tuple, Union

import httpx
import pytest
import pytest_asyncio

from khata_pay.config import Settings
from khata_pay.core.controller import ReconciliationController
from khata_pay.core.models import LedgerSummary
from khata_pay.integrations.gateway import CheckoutHandlers, CheckoutWidget
from khata_pay.integrations.ledger_backend import LedgerBackendClient

TEST_TOKEN = "token-customer-1"

GET_KEY = "/customers/payments/get-key"
ME = "/customers/me"
SUMMARY = "/customers/me/summary"
CREATE_ORDER = "/customers/payments/create-order"
VERIFY = "/customers/payments/verify"

Route = Union[httpx.Response, Exception, Callable[[httpx.Request], Any]]


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "unit: fast tests with no external services")
    config.addinivalue_line("markers", "integration: end-to-end flow against stubbed services")


class BackendStub:
    """Routes requests sent through httpx.MockTransport and records them."""

    prefix = "/api"

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], Route] = {}
        self.requests: List[httpx.Request] = []

    def on(
        self,
        method: str,
        path: str,
        json_body: Optional[Dict[str, Any]] = None,
        status_code: int = 200,
        route: Optional[Route] = None,
    ) -> None:
        """Register a canned response, an exception, or a handler for a route."""
        if route is None:
            route = lambda request: httpx.Response(status_code, json=json_body)  # noqa: E731
        self.routes[(method, self.prefix + path)] = route

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"message": "Not found"})
        if isinstance(route, Exception):
            raise route
        if isinstance(route, httpx.Response):
            return route
        response = route(request)
        if asyncio.iscoroutine(response):
            response = await response
        return response

    def calls(self, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == self.prefix + path]

    @staticmethod
    def body(request: httpx.Request) -> Dict[str, Any]:
        return json.loads(request.content)


class FakeWidget(CheckoutWidget):
    """Checkout widget double. Optionally ends the session during launch."""

    def __init__(self, on_launch: Optional[Callable[[CheckoutHandlers], None]] = None):
        self.on_launch = on_launch
        self.launches: List[Dict[str, Any]] = []
        self.handlers: Optional[CheckoutHandlers] = None
        self.launched = asyncio.Event()

    def launch(self, options: Dict[str, Any], handlers: CheckoutHandlers) -> None:
        self.launches.append(options)
        self.handlers = handlers
        self.launched.set()
        if self.on_launch is not None:
            self.on_launch(handlers)


class RecordingView:
    """PaymentView that records every call."""

    def __init__(self) -> None:
        self.statuses: List[str] = []
        self.processing: List[bool] = []
        self.receipts: List[str] = []
        self.navigations: List[Optional[LedgerSummary]] = []

    def show_status(self, message: str) -> None:
        self.statuses.append(message)

    def set_processing(self, processing: bool) -> None:
        self.processing.append(processing)

    def open_receipt(self, receipt_url: str) -> None:
        self.receipts.append(receipt_url)

    def navigate_to_ledger(self, summary: Optional[LedgerSummary]) -> None:
        self.navigations.append(summary)


def succeed_with(payload: Dict[str, Any]) -> Callable[[CheckoutHandlers], None]:
    return lambda handlers: handlers.on_success(payload)


def fail_with(description: str) -> Callable[[CheckoutHandlers], None]:
    return lambda handlers: handlers.on_failure({"error": {"description": description}})


def dismiss() -> Callable[[CheckoutHandlers], None]:
    return lambda handlers: handlers.on_dismiss()


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        backend_base_url="http://ledger.test/api",
        backend_timeout_seconds=5.0,
        backend_retry_attempts=3,
        backend_retry_wait_seconds=0,
        success_redirect_delay_seconds=0,
        app_env="test",
        log_level="DEBUG",
    )


@pytest.fixture
def backend_stub() -> BackendStub:
    """Backend stub preloaded with the context endpoints."""
    stub = BackendStub()
    stub.on("GET", GET_KEY, {"key": "rzp_test_key"})
    stub.on("GET", ME, {"customer": {"_id": "cust_1", "name": "Asha Traders"}})
    stub.on(
        "GET",
        SUMMARY,
        {"summary": {"debitAmount": 1500, "creditAmount": 500, "balance": 1000}},
    )
    return stub


@pytest_asyncio.fixture
async def backend(
    test_settings: Settings, backend_stub: BackendStub
) -> AsyncGenerator[LedgerBackendClient, Any]:
    """Ledger backend client wired to the stub."""
    http_client = httpx.AsyncClient(
        base_url=test_settings.backend_base_url,
        transport=httpx.MockTransport(backend_stub.handle),
    )
    client = LedgerBackendClient(settings=test_settings, http_client=http_client)
    yield client
    await client.aclose()


@pytest.fixture
def view() -> RecordingView:
    return RecordingView()


@pytest.fixture
def make_controller(
    backend: LedgerBackendClient, test_settings: Settings, view: RecordingView
) -> Callable[[FakeWidget], ReconciliationController]:
    """Build a controller around a given widget."""

    def _make(widget: FakeWidget) -> ReconciliationController:
        return ReconciliationController(
            backend=backend, widget=widget, view=view, settings=test_settings
        )

    return _make
