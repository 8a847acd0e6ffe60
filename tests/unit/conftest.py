"""Shared fixtures and fakes for unit tests.

Fakes stand in for the three external collaborators:
- FakeSocketClient: socket.io client driven by the test
- FakeScheduler: call_later replacement that records timers
- FakeAgentBackend: AgentBackend with scripted responses and call counts
"""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from lastmile.core.config import Settings
from lastmile.core.errors import LastMileError, NotFoundError
from lastmile.core.session import SessionContext
from lastmile.schemas.order import OrderSummary
from lastmile.schemas.verification import GeneratedCodes, VerificationRecord

TEST_TOKEN = "test-token-abc"  # nosec B105

# Fixed wall clock for verification tests
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def make_order(order_id: str = "o9", status: str = "ASSIGNED", **extra: Any) -> OrderSummary:
    """Build an order summary the way the scan endpoints return it."""
    return OrderSummary.model_validate({"id": order_id, "status": status, **extra})


# =============================================================================
# Realtime fakes
# =============================================================================


class FakeSocketClient:
    """socket.io client whose transport events are triggered by the test.

    Attributes:
        connect_calls: kwargs of each connect() call.
        emitted: (event, data) pairs sent.
        shutdown_calls: Number of shutdown() calls.
        reconnecting: A transport-level reconnect is running; it survives
            everything except shutdown().
        auto_connect: Fire the "connect" event from connect().
        connect_error: Exception raised from connect(), if set.
    """

    def __init__(self, *, auto_connect: bool = True, connect_error: Exception | None = None):
        self.connected = False
        self.handlers: dict[str, Callable[..., Any]] = {}
        self.connect_calls: list[dict[str, Any]] = []
        self.emitted: list[tuple[str, Any]] = []
        self.shutdown_calls = 0
        self.reconnecting = False
        self.auto_connect = auto_connect
        self.connect_error = connect_error

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        self.handlers[event] = handler

    async def connect(self, url: str, **kwargs: Any) -> None:
        self.connect_calls.append({"url": url, **kwargs})
        if self.connect_error is not None:
            raise self.connect_error
        if self.auto_connect:
            await self.accept()

    async def disconnect(self) -> None:
        # Like socketio.AsyncClient: a running reconnect is left alone.
        self.connected = False

    async def shutdown(self) -> None:
        self.shutdown_calls += 1
        self.reconnecting = False
        self.connected = False

    async def emit(self, event: str, data: Any = None) -> None:
        self.emitted.append((event, data))

    async def accept(self) -> None:
        """Complete the handshake."""
        self.connected = True
        await self.trigger("connect")

    async def drop(self, reason: str = "transport close", *, reconnecting: bool = False) -> None:
        """Simulate an unexpected disconnect, optionally followed by a transport reconnect."""
        self.connected = False
        self.reconnecting = reconnecting
        await self.trigger("disconnect", reason)

    async def finish_reconnect(self) -> None:
        """Complete the transport reconnect if nothing aborted it."""
        if self.reconnecting:
            self.reconnecting = False
            await self.accept()

    async def trigger(self, event: str, *args: Any) -> None:
        handler = self.handlers.get(event)
        if handler is not None:
            await handler(*args)


class FakeTimer:
    """Recorded call_later() timer."""

    def __init__(self, delay: float, callback: Callable[[], None]) -> None:
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if self.cancelled or self.fired:
            return
        self.fired = True
        self.callback()


class FakeScheduler:
    """call_later replacement; timers run only when the test fires them."""

    def __init__(self) -> None:
        self.timers: list[FakeTimer] = []

    def __call__(self, delay: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def delays_ms(self) -> list[int]:
        return [round(t.delay * 1000) for t in self.timers]

    @property
    def pending(self) -> list[FakeTimer]:
        return [t for t in self.timers if not (t.cancelled or t.fired)]


class SocketFactory:
    """client_factory that hands out FakeSocketClients and keeps them."""

    def __init__(self, **client_kwargs: Any) -> None:
        self.client_kwargs = client_kwargs
        self.clients: list[FakeSocketClient] = []

    def __call__(self) -> FakeSocketClient:
        client = FakeSocketClient(**self.client_kwargs)
        self.clients.append(client)
        return client

    @property
    def latest(self) -> FakeSocketClient:
        return self.clients[-1]


# =============================================================================
# Backend fake
# =============================================================================


class FakeAgentBackend:
    """AgentBackend with scripted responses.

    Set an attribute to an exception to make that call fail.

    Attributes:
        calls: (method, args) for every call made.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.orders: dict[str, OrderSummary] = {}
        self.scan_error: LastMileError | None = None
        self.generated = GeneratedCodes(qr_code="Q1", expires_at=NOW + timedelta(minutes=15))
        self.generate_error: LastMileError | None = None
        self.record: VerificationRecord | None = None
        self.get_error: LastMileError | None = None
        self.verify_error: LastMileError | None = None

    def call_count(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)

    async def scan_barcode(self, code: str) -> OrderSummary:
        self.calls.append(("scan_barcode", (code,)))
        return self._lookup(code)

    async def scan_qr(self, code: str) -> OrderSummary:
        self.calls.append(("scan_qr", (code,)))
        return self._lookup(code)

    async def generate_verification(self, order_id: str) -> GeneratedCodes:
        self.calls.append(("generate_verification", (order_id,)))
        if self.generate_error is not None:
            raise self.generate_error
        return self.generated

    async def get_verification(self, order_id: str) -> VerificationRecord | None:
        self.calls.append(("get_verification", (order_id,)))
        if self.get_error is not None:
            raise self.get_error
        return self.record

    async def verify_with_otp(self, order_id: str, otp: str) -> None:
        self.calls.append(("verify_with_otp", (order_id, otp)))
        if self.verify_error is not None:
            raise self.verify_error

    async def verify_with_qr(self, order_id: str, qr_code: str) -> None:
        self.calls.append(("verify_with_qr", (order_id, qr_code)))
        if self.verify_error is not None:
            raise self.verify_error

    def _lookup(self, code: str) -> OrderSummary:
        if self.scan_error is not None:
            raise self.scan_error
        order = self.orders.get(code)
        if order is None:
            raise NotFoundError()
        return order


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def config() -> Settings:
    """Settings with defaults, ignoring any local .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def session() -> SessionContext:
    """Session with a bearer token bound."""
    ctx = SessionContext()
    ctx.open(TEST_TOKEN, role="AGENT")
    return ctx


@pytest.fixture
def agent_backend() -> FakeAgentBackend:
    """Scripted agent backend."""
    return FakeAgentBackend()
