"""Realtime connection manager.

Owns the single socket.io connection for an authenticated session:
- connect() binds the current session token and opens a new connection
- disconnect() cancels any pending reconnect and closes the connection
- emit() sends only while connected and reports success as a bool
- subscribe() attaches validated handlers that survive reconnects

Reconnection: after an unexpected disconnect, retries are scheduled at
min(base * 2**attempts, cap) ms while attempts < max_attempts and the
session still has a token. A successful connect resets the counter. The
socket.io client's own transport-level reconnection runs underneath this
bookkeeping with the same delay bounds; replaced or closed clients are shut
down so none of them keeps reconnecting on its own.

Errors are reported through callbacks and logs, never raised to callers.
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

import socketio
import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from socketio import exceptions as socketio_exceptions

from lastmile.core.config import Settings, settings
from lastmile.core.session import SessionContext
from lastmile.schemas.realtime import (
    SERVER_EVENTS,
    ServerErrorEvent,
    parse_server_event,
    serialize_client_event,
)

__all__ = [
    "ConnectionManager",
    "ConnectionStatus",
    "RealtimeError",
    "ReconnectPolicy",
    "SocketClient",
]

logger = structlog.get_logger()

# Reason socket.io reports when the disconnect was requested locally.
CLIENT_DISCONNECT_REASON = "client disconnect"

EventHandler = Callable[[BaseModel], Awaitable[None] | None]
CallLater = Callable[[float, Callable[[], None]], asyncio.TimerHandle]


class ConnectionStatus(str, Enum):
    """Connection lifecycle states."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class RealtimeError(Exception):
    """Connection or server error delivered to the on_error callback."""


@dataclass(frozen=True)
class ReconnectPolicy:
    """Manager-level reconnect bounds.

    Attributes:
        max_attempts: Retries scheduled before giving up.
        base_delay_ms: Delay for the first retry.
        max_delay_ms: Cap applied to every retry delay.
    """

    max_attempts: int = 5
    base_delay_ms: int = 1000
    max_delay_ms: int = 5000

    @classmethod
    def from_settings(cls, config: Settings) -> "ReconnectPolicy":
        """Build the policy from client settings."""
        return cls(
            max_attempts=config.realtime_max_reconnect_attempts,
            base_delay_ms=config.realtime_reconnect_base_delay_ms,
            max_delay_ms=config.realtime_reconnect_max_delay_ms,
        )

    def delay_ms(self, attempts: int) -> int:
        """Delay before the retry that follows `attempts` earlier retries."""
        return min(self.base_delay_ms * (2**attempts), self.max_delay_ms)


class SocketClient(Protocol):
    """Subset of socketio.AsyncClient used by the manager."""

    connected: bool

    def on(self, event: str, handler: Callable[..., Any]) -> Any: ...

    async def connect(
        self,
        url: str,
        *,
        auth: dict[str, str],
        transports: list[str],
        socketio_path: str,
        retry: bool,
    ) -> None: ...

    async def shutdown(self) -> None: ...

    async def emit(self, event: str, data: Any = None) -> None: ...


def create_socket_client(config: Settings) -> socketio.AsyncClient:
    """Build a socket.io client with transport-level reconnection enabled."""
    return socketio.AsyncClient(
        reconnection=True,
        reconnection_attempts=config.realtime_max_reconnect_attempts,
        reconnection_delay=config.realtime_reconnect_base_delay_ms / 1000,
        reconnection_delay_max=config.realtime_reconnect_max_delay_ms / 1000,
        logger=False,
    )


class _Subscription:
    """One subscribe() registration; compared by identity."""

    __slots__ = ("handler",)

    def __init__(self, handler: EventHandler) -> None:
        self.handler = handler


class ConnectionManager:
    """Single shared realtime connection for one session.

    Subscribers attach and detach handlers without owning the connection
    lifecycle. One instance per authenticated session.

    Args:
        session: Session context supplying the auth token.
        config: Client settings.
        client_factory: Builds a fresh socket client per connect.
        call_later: Timer scheduler (defaults to the running loop's).
        on_connect: Called after each successful connect.
        on_disconnect: Called after each disconnect reported by the transport.
        on_error: Called with a RealtimeError on connect or server errors.
        enabled: When False, connect() is a no-op.
    """

    def __init__(
        self,
        session: SessionContext,
        config: Settings | None = None,
        *,
        client_factory: Callable[[], SocketClient] | None = None,
        call_later: CallLater | None = None,
        on_connect: Callable[[], None] | None = None,
        on_disconnect: Callable[[], None] | None = None,
        on_error: Callable[[RealtimeError], None] | None = None,
        enabled: bool = True,
    ) -> None:
        self._session = session
        self._config = config or settings
        self._policy = ReconnectPolicy.from_settings(self._config)
        self._client_factory = client_factory or (
            lambda: create_socket_client(self._config)
        )
        self._call_later = call_later
        self._on_connect = on_connect
        self._on_disconnect = on_disconnect
        self._on_error = on_error
        self._enabled = enabled

        self._status = ConnectionStatus.DISCONNECTED
        self._client: SocketClient | None = None
        self._bound_token: str | None = None
        self._connect_task: asyncio.Task[None] | None = None
        self._reconnect_timer: asyncio.TimerHandle | None = None
        self._subscriptions: dict[str, list[_Subscription]] = {}
        self._background: set[asyncio.Task[Any]] = set()
        self._unbind_session: Callable[[], None] | None = None
        self.reconnect_attempts = 0

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def status(self) -> ConnectionStatus:
        """Current connection status."""
        return self._status

    @property
    def connected(self) -> bool:
        """True while the connection is up."""
        return self._status is ConnectionStatus.CONNECTED

    @property
    def policy(self) -> ReconnectPolicy:
        """Reconnect bounds in effect."""
        return self._policy

    @property
    def reconnect_pending(self) -> bool:
        """True while a reconnect timer is scheduled."""
        return self._reconnect_timer is not None

    # -------------------------------------------------------------------------
    # Session binding
    # -------------------------------------------------------------------------

    def bind(self) -> None:
        """Follow the session: connect now, reconnect on token change.

        A new token forces a full reconnect; a cleared token (logout or
        expiry) tears the connection down.
        """
        if self._unbind_session is None:
            self._unbind_session = self._session.add_listener(self._on_token_change)
        self.connect()

    def set_enabled(self, enabled: bool) -> None:
        """Enable or disable the connection."""
        self._enabled = enabled
        if enabled:
            self.connect()
        else:
            self._spawn(self.disconnect())

    async def aclose(self) -> None:
        """Tear down: stop following the session and disconnect."""
        if self._unbind_session is not None:
            self._unbind_session()
            self._unbind_session = None
        await self.disconnect()
        for task in list(self._background):
            task.cancel()
        self._background.clear()

    def _on_token_change(self, token: str | None) -> None:
        if not token:
            self._spawn(self.disconnect())
        elif token != self._bound_token:
            self._spawn(self._rebind())

    async def _rebind(self) -> None:
        await self.disconnect()
        task = self.connect()
        if task is not None:
            await task

    # -------------------------------------------------------------------------
    # Connect / disconnect
    # -------------------------------------------------------------------------

    def connect(self) -> asyncio.Task[None] | None:
        """Open a connection bound to the current session token.

        No-op when disabled, signed out, already connected, or already
        connecting. Any previous connection is disposed first.

        Returns:
            The task performing the handshake, or None for a no-op.
        """
        token = self._session.token
        if not self._enabled or not token:
            return None
        if self._client is not None and self._client.connected:
            return None
        if self._connect_task is not None and not self._connect_task.done():
            return self._connect_task

        self._cancel_reconnect_timer()
        previous = self._client
        client = self._client_factory()
        self._client = client
        self._bound_token = token
        self._register_handlers(client)
        self._set_status(ConnectionStatus.CONNECTING)

        task = asyncio.get_running_loop().create_task(
            self._open(client, previous, token)
        )
        self._connect_task = task
        return task

    async def _open(
        self,
        client: SocketClient,
        previous: SocketClient | None,
        token: str,
    ) -> None:
        if previous is not None:
            await self._close_client(previous)

        logger.info("realtime_connecting", url=self._config.realtime_url)
        try:
            await client.connect(
                self._config.realtime_url,
                auth={"token": token},
                transports=list(self._config.realtime_transports),
                socketio_path=self._config.realtime_path.strip("/"),
                retry=True,
            )
        except socketio_exceptions.ConnectionError as e:
            if client is self._client:
                self._report_connect_error(str(e))

    async def disconnect(self) -> None:
        """Cancel pending reconnects and close the connection.

        Idempotent: calling it while disconnected changes nothing.
        """
        self._cancel_reconnect_timer()
        client = self._client
        self._client = None
        self._bound_token = None
        self.reconnect_attempts = 0

        task = self._connect_task
        self._connect_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

        if client is not None:
            await self._close_client(client)
            logger.info("realtime_disconnected_locally")
        self._set_status(ConnectionStatus.DISCONNECTED)

    async def _close_client(self, client: SocketClient) -> None:
        # disconnect() does not stop a transport reconnect already in flight.
        try:
            await client.shutdown()
        except socketio_exceptions.SocketIOError as e:
            logger.warning("realtime_close_failed", error=str(e))

    # -------------------------------------------------------------------------
    # Transport callbacks
    # -------------------------------------------------------------------------

    def _register_handlers(self, client: SocketClient) -> None:
        async def on_connect(*_args: Any) -> None:
            self._handle_connect(client)

        async def on_disconnect(*args: Any) -> None:
            self._handle_disconnect(client, args[0] if args else None)

        async def on_connect_error(*args: Any) -> None:
            if client is self._client:
                self._report_connect_error(str(args[0]) if args else "")

        client.on("connect", on_connect)
        client.on("disconnect", on_disconnect)
        client.on("connect_error", on_connect_error)
        for event in SERVER_EVENTS:
            client.on(event, self._make_dispatcher(client, event))

    def _handle_connect(self, client: SocketClient) -> None:
        if client is not self._client:
            return
        self.reconnect_attempts = 0
        self._set_status(ConnectionStatus.CONNECTED)
        logger.info("realtime_connected")
        if self._on_connect is not None:
            self._on_connect()

    def _handle_disconnect(self, client: SocketClient, reason: str | None) -> None:
        # Stale clients were replaced or closed locally.
        if client is not self._client:
            return
        logger.info("realtime_disconnected", reason=reason)
        self._set_status(ConnectionStatus.DISCONNECTED)
        if self._on_disconnect is not None:
            self._on_disconnect()
        if reason == CLIENT_DISCONNECT_REASON:
            return
        self._schedule_reconnect()

    def _report_connect_error(self, message: str) -> None:
        logger.error("realtime_connect_error", error=message)
        self._set_status(ConnectionStatus.ERROR)
        if self._on_error is not None:
            self._on_error(RealtimeError(message or "Connection error"))

    # -------------------------------------------------------------------------
    # Reconnection
    # -------------------------------------------------------------------------

    def _schedule_reconnect(self) -> None:
        if not self._enabled or not self._session.token:
            logger.info("realtime_reconnect_skipped", reason="no_session")
            return
        if self.reconnect_attempts >= self._policy.max_attempts:
            logger.warning(
                "realtime_reconnect_exhausted", attempts=self.reconnect_attempts
            )
            return

        delay_ms = self._policy.delay_ms(self.reconnect_attempts)
        self.reconnect_attempts += 1
        self._cancel_reconnect_timer()
        call_later = self._call_later or asyncio.get_running_loop().call_later
        self._reconnect_timer = call_later(delay_ms / 1000, self._fire_reconnect)
        logger.info(
            "realtime_reconnect_scheduled",
            attempt=self.reconnect_attempts,
            delay_ms=delay_ms,
        )

    def _fire_reconnect(self) -> None:
        self._reconnect_timer = None
        self.connect()

    def _cancel_reconnect_timer(self) -> None:
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None

    # -------------------------------------------------------------------------
    # Pub/sub
    # -------------------------------------------------------------------------

    def emit(self, event: str, payload: Any = None) -> bool:
        """Send a client event if connected.

        Fire-and-forget: nothing is queued while disconnected.

        Args:
            event: Client event name (e.g., "order:accept").
            payload: Payload model or dict; None for payload-less events.

        Returns:
            True if the event was handed to the transport.
        """
        client = self._client
        if client is None or not self.connected:
            logger.warning("realtime_emit_skipped", event=event, reason="not_connected")
            return False
        try:
            data = serialize_client_event(event, payload)
        except (ValueError, PydanticValidationError) as e:
            logger.warning("realtime_emit_invalid", event=event, error=str(e))
            return False

        self._spawn(client.emit(event, data))
        return True

    def subscribe(self, event: str, handler: EventHandler) -> Callable[[], None]:
        """Register a handler for a server event.

        Payloads are validated before the handler runs; invalid payloads are
        logged and dropped. The handler may be sync or async.

        Args:
            event: Server event name (e.g., "order:offer").
            handler: Called with the validated payload model.

        Returns:
            Function that removes exactly this registration.

        Raises:
            ValueError: If event is not a known server event.
        """
        if event not in SERVER_EVENTS:
            known = ", ".join(sorted(SERVER_EVENTS))
            raise ValueError(f"Unknown server event: '{event}'. Known events: {known}")

        subscription = _Subscription(handler)
        self._subscriptions.setdefault(event, []).append(subscription)

        def unsubscribe() -> None:
            handlers = self._subscriptions.get(event, [])
            if subscription in handlers:
                handlers.remove(subscription)

        return unsubscribe

    def subscriber_count(self, event: str) -> int:
        """Number of live subscriptions for an event."""
        return len(self._subscriptions.get(event, []))

    def _make_dispatcher(
        self, client: SocketClient, event: str
    ) -> Callable[..., Coroutine[Any, Any, None]]:
        async def dispatcher(*args: Any) -> None:
            await self._dispatch(client, event, args[0] if args else None)

        return dispatcher

    async def _dispatch(self, client: SocketClient, event: str, payload: Any) -> None:
        if client is not self._client:
            return
        try:
            message = parse_server_event(event, payload)
        except PydanticValidationError as e:
            logger.warning(
                "realtime_payload_invalid", event=event, errors=e.error_count()
            )
            return

        if isinstance(message, ServerErrorEvent):
            logger.error("realtime_server_error", message=message.message)
            if self._on_error is not None:
                self._on_error(RealtimeError(message.message))

        for subscription in list(self._subscriptions.get(event, [])):
            try:
                result = subscription.handler(message)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("realtime_handler_failed", event=event)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _set_status(self, status: ConnectionStatus) -> None:
        self._status = status

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._on_background_done)

    def _on_background_done(self, task: asyncio.Task[Any]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("realtime_background_task_failed", error=str(error))
