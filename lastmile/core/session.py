"""Explicit session context shared by the REST client and realtime channel.

Lifecycle:
- open(token, role): first authenticated render, or a token refresh
- expire(): the backend answered 401; the token is dropped
- close(): logout or tab close

Listeners are called with the new token (None when the session ends). The
realtime manager uses them to reconnect on a token change and to tear the
connection down on logout.
"""

import uuid
from collections.abc import Callable

import structlog

logger = structlog.get_logger()

TokenListener = Callable[[str | None], None]


class SessionContext:
    """Per-process authenticated session.

    Attributes:
        tab_id: Stable identifier for this process, generated at creation.
    """

    def __init__(self) -> None:
        self.tab_id = uuid.uuid4().hex
        self._token: str | None = None
        self._role: str | None = None
        self._listeners: list[TokenListener] = []

    @property
    def token(self) -> str | None:
        """Current bearer token, or None when signed out."""
        return self._token

    @property
    def role(self) -> str | None:
        """Role of the signed-in user (ADMIN, AGENT, PARTNER)."""
        return self._role

    @property
    def is_authenticated(self) -> bool:
        """True when a token is present."""
        return bool(self._token)

    def open(self, token: str, role: str | None = None) -> None:
        """Bind a token to the session.

        Args:
            token: Bearer token issued at sign-in.
            role: Optional user role.

        Raises:
            ValueError: If token is empty.
        """
        if not token:
            raise ValueError("Session token cannot be empty")
        changed = token != self._token
        self._token = token
        self._role = role
        if changed:
            logger.info("session_opened", tab_id=self.tab_id, role=role)
            self._notify()

    def expire(self) -> None:
        """Drop the token after the backend rejected it."""
        if self._token is None:
            return
        logger.warning("session_expired", tab_id=self.tab_id)
        self._token = None
        self._notify()

    def close(self) -> None:
        """End the session (logout). Safe to call repeatedly."""
        if self._token is None and self._role is None:
            return
        logger.info("session_closed", tab_id=self.tab_id)
        self._token = None
        self._role = None
        self._notify()

    def add_listener(self, listener: TokenListener) -> Callable[[], None]:
        """Register a token-change listener.

        Returns:
            Function that removes exactly this registration.
        """
        entry = _ListenerEntry(listener)
        self._listeners.append(entry)

        def remove() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return remove

    def _notify(self) -> None:
        for entry in list(self._listeners):
            entry.listener(self._token)


class _ListenerEntry:
    """Identity wrapper so the same callable can be registered twice."""

    __slots__ = ("listener",)

    def __init__(self, listener: TokenListener) -> None:
        self.listener = listener
