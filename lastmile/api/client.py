"""HTTP client for the delivery backend.

Wraps httpx.AsyncClient with bearer auth from the session context and maps
every failure onto the client error taxonomy:
- Transport failures (refused, DNS, timeout) → NetworkError
- 401 → UnauthorizedError, and the session is expired
- 403/404/409 → ForbiddenError / NotFoundError / ConflictError
- Other 4xx/5xx → DomainError

The backend's own message is used verbatim when the response carries one.
"""

from typing import Any

import httpx
import structlog

from lastmile.core.config import Settings, settings
from lastmile.core.errors import (
    ConflictError,
    DomainError,
    ForbiddenError,
    NetworkError,
    NotFoundError,
    UnauthorizedError,
)
from lastmile.core.session import SessionContext

logger = structlog.get_logger()

_STATUS_ERRORS: dict[int, type[DomainError]] = {
    403: ForbiddenError,
    404: NotFoundError,
    409: ConflictError,
}


def extract_error_message(response: httpx.Response, fallback: str) -> str:
    """Pull a human-readable message out of an error response.

    The backend's error envelope is ``{"error": <name>, "message": <text>}``;
    message wins over error, and the fallback covers non-JSON bodies.

    Args:
        response: The failed HTTP response.
        fallback: Message used when the body carries nothing usable.

    Returns:
        Message to show the operator.
    """
    try:
        body = response.json()
    except ValueError:
        return fallback
    if not isinstance(body, dict):
        return fallback
    for key in ("message", "error"):
        value = body.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return fallback


class BackendClient:
    """Authenticated JSON client for the REST backend.

    Args:
        session: Session context supplying the bearer token.
        config: Client settings (base URL, timeout).
        transport: Optional httpx transport (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        session: SessionContext,
        config: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._session = session
        self._config = config or settings
        self._base_url = self._config.base_url
        self._http = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"Content-Type": "application/json"},
            timeout=self._config.request_timeout_seconds,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        """Normalized REST base URL."""
        return self._base_url

    async def aclose(self) -> None:
        """Close the underlying connection pool."""
        await self._http.aclose()

    async def __aenter__(self) -> "BackendClient":
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.aclose()

    async def get(self, path: str, *, fallback: str = "Request failed") -> dict[str, Any]:
        """GET a JSON resource."""
        return await self.request("GET", path, fallback=fallback)

    async def post(
        self,
        path: str,
        json: dict[str, Any] | None = None,
        *,
        fallback: str = "Request failed",
    ) -> dict[str, Any]:
        """POST a JSON body and return the JSON response."""
        return await self.request("POST", path, json=json, fallback=fallback)

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        fallback: str = "Request failed",
    ) -> dict[str, Any]:
        """Send a request and decode the JSON response.

        Args:
            method: HTTP method.
            path: Path relative to the base URL (e.g., "/agent/scan/qr").
            json: Optional JSON body.
            fallback: Message used when an error response has no message.

        Returns:
            Decoded JSON object (empty dict for empty bodies).

        Raises:
            NetworkError: Backend unreachable or timed out.
            UnauthorizedError: 401; the session has been expired.
            DomainError: Any other error status.
        """
        headers: dict[str, str] = {}
        token = self._session.token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        else:
            logger.debug("api_request_without_token", path=path)

        full_url = f"{self._base_url}{path}"
        try:
            response = await self._http.request(
                method, path, json=json, headers=headers
            )
        except httpx.TimeoutException as e:
            logger.error("api_request_timeout", method=method, url=full_url)
            raise NetworkError(
                f"Request to {full_url} timed out after "
                f"{self._config.request_timeout_seconds:g} seconds. "
                "The backend server may be slow to respond. Try again in a few seconds.",
                url=full_url,
            ) from e
        except httpx.TransportError as e:
            logger.error(
                "api_request_unreachable", method=method, url=full_url, error=str(e)
            )
            raise NetworkError(
                f"Cannot connect to backend server at {self._base_url}. "
                "Please make sure the backend server is running.",
                url=full_url,
            ) from e

        if response.status_code == 401:
            logger.warning("api_request_unauthorized", method=method, path=path)
            self._session.expire()
            raise UnauthorizedError(
                extract_error_message(response, "Authentication required")
            )

        if response.is_error:
            message = extract_error_message(response, fallback)
            logger.info(
                "api_request_rejected",
                method=method,
                path=path,
                status=response.status_code,
            )
            error_class = _STATUS_ERRORS.get(response.status_code)
            if error_class is not None:
                raise error_class(message)
            raise DomainError(message, status_code=response.status_code)

        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as e:
            raise DomainError(fallback, status_code=response.status_code) from e
        if not isinstance(data, dict):
            raise DomainError(fallback, status_code=response.status_code)
        return data
