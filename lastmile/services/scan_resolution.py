"""Scan-to-order resolution.

Exchanges a decoded or typed code for the order it belongs to. Barcodes and
QR payloads go to different backend endpoints; both resolve to an order
summary.

One resolution may be pending per resolver. A second resolve() while one is
in flight is rejected through the error continuation without a network call.
"""

import inspect
from collections.abc import Awaitable, Callable

import structlog

from lastmile.api.agent import AgentBackend
from lastmile.capture.base import CodeFamily
from lastmile.core.errors import LastMileError, ScanInProgressError, ValidationError
from lastmile.schemas.order import OrderSummary

logger = structlog.get_logger()

SuccessCallback = Callable[[OrderSummary], Awaitable[None] | None]
ErrorCallback = Callable[[str], Awaitable[None] | None]

_EMPTY_MESSAGES = {
    CodeFamily.BARCODE: "Please enter a barcode",
    CodeFamily.QR: "Please enter a QR code",
}


class ScanResolver:
    """Resolves scanned codes to orders for one scan session.

    Attributes:
        resolved_order: Result of the most recent successful resolution.
        last_error: Message of the most recent failure.
    """

    def __init__(self, api: AgentBackend) -> None:
        self._api = api
        self._pending = False
        self.resolved_order: OrderSummary | None = None
        self.last_error: str | None = None

    @property
    def pending(self) -> bool:
        """True while a backend lookup is in flight."""
        return self._pending

    async def resolve(
        self,
        code: str,
        kind: CodeFamily,
        *,
        on_success: SuccessCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> OrderSummary | None:
        """Look up the order for a code.

        Exactly one of the continuations is invoked, once. Failures never
        propagate past this method.

        Args:
            code: Raw code text; surrounding whitespace is ignored.
            kind: Which scan endpoint to use.
            on_success: Receives the resolved order.
            on_error: Receives a human-readable message.

        Returns:
            The resolved order, or None on failure.
        """
        code = code.strip()
        if not code:
            return await self._fail(ValidationError(_EMPTY_MESSAGES[kind]), on_error)
        if self._pending:
            return await self._fail(ScanInProgressError(), on_error, clear=False)

        self._pending = True
        try:
            if kind is CodeFamily.BARCODE:
                order = await self._api.scan_barcode(code)
            else:
                order = await self._api.scan_qr(code)
        except LastMileError as e:
            self._pending = False
            logger.info("scan_resolution_failed", kind=kind.value, code=e.code)
            return await self._fail(e, on_error)
        self._pending = False

        self.resolved_order = order
        self.last_error = None
        logger.info("scan_resolved", kind=kind.value, order_id=order.id, status=order.status)
        await _call(on_success, order)
        return order

    def reset(self) -> None:
        """Forget the last result and error."""
        self.resolved_order = None
        self.last_error = None

    async def _fail(
        self,
        error: LastMileError,
        on_error: ErrorCallback | None,
        clear: bool = True,
    ) -> None:
        if clear:
            self.resolved_order = None
        self.last_error = error.message
        await _call(on_error, error.message)
        return None


async def _call(callback: Callable[..., Awaitable[None] | None] | None, arg: object) -> None:
    if callback is None:
        return
    try:
        result = callback(arg)
        if inspect.isawaitable(result):
            await result
    except Exception:
        logger.exception("scan_continuation_failed", callback=getattr(callback, "__name__", None))
