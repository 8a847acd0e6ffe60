"""Delivery verification state machine.

Per-order states:
- NO_CODES → CODES_GENERATED → VERIFIED (terminal)
- CODES_GENERATED becomes EXPIRED once wall-clock time passes expires_at

Expiry is evaluated lazily on every read and action; nothing invalidates a
record in the background. The local expiry check only saves a round trip;
the backend still rejects stale codes authoritatively.

Actions never raise. Each returns an ActionResult and records the outcome on
the order's VerificationView, the way a view shows its error/success banner.
"""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

import structlog

from lastmile.api.agent import AgentBackend
from lastmile.core.errors import (
    AlreadyVerifiedError,
    CodeExpiredError,
    LastMileError,
    ValidationError,
)
from lastmile.schemas.verification import VerificationMethod, VerificationRecord

logger = structlog.get_logger()

Clock = Callable[[], datetime]
VerifiedCallback = Callable[[str, VerificationMethod], None]

# =============================================================================
# Enums
# =============================================================================


class VerificationState(str, Enum):
    """Client-side view of a verification record."""

    NO_CODES = "no_codes"
    CODES_GENERATED = "codes_generated"
    EXPIRED = "expired"
    VERIFIED = "verified"


def derive_state(
    record: VerificationRecord | None, now: datetime | None = None
) -> VerificationState:
    """Map a record onto the state machine.

    Verified wins over expired: a confirmed delivery stays confirmed after
    its codes lapse.

    Args:
        record: Verification record, or None when none exists.
        now: Override for the current time.

    Returns:
        The state the record is in at `now`.
    """
    if record is None or not (record.has_codes or record.is_verified):
        return VerificationState.NO_CODES
    if record.is_verified:
        return VerificationState.VERIFIED
    if record.is_expired(now):
        return VerificationState.EXPIRED
    return VerificationState.CODES_GENERATED


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class ActionResult:
    """Outcome of one verification action.

    Attributes:
        ok: True when the action succeeded.
        message: Success or error text to show the operator.
        error: The underlying error when ok is False.
        network_called: Whether the backend was contacted.
    """

    ok: bool
    message: str | None = None
    error: LastMileError | None = None
    network_called: bool = True


@dataclass
class VerificationView:
    """Everything the order's verification panel renders.

    Attributes:
        order_id: Order being verified.
        record: Last known record (None until loaded or generated).
        qr_code: QR payload from the most recent generate call.
        error: Last error message, cleared when a new action starts.
        success: Last success message.
        busy: An action is in flight.
    """

    order_id: str
    record: VerificationRecord | None = None
    qr_code: str | None = None
    error: str | None = None
    success: str | None = None
    busy: bool = False


# =============================================================================
# Service
# =============================================================================

_METHOD_LABELS = {
    VerificationMethod.OTP: "OTP",
    VerificationMethod.QR: "QR code",
}


class DeliveryVerificationService:
    """Tracks verification state for the orders an agent opens.

    Args:
        api: Agent backend operations.
        on_verified: Called once per order when delivery is confirmed.
        clock: Source of "now"; naive values are read as UTC. Defaults to
            the UTC wall clock.
    """

    def __init__(
        self,
        api: AgentBackend,
        *,
        on_verified: VerifiedCallback | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._api = api
        self._on_verified = on_verified
        self._clock = clock or (lambda: datetime.now(UTC))
        self._views: dict[str, VerificationView] = {}
        self._notified: set[str] = set()

    def view(self, order_id: str) -> VerificationView:
        """Return (creating if needed) the view for an order."""
        view = self._views.get(order_id)
        if view is None:
            view = VerificationView(order_id=order_id)
            self._views[order_id] = view
        return view

    def state(self, order_id: str) -> VerificationState:
        """Current state, with expiry evaluated against the clock."""
        return derive_state(self.view(order_id).record, self._clock())

    def can_verify(self, order_id: str) -> bool:
        """True when the verify actions should be enabled."""
        view = self.view(order_id)
        return not view.busy and self.state(order_id) is VerificationState.CODES_GENERATED

    def forget(self, order_id: str) -> None:
        """Drop the cached view when the order screen closes."""
        self._views.pop(order_id, None)

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    async def load(self, order_id: str) -> ActionResult:
        """Read the record from the backend (order view opened)."""
        view = self.view(order_id)
        view.busy = True
        try:
            view.record = await self._api.get_verification(order_id)
        except LastMileError as e:
            view.error = e.message
            logger.warning("verification_load_failed", order_id=order_id, code=e.code)
            return ActionResult(ok=False, message=e.message, error=e)
        finally:
            view.busy = False
        return ActionResult(ok=True)

    async def generate(self, order_id: str) -> ActionResult:
        """Request a fresh OTP + QR pair.

        On success the record moves to CODES_GENERATED with both kinds set
        and the returned expiry. A backend rejection (order not eligible)
        leaves the record as it was.
        """
        view = self.view(order_id)
        if view.record is not None and view.record.is_verified:
            return self._reject(view, AlreadyVerifiedError())

        view.error = None
        view.success = None
        view.busy = True
        try:
            codes = await self._api.generate_verification(order_id)
        except LastMileError as e:
            view.error = e.message
            logger.warning("verification_generate_failed", order_id=order_id, code=e.code)
            return ActionResult(ok=False, message=e.message, error=e)
        finally:
            view.busy = False

        view.qr_code = codes.qr_code
        view.record = VerificationRecord(
            has_otp=True,
            has_qr_code=True,
            expires_at=codes.expires_at,
        )
        view.success = "Verification codes generated successfully"
        logger.info(
            "verification_codes_generated",
            order_id=order_id,
            expires_at=codes.expires_at.isoformat(),
        )
        return ActionResult(ok=True, message=view.success)

    async def verify_with_otp(self, order_id: str, code: str) -> ActionResult:
        """Confirm delivery with the customer's one-time password."""
        return await self._verify(order_id, code, VerificationMethod.OTP)

    async def verify_with_qr(self, order_id: str, code: str) -> ActionResult:
        """Confirm delivery with the scanned QR payload."""
        return await self._verify(order_id, code, VerificationMethod.QR)

    async def _verify(
        self, order_id: str, code: str, method: VerificationMethod
    ) -> ActionResult:
        view = self.view(order_id)
        code = code.strip()
        label = _METHOD_LABELS[method]

        state = self.state(order_id)
        if state is VerificationState.VERIFIED:
            return self._reject(view, AlreadyVerifiedError())
        if state is VerificationState.EXPIRED:
            return self._reject(view, CodeExpiredError())
        if state is VerificationState.NO_CODES:
            return self._reject(
                view, ValidationError("Generate verification codes before verifying")
            )
        if not code:
            return self._reject(view, ValidationError(f"Please enter {label}"))

        view.error = None
        view.success = None
        view.busy = True
        try:
            if method is VerificationMethod.OTP:
                await self._api.verify_with_otp(order_id, code)
            else:
                await self._api.verify_with_qr(order_id, code)
        except LastMileError as e:
            view.busy = False
            view.error = e.message
            logger.info(
                "verification_rejected",
                order_id=order_id,
                method=method.value,
                code=e.code,
            )
            return ActionResult(ok=False, message=e.message, error=e)

        try:
            await self._reload_verified(view, method)
        finally:
            view.busy = False

        view.success = f"Delivery verified successfully with {label}!"
        logger.info("delivery_verified", order_id=order_id, method=method.value)
        self._notify_verified(view, method)
        return ActionResult(ok=True, message=view.success)

    async def _reload_verified(
        self, view: VerificationView, method: VerificationMethod
    ) -> None:
        """Refresh the record after a successful verify.

        Falls back to marking the cached record verified when the reload
        fails or comes back without the terminal fields.
        """
        try:
            record = await self._api.get_verification(view.order_id)
        except LastMileError as e:
            logger.warning(
                "verification_reload_failed", order_id=view.order_id, code=e.code
            )
            record = None

        if record is not None and record.is_verified:
            view.record = record
            return

        base = view.record or VerificationRecord()
        view.record = base.model_copy(
            update={"verified_at": self._clock(), "verification_method": method}
        )

    def _notify_verified(self, view: VerificationView, method: VerificationMethod) -> None:
        if view.order_id in self._notified:
            return
        self._notified.add(view.order_id)
        if self._on_verified is not None:
            self._on_verified(view.order_id, method)

    def _reject(self, view: VerificationView, error: LastMileError) -> ActionResult:
        view.error = error.message
        logger.info("verification_rejected_locally", order_id=view.order_id, code=error.code)
        return ActionResult(ok=False, message=error.message, error=error, network_called=False)
