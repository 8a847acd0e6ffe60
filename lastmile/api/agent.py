"""Agent endpoints used by scanning and delivery verification."""

from typing import Any, Protocol, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from lastmile.api.client import BackendClient
from lastmile.core.errors import DomainError
from lastmile.schemas.order import OrderSummary
from lastmile.schemas.verification import GeneratedCodes, VerificationRecord

M = TypeVar("M", bound=BaseModel)


class AgentBackend(Protocol):
    """Backend operations the scan and verification flows depend on.

    Implemented by AgentAPI over HTTP; tests substitute fakes.
    """

    async def scan_barcode(self, code: str) -> OrderSummary: ...

    async def scan_qr(self, code: str) -> OrderSummary: ...

    async def generate_verification(self, order_id: str) -> GeneratedCodes: ...

    async def get_verification(self, order_id: str) -> VerificationRecord | None: ...

    async def verify_with_otp(self, order_id: str, otp: str) -> None: ...

    async def verify_with_qr(self, order_id: str, qr_code: str) -> None: ...


class AgentAPI:
    """HTTP implementation of AgentBackend.

    Args:
        client: Authenticated backend client.
    """

    def __init__(self, client: BackendClient) -> None:
        self._client = client

    # -------------------------------------------------------------------------
    # Scanning
    # -------------------------------------------------------------------------

    async def scan_barcode(self, code: str) -> OrderSummary:
        """Resolve a 1-D barcode to its order."""
        data = await self._client.post(
            "/agent/scan/barcode",
            {"barcode": code},
            fallback="Failed to scan barcode",
        )
        return _order_from(data, "Failed to scan barcode")

    async def scan_qr(self, code: str) -> OrderSummary:
        """Resolve a QR payload to its order."""
        data = await self._client.post(
            "/agent/scan/qr",
            {"qrCode": code},
            fallback="Failed to scan QR code",
        )
        return _order_from(data, "Failed to scan QR code")

    # -------------------------------------------------------------------------
    # Delivery verification
    # -------------------------------------------------------------------------

    async def generate_verification(self, order_id: str) -> GeneratedCodes:
        """Ask the backend for a fresh OTP + QR pair."""
        data = await self._client.post(
            f"/agent/orders/{order_id}/generate-verification",
            fallback="Failed to generate verification codes",
        )
        return _parse(GeneratedCodes, data, "Failed to generate verification codes")

    async def get_verification(self, order_id: str) -> VerificationRecord | None:
        """Load the verification record, or None when none was generated."""
        data = await self._client.get(
            f"/agent/orders/{order_id}/verification",
            fallback="Failed to load verification",
        )
        record = data.get("verification")
        if record is None:
            return None
        return _parse(VerificationRecord, record, "Failed to load verification")

    async def verify_with_otp(self, order_id: str, otp: str) -> None:
        """Confirm delivery with the customer's OTP."""
        await self._client.post(
            f"/agent/orders/{order_id}/verify-otp",
            {"otp": otp},
            fallback="Failed to verify OTP",
        )

    async def verify_with_qr(self, order_id: str, qr_code: str) -> None:
        """Confirm delivery with the QR payload."""
        await self._client.post(
            f"/agent/orders/{order_id}/verify-qr",
            {"qrCode": qr_code},
            fallback="Failed to verify QR code",
        )


def _order_from(data: dict[str, Any], fallback: str) -> OrderSummary:
    order = data.get("order")
    if not isinstance(order, dict):
        raise DomainError(fallback)
    return _parse(OrderSummary, order, fallback)


def _parse(model: type[M], data: Any, fallback: str) -> M:
    """Validate a backend payload; a malformed body is a failed request."""
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise DomainError(fallback) from e
