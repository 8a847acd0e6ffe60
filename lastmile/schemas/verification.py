"""Delivery verification schemas.

The record is owned by the backend: created on a generate request, read when
the order view opens, and moved to its terminal state by a successful verify
call. The client never deletes it.
"""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


def _as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so they compare with aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class VerificationMethod(str, Enum):
    """How the delivery was confirmed."""

    OTP = "OTP"
    QR = "QR"


class VerificationRecord(BaseModel):
    """Per-order verification state.

    Attributes:
        has_otp: An OTP has been generated.
        has_qr_code: A QR code has been generated.
        expires_at: Shared expiry for both codes.
        verified_at: Set once, on the first successful verification.
        verification_method: Set together with verified_at.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    has_otp: bool = Field(default=False, alias="hasOtp")
    has_qr_code: bool = Field(default=False, alias="hasQrCode")
    expires_at: datetime | None = Field(default=None, alias="expiresAt")
    verified_at: datetime | None = Field(default=None, alias="verifiedAt")
    verification_method: VerificationMethod | None = Field(
        default=None, alias="verificationMethod"
    )

    @model_validator(mode="after")
    def check_terminal_state(self) -> "VerificationRecord":
        """A verified record must name the method used."""
        if self.verified_at is not None and self.verification_method is None:
            msg = "verificationMethod is required when verifiedAt is set"
            raise ValueError(msg)
        return self

    @property
    def has_codes(self) -> bool:
        """True when at least one code kind exists."""
        return self.has_otp or self.has_qr_code

    @property
    def is_verified(self) -> bool:
        """True once delivery has been confirmed."""
        return self.verified_at is not None

    def is_expired(self, now: datetime | None = None) -> bool:
        """Compare expires_at to wall-clock now.

        Evaluated lazily on every read; nothing invalidates the record in the
        background. A record without an expiry never expires locally.

        Args:
            now: Override for the current time. Naive values are taken as UTC.

        Returns:
            True when now is past expires_at.
        """
        if self.expires_at is None:
            return False
        return _as_utc(now or datetime.now(UTC)) > _as_utc(self.expires_at)


class GeneratedCodes(BaseModel):
    """Response of the generate endpoint.

    The OTP is delivered to the customer out of band; only the QR payload
    comes back to the agent.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    qr_code: str = Field(alias="qrCode")
    expires_at: datetime = Field(alias="expiresAt")
