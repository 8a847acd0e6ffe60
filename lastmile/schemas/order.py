"""Order summary returned by the scan endpoints."""

from pydantic import BaseModel, ConfigDict, Field


class GeoPoint(BaseModel):
    """Latitude/longitude pair."""

    latitude: float | None = None
    longitude: float | None = None


class PartnerSummary(BaseModel):
    """Partner details shown next to a scanned order."""

    model_config = ConfigDict(populate_by_name=True)

    name: str | None = None
    company_name: str | None = Field(default=None, alias="companyName")
    phone: str | None = None

    @property
    def display_name(self) -> str | None:
        """Company name when set, else the contact name."""
        return self.company_name or self.name


class OrderSummary(BaseModel):
    """Order record resolved from a scanned or typed code.

    Attributes:
        id: Order identifier used for navigation and verification calls.
        tracking_number: Short tracking code printed on the label.
        status: Backend order status (e.g., ASSIGNED, PICKED_UP).
        pickup: Pickup coordinates.
        dropoff: Drop-off coordinates.
        partner: Partner who created the order.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    tracking_number: str | None = Field(default=None, alias="trackingNumber")
    status: str
    pickup: GeoPoint | None = None
    dropoff: GeoPoint | None = None
    partner: PartnerSummary | None = None
