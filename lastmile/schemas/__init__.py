"""Pydantic schemas for backend responses and realtime messages."""

from lastmile.schemas.order import GeoPoint, OrderSummary, PartnerSummary
from lastmile.schemas.realtime import (
    CLIENT_EVENTS,
    SERVER_EVENTS,
    AssignedOrder,
    OfferedOrder,
    OrderAssignedEvent,
    OrderDecision,
    OrderOfferEvent,
    ServerErrorEvent,
)
from lastmile.schemas.verification import (
    GeneratedCodes,
    VerificationMethod,
    VerificationRecord,
)

__all__ = [
    "AssignedOrder",
    "CLIENT_EVENTS",
    "GeneratedCodes",
    "GeoPoint",
    "OfferedOrder",
    "OrderAssignedEvent",
    "OrderDecision",
    "OrderOfferEvent",
    "OrderSummary",
    "PartnerSummary",
    "SERVER_EVENTS",
    "ServerErrorEvent",
    "VerificationMethod",
    "VerificationRecord",
]
