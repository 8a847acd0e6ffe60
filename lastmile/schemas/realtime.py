"""Realtime channel message variants.

Closed set of event names with one payload model each. Server events are
validated before any subscriber sees them; client events are validated
before they are sent.

Server → client:
- order:offer: a new order is available to this agent
- order:assigned: an order was assigned (partner view)
- error: server-side rejection of a client event

Client → server:
- agent:online / agent:offline: no payload
- order:accept / order:reject: the order being answered
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Server Events
# =============================================================================


class OfferedOrder(BaseModel):
    """Order as pushed with an offer: just enough to decide on it.

    Attributes:
        id: Order identifier echoed back in accept/reject.
        payout_amount: Payout offered for the delivery.
        distance: Distance from the agent to pickup, when known.
        priority: Order priority (e.g., NORMAL, HIGH).
        status: Order status, when the server includes it.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(min_length=1)
    payout_amount: float | None = Field(default=None, alias="payoutAmount")
    distance: float | None = None
    priority: str | None = None
    status: str | None = None


class AssignedOrder(BaseModel):
    """Assignment notice body: which agent took which order."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(min_length=1)
    status: str | None = None
    agent_id: str | None = Field(default=None, alias="agentId")
    assigned_at: datetime | None = Field(default=None, alias="assignedAt")


class OrderOfferEvent(BaseModel):
    """New order offered to the connected agent."""

    model_config = ConfigDict(extra="ignore")

    order: OfferedOrder
    timestamp: datetime | None = None


class OrderAssignedEvent(BaseModel):
    """Order assignment notice pushed to the owning partner."""

    model_config = ConfigDict(extra="ignore")

    order: AssignedOrder
    timestamp: datetime | None = None


class ServerErrorEvent(BaseModel):
    """Error pushed by the server in response to a client event."""

    model_config = ConfigDict(extra="ignore")

    message: str = "WebSocket error"


SERVER_EVENTS: dict[str, type[BaseModel]] = {
    "order:offer": OrderOfferEvent,
    "order:assigned": OrderAssignedEvent,
    "error": ServerErrorEvent,
}


# =============================================================================
# Client Events
# =============================================================================


class OrderDecision(BaseModel):
    """Payload for accepting or rejecting an offered order."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    order_id: str = Field(alias="orderId", min_length=1)


# None means the event carries no payload.
CLIENT_EVENTS: dict[str, type[BaseModel] | None] = {
    "agent:online": None,
    "agent:offline": None,
    "order:accept": OrderDecision,
    "order:reject": OrderDecision,
}


def parse_server_event(event: str, payload: Any) -> BaseModel:
    """Validate a server payload against its event model.

    Args:
        event: Server event name.
        payload: Raw decoded payload.

    Returns:
        The validated payload model.

    Raises:
        ValueError: If event is not a known server event.
        pydantic.ValidationError: If payload does not match the model.
    """
    model = SERVER_EVENTS.get(event)
    if model is None:
        known = ", ".join(sorted(SERVER_EVENTS))
        raise ValueError(f"Unknown server event: '{event}'. Known events: {known}")
    return model.model_validate(payload if payload is not None else {})


def serialize_client_event(event: str, payload: Any = None) -> dict[str, Any] | None:
    """Validate and serialize a client payload to its wire shape.

    Args:
        event: Client event name.
        payload: Model instance, dict, or None.

    Returns:
        Wire payload (camelCase keys), or None for payload-less events.

    Raises:
        ValueError: If event is unknown, or a payload is given for an event
            that takes none.
        pydantic.ValidationError: If payload does not match the model.
    """
    if event not in CLIENT_EVENTS:
        known = ", ".join(sorted(CLIENT_EVENTS))
        raise ValueError(f"Unknown client event: '{event}'. Known events: {known}")
    model = CLIENT_EVENTS[event]
    if model is None:
        if payload is not None:
            raise ValueError(f"Event '{event}' does not take a payload")
        return None
    instance = payload if isinstance(payload, model) else model.model_validate(payload)
    return instance.model_dump(by_alias=True)
