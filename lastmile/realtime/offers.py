"""Live feed of orders offered to the connected agent."""

from collections.abc import Callable

import structlog

from lastmile.realtime.manager import ConnectionManager
from lastmile.schemas.realtime import OfferedOrder, OrderDecision, OrderOfferEvent

logger = structlog.get_logger()


class OrderOfferFeed:
    """Newest-first list of offered orders, de-duplicated by order id.

    Attaches to the shared connection without owning it.

    Args:
        manager: Shared realtime connection manager.
        on_offer: Optional callback for each new (non-duplicate) offer.
    """

    def __init__(
        self,
        manager: ConnectionManager,
        on_offer: Callable[[OfferedOrder], None] | None = None,
    ) -> None:
        self._manager = manager
        self._on_offer = on_offer
        self._orders: list[OfferedOrder] = []
        self._unsubscribe: Callable[[], None] | None = manager.subscribe(
            "order:offer", self._handle_offer
        )

    @property
    def orders(self) -> list[OfferedOrder]:
        """Offered orders, newest first."""
        return list(self._orders)

    def accept(self, order_id: str) -> bool:
        """Tell the server the agent takes the order."""
        return self._manager.emit("order:accept", OrderDecision(order_id=order_id))

    def reject(self, order_id: str) -> bool:
        """Tell the server the agent declines the order; drops it locally."""
        sent = self._manager.emit("order:reject", OrderDecision(order_id=order_id))
        if sent:
            self._orders = [o for o in self._orders if o.id != order_id]
        return sent

    def close(self) -> None:
        """Detach from the connection. Safe to call repeatedly."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _handle_offer(self, event: OrderOfferEvent) -> None:
        order = event.order
        if any(existing.id == order.id for existing in self._orders):
            return
        self._orders.insert(0, order)
        logger.info("order_offer_received", order_id=order.id, priority=order.priority)
        if self._on_offer is not None:
            self._on_offer(order)
