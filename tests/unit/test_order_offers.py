"""Tests for the order-offer feed."""

import asyncio

import pytest
import pytest_asyncio

from lastmile.core.config import Settings
from lastmile.core.session import SessionContext
from lastmile.realtime.manager import ConnectionManager
from lastmile.realtime.offers import OrderOfferFeed
from lastmile.schemas.realtime import OfferedOrder
from tests.unit.conftest import FakeScheduler, SocketFactory


def _offer(order_id: str, payout: float = 120) -> dict:
    """order:offer payload as the delivery backend pushes it."""
    return {
        "order": {"id": order_id, "payoutAmount": payout, "distance": 2.4, "priority": "NORMAL"},
        "timestamp": "2026-03-01T12:00:00.000Z",
    }


@pytest_asyncio.fixture
async def connected(session: SessionContext, config: Settings):
    factory = SocketFactory()
    manager = ConnectionManager(
        session, config, client_factory=factory, call_later=FakeScheduler()  # type: ignore[arg-type]
    )
    await manager.connect()
    yield manager, factory
    await manager.aclose()


@pytest.mark.asyncio
class TestOrderOfferFeed:
    """Newest-first, de-duplicated offers."""

    async def test_offers_newest_first(self, connected):
        """Later offers are listed first."""
        manager, factory = connected
        feed = OrderOfferFeed(manager)

        await factory.latest.trigger("order:offer", _offer("o1"))
        await factory.latest.trigger("order:offer", _offer("o2"))

        assert [o.id for o in feed.orders] == ["o2", "o1"]

    async def test_duplicates_ignored(self, connected):
        """The same order offered twice is listed and announced once."""
        manager, factory = connected
        announced: list[OfferedOrder] = []
        feed = OrderOfferFeed(manager, on_offer=announced.append)

        await factory.latest.trigger("order:offer", _offer("o1"))
        await factory.latest.trigger("order:offer", _offer("o1"))

        assert len(feed.orders) == 1
        assert [o.id for o in announced] == ["o1"]

    async def test_accept_emits_decision(self, connected):
        """accept() sends order:accept with the order id."""
        manager, factory = connected
        feed = OrderOfferFeed(manager)

        assert feed.accept("o1")
        await asyncio.sleep(0)

        assert factory.latest.emitted == [("order:accept", {"orderId": "o1"})]

    async def test_reject_removes_locally(self, connected):
        """reject() sends order:reject and drops the offer."""
        manager, factory = connected
        feed = OrderOfferFeed(manager)
        await factory.latest.trigger("order:offer", _offer("o1"))
        await factory.latest.trigger("order:offer", _offer("o2"))

        assert feed.reject("o1")
        await asyncio.sleep(0)

        assert [o.id for o in feed.orders] == ["o2"]
        assert factory.latest.emitted == [("order:reject", {"orderId": "o1"})]

    async def test_reject_while_offline_keeps_offer(self, connected):
        """An unsent rejection leaves the offer in place."""
        manager, factory = connected
        feed = OrderOfferFeed(manager)
        await factory.latest.trigger("order:offer", _offer("o1"))
        await manager.disconnect()

        assert feed.reject("o1") is False
        assert [o.id for o in feed.orders] == ["o1"]

    async def test_close_detaches(self, connected):
        """After close() offers are no longer collected."""
        manager, factory = connected
        feed = OrderOfferFeed(manager)

        feed.close()
        feed.close()
        await factory.latest.trigger("order:offer", _offer("o1"))

        assert feed.orders == []
        assert manager.subscriber_count("order:offer") == 0

    async def test_offer_keeps_decision_fields(self, connected):
        """Payout, distance and priority reach the feed."""
        manager, factory = connected
        feed = OrderOfferFeed(manager)

        await factory.latest.trigger("order:offer", _offer("o1", payout=87.5))

        offer = feed.orders[0]
        assert offer.payout_amount == 87.5
        assert offer.distance == 2.4
        assert offer.priority == "NORMAL"
