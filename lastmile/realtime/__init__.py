"""Realtime order channel.

This module provides:
- ConnectionManager: the single socket.io connection per session
- ReconnectPolicy: backoff bounds for unexpected disconnects
- OrderOfferFeed: de-duplicated feed of offered orders
"""

from lastmile.realtime.manager import (
    ConnectionManager,
    ConnectionStatus,
    RealtimeError,
    ReconnectPolicy,
)
from lastmile.realtime.offers import OrderOfferFeed

__all__ = [
    "ConnectionManager",
    "ConnectionStatus",
    "OrderOfferFeed",
    "RealtimeError",
    "ReconnectPolicy",
]
