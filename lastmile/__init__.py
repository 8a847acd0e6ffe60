"""Field-agent client core for last-mile delivery.

Delivery verification, order scanning, and the realtime order channel.
"""

__version__ = "0.4.0"
