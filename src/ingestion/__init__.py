"""
Inbound event feeds and duplicate suppression for the copy trader.
"""

from .processed_set import ProcessedSet, composite_key
from .websocket_feed import AccountFeed, PumpPortalFeed

__all__ = [
    "ProcessedSet",
    "composite_key",
    "AccountFeed",
    "PumpPortalFeed",
]
