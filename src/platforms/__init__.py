"""
Swap venues the copy trader can route through
"""

from .base import VenueAdapter, referenced_programs
from .raydium import RaydiumVenue
from .pumpswap import PumpSwapVenue
from .pump_portal import PumpPortalVenue

__all__ = [
    "VenueAdapter",
    "referenced_programs",
    "RaydiumVenue",
    "PumpSwapVenue",
    "PumpPortalVenue",
]
