"""
Position accounting for the source and controlled wallets.
"""

from .position_ledger import PositionLedger, PositionRecord, PositionSnapshot

__all__ = [
    "PositionLedger",
    "PositionRecord",
    "PositionSnapshot",
]
