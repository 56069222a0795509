"""
Shared types for the copy trader: venues, trade directions, balances,
trade events and swap results.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple


SOL_MINT = "So11111111111111111111111111111111111111112"
LAMPORTS_PER_SOL = 1_000_000_000
SOL_DECIMALS = 9


class Direction(Enum):
    BUY = "buy"
    SELL = "sell"


class WalletRole(Enum):
    SOURCE = "source"
    CONTROLLED = "controlled"


class Venue(Enum):
    """Liquidity venues we can route a mirrored swap through"""
    RAYDIUM = "raydium"
    PUMP_PORTAL = "pump_portal"
    PUMPSWAP = "pumpswap"

    @property
    def display_name(self) -> str:
        return {
            Venue.RAYDIUM: "Raydium",
            Venue.PUMP_PORTAL: "PumpPortal",
            Venue.PUMPSWAP: "PumpSwap",
        }[self]

    @classmethod
    def from_pool(cls, pool: Optional[str]) -> Optional["Venue"]:
        """Map a feed `pool` field (pump, pump-amm, raydium) to a venue."""
        if not pool:
            return None
        return {
            "pump": cls.PUMP_PORTAL,
            "pump-portal": cls.PUMP_PORTAL,
            "pump-amm": cls.PUMPSWAP,
            "pumpswap": cls.PUMPSWAP,
            "raydium": cls.RAYDIUM,
        }.get(pool.lower())


# Dispatch order when a transaction matches more than one venue
VENUE_PRIORITY: Tuple[Venue, ...] = (Venue.RAYDIUM, Venue.PUMP_PORTAL, Venue.PUMPSWAP)


def is_settlement_mint(mint: Optional[str]) -> bool:
    """Native SOL and wrapped SOL both settle in SOL."""
    return mint is None or mint == SOL_MINT


@dataclass
class TokenBalance:
    """Owned quantity of one mint"""
    quantity: float
    decimals: int
    raw_units: int


@dataclass
class TradeEvent:
    """A swap by the source wallet, derived from balance deltas"""
    signature: str
    mint: str
    direction: Direction
    token_amount: float
    sol_amount: float
    decimals: int = 6
    venues: Tuple[Venue, ...] = ()
    venue: Optional[Venue] = None
    timestamp: datetime = field(default_factory=datetime.utcnow)

    @property
    def is_buy(self) -> bool:
        return self.direction == Direction.BUY

    def __repr__(self):
        venue = self.venue.value if self.venue else "/".join(v.value for v in self.venues)
        return (
            f"<TradeEvent {self.direction.value} {self.token_amount:.4f} of {self.mint[:8]}... "
            f"for {self.sol_amount:.4f} SOL via {venue or '?'}>"
        )


@dataclass
class FeedEvent:
    """Notification from an inbound feed (account subscription or trade stream)"""
    signature: Optional[str]
    source: str  # "account" | "pump_portal"
    wallet: Optional[str] = None
    mint: Optional[str] = None
    direction: Optional[Direction] = None
    token_amount: Optional[float] = None
    sol_amount: Optional[float] = None
    venue_hint: Optional[Venue] = None
    raw: Optional[dict] = None

    @property
    def has_trade_facts(self) -> bool:
        """True when the feed already told us what was traded"""
        return (
            self.mint is not None
            and self.direction is not None
            and self.token_amount is not None
            and self.sol_amount is not None
        )


@dataclass
class Quote:
    """Venue quote for swapping `in_amount` raw units of input into output"""
    venue: Venue
    input_mint: str
    output_mint: str
    in_amount: int
    out_amount: Optional[int] = None
    raw: dict = field(default_factory=dict)


@dataclass
class SwapResult:
    """Outcome of a mirrored swap"""
    signature: str
    venue: Venue
    direction: Direction
    mint: str
    in_amount: int
    sol_amount: float  # SOL spent on a buy, received on a sell
    status: str  # confirmed | dry_run
    created_at: str = field(default_factory=lambda: datetime.utcnow().isoformat())

    @property
    def is_dry_run(self) -> bool:
        return self.status == "dry_run"
