"""
Proportional sizing for mirrored trades.

Buys spend a fixed fraction of what the source wallet spent. Sells dispose
of the same fraction of the controlled position as the source sold of its
own, reconciled against the live token balance.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

from ..core.models import LAMPORTS_PER_SOL, Direction, TokenBalance, TradeEvent
from ..positions.position_ledger import PositionSnapshot

logger = logging.getLogger(__name__)


@dataclass
class SizingLimits:
    """Sizing parameters"""
    trade_percentage: float = 0.1  # Fraction of the source's SOL spend to mirror
    min_trade_amount: float = 0.01  # Minimum SOL per mirrored buy
    slippage: float = 0.05  # Buffer required on top of the spend
    fee_reserve: float = 0.00005  # SOL kept back for network fees
    final_sell_tolerance: float = 0.01  # Source sold/bought within this of 1.0 = fully exited


@dataclass
class SizingDecision:
    """Outcome of sizing one trade"""
    allowed: bool
    reason: str
    direction: Direction
    mint: str
    amount: float = 0.0  # SOL to spend (buy) or tokens to sell
    amount_raw: int = 0  # lamports (buy) or raw token units (sell)
    decimals: int = 0
    is_final: bool = False
    required_sol: float = 0.0
    available_sol: float = 0.0

    @property
    def insufficient_balance(self) -> bool:
        return not self.allowed and self.required_sol > self.available_sol


class SizingEngine:
    """Computes controlled-wallet trade sizes from source trades and ledger state."""

    def __init__(self, limits: Optional[SizingLimits] = None):
        """
        Args:
            limits: Sizing parameters (uses defaults if not provided)
        """
        self.limits = limits or SizingLimits()
        if not 0 < self.limits.trade_percentage <= 1:
            raise ValueError(f"trade_percentage must be in (0, 1], got {self.limits.trade_percentage}")

    def size_buy(self, trade: TradeEvent, sol_balance: float) -> SizingDecision:
        """
        Size a mirrored buy.

        Args:
            trade: Classified source buy
            sol_balance: Live SOL balance of the controlled wallet
        """
        lamports = math.floor(trade.sol_amount * self.limits.trade_percentage * LAMPORTS_PER_SOL)
        spend = lamports / LAMPORTS_PER_SOL

        decision = SizingDecision(
            allowed=False,
            reason="",
            direction=Direction.BUY,
            mint=trade.mint,
            amount=spend,
            amount_raw=lamports,
            decimals=9,
            available_sol=sol_balance,
        )

        if spend < self.limits.min_trade_amount:
            decision.reason = f"Spend {spend:.6f} SOL below minimum {self.limits.min_trade_amount} SOL"
            return decision

        required = spend * (1 + self.limits.slippage) + self.limits.fee_reserve
        decision.required_sol = required
        if sol_balance < required:
            decision.reason = f"Insufficient SOL: need {required:.6f}, have {sol_balance:.6f}"
            return decision

        decision.allowed = True
        decision.reason = "OK"
        logger.info(
            f"Buy sized: {spend:.6f} SOL ({self.limits.trade_percentage:.0%} of source {trade.sol_amount:.6f} SOL)"
        )
        return decision

    def size_sell(
        self,
        trade: TradeEvent,
        snapshot: PositionSnapshot,
        token_balance: TokenBalance,
        sol_balance: float,
    ) -> SizingDecision:
        """
        Size a mirrored sell.

        `snapshot` must already include this trade on the source side.

        Args:
            trade: Classified source sell
            snapshot: Ledger state for the mint
            token_balance: Live token balance of the controlled wallet
            sol_balance: Live SOL balance of the controlled wallet (fees)
        """
        decision = SizingDecision(
            allowed=False,
            reason="",
            direction=Direction.SELL,
            mint=trade.mint,
            decimals=token_balance.decimals,
            available_sol=sol_balance,
        )

        if snapshot.source_bought <= 0:
            decision.reason = "Source never bought this token"
            return decision
        if snapshot.controlled_bought <= 0:
            decision.reason = "No controlled position to sell"
            return decision

        decision.required_sol = self.limits.fee_reserve
        if sol_balance < self.limits.fee_reserve:
            decision.reason = f"Insufficient SOL for fees: need {self.limits.fee_reserve}, have {sol_balance:.6f}"
            return decision

        fraction = trade.token_amount / snapshot.source_bought
        amount = snapshot.controlled_bought * fraction
        amount = min(amount, snapshot.controlled_sellable, token_balance.quantity)

        is_final = abs(snapshot.source_sold / snapshot.source_bought - 1.0) < self.limits.final_sell_tolerance
        if is_final:
            if token_balance.raw_units <= 0:
                decision.reason = "Final sell but controlled wallet holds none of the token"
                return decision
            decision.is_final = True
            decision.amount = token_balance.quantity
            decision.amount_raw = token_balance.raw_units
            decision.allowed = True
            decision.reason = "OK (final liquidation)"
            logger.info(f"Final sell: source fully exited {trade.mint[:8]}..., selling entire balance {token_balance.quantity}")
            return decision

        if amount <= 0:
            decision.reason = f"Nothing to sell (sellable {snapshot.controlled_sellable}, balance {token_balance.quantity})"
            return decision

        raw = min(math.ceil(amount * 10 ** token_balance.decimals - 1e-9), token_balance.raw_units)
        if raw <= 0:
            decision.reason = "Sell amount rounds to zero"
            return decision

        decision.amount = amount
        decision.amount_raw = raw
        decision.allowed = True
        decision.reason = "OK"
        logger.info(
            f"Sell sized: {amount:.6f} tokens ({fraction:.2%} of source position, "
            f"controlled {snapshot.controlled_bought:.6f} bought / {snapshot.controlled_sold:.6f} sold)"
        )
        return decision

    def expected_buy_quantity(self, trade: TradeEvent) -> float:
        """Token quantity a buy is assumed to yield when the balance can't be read."""
        return trade.token_amount * self.limits.trade_percentage
