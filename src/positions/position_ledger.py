"""
Per-asset position accounting for the source and controlled wallets.

Single source of truth for proportional sizing and P&L: cumulative bought
and sold quantities per mint and wallet role, plus SOL cost and revenue for
the controlled wallet. Every update only adds to a running total.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

from ..core.models import WalletRole

logger = logging.getLogger(__name__)


@dataclass
class PositionRecord:
    """Running totals for one mint and one wallet role"""
    bought: float = 0.0
    sold: float = 0.0
    cost_sol: float = 0.0  # controlled wallet only
    revenue_sol: float = 0.0  # controlled wallet only


@dataclass(frozen=True)
class PositionSnapshot:
    """Point-in-time view of both roles for one mint"""
    mint: str
    source_bought: float
    source_sold: float
    controlled_bought: float
    controlled_sold: float

    @property
    def controlled_sellable(self) -> float:
        return self.controlled_bought - self.controlled_sold


def _require_non_negative(name: str, value: float):
    if value < 0:
        raise ValueError(f"{name} must be non-negative, got {value}")


class PositionLedger:
    """Accumulates buys and sells per (mint, wallet role)."""

    def __init__(self, state_file: Optional[str] = None):
        """
        Args:
            state_file: Optional JSON file; when set the ledger is saved after
                every update and can be restored with load().
        """
        self._state_file = state_file
        self._records: Dict[WalletRole, Dict[str, PositionRecord]] = {
            WalletRole.SOURCE: {},
            WalletRole.CONTROLLED: {},
        }

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def record(self, mint: str, role: WalletRole) -> PositionRecord:
        """Record for (mint, role), created as zeros on first access."""
        records = self._records[role]
        if mint not in records:
            records[mint] = PositionRecord()
        return records[mint]

    def snapshot(self, mint: str) -> PositionSnapshot:
        source = self.record(mint, WalletRole.SOURCE)
        controlled = self.record(mint, WalletRole.CONTROLLED)
        return PositionSnapshot(
            mint=mint,
            source_bought=source.bought,
            source_sold=source.sold,
            controlled_bought=controlled.bought,
            controlled_sold=controlled.sold,
        )

    @property
    def mints(self):
        return sorted(set(self._records[WalletRole.SOURCE]) | set(self._records[WalletRole.CONTROLLED]))

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def record_source_buy(self, mint: str, qty: float):
        _require_non_negative("qty", qty)
        rec = self.record(mint, WalletRole.SOURCE)
        rec.bought += qty
        logger.info(f"Source bought {qty:.4f} of {mint[:8]}... (total {rec.bought:.4f})")
        self._persist()

    def record_source_sell(self, mint: str, qty: float):
        _require_non_negative("qty", qty)
        rec = self.record(mint, WalletRole.SOURCE)
        rec.sold += qty
        logger.info(f"Source sold {qty:.4f} of {mint[:8]}... (total {rec.sold:.4f}/{rec.bought:.4f})")
        self._persist()

    def record_controlled_buy(self, mint: str, qty: float, cost_sol: float):
        _require_non_negative("qty", qty)
        _require_non_negative("cost_sol", cost_sol)
        rec = self.record(mint, WalletRole.CONTROLLED)
        rec.bought += qty
        rec.cost_sol += cost_sol
        logger.info(
            f"Controlled bought {qty:.4f} of {mint[:8]}... for {cost_sol:.4f} SOL "
            f"(total {rec.bought:.4f}, cost {rec.cost_sol:.4f} SOL)"
        )
        self._persist()

    def record_controlled_sell(self, mint: str, qty: float, revenue_sol: float):
        _require_non_negative("qty", qty)
        _require_non_negative("revenue_sol", revenue_sol)
        rec = self.record(mint, WalletRole.CONTROLLED)
        rec.sold += qty
        rec.revenue_sol += revenue_sol
        logger.info(
            f"Controlled sold {qty:.4f} of {mint[:8]}... for {revenue_sol:.4f} SOL "
            f"(total {rec.sold:.4f}/{rec.bought:.4f}, revenue {rec.revenue_sol:.4f} SOL)"
        )
        self._persist()

    # ------------------------------------------------------------------
    # P&L
    # ------------------------------------------------------------------

    def cost_basis(self, mint: str) -> float:
        """Average SOL paid per token by the controlled wallet (0 if unknown)."""
        rec = self.record(mint, WalletRole.CONTROLLED)
        if rec.bought <= 0:
            return 0.0
        return rec.cost_sol / rec.bought

    def profit_loss(self, mint: str, qty: float, revenue_sol: float) -> Tuple[float, float]:
        """
        P&L of selling `qty` tokens for `revenue_sol` against the average cost.

        Returns:
            (pnl_sol, pnl_pct); both zero when no cost basis is known
        """
        sold_cost = self.cost_basis(mint) * qty
        if sold_cost <= 0:
            return 0.0, 0.0
        pnl_sol = revenue_sol - sold_cost
        return pnl_sol, (pnl_sol / sold_cost) * 100

    def realized_summary(self) -> dict:
        """Totals across all mints for the controlled wallet."""
        controlled = self._records[WalletRole.CONTROLLED]
        return {
            "mints": len(controlled),
            "cost_sol": sum(r.cost_sol for r in controlled.values()),
            "revenue_sol": sum(r.revenue_sol for r in controlled.values()),
        }

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_dict(self) -> dict:
        return {
            role.value: {mint: asdict(rec) for mint, rec in records.items()}
            for role, records in self._records.items()
        }

    @classmethod
    def from_dict(cls, data: dict, state_file: Optional[str] = None) -> "PositionLedger":
        ledger = cls(state_file=state_file)
        for role in WalletRole:
            for mint, rec in (data.get(role.value) or {}).items():
                ledger._records[role][mint] = PositionRecord(**rec)
        return ledger

    def _persist(self):
        if self._state_file:
            self.save(self._state_file)

    def save(self, path: str):
        """Write the ledger to `path` atomically."""
        state = {
            "saved_at": datetime.now(timezone.utc).isoformat(),
            "positions": self.to_dict(),
        }
        try:
            os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
            tmp_file = path + ".tmp"
            with open(tmp_file, "w") as f:
                json.dump(state, f, indent=2)
            os.replace(tmp_file, path)
            logger.debug(f"Ledger saved: {len(self.mints)} mints")
        except OSError as e:
            logger.error(f"Failed to save ledger state: {e}")

    @classmethod
    def load(cls, path: str) -> "PositionLedger":
        """Restore a ledger from `path`; starts fresh if the file is missing."""
        if not os.path.exists(path):
            logger.info("No saved ledger found - starting fresh")
            return cls(state_file=path)

        with open(path, "r") as f:
            state = json.load(f)

        ledger = cls.from_dict(state.get("positions", {}), state_file=path)
        logger.info(f"Ledger restored: {len(ledger.mints)} mints (saved {state.get('saved_at', 'unknown')})")
        return ledger
