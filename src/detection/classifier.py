"""
Transaction classifier.

Turns a ledger transaction (or a trade-stream notification) from the source
wallet into a TradeEvent: which asset was bought or sold, how much, and for
how much SOL. Anything that isn't a single SOL <-> token swap by the source
wallet through a supported venue is not applicable and yields None.
"""

import logging
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional, Tuple

from ..core.models import (
    LAMPORTS_PER_SOL, VENUE_PRIORITY, Direction, FeedEvent, TradeEvent, Venue,
    is_settlement_mint,
)
from ..core.solana_client import SolanaClient

logger = logging.getLogger(__name__)

TOKEN_DELTA_SELECTIONS = ("largest", "first")


def account_keys(tx: dict) -> List[str]:
    """Account keys of a parsed transaction as plain base58 strings."""
    keys = tx.get("transaction", {}).get("message", {}).get("accountKeys") or []
    return [k.get("pubkey") if isinstance(k, dict) else k for k in keys]


def fee_payer(tx: dict) -> Optional[str]:
    keys = account_keys(tx)
    return keys[0] if keys else None


def _token_deltas(tx: dict, owner: str) -> "OrderedDict[str, Tuple[int, int]]":
    """
    Per-mint raw-unit change for token accounts owned by `owner`.

    Returns mint -> (raw_delta, decimals), in first-seen balance order.
    """
    meta = tx.get("meta") or {}
    deltas: "OrderedDict[str, Tuple[int, int]]" = OrderedDict()

    def apply(balances: Iterable[dict], sign: int):
        for bal in balances or []:
            if bal.get("owner") != owner:
                continue
            mint = bal.get("mint")
            ui = bal.get("uiTokenAmount") or {}
            raw = int(ui.get("amount", "0"))
            decimals = int(ui.get("decimals", 0))
            prev_raw, _ = deltas.get(mint, (0, decimals))
            deltas[mint] = (prev_raw + sign * raw, decimals)

    apply(meta.get("preTokenBalances"), -1)
    apply(meta.get("postTokenBalances"), 1)
    return deltas


class TransactionClassifier:
    """
    Classifies source-wallet transactions as BUY or SELL trade events.

    Venue membership is delegated to the venue adapters; every adapter whose
    signal matches is reported on the event, in dispatch priority order. The
    caller picks the one to route through.
    """

    def __init__(
        self,
        client: SolanaClient,
        source_wallet: str,
        adapters: Iterable,
        token_delta_selection: str = "largest",
    ):
        """
        Args:
            client: RPC client used to fetch parsed transactions
            source_wallet: Address of the wallet being mirrored
            adapters: Venue adapters (anything with `.venue` and `.matches(tx, hint)`)
            token_delta_selection: "largest" picks the biggest token move per
                side when several mints changed; "first" takes the first in
                balance order
        """
        if token_delta_selection not in TOKEN_DELTA_SELECTIONS:
            raise ValueError(
                f"token_delta_selection must be one of {TOKEN_DELTA_SELECTIONS}, got {token_delta_selection!r}"
            )
        self.client = client
        self.source_wallet = source_wallet
        self.token_delta_selection = token_delta_selection

        by_venue = {adapter.venue: adapter for adapter in adapters}
        self._adapters = [by_venue[v] for v in VENUE_PRIORITY if v in by_venue]

        self._stats = {
            "classified": 0,
            "not_applicable": 0,
        }

    async def classify(self, signature: str, venue_hint: Optional[Venue] = None) -> Optional[TradeEvent]:
        """
        Fetch and classify a transaction.

        Returns:
            TradeEvent, or None if the transaction is not a mirrorable swap

        Raises:
            TransactionUnavailable: if the transaction never became readable
        """
        tx = await self.client.fetch_transaction(signature)
        event = self.classify_transaction(signature, tx, venue_hint)
        if event is None:
            self._stats["not_applicable"] += 1
        else:
            self._stats["classified"] += 1
        return event

    def classify_transaction(
        self, signature: str, tx: dict, venue_hint: Optional[Venue] = None
    ) -> Optional[TradeEvent]:
        """Classify an already-fetched parsed transaction."""
        payer = fee_payer(tx)
        if payer != self.source_wallet:
            logger.debug(f"Skipping {signature[:16]}...: fee payer {payer} is not the source wallet")
            return None

        venues = self.match_venues(tx, venue_hint)
        if not venues:
            logger.debug(f"Skipping {signature[:16]}...: no supported venue")
            return None

        meta = tx.get("meta") or {}
        keys = account_keys(tx)
        idx = keys.index(self.source_wallet)
        pre = meta.get("preBalances") or []
        post = meta.get("postBalances") or []
        fee = int(meta.get("fee") or 0)
        native_lamports = abs(post[idx] - pre[idx] + fee) if idx < len(pre) and idx < len(post) else 0

        deltas = _token_deltas(tx, self.source_wallet)
        for mint, (_, decimals) in deltas.items():
            self.client.remember_decimals(mint, decimals)

        wrapped_raw = deltas.pop(next((m for m in deltas if is_settlement_mint(m)), None), (0, 0))[0]

        decreased = [(m, d) for m, d in deltas.items() if d[0] < 0]
        increased = [(m, d) for m, d in deltas.items() if d[0] > 0]
        input_mint, input_delta = self._select(decreased)
        output_mint, output_delta = self._select(increased)

        # Missing side settles in SOL
        input_is_sol = input_mint is None
        output_is_sol = output_mint is None

        if input_is_sol and output_is_sol:
            logger.debug(f"Skipping {signature[:16]}...: no token moved")
            return None
        if not input_is_sol and not output_is_sol:
            logger.debug(f"Skipping {signature[:16]}...: token-to-token swap {input_mint} -> {output_mint}")
            return None

        if input_is_sol:
            direction = Direction.BUY
            mint, (raw_delta, decimals) = output_mint, output_delta
        else:
            direction = Direction.SELL
            mint, (raw_delta, decimals) = input_mint, input_delta

        token_amount = abs(raw_delta) / (10 ** decimals)
        sol_amount = (native_lamports + abs(wrapped_raw)) / LAMPORTS_PER_SOL

        event = TradeEvent(
            signature=signature,
            mint=mint,
            direction=direction,
            token_amount=token_amount,
            sol_amount=sol_amount,
            decimals=decimals,
            venues=tuple(venues),
        )
        logger.info(f"Classified {signature[:16]}...: {event}")
        return event

    def match_venues(self, tx: dict, venue_hint: Optional[Venue] = None) -> List[Venue]:
        """Every venue whose signal matches, highest priority first."""
        return [adapter.venue for adapter in self._adapters if adapter.matches(tx, venue_hint)]

    def _select(self, candidates: List[Tuple[str, Tuple[int, int]]]):
        if not candidates:
            return None, None
        if len(candidates) > 1:
            logger.warning(
                f"Multiple token deltas on one side ({', '.join(m[:8] for m, _ in candidates)}), "
                f"selecting by '{self.token_delta_selection}'"
            )
        if self.token_delta_selection == "first":
            return candidates[0]
        return max(candidates, key=lambda c: abs(c[1][0]) / (10 ** c[1][1]))

    def from_feed_event(self, event: FeedEvent) -> Optional[TradeEvent]:
        """
        Build a TradeEvent straight from a trade-stream notification.

        Only used when the feed already reports mint, direction and amounts,
        so no RPC fetch is needed.
        """
        if not event.has_trade_facts:
            return None
        if event.wallet != self.source_wallet:
            logger.debug(f"Skipping feed event from {event.wallet}: not the source wallet")
            self._stats["not_applicable"] += 1
            return None
        if is_settlement_mint(event.mint):
            self._stats["not_applicable"] += 1
            return None

        venues: Tuple[Venue, ...] = (event.venue_hint,) if event.venue_hint else ()
        trade = TradeEvent(
            signature=event.signature or "",
            mint=event.mint,
            direction=event.direction,
            token_amount=float(event.token_amount),
            sol_amount=float(event.sol_amount),
            venues=venues,
        )
        self._stats["classified"] += 1
        logger.info(f"Feed trade: {trade}")
        return trade

    def get_stats(self) -> Dict[str, int]:
        return dict(self._stats)
