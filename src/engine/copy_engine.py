"""
Per-event orchestration for the copy trader.

One FeedEvent in, at most one mirrored swap out:

    dedup check -> classify -> re-check and mark processed -> record source side
    -> live balance read + sizing -> route swap -> record controlled side
    -> notify

Every failure ends processing of that event only; handle_event never
raises so a feed can keep reading.
"""

import asyncio
import logging
from typing import List, Optional

import aiohttp

from ..core.exceptions import (
    ConfirmationTimeout, CopyTradeError, InsufficientBalance, TransactionUnavailable, VenueRejected,
)
from ..core.models import SOL_DECIMALS, FeedEvent, SwapResult, TokenBalance, TradeEvent, Venue, WalletRole
from ..core.solana_client import SolanaClient
from ..detection.classifier import TransactionClassifier
from ..execution.router import ExecutionRouter
from ..execution.sizing import SizingDecision, SizingEngine
from ..ingestion.processed_set import ProcessedSet, composite_key
from ..positions.position_ledger import PositionLedger

logger = logging.getLogger(__name__)


class CopyEngine:
    """
    Mirrors source-wallet swaps from the controlled wallet.

    All state (ledger, processed ids) is injected, so separate instances
    never share anything.
    """

    def __init__(
        self,
        client: SolanaClient,
        classifier: TransactionClassifier,
        ledger: PositionLedger,
        sizing: SizingEngine,
        router: ExecutionRouter,
        processed: ProcessedSet,
        notifier=None,
        controlled_wallet: Optional[str] = None,
    ):
        """
        Args:
            client: RPC client for live balance reads
            classifier: Turns events into TradeEvents
            ledger: Position accounting for both wallets
            sizing: Proportional sizing rules
            router: Venue execution
            processed: Ids already handled
            notifier: Optional TelegramNotifier (anything with notify_* coroutines)
            controlled_wallet: Address of the wallet that trades
        """
        self.client = client
        self.classifier = classifier
        self.ledger = ledger
        self.sizing = sizing
        self.router = router
        self.processed = processed
        self.notifier = notifier
        self.controlled_wallet = controlled_wallet or router.wallet

        self._stats = {
            "events_received": 0,
            "duplicates": 0,
            "not_applicable": 0,
            "unavailable": 0,
            "source_buys": 0,
            "source_sells": 0,
            "skipped": 0,
            "insufficient_balance": 0,
            "buys_copied": 0,
            "sells_copied": 0,
            "venue_rejected": 0,
            "unconfirmed": 0,
            "errors": 0,
        }

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def handle_event(self, event: FeedEvent) -> Optional[SwapResult]:
        """
        Process one feed notification.

        Returns:
            SwapResult of the mirrored trade, or None if nothing was executed
        """
        self._stats["events_received"] += 1
        try:
            return await self._process(event)
        except TransactionUnavailable as e:
            self._stats["unavailable"] += 1
            logger.error(f"Giving up on {e.signature}: {e}")
        except (CopyTradeError, aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            self._stats["errors"] += 1
            logger.error(f"Failed to process {event.signature or event.mint}: {e}")
        except Exception:
            self._stats["errors"] += 1
            logger.exception(f"Unexpected error processing {event.signature or event.mint}")
        return None

    def _dedup_key(self, event: FeedEvent) -> Optional[str]:
        if event.signature:
            return event.signature
        if event.mint and event.direction:
            return composite_key(event.mint, event.direction)
        return None

    async def _process(self, event: FeedEvent) -> Optional[SwapResult]:
        key = self._dedup_key(event)
        if key is None:
            logger.debug(f"Ignoring {event.source} event with no signature or trade facts")
            return None

        if self.processed.has_processed(key):
            self._stats["duplicates"] += 1
            logger.debug(f"Already processed {key[:16]}..., skipping")
            return None

        if event.has_trade_facts:
            trade = self.classifier.from_feed_event(event)
        else:
            trade = await self.classifier.classify(event.signature, event.venue_hint)

        if trade is None or not trade.venues:
            self._stats["not_applicable"] += 1
            return None

        # Another feed may have delivered the same id while classify() was waiting.
        # No await between this check and the mark.
        if self.processed.has_processed(key):
            self._stats["duplicates"] += 1
            logger.debug(f"{key[:16]}... processed during classification, skipping")
            return None

        venue = self.select_venue(trade, event.venue_hint)
        self.processed.mark_processed(key)

        if venue is None:
            self._stats["skipped"] += 1
            logger.warning(f"No enabled venue among {[v.value for v in trade.venues]} for {key[:16]}...")
            return None
        trade.venue = venue

        if trade.is_buy:
            return await self._mirror_buy(trade)
        return await self._mirror_sell(trade)

    def select_venue(self, trade: TradeEvent, venue_hint: Optional[Venue] = None) -> Optional[Venue]:
        """Hinted venue if it matched, otherwise the highest-priority enabled one."""
        if venue_hint in trade.venues and self.router.supports(venue_hint):
            return venue_hint
        for venue in trade.venues:
            if self.router.supports(venue):
                return venue
        return None

    # ------------------------------------------------------------------
    # Buy / sell
    # ------------------------------------------------------------------

    async def _mirror_buy(self, trade: TradeEvent) -> Optional[SwapResult]:
        self.ledger.record_source_buy(trade.mint, trade.token_amount)
        self._stats["source_buys"] += 1

        sol_balance = await self.client.get_balance(self.controlled_wallet)
        decision = self.sizing.size_buy(trade, sol_balance)
        if not decision.allowed:
            self._reject(trade, decision)
            return None

        before = await self._token_balance_or_none(trade.mint)

        result = await self._execute(trade, decision, SOL_DECIMALS)
        if result is None:
            return None

        quantity = await self._bought_quantity(trade, before, result)
        self.ledger.record_controlled_buy(trade.mint, quantity, result.sol_amount)
        self._stats["buys_copied"] += 1
        logger.info(
            f"Mirrored buy of {trade.mint[:8]}... via {result.venue.display_name}: "
            f"{result.sol_amount:.6f} SOL for {quantity:.4f} tokens ({result.signature})"
        )

        if self.notifier:
            await self.notifier.notify_buy(result)
        return result

    async def _mirror_sell(self, trade: TradeEvent) -> Optional[SwapResult]:
        self.ledger.record_source_sell(trade.mint, trade.token_amount)
        self._stats["source_sells"] += 1

        snapshot = self.ledger.snapshot(trade.mint)
        token_balance = await self.client.get_token_balance(self.controlled_wallet, trade.mint)
        sol_balance = await self.client.get_balance(self.controlled_wallet)
        decision = self.sizing.size_sell(trade, snapshot, token_balance, sol_balance)
        if not decision.allowed:
            self._reject(trade, decision)
            return None

        result = await self._execute(trade, decision, decision.decimals)
        if result is None:
            return None

        pnl_sol, pnl_pct = self.ledger.profit_loss(trade.mint, decision.amount, result.sol_amount)
        self.ledger.record_controlled_sell(trade.mint, decision.amount, result.sol_amount)
        self._stats["sells_copied"] += 1
        logger.info(
            f"Mirrored {'final ' if decision.is_final else ''}sell of {decision.amount:.4f} {trade.mint[:8]}... "
            f"via {result.venue.display_name}: received {result.sol_amount:.6f} SOL, "
            f"P/L {pnl_sol:+.6f} SOL ({pnl_pct:.2f}%)"
        )

        if self.notifier:
            await self.notifier.notify_sell(result, decision.amount, pnl_sol, pnl_pct)
        return result

    async def _execute(self, trade: TradeEvent, decision: SizingDecision, decimals: int) -> Optional[SwapResult]:
        try:
            return await self.router.execute(
                trade.venue, trade.direction, trade.mint, decision.amount_raw, decimals
            )
        except VenueRejected as e:
            self._stats["venue_rejected"] += 1
            logger.error(f"Mirror {trade.direction.value} of {trade.mint[:8]}... failed: {e}")
        except ConfirmationTimeout as e:
            self._stats["unconfirmed"] += 1
            logger.warning(f"{e}; ledger left unchanged for {trade.mint}, reconcile manually")
            if self.notifier:
                await self.notifier.notify_unconfirmed(e.signature, e.venue, e.direction, e.mint)
        return None

    def _reject(self, trade: TradeEvent, decision: SizingDecision):
        if decision.insufficient_balance:
            self._stats["insufficient_balance"] += 1
            logger.warning(
                f"Not mirroring {trade.direction.value} of {trade.mint[:8]}...: "
                f"{InsufficientBalance(decision.required_sol, decision.available_sol)}"
            )
        else:
            self._stats["skipped"] += 1
            logger.info(f"Not mirroring {trade.direction.value} of {trade.mint[:8]}...: {decision.reason}")

    async def _token_balance_or_none(self, mint: str) -> Optional[TokenBalance]:
        try:
            return await self.client.get_token_balance(self.controlled_wallet, mint)
        except (CopyTradeError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Could not read token balance for {mint[:8]}...: {e}")
            return None

    async def _bought_quantity(
        self, trade: TradeEvent, before: Optional[TokenBalance], result: SwapResult
    ) -> float:
        """Token balance gained by the buy, or the proportional estimate if unreadable."""
        estimate = self.sizing.expected_buy_quantity(trade)
        if result.is_dry_run or before is None:
            return estimate

        after = await self._token_balance_or_none(trade.mint)
        if after is None:
            return estimate

        gained = after.quantity - before.quantity
        if gained <= 0:
            logger.warning(
                f"Balance of {trade.mint[:8]}... did not increase after buy, assuming {estimate:.4f}"
            )
            return estimate
        return gained

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def positions_summary(self) -> List[dict]:
        """Per-mint view of both wallets for /positions."""
        rows = []
        for mint in self.ledger.mints:
            snapshot = self.ledger.snapshot(mint)
            controlled = self.ledger.record(mint, WalletRole.CONTROLLED)
            rows.append({
                "mint": mint,
                "source_bought": snapshot.source_bought,
                "source_sold": snapshot.source_sold,
                "controlled_bought": snapshot.controlled_bought,
                "controlled_sold": snapshot.controlled_sold,
                "cost_sol": controlled.cost_sol,
                "revenue_sol": controlled.revenue_sol,
            })
        return rows

    def get_stats(self) -> dict:
        stats = dict(self._stats)
        stats["processed_ids"] = len(self.processed)
        stats["tracked_tokens"] = len(self.ledger.mints)
        realized = self.ledger.realized_summary()
        stats["sol_spent"] = round(realized["cost_sol"], 6)
        stats["sol_received"] = round(realized["revenue_sol"], 6)
        stats["router"] = self.router.get_stats()
        stats["classifier"] = self.classifier.get_stats()
        return stats
