"""
Execution routing for mirrored swaps.

Dispatches a sized trade to the venue that matched the source transaction,
waits for confirmation and reads back how much SOL actually moved.

IMPORTANT: with dry_run disabled this submits REAL swaps from the
controlled wallet.
"""

import asyncio
import logging
from typing import Dict, Iterable, Optional

import aiohttp

from ..core.exceptions import ConfirmationTimeout, RpcError, TransactionUnavailable, VenueRejected
from ..core.models import LAMPORTS_PER_SOL, SOL_MINT, Direction, SwapResult, Venue
from ..core.solana_client import SolanaClient

logger = logging.getLogger(__name__)


class ExecutionRouter:
    """
    Routes swaps to venue adapters.

    A swap is only reported back once its signature is confirmed; anything
    short of that raises, so callers never record an unconfirmed trade.
    """

    CONFIRM_ATTEMPTS = 5
    CONFIRM_INTERVAL = 2.0

    def __init__(
        self,
        client: SolanaClient,
        adapters: Iterable,
        wallet: Optional[str],
        dry_run: bool = True,  # Default to dry run for safety
        confirm_attempts: int = CONFIRM_ATTEMPTS,
        confirm_interval: float = CONFIRM_INTERVAL,
    ):
        """
        Args:
            client: RPC client for confirmation and balance read-back
            adapters: Venue adapters, one per venue
            wallet: Controlled wallet address
            dry_run: Log intended swaps instead of submitting them
            confirm_attempts: Signature status polls before giving up
            confirm_interval: Seconds between polls
        """
        self.client = client
        self.adapters: Dict[Venue, object] = {adapter.venue: adapter for adapter in adapters}
        self.wallet = wallet
        self.dry_run = dry_run
        self.confirm_attempts = confirm_attempts
        self.confirm_interval = confirm_interval

        self._swaps_submitted = 0
        self._swaps_confirmed = 0
        self._swaps_rejected = 0
        self._swaps_unconfirmed = 0
        self._dry_runs = 0

        mode = "DRY RUN" if dry_run else "LIVE"
        venues = ", ".join(v.display_name for v in self.adapters) or "none"
        logger.info(f"ExecutionRouter initialized ({mode}) | venues: {venues}")

    def supports(self, venue: Venue) -> bool:
        return venue in self.adapters

    async def execute(
        self,
        venue: Venue,
        direction: Direction,
        mint: str,
        amount_raw: int,
        decimals: int,
    ) -> SwapResult:
        """
        Execute a swap and wait for confirmation.

        Args:
            venue: Venue to route through
            direction: BUY spends `amount_raw` lamports, SELL sells `amount_raw` token units
            mint: Token mint
            amount_raw: Input amount in raw units
            decimals: Decimals of the input asset

        Raises:
            VenueRejected: no adapter, no quote, or the swap was not submitted
            ConfirmationTimeout: submitted but not confirmed in time
        """
        adapter = self.adapters.get(venue)
        if adapter is None:
            self._swaps_rejected += 1
            raise VenueRejected(venue, "venue not enabled")

        if direction == Direction.BUY:
            input_mint, output_mint = SOL_MINT, mint
        else:
            input_mint, output_mint = mint, SOL_MINT

        if self.dry_run:
            self._dry_runs += 1
            planned_sol = amount_raw / LAMPORTS_PER_SOL if direction == Direction.BUY else 0.0
            logger.info(
                f"[DRY RUN] Would {direction.value} via {venue.display_name}: "
                f"{amount_raw} raw units of {input_mint[:8]}... -> {output_mint[:8]}..."
            )
            return SwapResult(
                signature=f"dry_run_{self._dry_runs}",
                venue=venue,
                direction=direction,
                mint=mint,
                in_amount=amount_raw,
                sol_amount=planned_sol,
                status="dry_run",
            )

        quote = await adapter.quote(input_mint, output_mint, amount_raw, decimals)
        if quote is None:
            self._swaps_rejected += 1
            raise VenueRejected(venue, f"no quote for {input_mint} -> {output_mint}")

        signature = await adapter.swap(quote)
        if not signature:
            self._swaps_rejected += 1
            raise VenueRejected(venue, "swap was not submitted")

        self._swaps_submitted += 1
        logger.info(f"Swap submitted via {venue.display_name}: {signature}")

        if not await self._wait_for_confirmation(signature):
            self._swaps_unconfirmed += 1
            raise ConfirmationTimeout(
                signature, self.confirm_attempts, venue=venue, direction=direction, mint=mint
            )

        self._swaps_confirmed += 1
        planned_sol = amount_raw / LAMPORTS_PER_SOL if direction == Direction.BUY else (
            (quote.out_amount or 0) / LAMPORTS_PER_SOL
        )
        sol_amount = await self._realized_sol(signature, direction, planned_sol)

        return SwapResult(
            signature=signature,
            venue=venue,
            direction=direction,
            mint=mint,
            in_amount=amount_raw,
            sol_amount=sol_amount,
            status="confirmed",
        )

    async def _wait_for_confirmation(self, signature: str) -> bool:
        for attempt in range(self.confirm_attempts):
            try:
                status = await self.client.get_signature_status(signature)
            except (RpcError, aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.warning(f"Status check {attempt + 1}/{self.confirm_attempts} for {signature[:16]}... failed: {e}")
                status = None

            if status in ("confirmed", "finalized"):
                logger.info(f"Swap {signature[:16]}... {status}")
                return True
            if status == "failed":
                logger.error(f"Swap {signature[:16]}... failed on-chain")
                return False

            if attempt < self.confirm_attempts - 1:
                await asyncio.sleep(self.confirm_interval)
        return False

    async def _realized_sol(self, signature: str, direction: Direction, planned_sol: float) -> float:
        """
        SOL that moved for the controlled wallet in a confirmed swap.

        Sell: post - pre + fee (received). Buy: pre - post - fee (spent).
        Falls back to `planned_sol` when the transaction can't be read.
        """
        try:
            tx = await self.client.fetch_transaction(signature)
        except (TransactionUnavailable, RpcError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Could not read swap {signature[:16]}..., using planned {planned_sol:.6f} SOL: {e}")
            return planned_sol

        keys = tx.get("transaction", {}).get("message", {}).get("accountKeys") or []
        keys = [k.get("pubkey") if isinstance(k, dict) else k for k in keys]
        if self.wallet not in keys:
            logger.warning(f"Controlled wallet not in swap {signature[:16]}..., using planned amount")
            return planned_sol

        idx = keys.index(self.wallet)
        meta = tx.get("meta") or {}
        pre = meta["preBalances"][idx]
        post = meta["postBalances"][idx]
        fee = int(meta.get("fee") or 0)

        if direction == Direction.SELL:
            lamports = post - pre + fee
        else:
            lamports = pre - post - fee
        return max(lamports, 0) / LAMPORTS_PER_SOL

    def get_stats(self) -> dict:
        return {
            "mode": "dry_run" if self.dry_run else "live",
            "venues": [v.value for v in self.adapters],
            "swaps_submitted": self._swaps_submitted,
            "swaps_confirmed": self._swaps_confirmed,
            "swaps_rejected": self._swaps_rejected,
            "swaps_unconfirmed": self._swaps_unconfirmed,
            "dry_runs": self._dry_runs,
        }
