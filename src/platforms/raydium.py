"""
Raydium venue - Trade API (compute + transaction) with local signing
"""

from typing import Optional

import aiohttp
from loguru import logger

from src.core.exceptions import RpcError
from src.core.models import SOL_MINT, Quote, Venue
from .base import VenueAdapter

RAYDIUM_AMM_V4_PROGRAM_ID = "675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8"
RAYDIUM_CPMM_PROGRAM_ID = "CPMMoo8L3F4NbTegBCKVNunggL7H1ZpdTHKxQB5qKP1C"
RAYDIUM_CLMM_PROGRAM_ID = "CAMMCzo5YL8w4VFF8KVHrK22GGUsp5VTaW7grrKgrWqK"


class RaydiumVenue(VenueAdapter):
    """
    Raydium swaps through the public Trade API.

    The API computes the route and returns unsigned V0 transactions which
    are signed with the controlled wallet and submitted over RPC.
    """

    PROGRAM_IDS = (RAYDIUM_AMM_V4_PROGRAM_ID, RAYDIUM_CPMM_PROGRAM_ID, RAYDIUM_CLMM_PROGRAM_ID)
    LOG_MARKERS = (RAYDIUM_CLMM_PROGRAM_ID,)

    def __init__(self, config: dict, *args, **kwargs):
        super().__init__(config, *args, **kwargs)
        self.api_url = config.get("api_url", "https://transaction-v1.raydium.io").rstrip("/")

    @property
    def venue(self) -> Venue:
        return Venue.RAYDIUM

    async def quote(self, input_mint: str, output_mint: str, amount: int, decimals: int) -> Optional[Quote]:
        self._quotes += 1
        try:
            data = await self._request(
                "GET",
                f"{self.api_url}/compute/swap-base-in",
                params={
                    "inputMint": input_mint,
                    "outputMint": output_mint,
                    "amount": str(amount),
                    "slippageBps": str(self.slippage_bps),
                    "txVersion": "V0",
                },
            )
        except aiohttp.ClientError as e:
            logger.error(f"Raydium quote failed for {input_mint} -> {output_mint}: {e}")
            self._failures += 1
            return None

        if not data or not data.get("success"):
            logger.warning(f"Raydium has no route for {input_mint} -> {output_mint}: {(data or {}).get('msg')}")
            self._failures += 1
            return None

        swap = data.get("data") or {}
        out_amount = swap.get("outputAmount")
        logger.info(f"Raydium quote: {amount} {input_mint[:8]}... -> {out_amount} {output_mint[:8]}...")
        return Quote(
            venue=self.venue,
            input_mint=input_mint,
            output_mint=output_mint,
            in_amount=amount,
            out_amount=int(out_amount) if out_amount is not None else None,
            raw=data,
        )

    async def swap(self, quote: Quote) -> Optional[str]:
        try:
            data = await self._request(
                "POST",
                f"{self.api_url}/transaction/swap-base-in",
                json={
                    "computeUnitPriceMicroLamports": str(self.priority_fee_micro_lamports),
                    "swapResponse": quote.raw,
                    "txVersion": "V0",
                    "wallet": self.owner,
                    "wrapSol": quote.input_mint == SOL_MINT,
                    "unwrapSol": quote.output_mint == SOL_MINT,
                },
            )
        except aiohttp.ClientError as e:
            logger.error(f"Raydium transaction build failed: {e}")
            self._failures += 1
            return None

        data = data or {}
        transactions = data.get("data") or []
        if not data.get("success") or not transactions:
            logger.warning(f"Raydium returned no transaction: {data.get('msg')}")
            self._failures += 1
            return None

        signature = None
        try:
            for item in transactions:
                signature = await self._sign_and_send(item["transaction"], skip_preflight=True)
        except (RpcError, aiohttp.ClientError) as e:
            logger.error(f"Raydium swap submission failed: {e}")
            self._failures += 1
            return None

        self._swaps += 1
        logger.success(f"Raydium swap sent: https://solscan.io/tx/{signature}")
        return signature
