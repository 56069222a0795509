"""
PumpSwap venue - pump.fun AMM routed through the Jupiter v6 API
"""

from typing import Optional

import aiohttp
from loguru import logger

from src.core.exceptions import RpcError
from src.core.models import Quote, Venue
from .base import VenueAdapter

PUMPSWAP_PROGRAM_ID = "pAMMBay6oceH9fJKBRHGP5D4bD4sWpmSwMn52FMfXEA"
PUMPSWAP_DEX_LABEL = "Pump.fun Amm"


class PumpSwapVenue(VenueAdapter):
    """
    Swaps against PumpSwap pools via Jupiter.

    The quote is first restricted to the PumpSwap AMM; if Jupiter can't
    route the pair there, an unrestricted route is used instead.
    """

    PROGRAM_IDS = (PUMPSWAP_PROGRAM_ID,)
    LOG_MARKERS = ("pump-amm", "Instruction: Buy", "Instruction: Sell")

    def __init__(self, config: dict, *args, **kwargs):
        super().__init__(config, *args, **kwargs)
        self.quote_url = config.get("quote_url", "https://quote-api.jup.ag/v6/quote")
        self.swap_url = config.get("swap_url", "https://quote-api.jup.ag/v6/swap")
        self.restrict_to_pumpswap = config.get("restrict_to_pumpswap", True)

    @property
    def venue(self) -> Venue:
        return Venue.PUMPSWAP

    async def _jupiter_quote(self, input_mint: str, output_mint: str, amount: int, dexes: Optional[str]) -> Optional[dict]:
        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(amount),
            "slippageBps": str(self.slippage_bps),
        }
        if dexes:
            params["dexes"] = dexes
        try:
            data = await self._request("GET", self.quote_url, params=params)
        except aiohttp.ClientError as e:
            logger.warning(f"Jupiter quote failed ({dexes or 'any route'}): {e}")
            return None
        if not data or "error" in data or not data.get("routePlan"):
            return None
        return data

    @staticmethod
    def _routes_through_pumpswap(quote: dict) -> bool:
        for step in quote.get("routePlan") or []:
            info = step.get("swapInfo") or {}
            if info.get("label") in ("PumpSwap", PUMPSWAP_DEX_LABEL) or info.get("ammKey") == PUMPSWAP_PROGRAM_ID:
                return True
        return False

    async def quote(self, input_mint: str, output_mint: str, amount: int, decimals: int) -> Optional[Quote]:
        self._quotes += 1
        data = None
        if self.restrict_to_pumpswap:
            data = await self._jupiter_quote(input_mint, output_mint, amount, PUMPSWAP_DEX_LABEL)
            if data is None:
                logger.info(f"No PumpSwap pool for {input_mint[:8]}... -> {output_mint[:8]}..., trying any route")
        if data is None:
            data = await self._jupiter_quote(input_mint, output_mint, amount, None)
        if data is None:
            logger.warning(f"Jupiter has no route for {input_mint} -> {output_mint}")
            self._failures += 1
            return None

        route = "PumpSwap" if self._routes_through_pumpswap(data) else "Jupiter"
        logger.info(f"{route} quote: {data.get('inAmount')} {input_mint[:8]}... -> {data.get('outAmount')} {output_mint[:8]}...")
        return Quote(
            venue=self.venue,
            input_mint=input_mint,
            output_mint=output_mint,
            in_amount=int(data.get("inAmount", amount)),
            out_amount=int(data["outAmount"]) if data.get("outAmount") is not None else None,
            raw=data,
        )

    async def swap(self, quote: Quote) -> Optional[str]:
        try:
            data = await self._request(
                "POST",
                self.swap_url,
                json={
                    "quoteResponse": quote.raw,
                    "userPublicKey": self.owner,
                    "wrapAndUnwrapSol": True,
                    "dynamicComputeUnitLimit": True,
                    "computeUnitPriceMicroLamports": self.priority_fee_micro_lamports,
                },
            )
        except aiohttp.ClientError as e:
            logger.error(f"Jupiter swap build failed: {e}")
            self._failures += 1
            return None

        swap_tx = (data or {}).get("swapTransaction")
        if not swap_tx:
            logger.warning("Jupiter returned no swap transaction")
            self._failures += 1
            return None

        try:
            signature = await self._sign_and_send(swap_tx)
        except (RpcError, aiohttp.ClientError) as e:
            logger.error(f"PumpSwap submission failed: {e}")
            self._failures += 1
            return None

        self._swaps += 1
        logger.success(f"PumpSwap swap sent: https://solscan.io/tx/{signature}")
        return signature
