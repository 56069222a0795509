"""
PumpPortal venue - pump.fun bonding curve via the Lightning trade API
"""

from typing import Optional

import aiohttp
from loguru import logger

from src.core.models import SOL_MINT, Quote, Venue
from .base import VenueAdapter

PUMP_FUN_PROGRAM_ID = "6EF8rrecthR5Dkzon8Nwu78hRvfCKubJ14M5uBEwF6P"


class PumpPortalVenue(VenueAdapter):
    """
    Bonding-curve trades through PumpPortal.

    The Lightning API signs and submits with the wallet linked to the API
    key, so there is no local signing. Amounts are sent in UI units: SOL for
    buys, tokens for sells.
    """

    PROGRAM_IDS = (PUMP_FUN_PROGRAM_ID,)
    LOG_MARKERS = ("pump-portal",)

    def __init__(self, config: dict, *args, **kwargs):
        super().__init__(config, *args, **kwargs)
        self.api_url = config.get("api_url", "https://pumpportal.fun/api/trade")
        self.api_key = config.get("api_key") or ""
        self.pool = config.get("pool", "pump")
        # PumpPortal takes slippage in percent and priority fee in SOL
        self.priority_fee_sol = float(config.get("priority_fee_sol", 0.00005))

    @property
    def venue(self) -> Venue:
        return Venue.PUMP_PORTAL

    async def quote(self, input_mint: str, output_mint: str, amount: int, decimals: int) -> Optional[Quote]:
        """
        PumpPortal has no quote endpoint; the quote just captures the trade
        request that swap() will post.
        """
        self._quotes += 1
        if not self.api_key:
            logger.error("PumpPortal API key not configured")
            self._failures += 1
            return None

        is_buy = input_mint == SOL_MINT
        mint = output_mint if is_buy else input_mint
        payload = {
            "action": "buy" if is_buy else "sell",
            "mint": mint,
            "amount": amount / (10 ** decimals),
            "denominatedInSol": "true" if is_buy else "false",
            "slippage": self.slippage * 100,
            "priorityFee": self.priority_fee_sol,
            "pool": self.pool,
        }
        return Quote(
            venue=self.venue,
            input_mint=input_mint,
            output_mint=output_mint,
            in_amount=amount,
            raw=payload,
        )

    async def swap(self, quote: Quote) -> Optional[str]:
        try:
            data = await self._request(
                "POST",
                self.api_url,
                params={"api-key": self.api_key},
                json=quote.raw,
            )
        except aiohttp.ClientError as e:
            logger.error(f"PumpPortal trade failed: {e}")
            self._failures += 1
            return None

        signature = (data or {}).get("signature")
        if not signature:
            logger.warning(f"PumpPortal returned no signature: {(data or {}).get('errors')}")
            self._failures += 1
            return None

        self._swaps += 1
        logger.success(f"PumpPortal transaction sent: https://solscan.io/tx/{signature}")
        return signature
