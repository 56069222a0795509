"""
Base venue interface for mirrored swaps
"""

import asyncio
import base64
from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional, Set

import aiohttp
from loguru import logger
from solders.keypair import Keypair
from solders.transaction import VersionedTransaction
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from src.core.models import Quote, Venue
from src.core.solana_client import SolanaClient


def referenced_programs(tx: dict) -> Set[str]:
    """
    Every program id a parsed transaction touches: outer instructions,
    inner instructions and the account keys themselves.
    """
    message = tx.get("transaction", {}).get("message", {})
    meta = tx.get("meta") or {}

    programs: Set[str] = set()
    for instr in message.get("instructions") or []:
        if instr.get("programId"):
            programs.add(instr["programId"])
    for inner in meta.get("innerInstructions") or []:
        for instr in inner.get("instructions") or []:
            if instr.get("programId"):
                programs.add(instr["programId"])
    for key in message.get("accountKeys") or []:
        programs.add(key.get("pubkey") if isinstance(key, dict) else key)
    return programs


def log_messages(tx: dict) -> Iterable[str]:
    return (tx.get("meta") or {}).get("logMessages") or []


class VenueAdapter(ABC):
    """
    Abstract base class for swap venues.

    A venue recognises its own transactions (program id, log marker or feed
    hint, any one is enough) and can quote and execute a swap for the
    controlled wallet.
    """

    PROGRAM_IDS: tuple = ()
    LOG_MARKERS: tuple = ()

    def __init__(
        self,
        config: dict,
        client: SolanaClient,
        keypair: Optional[Keypair] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """
        Initialize venue client.

        Args:
            config: Venue configuration (API URLs, slippage, priority fee)
            client: RPC client used to submit locally signed transactions
            keypair: Controlled wallet keypair (required for live swaps)
            session: Optional shared aiohttp session
        """
        self.config = config
        self.client = client
        self.keypair = keypair
        self.slippage = float(config.get("slippage", 0.05))
        self.priority_fee_micro_lamports = int(config.get("priority_fee_micro_lamports", 100_000))

        self._session = session
        self._owns_session = session is None

        self._quotes = 0
        self._swaps = 0
        self._failures = 0

    @property
    @abstractmethod
    def venue(self) -> Venue:
        """Return the venue enum value"""
        pass

    @property
    def owner(self) -> str:
        if self.keypair is None:
            raise ValueError(f"{self.venue.display_name} needs a wallet keypair to trade")
        return str(self.keypair.pubkey())

    @property
    def slippage_bps(self) -> int:
        return int(self.slippage * 10_000)

    def matches(self, tx: dict, venue_hint: Optional[Venue] = None) -> bool:
        """True if any of this venue's signals is present."""
        if venue_hint == self.venue:
            return True
        if self.PROGRAM_IDS and referenced_programs(tx) & set(self.PROGRAM_IDS):
            return True
        return any(marker in line for line in log_messages(tx) for marker in self.LOG_MARKERS)

    @abstractmethod
    async def quote(self, input_mint: str, output_mint: str, amount: int, decimals: int) -> Optional[Quote]:
        """
        Quote a swap of `amount` raw units of `input_mint` into `output_mint`.

        Returns None when the venue can't route the pair.
        """
        pass

    @abstractmethod
    async def swap(self, quote: Quote) -> Optional[str]:
        """Execute a quoted swap; returns the transaction signature or None."""
        pass

    # ==================== HTTP ====================

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session"""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=30),
                headers={"Accept": "application/json"},
            )
            self._owns_session = True
        return self._session

    async def close(self):
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    @retry(
        retry=retry_if_exception_type((aiohttp.ClientError, asyncio.TimeoutError)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, max=10),
        reraise=True,
    )
    async def _request(self, method: str, url: str, params: Optional[dict] = None, json: Any = None) -> Any:
        """Make HTTP request with retry logic"""
        session = await self._get_session()
        async with session.request(method, url, params=params, json=json) as response:
            if response.status == 429:
                logger.warning(f"{self.venue.display_name} rate limited on {url}")
            if response.status >= 400:
                body = await response.text()
                logger.error(f"{self.venue.display_name} HTTP {response.status}: {body[:300]}")
            response.raise_for_status()
            return await response.json(content_type=None)

    # ==================== Signing ====================

    async def _sign_and_send(self, tx_b64: str, skip_preflight: bool = False) -> str:
        """Sign a venue-built transaction with the controlled wallet and submit it."""
        unsigned = VersionedTransaction.from_bytes(base64.b64decode(tx_b64))
        signed = VersionedTransaction(unsigned.message, [self.keypair])
        return await self.client.send_raw_transaction(bytes(signed), skip_preflight=skip_preflight)

    def get_stats(self) -> dict:
        return {
            "venue": self.venue.value,
            "quotes": self._quotes,
            "swaps": self._swaps,
            "failures": self._failures,
        }
