"""
Solana JSON-RPC client for the copy trader.

Covers the ledger reads the decision engine needs (parsed transactions,
native and token balances, mint decimals, latest signature, signature
status) plus raw transaction submission for locally signed swaps.
"""

import asyncio
import base64
import logging
from typing import Any, Dict, List, Optional

import aiohttp
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .exceptions import RpcError, TransactionUnavailable
from .models import LAMPORTS_PER_SOL, SOL_DECIMALS, SOL_MINT, TokenBalance

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_DECIMALS = 6


class SolanaClient:
    """
    Async Solana RPC client.

    Transport errors (connection resets, timeouts) are retried with
    exponential backoff; RPC error payloads raise RpcError immediately.
    """

    DEFAULT_RPC_URL = "https://api.mainnet-beta.solana.com"
    COMMITMENT = "confirmed"

    # Parsed transaction fetch budget
    FETCH_ATTEMPTS = 5
    FETCH_INTERVAL = 2.0

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        session: Optional[aiohttp.ClientSession] = None,
        fetch_attempts: int = FETCH_ATTEMPTS,
        fetch_interval: float = FETCH_INTERVAL,
    ):
        """
        Args:
            rpc_url: HTTP RPC endpoint
            session: Optional aiohttp session (created if not provided)
            fetch_attempts: Attempts when waiting for a parsed transaction
            fetch_interval: Fixed seconds between those attempts
        """
        self.rpc_url = rpc_url or self.DEFAULT_RPC_URL
        self.fetch_attempts = fetch_attempts
        self.fetch_interval = fetch_interval

        self._session = session
        self._owns_session = session is None
        self._request_id = 0

        # mint -> decimals, filled lazily
        self._decimals_cache: Dict[str, int] = {SOL_MINT: SOL_DECIMALS}

        # Stats
        self._requests = 0
        self._errors = 0

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create an aiohttp session"""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=30),
                headers={"Content-Type": "application/json"},
            )
            self._owns_session = True
        return self._session

    async def close(self):
        """Close the session if we own it"""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    @retry(
        retry=retry_if_exception_type((aiohttp.ClientError, asyncio.TimeoutError)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, max=4),
        reraise=True,
    )
    async def _rpc(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """Send one JSON-RPC request and return its `result` field."""
        session = await self._get_session()
        self._request_id += 1
        self._requests += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }

        async with session.post(self.rpc_url, json=payload) as response:
            if response.status == 429:
                logger.warning(f"RPC rate limited on {method}")
                raise aiohttp.ClientResponseError(
                    response.request_info, response.history, status=429, message="rate limited"
                )
            response.raise_for_status()
            body = await response.json()

        if body.get("error"):
            self._errors += 1
            raise RpcError(method, body["error"])
        return body.get("result")

    # =========================================================================
    # Transactions
    # =========================================================================

    async def get_parsed_transaction(self, signature: str) -> Optional[dict]:
        """Fetch a jsonParsed transaction, or None if the node doesn't have it yet."""
        return await self._rpc(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "jsonParsed",
                    "maxSupportedTransactionVersion": 0,
                    "commitment": self.COMMITMENT,
                },
            ],
        )

    async def fetch_transaction(self, signature: str) -> dict:
        """
        Fetch a parsed transaction, waiting for it to become available.

        Retries with a fixed interval until the transaction has `meta` and
        `blockTime`.

        Raises:
            TransactionUnavailable: if the retry budget is exhausted
        """
        for attempt in range(self.fetch_attempts):
            tx = await self.get_parsed_transaction(signature)
            if tx and tx.get("meta") and tx.get("blockTime"):
                return tx

            logger.warning(
                f"Attempt {attempt + 1}/{self.fetch_attempts}: transaction {signature[:16]}... not found, retrying"
            )
            if attempt < self.fetch_attempts - 1:
                await asyncio.sleep(self.fetch_interval)

        raise TransactionUnavailable(signature, self.fetch_attempts)

    async def get_latest_signature(self, address: str) -> Optional[str]:
        """Most recent signature touching `address`."""
        result = await self._rpc(
            "getSignaturesForAddress",
            [address, {"limit": 1, "commitment": self.COMMITMENT}],
        )
        if not result:
            return None
        return result[0].get("signature")

    async def get_signature_status(self, signature: str) -> Optional[str]:
        """confirmationStatus (processed/confirmed/finalized) or None if unknown."""
        result = await self._rpc(
            "getSignatureStatuses",
            [[signature], {"searchTransactionHistory": False}],
        )
        statuses = (result or {}).get("value") or []
        if not statuses or statuses[0] is None:
            return None
        if statuses[0].get("err"):
            return "failed"
        return statuses[0].get("confirmationStatus")

    async def send_raw_transaction(self, tx_bytes: bytes, skip_preflight: bool = False) -> str:
        """Submit a signed, serialized transaction; returns its signature."""
        encoded = base64.b64encode(tx_bytes).decode("ascii")
        return await self._rpc(
            "sendTransaction",
            [
                encoded,
                {
                    "encoding": "base64",
                    "skipPreflight": skip_preflight,
                    "preflightCommitment": self.COMMITMENT,
                    "maxRetries": 3,
                },
            ],
        )

    # =========================================================================
    # Balances
    # =========================================================================

    async def get_balance(self, owner: str) -> float:
        """Native SOL balance of `owner`."""
        result = await self._rpc("getBalance", [owner, {"commitment": self.COMMITMENT}])
        lamports = result.get("value", 0) if isinstance(result, dict) else (result or 0)
        return lamports / LAMPORTS_PER_SOL

    async def get_token_balance(self, owner: str, mint: str) -> TokenBalance:
        """
        Token balance of `owner` for `mint`, summed over all its token accounts.

        An owner with no token account for the mint has a zero balance.
        """
        result = await self._rpc(
            "getTokenAccountsByOwner",
            [owner, {"mint": mint}, {"encoding": "jsonParsed", "commitment": self.COMMITMENT}],
        )
        accounts = (result or {}).get("value") or []

        raw_units = 0
        decimals: Optional[int] = None
        for account in accounts:
            info = account.get("account", {}).get("data", {}).get("parsed", {}).get("info", {})
            token_amount = info.get("tokenAmount") or {}
            raw_units += int(token_amount.get("amount", "0"))
            if token_amount.get("decimals") is not None:
                decimals = int(token_amount["decimals"])

        if decimals is None:
            decimals = await self.get_token_decimals(mint)
        else:
            self.remember_decimals(mint, decimals)

        balance = TokenBalance(
            quantity=raw_units / (10 ** decimals),
            decimals=decimals,
            raw_units=raw_units,
        )
        logger.debug(f"Token balance for {mint[:8]}... owned by {owner[:8]}...: {balance.quantity}")
        return balance

    def remember_decimals(self, mint: str, decimals: int):
        """Seed the decimals cache (e.g. from uiTokenAmount in a parsed tx)."""
        self._decimals_cache[mint] = int(decimals)

    async def get_token_decimals(self, mint: str) -> int:
        """Decimals of `mint`, cached after the first lookup."""
        if mint in self._decimals_cache:
            return self._decimals_cache[mint]

        try:
            result = await self._rpc("getParsedAccountInfo", [mint, {"encoding": "jsonParsed"}])
            value = (result or {}).get("value") or {}
            data = value.get("data")
            decimals = data.get("parsed", {}).get("info", {}).get("decimals") if isinstance(data, dict) else None
        except (RpcError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Failed to read mint {mint[:8]}...: {e}")
            decimals = None

        if decimals is None:
            logger.warning(f"Failed to fetch decimals for mint {mint}, defaulting to {DEFAULT_TOKEN_DECIMALS}")
            return DEFAULT_TOKEN_DECIMALS

        self._decimals_cache[mint] = int(decimals)
        return int(decimals)

    def get_stats(self) -> dict:
        return {
            "rpc_url": self.rpc_url,
            "requests": self._requests,
            "errors": self._errors,
            "cached_mints": len(self._decimals_cache),
        }
