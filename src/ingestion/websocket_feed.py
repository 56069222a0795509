"""
WebSocket feeds that notify the copy engine about source-wallet activity.

- AccountFeed: Solana RPC `accountSubscribe` on the source wallet; each
  change is resolved to the wallet's latest signature.
- PumpPortalFeed: PumpPortal trade stream (`subscribeAccountTrade`), which
  already reports mint, side and amounts.
"""

import asyncio
import json
import logging
from datetime import datetime
from typing import Awaitable, Callable, Optional

import aiohttp
import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..core.exceptions import RpcError
from ..core.models import Direction, FeedEvent, Venue
from ..core.solana_client import SolanaClient

logger = logging.getLogger(__name__)

EventCallback = Callable[[FeedEvent], Awaitable[None]]


class SubscriptionFeed:
    """
    Long-lived WebSocket subscription with fixed-delay reconnects.

    Messages are handled one at a time: the event callback is awaited to
    completion before the next message on this stream is read.
    """

    name = "feed"

    def __init__(
        self,
        url: str,
        on_event: Optional[EventCallback] = None,
        reconnect_delay: float = 5.0,
    ):
        """
        Args:
            url: WebSocket endpoint
            on_event: Async callback for each FeedEvent
            reconnect_delay: Seconds to wait before reconnecting
        """
        self.url = url
        self.on_event = on_event
        self.reconnect_delay = reconnect_delay

        # Connection state
        self._ws = None
        self._running = False
        self._connected = False
        self._reconnect_count = 0

        # Stats
        self._messages_received = 0
        self._events_emitted = 0
        self._last_message_time: Optional[datetime] = None

    async def connect(self):
        """Connect and keep reconnecting until disconnect() is called"""
        self._running = True

        while self._running:
            try:
                logger.info(f"Connecting {self.name} to {self.url}")

                async with websockets.connect(
                    self.url,
                    ping_interval=30,
                    ping_timeout=10,
                    close_timeout=5,
                ) as ws:
                    self._ws = ws
                    self._connected = True
                    logger.info(f"{self.name} connected")

                    await self._subscribe()
                    await self._message_loop()

            except ConnectionClosed as e:
                logger.warning(f"{self.name} connection closed: {e}")
            except (OSError, asyncio.TimeoutError, WebSocketException) as e:
                logger.error(f"{self.name} error: {e}")

            self._connected = False
            self._ws = None

            if self._running:
                self._reconnect_count += 1
                logger.info(f"Reconnecting {self.name} in {self.reconnect_delay}s (attempt {self._reconnect_count})")
                await asyncio.sleep(self.reconnect_delay)

    async def disconnect(self):
        """Disconnect from the WebSocket"""
        self._running = False
        if self._ws:
            await self._ws.close()
        self._connected = False
        logger.info(f"{self.name} disconnected")

    async def _send(self, payload: dict):
        await self._ws.send(json.dumps(payload))

    async def _subscribe(self):
        raise NotImplementedError

    async def _message_loop(self):
        """Process incoming WebSocket messages"""
        async for message in self._ws:
            self._messages_received += 1
            self._last_message_time = datetime.utcnow()

            try:
                data = json.loads(message)
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON message: {message[:100]}")
                continue

            await self._handle_message(data)

    async def _handle_message(self, data):
        raise NotImplementedError

    async def _emit(self, event: FeedEvent):
        self._events_emitted += 1
        if self.on_event:
            await self.on_event(event)

    def get_stats(self) -> dict:
        """Get feed statistics"""
        return {
            "connected": self._connected,
            "running": self._running,
            "reconnect_count": self._reconnect_count,
            "messages_received": self._messages_received,
            "events_emitted": self._events_emitted,
            "last_message": (
                self._last_message_time.isoformat() if self._last_message_time else None
            ),
        }


class AccountFeed(SubscriptionFeed):
    """
    Source-wallet account subscription over the Solana RPC WebSocket.

    Account notifications carry no signature, so each one is followed by a
    `getSignaturesForAddress(limit=1)` lookup.
    """

    name = "account feed"

    def __init__(self, url: str, wallet: str, client: SolanaClient, **kwargs):
        super().__init__(url, **kwargs)
        self.wallet = wallet
        self.client = client
        self._subscription_id: Optional[int] = None

    async def _subscribe(self):
        await self._send({
            "jsonrpc": "2.0",
            "id": 1,
            "method": "accountSubscribe",
            "params": [self.wallet, {"encoding": "jsonParsed", "commitment": "confirmed"}],
        })
        logger.info(f"Subscribed to account {self.wallet}")

    async def _handle_message(self, data):
        if not isinstance(data, dict):
            logger.debug(f"Unexpected message format: {type(data)}")
            return

        if data.get("method") == "accountNotification":
            await self._handle_notification(data)
        elif "result" in data and data.get("id") == 1:
            self._subscription_id = data["result"]
            logger.debug(f"Account subscription confirmed: {self._subscription_id}")
        elif "error" in data:
            logger.error(f"Account subscription error: {data['error']}")
        else:
            logger.debug(f"Unknown message: {str(data)[:100]}")

    async def _handle_notification(self, data: dict):
        try:
            signature = await self.client.get_latest_signature(self.wallet)
        except (RpcError, aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Failed to look up latest signature for {self.wallet}: {e}")
            return

        if not signature:
            logger.warning(f"Account changed but no signature found for {self.wallet}")
            return

        logger.info(f"Account change on {self.wallet[:8]}...: {signature}")
        await self._emit(FeedEvent(signature=signature, source="account", wallet=self.wallet, raw=data))


class PumpPortalFeed(SubscriptionFeed):
    """Source-wallet trades from the PumpPortal data stream."""

    name = "PumpPortal feed"
    DEFAULT_URL = "wss://pumpportal.fun/api/data"

    def __init__(self, wallet: str, url: Optional[str] = None, **kwargs):
        super().__init__(url or self.DEFAULT_URL, **kwargs)
        self.wallet = wallet

    async def _subscribe(self):
        await self._send({"method": "subscribeAccountTrade", "keys": [self.wallet]})
        logger.info(f"Subscribed to PumpPortal trades for {self.wallet}")

    async def _handle_message(self, data):
        if not isinstance(data, dict):
            logger.debug(f"Unexpected message format: {type(data)}")
            return

        if "message" in data and "txType" not in data:
            logger.debug(f"PumpPortal: {data['message']}")
            return
        if "errors" in data:
            logger.error(f"PumpPortal error: {data['errors']}")
            return

        event = self._parse_trade(data)
        if event is None:
            logger.debug(f"Ignoring PumpPortal message: {str(data)[:100]}")
            return

        logger.info(
            f"PumpPortal {event.direction.value} by {(event.wallet or '?')[:8]}...: "
            f"{event.token_amount} of {event.mint[:8]}... for {event.sol_amount} SOL ({data.get('pool')})"
        )
        await self._emit(event)

    @staticmethod
    def _parse_trade(data: dict) -> Optional[FeedEvent]:
        tx_type = (data.get("txType") or "").lower()
        if tx_type not in ("buy", "sell"):
            return None
        if not data.get("mint"):
            return None

        try:
            token_amount = float(data.get("tokenAmount"))
            sol_amount = float(data.get("solAmount"))
        except (TypeError, ValueError):
            return None

        return FeedEvent(
            signature=data.get("signature"),
            source="pump_portal",
            wallet=data.get("traderPublicKey"),
            mint=data["mint"],
            direction=Direction.BUY if tx_type == "buy" else Direction.SELL,
            token_amount=token_amount,
            sol_amount=sol_amount,
            venue_hint=Venue.from_pool(data.get("pool")),
            raw=data,
        )
