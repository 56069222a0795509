"""
Telegram notifications for mirrored trades
"""

from datetime import datetime
from typing import Callable, List, Optional

from telegram import Bot, Update
from telegram.constants import ParseMode
from telegram.ext import (
    Application,
    CommandHandler,
    ContextTypes
)
from loguru import logger

from src.core.models import Direction, SwapResult

SOLSCAN_TX_URL = "https://solscan.io/tx/"


def _tx_line(result: SwapResult) -> str:
    if result.is_dry_run:
        return "Transaction: (dry run)"
    return f"Transaction: {SOLSCAN_TX_URL}{result.signature}"


def _prefix(result: SwapResult) -> str:
    return "[DRY RUN] " if result.is_dry_run else ""


def format_buy(result: SwapResult) -> str:
    return (
        f"{_prefix(result)}🟢 <b>Buy ({result.venue.display_name})</b>\n"
        f"Token: {result.mint}\n"
        f"Amount: {result.sol_amount:.4f} SOL\n"
        f"{_tx_line(result)}"
    )


def format_sell(result: SwapResult, token_amount: float, pnl_sol: float, pnl_pct: float) -> str:
    sign = "+" if pnl_sol >= 0 else ""
    return (
        f"{_prefix(result)}🔴 <b>Sell ({result.venue.display_name})</b>\n"
        f"Token: {result.mint}\n"
        f"Amount: {token_amount:.4f} tokens\n"
        f"Received: {result.sol_amount:.4f} SOL\n"
        f"P/L: {sign}{pnl_sol:.4f} SOL ({pnl_pct:.2f}%)\n"
        f"{_tx_line(result)}"
    )


def format_unconfirmed(signature: str, venue, direction: Optional[Direction], mint: str) -> str:
    action = direction.value if direction else "swap"
    venue_name = getattr(venue, "display_name", venue or "unknown venue")
    return (
        f"⚠️ <b>Unconfirmed {action} ({venue_name})</b>\n"
        f"Token: {mint}\n"
        f"Not confirmed in time; position not updated. Check manually.\n"
        f"Transaction: {SOLSCAN_TX_URL}{signature}"
    )


class TelegramNotifier:
    """
    Telegram channel for trade notifications.

    send() never raises: failures are logged and reported as False.

    Commands (when started):
    - /status - Engine statistics
    - /positions - Ledger per token
    - /help - Help message
    """

    def __init__(
        self,
        token: Optional[str],
        chat_id: Optional[str],
        config: Optional[dict] = None,
        status_provider: Optional[Callable[[], dict]] = None,
        positions_provider: Optional[Callable[[], List[dict]]] = None,
    ):
        """
        Initialize Telegram notifier.

        Args:
            token: Telegram bot token
            chat_id: Chat ID to send notifications to
            config: Optional configuration
            status_provider: Returns engine stats for /status
            positions_provider: Returns per-token positions for /positions
        """
        self.token = token
        self.chat_id = chat_id
        self.config = config or {}
        self.status_provider = status_provider
        self.positions_provider = positions_provider

        self._bot: Optional[Bot] = None
        self._app: Optional[Application] = None
        self._is_running = False

        # Rate limiting
        self._window_start: Optional[datetime] = None
        self._alerts_this_minute = 0
        self._max_alerts_per_minute = self.config.get('max_alerts_per_minute', 20)

        # Stats
        self._alerts_sent = 0
        self._alerts_failed = 0
        self._start_time = datetime.utcnow()

        if not self.enabled:
            logger.warning("Telegram not configured - notifications disabled")

    @property
    def enabled(self) -> bool:
        return bool(self.token and self.chat_id)

    async def initialize(self):
        """Initialize the bot application"""
        self._app = (
            Application.builder()
            .token(self.token)
            .build()
        )

        self._app.add_handler(CommandHandler("status", self._cmd_status))
        self._app.add_handler(CommandHandler("positions", self._cmd_positions))
        self._app.add_handler(CommandHandler("help", self._cmd_help))

        self._bot = self._app.bot
        logger.info("Telegram bot initialized")

    async def start(self):
        """Start the bot (for receiving commands)"""
        if not self.enabled:
            return
        if not self._app:
            await self.initialize()

        self._is_running = True

        await self._app.initialize()
        await self._app.start()
        await self._app.updater.start_polling(drop_pending_updates=True)

        logger.info("Telegram bot started")

    async def stop(self):
        """Stop the bot"""
        if self._app and self._is_running:
            await self._app.updater.stop()
            await self._app.stop()
            await self._app.shutdown()

        self._is_running = False
        logger.info("Telegram bot stopped")

    async def send(self, text: str) -> bool:
        """
        Send an HTML message to the configured chat.

        Returns:
            True if sent successfully
        """
        if not self.enabled:
            logger.debug(f"Telegram disabled, not sending: {text[:60]}")
            return False

        if not self._check_rate_limit():
            logger.warning("Rate limit exceeded, skipping notification")
            return False

        try:
            if not self._bot:
                await self.initialize()

            await self._bot.send_message(
                chat_id=self.chat_id,
                text=text,
                parse_mode=ParseMode.HTML,
                disable_web_page_preview=True
            )

            self._alerts_sent += 1
            self._record_alert_sent()
            logger.debug("Notification sent to Telegram")
            return True

        except Exception as e:
            self._alerts_failed += 1
            logger.error(f"Failed to send Telegram message: {e}")
            return False

    async def notify_buy(self, result: SwapResult) -> bool:
        return await self.send(format_buy(result))

    async def notify_sell(self, result: SwapResult, token_amount: float, pnl_sol: float, pnl_pct: float) -> bool:
        return await self.send(format_sell(result, token_amount, pnl_sol, pnl_pct))

    async def notify_unconfirmed(self, signature: str, venue, direction: Optional[Direction], mint: str) -> bool:
        return await self.send(format_unconfirmed(signature, venue, direction, mint))

    async def send_test_alert(self) -> bool:
        """Send a test message to verify the bot token and chat id"""
        message = (
            "🧪 <b>Copy trader test message</b>\n\n"
            "If you can read this, Telegram notifications are working.\n"
            f"Sent at {datetime.utcnow().strftime('%Y-%m-%d %H:%M:%S')} UTC"
        )
        return await self.send(message)

    def _check_rate_limit(self) -> bool:
        """Check if we're within rate limits"""
        now = datetime.utcnow()

        # Reset counter every minute
        if self._window_start is None or (now - self._window_start).total_seconds() >= 60:
            self._window_start = now
            self._alerts_this_minute = 0

        return self._alerts_this_minute < self._max_alerts_per_minute

    def _record_alert_sent(self):
        """Record that an alert was sent"""
        self._alerts_this_minute += 1

    def get_stats(self) -> dict:
        return {
            "enabled": self.enabled,
            "sent": self._alerts_sent,
            "failed": self._alerts_failed,
        }

    # ==================== Command Handlers ====================

    async def _cmd_status(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /status command"""
        uptime = datetime.utcnow() - self._start_time
        hours = int(uptime.total_seconds() // 3600)
        minutes = int((uptime.total_seconds() % 3600) // 60)

        lines = [
            "📊 <b>Copy Trader Status</b>\n",
            f"<b>Uptime:</b> {hours}h {minutes}m",
            f"<b>Notifications sent:</b> {self._alerts_sent}",
        ]
        if self.status_provider:
            for key, value in self.status_provider().items():
                if isinstance(value, dict):
                    continue
                lines.append(f"<b>{key.replace('_', ' ').title()}:</b> {value}")

        await update.message.reply_text("\n".join(lines), parse_mode=ParseMode.HTML)

    async def _cmd_positions(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /positions command"""
        positions = self.positions_provider() if self.positions_provider else []
        if not positions:
            await update.message.reply_text("No positions yet.")
            return

        lines = ["💼 <b>Positions</b>\n"]
        for pos in positions[:15]:
            lines.append(
                f"<code>{pos['mint'][:8]}...</code> "
                f"held {pos['controlled_bought'] - pos['controlled_sold']:.4f} "
                f"(cost {pos['cost_sol']:.4f} SOL, revenue {pos['revenue_sol']:.4f} SOL)"
            )

        await update.message.reply_text("\n".join(lines), parse_mode=ParseMode.HTML)

    async def _cmd_help(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /help command"""
        message = (
            "🤖 <b>Copy Trader Help</b>\n\n"
            "Mirrors the source wallet's Raydium, PumpPortal and PumpSwap trades "
            "at a fixed fraction of its size.\n\n"
            "<b>Commands:</b>\n"
            "/status - Engine statistics\n"
            "/positions - Positions per token"
        )
        await update.message.reply_text(message, parse_mode=ParseMode.HTML)
