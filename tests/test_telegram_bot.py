"""Tests for Telegram notification formatting and delivery."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import MINT
from src.alerts.telegram_bot import TelegramNotifier, format_buy, format_sell, format_unconfirmed
from src.core.models import Direction, SwapResult, Venue


def make_result(status="confirmed", direction=Direction.BUY, sol_amount=0.2, venue=Venue.RAYDIUM):
    return SwapResult(
        signature="5xSig",
        venue=venue,
        direction=direction,
        mint=MINT,
        in_amount=200_000_000,
        sol_amount=sol_amount,
        status=status,
    )


@pytest.fixture
def telegram():
    notifier = TelegramNotifier("token", "chat", {"max_alerts_per_minute": 2})
    notifier._bot = MagicMock()
    notifier._bot.send_message = AsyncMock()
    return notifier


class TestFormatting:
    def test_buy(self):
        text = format_buy(make_result())
        assert "Buy (Raydium)" in text
        assert f"Token: {MINT}" in text
        assert "Amount: 0.2000 SOL" in text
        assert "https://solscan.io/tx/5xSig" in text
        assert not text.startswith("[DRY RUN]")

    def test_sell(self):
        text = format_sell(make_result(direction=Direction.SELL, sol_amount=1.0, venue=Venue.PUMPSWAP), 5.0, 0.9, 900.0)
        assert "Sell (PumpSwap)" in text
        assert "Amount: 5.0000 tokens" in text
        assert "Received: 1.0000 SOL" in text
        assert "P/L: +0.9000 SOL (900.00%)" in text

    def test_sell_loss(self):
        text = format_sell(make_result(direction=Direction.SELL, sol_amount=0.1), 10.0, -0.1, -50.0)
        assert "P/L: -0.1000 SOL (-50.00%)" in text

    def test_dry_run_prefixed(self):
        text = format_buy(make_result(status="dry_run"))
        assert text.startswith("[DRY RUN] ")
        assert "Transaction: (dry run)" in text
        assert "solscan" not in text

    def test_unconfirmed(self):
        text = format_unconfirmed("5xSig", Venue.PUMP_PORTAL, Direction.SELL, MINT)
        assert "Unconfirmed sell (PumpPortal)" in text
        assert "5xSig" in text


class TestDelivery:
    async def test_disabled_without_credentials(self):
        notifier = TelegramNotifier(None, None)
        assert not notifier.enabled
        assert await notifier.notify_buy(make_result()) is False

    async def test_sends_html(self, telegram):
        assert await telegram.notify_buy(make_result()) is True
        kwargs = telegram._bot.send_message.await_args.kwargs
        assert kwargs["chat_id"] == "chat"
        assert "Buy (Raydium)" in kwargs["text"]
        assert telegram.get_stats()["sent"] == 1

    async def test_failure_reported_not_raised(self, telegram):
        telegram._bot.send_message.side_effect = RuntimeError("network down")
        assert await telegram.send("hello") is False
        assert telegram.get_stats()["failed"] == 1

    async def test_rate_limited(self, telegram):
        assert await telegram.send("one")
        assert await telegram.send("two")
        assert await telegram.send("three") is False
        assert telegram._bot.send_message.await_count == 2
