"""Tests for configuration loading and wiring in the entry point."""

import pytest

from conftest import CONTROLLED, SOURCE
from run_copy_trader import CopyTrader, _merge
from src.core.exceptions import ConfigurationError

ENV_VARS = (
    "SOURCE_WALLET", "WALLET_PRIVATE_KEY", "CONTROLLED_WALLET", "RPC_URL", "WEBSOCKET_URL",
    "TELEGRAM_BOT_TOKEN", "TELEGRAM_CHAT_ID", "PUMP_PORTAL_API_KEY", "TRADE_PERCENTAGE", "DRY_RUN",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def write_config(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text)
    return str(path)


class TestConfig:
    def test_merge_is_recursive(self):
        merged = _merge({"a": {"x": 1, "y": 2}, "b": 1}, {"a": {"y": 3}})
        assert merged == {"a": {"x": 1, "y": 3}, "b": 1}

    def test_defaults_without_file(self, tmp_path):
        trader = CopyTrader(str(tmp_path / "missing.yaml"))
        assert trader.config["trading"]["dry_run"] is True
        assert trader.config["trading"]["trade_percentage"] == 0.1
        assert trader.config["dedup"]["ttl_seconds"] == 3600

    def test_yaml_overrides_defaults(self, tmp_path):
        path = write_config(tmp_path, "trading:\n  trade_percentage: 0.25\n")
        trader = CopyTrader(path)
        assert trader.config["trading"]["trade_percentage"] == 0.25
        assert trader.config["trading"]["min_trade_amount"] == 0.01

    def test_env_overrides_yaml(self, tmp_path, monkeypatch):
        path = write_config(tmp_path, "trading:\n  trade_percentage: 0.25\n")
        monkeypatch.setenv("TRADE_PERCENTAGE", "0.5")
        monkeypatch.setenv("SOURCE_WALLET", SOURCE)
        monkeypatch.setenv("DRY_RUN", "false")
        trader = CopyTrader(path)
        assert trader.config["trading"]["trade_percentage"] == 0.5
        assert trader.config["wallets"]["source"] == SOURCE
        assert trader.config["trading"]["dry_run"] is False

    def test_live_flag(self, tmp_path):
        trader = CopyTrader(str(tmp_path / "missing.yaml"), live=True)
        assert trader.config["trading"]["dry_run"] is False


class TestInitialize:
    async def test_source_wallet_required(self, tmp_path):
        trader = CopyTrader(str(tmp_path / "missing.yaml"))
        with pytest.raises(ConfigurationError):
            await trader.initialize()

    async def test_live_requires_private_key(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SOURCE_WALLET", SOURCE)
        monkeypatch.setenv("CONTROLLED_WALLET", CONTROLLED)
        trader = CopyTrader(str(tmp_path / "missing.yaml"), live=True)
        with pytest.raises(ConfigurationError):
            await trader.initialize()

    async def test_dry_run_wiring(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SOURCE_WALLET", SOURCE)
        monkeypatch.setenv("CONTROLLED_WALLET", CONTROLLED)
        path = write_config(tmp_path, "venues:\n  pumpswap:\n    enabled: false\n")
        trader = CopyTrader(path)

        await trader.initialize()
        try:
            assert trader.engine.router.dry_run
            assert trader.engine.controlled_wallet == CONTROLLED
            assert [v.venue.value for v in trader.venues] == ["raydium", "pump_portal"]
            assert len(trader.feeds) == 2
            assert not trader.notifier.enabled
        finally:
            await trader.stop()
