#!/usr/bin/env python3
"""
Solana Copy Trader

Watches a source wallet and mirrors its Raydium, PumpPortal and PumpSwap
swaps from a controlled wallet at a fixed fraction of the source's size.
Reports every mirrored trade to Telegram.

Usage:
    python run_copy_trader.py                  # Run with default config (dry run)
    python run_copy_trader.py --config my.yaml # Run with custom config
    python run_copy_trader.py --live           # Submit real swaps
    python run_copy_trader.py --test-alert     # Send test Telegram alert
"""

import asyncio
import argparse
import copy
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv
from loguru import logger
from solders.keypair import Keypair

from src.alerts.telegram_bot import TelegramNotifier
from src.core.exceptions import ConfigurationError
from src.core.solana_client import SolanaClient
from src.detection.classifier import TransactionClassifier
from src.engine.copy_engine import CopyEngine
from src.execution.router import ExecutionRouter
from src.execution.sizing import SizingEngine, SizingLimits
from src.ingestion.processed_set import ProcessedSet
from src.ingestion.websocket_feed import AccountFeed, PumpPortalFeed
from src.platforms.pump_portal import PumpPortalVenue
from src.platforms.pumpswap import PumpSwapVenue
from src.platforms.raydium import RaydiumVenue
from src.positions.position_ledger import PositionLedger


def _merge(base: dict, override: dict) -> dict:
    """Recursively merge `override` into a copy of `base`"""
    merged = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class CopyTrader:
    """
    Main application class for the copy trader.

    Orchestrates:
    - Inbound feeds (account subscription, PumpPortal trade stream)
    - Copy engine (classification, sizing, execution, ledger)
    - Telegram notifications
    """

    def __init__(self, config_path: str = "config.yaml", live: bool = False):
        """
        Initialize the copy trader.

        Args:
            config_path: Path to configuration file
            live: Force live trading regardless of config
        """
        self.config_path = config_path
        self.config = self._load_config()
        if live:
            self.config['trading']['dry_run'] = False

        # Components
        self.client: Optional[SolanaClient] = None
        self.engine: Optional[CopyEngine] = None
        self.notifier: Optional[TelegramNotifier] = None
        self.venues: list = []
        self.feeds: list = []

        # Task tracking
        self._tasks: list[asyncio.Task] = []
        self._is_running = False
        self._stopped = False

    def _load_config(self) -> dict:
        """Load configuration from YAML file"""
        # Load .env file
        load_dotenv()

        config = self._default_config()

        config_file = Path(self.config_path)
        if not config_file.exists():
            logger.warning(f"Config file not found: {self.config_path}, using defaults")
        else:
            with open(config_file) as f:
                config = _merge(config, yaml.safe_load(f) or {})

        # Override with environment variables
        return self._apply_env_overrides(config)

    def _default_config(self) -> dict:
        """Return default configuration"""
        return {
            'wallets': {
                'source': None,
                'private_key': None,
                'controlled': None,  # address only, enough for a dry run
            },
            'rpc': {
                'http_url': 'https://api.mainnet-beta.solana.com',
                'ws_url': 'wss://api.mainnet-beta.solana.com',
            },
            'trading': {
                'trade_percentage': 0.1,
                'min_trade_amount': 0.01,
                'slippage': 0.05,
                'fee_reserve': 0.00005,
                'priority_fee_micro_lamports': 100000,
                'final_sell_tolerance': 0.01,
                'token_delta_selection': 'largest',
                'dry_run': True,
            },
            'confirmation': {
                'attempts': 5,
                'interval': 2.0,
            },
            'venues': {
                'raydium': {
                    'enabled': True,
                    'api_url': 'https://transaction-v1.raydium.io',
                },
                'pumpswap': {
                    'enabled': True,
                    'quote_url': 'https://quote-api.jup.ag/v6/quote',
                    'swap_url': 'https://quote-api.jup.ag/v6/swap',
                },
                'pump_portal': {
                    'enabled': True,
                    'api_url': 'https://pumpportal.fun/api/trade',
                    'api_key': None,
                    'priority_fee_sol': 0.00005,
                },
            },
            'feeds': {
                'account': {'enabled': True},
                'pump_portal': {
                    'enabled': True,
                    'url': 'wss://pumpportal.fun/api/data',
                },
                'reconnect_delay': 5.0,
            },
            'dedup': {
                'ttl_seconds': 3600,
                'max_size': 10000,
            },
            'alerts': {
                'telegram_token': None,
                'telegram_chat_id': None,
                'max_alerts_per_minute': 20,
                'commands_enabled': True,
            },
            'state': {
                'path': None,
            },
            'logging': {
                'level': 'INFO',
                'file': None,
            },
        }

    def _apply_env_overrides(self, config: dict) -> dict:
        """Apply environment variable overrides to config"""
        if os.getenv('SOURCE_WALLET'):
            config['wallets']['source'] = os.getenv('SOURCE_WALLET')
        if os.getenv('WALLET_PRIVATE_KEY'):
            config['wallets']['private_key'] = os.getenv('WALLET_PRIVATE_KEY')
        if os.getenv('CONTROLLED_WALLET'):
            config['wallets']['controlled'] = os.getenv('CONTROLLED_WALLET')

        if os.getenv('RPC_URL'):
            config['rpc']['http_url'] = os.getenv('RPC_URL')
        if os.getenv('WEBSOCKET_URL'):
            config['rpc']['ws_url'] = os.getenv('WEBSOCKET_URL')

        # Telegram settings
        if os.getenv('TELEGRAM_BOT_TOKEN'):
            config['alerts']['telegram_token'] = os.getenv('TELEGRAM_BOT_TOKEN')
        if os.getenv('TELEGRAM_CHAT_ID'):
            config['alerts']['telegram_chat_id'] = os.getenv('TELEGRAM_CHAT_ID')

        if os.getenv('PUMP_PORTAL_API_KEY'):
            config['venues']['pump_portal']['api_key'] = os.getenv('PUMP_PORTAL_API_KEY')

        # Optional overrides
        if os.getenv('TRADE_PERCENTAGE'):
            config['trading']['trade_percentage'] = float(os.getenv('TRADE_PERCENTAGE'))

        if os.getenv('DRY_RUN'):
            config['trading']['dry_run'] = os.getenv('DRY_RUN').lower() in ('1', 'true', 'yes')

        return config

    def _setup_logging(self):
        """Configure logging"""
        log_config = self.config.get('logging', {})
        level = log_config.get('level', 'INFO')

        # Remove default handler
        logger.remove()

        # Add console handler
        logger.add(
            sys.stderr,
            level=level,
            format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
        )

        # Add file handler if configured
        log_file = log_config.get('file')
        if log_file:
            logger.add(
                log_file,
                level=level,
                rotation="10 MB",
                retention="7 days"
            )

        # Library modules log through stdlib logging
        logging.basicConfig(
            level=getattr(logging, str(level).upper(), logging.INFO),
            format='%(asctime)s | %(levelname)s | %(name)s | %(message)s',
            datefmt='%H:%M:%S'
        )

        # Reduce noise from other loggers
        logging.getLogger("aiohttp").setLevel(logging.WARNING)
        logging.getLogger("websockets").setLevel(logging.WARNING)
        logging.getLogger("httpx").setLevel(logging.WARNING)

    def _load_keypair(self) -> Optional[Keypair]:
        private_key = self.config['wallets'].get('private_key')
        if not private_key:
            return None
        try:
            return Keypair.from_base58_string(private_key)
        except ValueError as e:
            raise ConfigurationError(f"WALLET_PRIVATE_KEY is not a valid base58 keypair: {e}")

    def _build_venues(self, keypair: Optional[Keypair]) -> list:
        """Create the enabled venue adapters"""
        trading = self.config['trading']
        shared = {
            'slippage': trading['slippage'],
            'priority_fee_micro_lamports': trading['priority_fee_micro_lamports'],
        }
        venue_config = self.config['venues']
        venues = []
        for name, cls in (('raydium', RaydiumVenue), ('pump_portal', PumpPortalVenue), ('pumpswap', PumpSwapVenue)):
            cfg = venue_config.get(name, {})
            if not cfg.get('enabled', True):
                logger.info(f"Venue {name} disabled")
                continue
            venues.append(cls(_merge(shared, cfg), self.client, keypair=keypair))
        return venues

    async def initialize(self):
        """Initialize all components"""
        logger.info("Initializing copy trader...")

        # Setup logging
        self._setup_logging()

        source = self.config['wallets'].get('source')
        if not source:
            raise ConfigurationError("SOURCE_WALLET is not set")

        keypair = self._load_keypair()
        dry_run = self.config['trading'].get('dry_run', True)
        if keypair is None and not dry_run:
            raise ConfigurationError("WALLET_PRIVATE_KEY is required for live trading")
        controlled = str(keypair.pubkey()) if keypair else self.config['wallets'].get('controlled')
        if not controlled:
            raise ConfigurationError("WALLET_PRIVATE_KEY (or wallets.controlled for a dry run) is required")

        self.client = SolanaClient(rpc_url=self.config['rpc']['http_url'])
        self.venues = self._build_venues(keypair)

        trading = self.config['trading']
        limits = SizingLimits(
            trade_percentage=trading['trade_percentage'],
            min_trade_amount=trading['min_trade_amount'],
            slippage=trading['slippage'],
            fee_reserve=trading['fee_reserve'],
            final_sell_tolerance=trading['final_sell_tolerance'],
        )

        state_path = self.config.get('state', {}).get('path')
        ledger = PositionLedger.load(state_path) if state_path else PositionLedger()

        confirmation = self.config['confirmation']
        router = ExecutionRouter(
            self.client,
            self.venues,
            wallet=controlled,
            dry_run=dry_run,
            confirm_attempts=confirmation['attempts'],
            confirm_interval=confirmation['interval'],
        )

        dedup = self.config['dedup']
        self.engine = CopyEngine(
            client=self.client,
            classifier=TransactionClassifier(
                self.client,
                source,
                self.venues,
                token_delta_selection=trading['token_delta_selection'],
            ),
            ledger=ledger,
            sizing=SizingEngine(limits),
            router=router,
            processed=ProcessedSet(ttl_seconds=dedup['ttl_seconds'], max_size=dedup['max_size']),
            controlled_wallet=controlled,
        )

        alerts_config = self.config['alerts']
        self.notifier = TelegramNotifier(
            token=alerts_config.get('telegram_token'),
            chat_id=alerts_config.get('telegram_chat_id'),
            config=alerts_config,
            status_provider=self.engine.get_stats,
            positions_provider=self.engine.positions_summary,
        )
        self.engine.notifier = self.notifier

        feeds_config = self.config['feeds']
        reconnect_delay = feeds_config.get('reconnect_delay', 5.0)
        if feeds_config.get('account', {}).get('enabled', True):
            self.feeds.append(AccountFeed(
                self.config['rpc']['ws_url'],
                source,
                self.client,
                on_event=self.engine.handle_event,
                reconnect_delay=reconnect_delay,
            ))
        if feeds_config.get('pump_portal', {}).get('enabled', True):
            self.feeds.append(PumpPortalFeed(
                source,
                url=feeds_config['pump_portal'].get('url'),
                on_event=self.engine.handle_event,
                reconnect_delay=reconnect_delay,
            ))

        mode = "DRY RUN" if dry_run else "LIVE"
        logger.info(
            f"Initialization complete ({mode}) | source {source} | controlled {controlled} | "
            f"{trading['trade_percentage']:.0%} of source size"
        )

    async def start(self):
        """Start the copy trader"""
        if self._is_running:
            return

        self._is_running = True
        logger.info("Starting copy trader...")

        if self.notifier and self.config['alerts'].get('commands_enabled', True):
            await self.notifier.start()

        for feed in self.feeds:
            self._tasks.append(asyncio.create_task(feed.connect()))

        if not self._tasks:
            logger.warning("No feeds enabled - nothing to watch")
            return

        logger.info(f"Copy trader started - watching {len(self.feeds)} feed(s)")

        # Wait for all tasks
        await asyncio.gather(*self._tasks, return_exceptions=True)

    async def stop(self):
        """Stop the copy trader"""
        if self._stopped:
            return
        self._stopped = True
        logger.info("Stopping copy trader...")
        self._is_running = False

        for feed in self.feeds:
            await feed.disconnect()

        # Cancel all tasks
        for task in self._tasks:
            task.cancel()

        # Wait for cancellation
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        if self.notifier:
            await self.notifier.stop()

        for venue in self.venues:
            await venue.close()

        if self.client:
            await self.client.close()

        if self.engine:
            logger.info(f"Final stats: {self.engine.get_stats()}")

        logger.info("Copy trader stopped")


async def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(
        description="Solana Copy Trader - mirror a wallet's swaps"
    )
    parser.add_argument(
        '--config', '-c',
        default='config.yaml',
        help='Path to configuration file'
    )
    parser.add_argument(
        '--test-alert',
        action='store_true',
        help='Send a test alert to Telegram'
    )
    parser.add_argument(
        '--live',
        action='store_true',
        help='Submit real swaps (default is dry run)'
    )

    args = parser.parse_args()

    # Handle test alert
    if args.test_alert:
        load_dotenv()
        token = os.getenv('TELEGRAM_BOT_TOKEN')
        chat_id = os.getenv('TELEGRAM_CHAT_ID')

        if not token or not chat_id:
            logger.error("TELEGRAM_BOT_TOKEN and TELEGRAM_CHAT_ID must be set in .env")
            sys.exit(1)

        logger.info("Sending Telegram test alert...")
        success = await TelegramNotifier(token, chat_id).send_test_alert()
        sys.exit(0 if success else 1)

    # Create and run copy trader
    trader = CopyTrader(args.config, live=args.live)

    # Setup signal handlers
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        asyncio.create_task(trader.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    # Initialize and start
    try:
        await trader.initialize()
        await trader.start()
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        await trader.stop()


def cli():
    asyncio.run(main())


if __name__ == "__main__":
    cli()
