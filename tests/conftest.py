"""
Shared test fixtures for the copy trader test suite.
All tests run offline with mocked RPC, venues and Telegram.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from src.core.models import Quote, TokenBalance, Venue
from src.detection.classifier import TransactionClassifier
from src.engine.copy_engine import CopyEngine
from src.execution.router import ExecutionRouter
from src.execution.sizing import SizingEngine, SizingLimits
from src.ingestion.processed_set import ProcessedSet
from src.platforms.pump_portal import PumpPortalVenue
from src.platforms.pumpswap import PumpSwapVenue
from src.platforms.raydium import RAYDIUM_AMM_V4_PROGRAM_ID, RaydiumVenue
from src.positions.position_ledger import PositionLedger

SOURCE = "SrcWa11et1111111111111111111111111111111111"
CONTROLLED = "Ctr1Wa11et111111111111111111111111111111111"
MINT = "TokenMint1111111111111111111111111111111111"
OTHER_MINT = "OtherMint1111111111111111111111111111111111"
SYSTEM_PROGRAM = "11111111111111111111111111111111"


def token_balance(mint, owner, raw, decimals=6, account_index=1):
    return {
        "accountIndex": account_index,
        "mint": mint,
        "owner": owner,
        "uiTokenAmount": {
            "amount": str(raw),
            "decimals": decimals,
            "uiAmount": raw / 10 ** decimals,
            "uiAmountString": str(raw / 10 ** decimals),
        },
    }


@pytest.fixture
def make_parsed_tx():
    """Factory for jsonParsed getTransaction results."""

    def _factory(
        fee_payer=SOURCE,
        pre_sol=10_000_000_000,
        post_sol=10_000_000_000,
        fee=5000,
        pre_tokens=None,
        post_tokens=None,
        programs=(RAYDIUM_AMM_V4_PROGRAM_ID,),
        inner_programs=(),
        logs=(),
        extra_keys=(),
    ):
        keys = [fee_payer, *extra_keys]
        return {
            "blockTime": 1_700_000_000,
            "slot": 250_000_000,
            "transaction": {
                "signatures": ["sig"],
                "message": {
                    "accountKeys": [
                        {"pubkey": k, "signer": i == 0, "writable": True, "source": "transaction"}
                        for i, k in enumerate(keys)
                    ],
                    "instructions": [{"programId": p, "accounts": [], "data": ""} for p in programs],
                },
            },
            "meta": {
                "err": None,
                "fee": fee,
                "preBalances": [pre_sol] + [0] * len(extra_keys),
                "postBalances": [post_sol] + [0] * len(extra_keys),
                "preTokenBalances": list(pre_tokens or []),
                "postTokenBalances": list(post_tokens or []),
                "innerInstructions": (
                    [{"index": 0, "instructions": [{"programId": p} for p in inner_programs]}]
                    if inner_programs else []
                ),
                "logMessages": list(logs),
            },
        }

    return _factory


@pytest.fixture
def buy_tx(make_parsed_tx):
    """Source spends 2 SOL (plus fee) for 100 tokens on Raydium."""
    return make_parsed_tx(
        pre_sol=10_000_000_000,
        post_sol=8_000_000_000 - 5000,
        post_tokens=[token_balance(MINT, SOURCE, 100_000_000)],
    )


@pytest.fixture
def sell_tx(make_parsed_tx):
    """Source sells 50 of 100 tokens for 1.1 SOL on Raydium."""
    return make_parsed_tx(
        pre_sol=8_000_000_000,
        post_sol=9_100_000_000 - 5000,
        pre_tokens=[token_balance(MINT, SOURCE, 100_000_000)],
        post_tokens=[token_balance(MINT, SOURCE, 50_000_000)],
    )


@pytest.fixture
def mock_client():
    """SolanaClient stand-in with a funded controlled wallet."""
    client = MagicMock()
    client.fetch_transaction = AsyncMock()
    client.get_balance = AsyncMock(return_value=5.0)
    client.get_token_balance = AsyncMock(return_value=TokenBalance(quantity=0.0, decimals=6, raw_units=0))
    client.get_signature_status = AsyncMock(return_value="confirmed")
    client.get_latest_signature = AsyncMock(return_value="latest_sig")
    client.send_raw_transaction = AsyncMock(return_value="sent_sig")
    client.remember_decimals = MagicMock()
    return client


@pytest.fixture
def venues(mock_client):
    return [
        RaydiumVenue({}, mock_client),
        PumpPortalVenue({"api_key": "test"}, mock_client),
        PumpSwapVenue({}, mock_client),
    ]


@pytest.fixture
def fake_venue():
    """Factory for venue doubles with scripted quote/swap results."""

    def _factory(venue=Venue.RAYDIUM, out_amount=1_000_000_000, signature="swap_sig"):
        adapter = MagicMock()
        adapter.venue = venue

        async def _quote(input_mint, output_mint, amount, decimals):
            return Quote(venue=venue, input_mint=input_mint, output_mint=output_mint,
                         in_amount=amount, out_amount=out_amount)

        adapter.quote = AsyncMock(side_effect=_quote)
        adapter.swap = AsyncMock(return_value=signature)
        return adapter

    return _factory


@pytest.fixture
def notifier():
    notifier = MagicMock()
    notifier.notify_buy = AsyncMock(return_value=True)
    notifier.notify_sell = AsyncMock(return_value=True)
    notifier.notify_unconfirmed = AsyncMock(return_value=True)
    return notifier


@pytest.fixture
def make_engine(mock_client, venues, notifier):
    """Factory for a CopyEngine wired to mocks; live by default with instant confirmation."""

    def _factory(router_adapters=None, dry_run=False, limits=None, ledger=None):
        router = ExecutionRouter(
            mock_client,
            router_adapters if router_adapters is not None else venues,
            wallet=CONTROLLED,
            dry_run=dry_run,
            confirm_attempts=2,
            confirm_interval=0,
        )
        return CopyEngine(
            client=mock_client,
            classifier=TransactionClassifier(mock_client, SOURCE, venues),
            ledger=ledger or PositionLedger(),
            sizing=SizingEngine(limits or SizingLimits()),
            router=router,
            processed=ProcessedSet(),
            notifier=notifier,
            controlled_wallet=CONTROLLED,
        )

    return _factory
