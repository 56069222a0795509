"""Tests for venue adapters: transaction matching and quote requests."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import MINT, SYSTEM_PROGRAM
from src.core.models import SOL_MINT, Quote, Venue
from src.platforms.base import referenced_programs
from src.platforms.pump_portal import PUMP_FUN_PROGRAM_ID, PumpPortalVenue
from src.platforms.pumpswap import PUMPSWAP_DEX_LABEL, PUMPSWAP_PROGRAM_ID, PumpSwapVenue
from src.platforms.raydium import RAYDIUM_AMM_V4_PROGRAM_ID, RaydiumVenue


class TestMatching:
    def test_referenced_programs(self, make_parsed_tx):
        tx = make_parsed_tx(programs=(SYSTEM_PROGRAM,), inner_programs=(PUMP_FUN_PROGRAM_ID,))
        programs = referenced_programs(tx)
        assert SYSTEM_PROGRAM in programs
        assert PUMP_FUN_PROGRAM_ID in programs

    def test_program_account_key_counts(self, make_parsed_tx, mock_client):
        tx = make_parsed_tx(programs=(), extra_keys=(PUMPSWAP_PROGRAM_ID,))
        assert PumpSwapVenue({}, mock_client).matches(tx)

    def test_hint_only(self, make_parsed_tx, mock_client):
        tx = make_parsed_tx(programs=(SYSTEM_PROGRAM,))
        venue = PumpPortalVenue({}, mock_client)
        assert not venue.matches(tx)
        assert venue.matches(tx, Venue.PUMP_PORTAL)
        assert not venue.matches(tx, Venue.RAYDIUM)

    def test_pumpswap_log_marker(self, make_parsed_tx, mock_client):
        tx = make_parsed_tx(programs=(SYSTEM_PROGRAM,), logs=("Program log: Instruction: Sell",))
        assert PumpSwapVenue({}, mock_client).matches(tx)

    def test_raydium_program(self, make_parsed_tx, mock_client):
        tx = make_parsed_tx(programs=(RAYDIUM_AMM_V4_PROGRAM_ID,))
        assert RaydiumVenue({}, mock_client).matches(tx)
        assert not PumpSwapVenue({}, mock_client).matches(tx)

    def test_owner_requires_keypair(self, mock_client):
        with pytest.raises(ValueError):
            RaydiumVenue({}, mock_client).owner


class TestPumpPortal:
    async def test_buy_payload_in_sol(self, mock_client):
        venue = PumpPortalVenue({"api_key": "key", "slippage": 0.05}, mock_client)
        quote = await venue.quote(SOL_MINT, MINT, 200_000_000, 9)

        assert quote.raw["action"] == "buy"
        assert quote.raw["mint"] == MINT
        assert quote.raw["amount"] == pytest.approx(0.2)
        assert quote.raw["denominatedInSol"] == "true"
        assert quote.raw["slippage"] == pytest.approx(5.0)

    async def test_sell_payload_in_tokens(self, mock_client):
        venue = PumpPortalVenue({"api_key": "key"}, mock_client)
        quote = await venue.quote(MINT, SOL_MINT, 5_000_000, 6)

        assert quote.raw["action"] == "sell"
        assert quote.raw["amount"] == pytest.approx(5.0)
        assert quote.raw["denominatedInSol"] == "false"

    async def test_no_api_key(self, mock_client):
        venue = PumpPortalVenue({}, mock_client)
        assert await venue.quote(SOL_MINT, MINT, 1, 9) is None

    async def test_swap_posts_with_api_key(self, mock_client):
        venue = PumpPortalVenue({"api_key": "key"}, mock_client)
        venue._request = AsyncMock(return_value={"signature": "pp_sig"})
        quote = await venue.quote(SOL_MINT, MINT, 200_000_000, 9)

        assert await venue.swap(quote) == "pp_sig"
        assert venue._request.await_args.kwargs["params"] == {"api-key": "key"}
        assert venue._request.await_args.kwargs["json"] is quote.raw

    async def test_swap_without_signature(self, mock_client):
        venue = PumpPortalVenue({"api_key": "key"}, mock_client)
        venue._request = AsyncMock(return_value={"errors": ["bad mint"]})
        quote = await venue.quote(SOL_MINT, MINT, 1, 9)
        assert await venue.swap(quote) is None
        assert venue.get_stats()["failures"] == 1


class TestRaydium:
    async def test_quote(self, mock_client):
        venue = RaydiumVenue({"slippage": 0.01}, mock_client)
        venue._request = AsyncMock(return_value={"success": True, "data": {"outputAmount": "123456"}})

        quote = await venue.quote(SOL_MINT, MINT, 1_000_000, 9)

        assert quote.out_amount == 123456
        assert quote.venue == Venue.RAYDIUM
        params = venue._request.await_args.kwargs["params"]
        assert params["slippageBps"] == "100"
        assert params["amount"] == "1000000"

    async def test_no_route(self, mock_client):
        venue = RaydiumVenue({}, mock_client)
        venue._request = AsyncMock(return_value={"success": False, "msg": "ROUTE_NOT_FOUND"})
        assert await venue.quote(SOL_MINT, MINT, 1, 9) is None

    async def test_swap_with_no_transactions(self, mock_client):
        keypair = MagicMock()
        keypair.pubkey.return_value = "Owner"
        venue = RaydiumVenue({}, mock_client, keypair=keypair)
        venue._request = AsyncMock(return_value={"success": True, "data": []})
        quote = Quote(venue=Venue.RAYDIUM, input_mint=SOL_MINT, output_mint=MINT, in_amount=1)
        assert await venue.swap(quote) is None


class TestPumpSwap:
    async def test_restricted_quote(self, mock_client):
        venue = PumpSwapVenue({}, mock_client)
        venue._request = AsyncMock(return_value={
            "inAmount": "1000", "outAmount": "2000",
            "routePlan": [{"swapInfo": {"label": PUMPSWAP_DEX_LABEL}}],
        })

        quote = await venue.quote(SOL_MINT, MINT, 1000, 9)

        assert quote.out_amount == 2000
        assert venue._request.await_args.kwargs["params"]["dexes"] == PUMPSWAP_DEX_LABEL

    async def test_falls_back_to_any_route(self, mock_client):
        venue = PumpSwapVenue({}, mock_client)
        venue._request = AsyncMock(side_effect=[
            {"error": "No routes found"},
            {"inAmount": "1000", "outAmount": "1500", "routePlan": [{"swapInfo": {"label": "Meteora"}}]},
        ])

        quote = await venue.quote(SOL_MINT, MINT, 1000, 9)

        assert quote.out_amount == 1500
        assert "dexes" not in venue._request.await_args.kwargs["params"]

    async def test_no_route_anywhere(self, mock_client):
        venue = PumpSwapVenue({}, mock_client)
        venue._request = AsyncMock(return_value={"error": "No routes found"})
        assert await venue.quote(SOL_MINT, MINT, 1000, 9) is None
        assert venue._request.await_count == 2
