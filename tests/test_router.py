"""Tests for ExecutionRouter dispatch and confirmation."""

import pytest

from conftest import CONTROLLED, MINT
from src.core.exceptions import ConfirmationTimeout, TransactionUnavailable, VenueRejected
from src.core.models import SOL_MINT, Direction, Venue
from src.execution.router import ExecutionRouter


def router_for(mock_client, adapters, dry_run=False):
    return ExecutionRouter(
        mock_client, adapters, wallet=CONTROLLED, dry_run=dry_run,
        confirm_attempts=3, confirm_interval=0,
    )


class TestDryRun:
    async def test_buy_not_submitted(self, mock_client, fake_venue):
        adapter = fake_venue()
        router = router_for(mock_client, [adapter], dry_run=True)

        result = await router.execute(Venue.RAYDIUM, Direction.BUY, MINT, 200_000_000, 9)

        assert result.is_dry_run
        assert result.signature.startswith("dry_run_")
        assert result.sol_amount == pytest.approx(0.2)
        adapter.quote.assert_not_awaited()
        adapter.swap.assert_not_awaited()

    async def test_sell_reports_no_proceeds(self, mock_client, fake_venue):
        router = router_for(mock_client, [fake_venue()], dry_run=True)
        result = await router.execute(Venue.RAYDIUM, Direction.SELL, MINT, 5_000_000, 6)
        assert result.sol_amount == 0.0

    async def test_disabled_venue_still_rejected(self, mock_client, fake_venue):
        router = router_for(mock_client, [fake_venue(Venue.RAYDIUM)], dry_run=True)
        with pytest.raises(VenueRejected):
            await router.execute(Venue.PUMPSWAP, Direction.BUY, MINT, 1, 9)


class TestLive:
    async def test_buy_routes_sol_into_token(self, mock_client, fake_venue):
        adapter = fake_venue()
        router = router_for(mock_client, [adapter])
        mock_client.fetch_transaction.side_effect = TransactionUnavailable("swap_sig", 3)

        result = await router.execute(Venue.RAYDIUM, Direction.BUY, MINT, 200_000_000, 9)

        adapter.quote.assert_awaited_once_with(SOL_MINT, MINT, 200_000_000, 9)
        assert result.status == "confirmed"
        assert result.signature == "swap_sig"
        assert result.sol_amount == pytest.approx(0.2)

    async def test_sell_routes_token_into_sol(self, mock_client, fake_venue):
        adapter = fake_venue(out_amount=1_000_000_000)
        router = router_for(mock_client, [adapter])
        mock_client.fetch_transaction.side_effect = TransactionUnavailable("swap_sig", 3)

        result = await router.execute(Venue.RAYDIUM, Direction.SELL, MINT, 5_000_000, 6)

        adapter.quote.assert_awaited_once_with(MINT, SOL_MINT, 5_000_000, 6)
        assert result.sol_amount == pytest.approx(1.0)

    async def test_realized_sol_read_from_transaction(self, mock_client, fake_venue, make_parsed_tx):
        router = router_for(mock_client, [fake_venue(out_amount=1_000_000_000)])
        mock_client.fetch_transaction.return_value = make_parsed_tx(
            fee_payer=CONTROLLED, pre_sol=1_000_000_000, post_sol=1_950_000_000 - 5000,
        )

        result = await router.execute(Venue.RAYDIUM, Direction.SELL, MINT, 5_000_000, 6)
        assert result.sol_amount == pytest.approx(0.95)

    async def test_no_quote(self, mock_client, fake_venue):
        adapter = fake_venue()
        adapter.quote.side_effect = None
        adapter.quote.return_value = None
        router = router_for(mock_client, [adapter])

        with pytest.raises(VenueRejected):
            await router.execute(Venue.RAYDIUM, Direction.BUY, MINT, 1_000, 9)
        adapter.swap.assert_not_awaited()

    async def test_swap_not_submitted(self, mock_client, fake_venue):
        router = router_for(mock_client, [fake_venue(signature=None)])
        with pytest.raises(VenueRejected):
            await router.execute(Venue.RAYDIUM, Direction.BUY, MINT, 1_000, 9)

    async def test_confirmation_timeout(self, mock_client, fake_venue):
        mock_client.get_signature_status.return_value = None
        router = router_for(mock_client, [fake_venue()])

        with pytest.raises(ConfirmationTimeout) as exc_info:
            await router.execute(Venue.RAYDIUM, Direction.BUY, MINT, 1_000, 9)

        assert exc_info.value.signature == "swap_sig"
        assert exc_info.value.venue == Venue.RAYDIUM
        assert mock_client.get_signature_status.await_count == 3
        assert router.get_stats()["swaps_unconfirmed"] == 1

    async def test_failed_on_chain_stops_polling(self, mock_client, fake_venue):
        mock_client.get_signature_status.return_value = "failed"
        router = router_for(mock_client, [fake_venue()])

        with pytest.raises(ConfirmationTimeout):
            await router.execute(Venue.RAYDIUM, Direction.BUY, MINT, 1_000, 9)
        assert mock_client.get_signature_status.await_count == 1

    async def test_confirms_after_pending(self, mock_client, fake_venue):
        mock_client.get_signature_status.side_effect = [None, "processed", "confirmed"]
        mock_client.fetch_transaction.side_effect = TransactionUnavailable("swap_sig", 3)
        router = router_for(mock_client, [fake_venue()])

        result = await router.execute(Venue.RAYDIUM, Direction.BUY, MINT, 1_000, 9)
        assert result.status == "confirmed"
