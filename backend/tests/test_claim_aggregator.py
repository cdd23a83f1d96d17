"""
Claim Aggregator Tests
End-to-end claim queries against an in-memory Sui node

Run: python -m pytest tests/test_claim_aggregator.py -v
"""

import asyncio
import random

import pytest
from unittest.mock import AsyncMock, MagicMock

from infrastructure.errors import ValidationError, error_tracker
from data_sources.asset_registry import AssetRegistry, RegistrySnapshot
from data_sources.claim_simulator import ClaimRequest, ClaimReturn, ClaimSimulator
from data_sources.market_state import MarketRecord, MarketStateReader
from services.claim_aggregator import ClaimAggregator, ClaimRow, compute_underlying_value


ADDRESS_A = "0xAAA"
ADDRESS_B = "0xBBB"


@pytest.fixture
def snapshot(ids):
    """X has a market, Y does not; 9 decimals everywhere"""
    return RegistrySnapshot.from_maps(
        {ids["x"]: ids["market"]},
        {ids["x"]: 9, ids["y"]: 9, ids["reward"]: 9},
    )


@pytest.fixture
def aggregator(fake_client, repay_config, snapshot):
    registry = AssetRegistry(fake_client, repay_config, snapshot=snapshot)
    return ClaimAggregator(
        ClaimSimulator(repay_config, fake_client),
        MarketStateReader(fake_client),
        registry,
    )


# =============================================================================
# PRO-RATA FORMULA
# =============================================================================

class TestUnderlyingValue:

    def test_spec_example(self):
        market = MarketRecord(100, 150, 50, 1.2, 0)

        assert compute_underlying_value(2_000_000_000, market, 9) == "4.6000"

    def test_no_market(self):
        assert compute_underlying_value(2_000_000_000, None, 9) == "0.0000"

    def test_zero_supply(self):
        market = MarketRecord(0, 150, 50, 1.2, 0)

        assert compute_underlying_value(2_000_000_000, market, 9) == "0.0000"

    def test_products_beyond_64_bits(self):
        supply = 10 ** 30
        market = MarketRecord(supply, supply * 2, 0, 1.0, 0)

        assert compute_underlying_value(10 ** 18, market, 9) == "2000000000.0000"

    def test_integer_floor_before_index(self):
        # 1 * 150 // 100 = 1, 1 * 50 // 100 = 0
        market = MarketRecord(100, 150, 50, 2.0, 0)

        assert compute_underlying_value(1, market, 0) == "2.0000"

    def test_partition_conserves_underlying(self):
        rng = random.Random(7)
        supply = 1_000_003
        total_sy = 7_777_777
        cuts = sorted(rng.sample(range(1, supply), 9))
        parts = [b - a for a, b in zip([0] + cuts, cuts + [supply])]

        shares = [lp * total_sy // supply for lp in parts]

        assert sum(parts) == supply
        assert total_sy - (len(parts) - 1) <= sum(shares) <= total_sy


# =============================================================================
# END TO END
# =============================================================================

class TestQuery:

    @pytest.mark.asyncio
    async def test_end_to_end_scenario(self, aggregator, fake_client, ids):
        fake_client.add_market(lp_supply=100, total_sy=150, total_pt=50, yield_index=1.2)
        fake_client.set_claims(ADDRESS_A, [5_000_000_000, 2_000_000_000])

        results = await aggregator.query([ADDRESS_A], [ids["x"]])

        assert results == {
            ADDRESS_A: [
                ClaimRow(ids["reward"], "5.0000", "0.0000"),
                ClaimRow(ids["x"], "2.0000", "4.6000"),
            ]
        }

    @pytest.mark.asyncio
    async def test_reward_only_with_empty_selection(self, aggregator, fake_client, ids):
        fake_client.set_claims(ADDRESS_A, [1_500_000_000])

        results = await aggregator.query([ADDRESS_A], [])

        assert results[ADDRESS_A] == [ClaimRow(ids["reward"], "1.5000", "0.0000")]

    @pytest.mark.asyncio
    async def test_zero_amounts_dropped(self, aggregator, fake_client, ids):
        fake_client.add_market()
        fake_client.set_claims(ADDRESS_A, [0, 0, None])

        results = await aggregator.query([ADDRESS_A], [ids["x"], ids["y"]])

        assert results == {ADDRESS_A: []}

    @pytest.mark.asyncio
    async def test_selected_dust_below_four_places_dropped(self, aggregator, fake_client, ids):
        fake_client.add_market()
        fake_client.set_claims(ADDRESS_A, [0, 7, 4_000_000_000])

        rows = (await aggregator.query([ADDRESS_A], [ids["x"], ids["y"]]))[ADDRESS_A]

        assert [r.asset_type for r in rows] == [ids["y"]]
        assert all(r.claimable_amount != "0.0000" for r in rows)

    @pytest.mark.asyncio
    async def test_positive_reward_dust_still_reported(self, aggregator, fake_client, ids):
        fake_client.set_claims(ADDRESS_A, [3])

        results = await aggregator.query([ADDRESS_A], [])

        assert results[ADDRESS_A] == [ClaimRow(ids["reward"], "0.0000", "0.0000")]

    @pytest.mark.asyncio
    async def test_zero_reward_not_reported(self, aggregator, fake_client):
        fake_client.set_claims(ADDRESS_A, [0])

        assert await aggregator.query([ADDRESS_A], []) == {ADDRESS_A: []}

    @pytest.mark.asyncio
    async def test_asset_without_market(self, aggregator, fake_client, ids):
        fake_client.set_claims(ADDRESS_A, [0, 4_000_000_000])

        rows = (await aggregator.query([ADDRESS_A], [ids["y"]]))[ADDRESS_A]

        assert rows == [ClaimRow(ids["y"], "4.0000", "0.0000")]

    @pytest.mark.asyncio
    async def test_unreadable_market(self, aggregator, fake_client, ids):
        fake_client.set_claims(ADDRESS_A, [0, 4_000_000_000])

        rows = (await aggregator.query([ADDRESS_A], [ids["x"]]))[ADDRESS_A]

        assert rows == [ClaimRow(ids["x"], "4.0000", "0.0000")]

    @pytest.mark.asyncio
    async def test_zero_supply_market(self, aggregator, fake_client, ids):
        fake_client.add_market(lp_supply=0)
        fake_client.set_claims(ADDRESS_A, [0, 4_000_000_000])

        rows = (await aggregator.query([ADDRESS_A], [ids["x"]]))[ADDRESS_A]

        assert rows[0].underlying_value == "0.0000"

    @pytest.mark.asyncio
    async def test_unknown_decimals_default_to_nine(self, fake_client, repay_config, ids):
        aggregator = ClaimAggregator(
            ClaimSimulator(repay_config, fake_client),
            MarketStateReader(fake_client),
        )
        fake_client.set_claims(ADDRESS_A, [0, 2_000_000_000])

        rows = (await aggregator.query([ADDRESS_A], [ids["y"]]))[ADDRESS_A]

        assert rows == [ClaimRow(ids["y"], "2.0000", "0.0000")]

    @pytest.mark.asyncio
    async def test_registry_decimals_used(self, aggregator, fake_client, ids):
        snapshot = RegistrySnapshot.from_maps({}, {ids["y"]: 6})
        fake_client.set_claims(ADDRESS_A, [0, 2_500_000])

        results = await aggregator.query([ADDRESS_A], [ids["y"]], snapshot=snapshot)

        assert results[ADDRESS_A] == [ClaimRow(ids["y"], "2.5000", "0.0000")]

    @pytest.mark.asyncio
    async def test_reward_in_selection_reported_once(self, aggregator, fake_client, ids):
        fake_client.set_claims(ADDRESS_A, [1_000_000_000, 1_000_000_000])

        rows = (await aggregator.query([ADDRESS_A], [ids["reward"]]))[ADDRESS_A]

        assert rows == [ClaimRow(ids["reward"], "1.0000", "0.0000")]


class TestIsolation:

    @pytest.mark.asyncio
    async def test_failed_address_left_out(self, aggregator, fake_client, ids):
        error_tracker.clear()
        fake_client.fail_sender(ADDRESS_A)
        fake_client.set_claims(ADDRESS_B, [2_000_000_000])

        results = await aggregator.query([ADDRESS_A, ADDRESS_B], [])

        assert ADDRESS_A not in results
        assert results[ADDRESS_B] == [ClaimRow(ids["reward"], "2.0000", "0.0000")]
        assert error_tracker.error_counts.get("SimulationError") == 1

    @pytest.mark.asyncio
    async def test_generic_simulator_failure_isolated(self, ids):
        simulator = MagicMock()
        simulator.simulate_claim = AsyncMock(side_effect=[
            Exception("boom"),
            [ClaimReturn(ClaimRequest(ids["reward"], is_reward=True), list((10 ** 9).to_bytes(8, "little")))],
        ])
        aggregator = ClaimAggregator(simulator, MagicMock())

        results = await aggregator.query([ADDRESS_A, ADDRESS_B], [])

        assert list(results) == [ADDRESS_B]

    @pytest.mark.asyncio
    async def test_failing_asset_branch_does_not_drop_others(self, aggregator, fake_client, ids):
        fake_client.set_claims(ADDRESS_A, [0, 2_000_000_000, 3_000_000_000])
        aggregator.market_reader.get_market_record = AsyncMock(side_effect=RuntimeError("decode"))

        rows = (await aggregator.query([ADDRESS_A], [ids["x"], ids["y"]]))[ADDRESS_A]

        assert rows == [ClaimRow(ids["y"], "3.0000", "0.0000")]


class TestQueryContract:

    @pytest.mark.asyncio
    async def test_empty_address_list_rejected(self, aggregator, fake_client):
        with pytest.raises(ValidationError):
            await aggregator.query([], [])
        assert fake_client.inspected == []

    @pytest.mark.asyncio
    async def test_blank_lines_ignored(self, aggregator, fake_client):
        with pytest.raises(ValidationError):
            await aggregator.query(["", "   "], [])

    @pytest.mark.asyncio
    async def test_addresses_processed_sequentially_in_order(self, aggregator, fake_client):
        for address in ("0x1", "0x2", "0x3"):
            fake_client.set_claims(address, [10 ** 9])

        results = await aggregator.query([" 0x3", "0x1 ", "0x2"], [])

        assert list(results) == ["0x3", "0x1", "0x2"]
        assert [sender[-1] for sender, _ in fake_client.inspected] == ["3", "1", "2"]

    @pytest.mark.asyncio
    async def test_new_query_replaces_results(self, aggregator, fake_client):
        fake_client.set_claims(ADDRESS_A, [10 ** 9])
        fake_client.set_claims(ADDRESS_B, [10 ** 9])

        await aggregator.query([ADDRESS_A], [])
        await aggregator.query([ADDRESS_B], [])

        assert list(aggregator.results) == [ADDRESS_B]

    @pytest.mark.asyncio
    async def test_overlapping_queries_keep_their_own_addresses(self, aggregator, fake_client):
        for address in (ADDRESS_A, ADDRESS_B, "0xCCC"):
            fake_client.set_claims(address, [10 ** 9])
        inspect = fake_client.dev_inspect_transaction_block

        async def slow_inspect(sender, tx_bytes):
            await asyncio.sleep(0.01)
            return await inspect(sender, tx_bytes)

        fake_client.dev_inspect_transaction_block = slow_inspect

        first, second = await asyncio.gather(
            aggregator.query([ADDRESS_A], []),
            aggregator.query([ADDRESS_B, "0xCCC"], []),
        )

        assert list(first) == [ADDRESS_A]
        assert list(second) == [ADDRESS_B, "0xCCC"]

    @pytest.mark.asyncio
    async def test_rows_follow_selection_order_not_completion_order(self, fake_client, repay_config, ids):
        market_y = "0x" + "55" * 32
        snapshot = RegistrySnapshot.from_maps({ids["x"]: ids["market"], ids["y"]: market_y})
        reader = MarketStateReader(fake_client)

        async def slow_first(market_id):
            await asyncio.sleep(0.05 if market_id == ids["market"] else 0)
            return MarketRecord(100, 100, 0, 1.0, 0)

        reader.get_market_record = slow_first
        aggregator = ClaimAggregator(ClaimSimulator(repay_config, fake_client), reader)
        fake_client.set_claims(ADDRESS_A, [0, 10 ** 9, 2 * 10 ** 9])

        rows = (await aggregator.query([ADDRESS_A], [ids["x"], ids["y"]], snapshot=snapshot))[ADDRESS_A]

        assert [r.asset_type for r in rows] == [ids["x"], ids["y"]]

    @pytest.mark.asyncio
    async def test_latest_registry_state_read_per_address(self, aggregator, fake_client, ids):
        fake_client.add_market()
        fake_client.set_claims(ADDRESS_A, [0, 2_000_000_000])
        aggregator.registry._snapshot = RegistrySnapshot()

        before = await aggregator.query([ADDRESS_A], [ids["x"]])
        aggregator.registry._snapshot = RegistrySnapshot.from_maps({ids["x"]: ids["market"]})
        after = await aggregator.query([ADDRESS_A], [ids["x"]])

        assert before[ADDRESS_A][0].underlying_value == "0.0000"
        assert after[ADDRESS_A][0].underlying_value == "4.6000"

    @pytest.mark.asyncio
    async def test_close_closes_shared_client_once(self, aggregator, fake_client):
        await aggregator.close()

        assert fake_client.closed

    def test_row_to_dict(self, ids):
        row = ClaimRow(ids["x"], "2.0000", "4.6000")

        assert row.to_dict() == {"type": ids["x"], "name": "LP_X", "amount": "2.0000", "underlying": "4.6000"}
