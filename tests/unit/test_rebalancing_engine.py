"""
Tests для RebalancingEngine

Проверяет:
1. compute_deltas: формулы, порядок, детерминизм
2. compute_reserve_transfer: пополнение до baseline и возврат излишка
3. execute: последовательное исполнение, clamp, проскальзывание,
   отказ площадки с контекстом продолжения
4. liquidate_for_reserve: продажи для погашения
"""

import pytest

from navfund.core.domain.allocation_policy import AllocationPolicy
from navfund.core.domain.holding import AssetHolding
from navfund.core.domain.rebalance import Direction, RebalanceDelta, TransferRoute
from navfund.core.errors import SlippageExceeded, VenueCallFailed
from navfund.ledger.holdings import HoldingsLedger
from navfund.oracle.price_feed import PriceOracleAdapter
from navfund.rebalancing.engine import RebalancingEngine
from tests.fakes import FakeFeedSource, FakeVenue, fixed_clock, make_config


def build_engine(prices: dict[str, int], holdings: dict[str, int], liquid_reserve: int = 0):
    feed = FakeFeedSource(prices)
    venue = FakeVenue(feed)
    ledger = HoldingsLedger(
        "SOL",
        PriceOracleAdapter(feed, clock=fixed_clock),
        holdings=[AssetHolding(asset_id=a, balance=b) for a, b in holdings.items()],
        liquid_reserve=liquid_reserve,
    )
    return RebalancingEngine(ledger, venue, make_config()), ledger, venue, feed


def make_policy(weights: dict[str, int], target: int = 0, baseline: int = 0, **extra) -> AllocationPolicy:
    return AllocationPolicy(
        target_liquid_percentage=target,
        baseline_liquid_percentage=baseline,
        per_asset_weights=weights,
        reward_percentage=0,
        reward_destination="treasury",
        **extra,
    )


class TestComputeDeltas:
    """Тесты вычисления дельт"""

    def test_price_move_scenario(self) -> None:
        """1,000 резерва + 500 X; цена X 2 → 4; вес 25% → SELL 312 X"""
        engine, ledger, _, feed = build_engine({"SOL": 1, "X": 2}, {"X": 500}, liquid_reserve=1000)
        policy = make_policy({"X": 25})
        feed.set_price("X", 4)

        snapshot = ledger.snapshot()
        assert snapshot.total_value == 3000

        deltas = engine.compute_deltas(snapshot, policy)
        assert deltas == [RebalanceDelta(asset_id="X", direction=Direction.SELL, amount=312)]

    def test_balanced_asset_has_no_delta(self) -> None:
        engine, ledger, _, _ = build_engine({"SOL": 1, "X": 2}, {"X": 250}, liquid_reserve=1500)
        assert engine.compute_deltas(ledger.snapshot(), make_policy({"X": 25})) == []

    def test_buy_delta(self) -> None:
        engine, ledger, _, _ = build_engine({"SOL": 1, "X": 2}, {"SOL": 1000, "X": 0})
        deltas = engine.compute_deltas(ledger.snapshot(), make_policy({"X": 25}))
        assert deltas == [RebalanceDelta(asset_id="X", direction=Direction.BUY, amount=125)]

    def test_ascending_asset_order(self) -> None:
        engine, ledger, _, _ = build_engine({"SOL": 1, "A": 1, "B": 1, "C": 1}, {"SOL": 900, "A": 0, "B": 0, "C": 0})
        deltas = engine.compute_deltas(ledger.snapshot(), make_policy({"C": 10, "A": 10, "B": 10}))
        assert [d.asset_id for d in deltas] == ["A", "B", "C"]

    def test_deterministic(self) -> None:
        """Одинаковый снапшот → одинаковая последовательность"""
        engine, ledger, _, _ = build_engine({"SOL": 1, "X": 3, "Y": 7}, {"SOL": 5000, "X": 900, "Y": 0})
        policy = make_policy({"Y": 30, "X": 20})
        snapshot = ledger.snapshot()
        assert engine.compute_deltas(snapshot, policy) == engine.compute_deltas(snapshot, policy)

    def test_sub_unit_delta_omitted(self) -> None:
        """Разница меньше одной единицы актива не даёт дельты"""
        engine, ledger, _, _ = build_engine({"SOL": 1, "X": 100}, {"SOL": 950, "X": 0})
        assert engine.compute_deltas(ledger.snapshot(), make_policy({"X": 5})) == []

    def test_lp_sell_skipped(self) -> None:
        engine, ledger, _, _ = build_engine({"SOL": 1, "X": 1, "LP": 10}, {"SOL": 100, "X": 0, "LP": 90})
        policy = make_policy({"LP": 10}, liquidity_pools={"LP": ["SOL", "X"]})
        assert engine.compute_deltas(ledger.snapshot(), policy) == []


class TestReserveTransfer:
    """Тесты управления ликвидным резервом"""

    def test_top_up_to_baseline(self) -> None:
        engine, ledger, _, _ = build_engine({"SOL": 1}, {"SOL": 1000})
        transfer = engine.compute_reserve_transfer(ledger.snapshot(), make_policy({}, target=20, baseline=10))
        assert transfer.route == TransferRoute.TO_LIQUID
        assert transfer.amount == 100

    def test_sweep_excess_to_fund(self) -> None:
        engine, ledger, _, _ = build_engine({"SOL": 1}, {"SOL": 500}, liquid_reserve=500)
        transfer = engine.compute_reserve_transfer(ledger.snapshot(), make_policy({}, target=20, baseline=10))
        assert transfer.route == TransferRoute.TO_FUND
        assert transfer.amount == 300

    def test_within_band(self) -> None:
        engine, ledger, _, _ = build_engine({"SOL": 1}, {"SOL": 850}, liquid_reserve=150)
        assert engine.compute_reserve_transfer(ledger.snapshot(), make_policy({}, target=20, baseline=10)) is None

    def test_empty_fund(self) -> None:
        engine, ledger, _, _ = build_engine({"SOL": 1}, {})
        assert engine.compute_reserve_transfer(ledger.snapshot(), make_policy({}, baseline=10)) is None


class TestExecute:
    """Тесты исполнения дельт"""

    def test_sell_executed(self) -> None:
        engine, ledger, venue, feed = build_engine({"SOL": 1, "X": 4}, {"X": 500}, liquid_reserve=1000)
        policy = make_policy({"X": 25})
        snapshot = ledger.snapshot()

        trades = engine.execute(engine.compute_deltas(snapshot, policy), policy, snapshot)

        assert venue.calls == [("swap", "X", "SOL", 312)]
        assert trades[0].received_amount == 1248
        assert ledger.balance_of("X") == 188
        assert ledger.balance_of("SOL") == 1248
        assert ledger.liquid_reserve == 1000

    def test_buy_executed(self) -> None:
        engine, ledger, venue, _ = build_engine({"SOL": 1, "X": 2}, {"SOL": 1000, "X": 0})
        report = engine.rebalance(make_policy({"X": 25}))

        assert venue.calls == [("swap", "SOL", "X", 250)]
        assert report.completed
        assert ledger.balance_of("X") == 125
        assert ledger.balance_of("SOL") == 750

    def test_buy_clamped_to_deployed_reserve(self) -> None:
        engine, ledger, venue, _ = build_engine({"SOL": 1, "X": 2}, {"SOL": 100, "X": 0}, liquid_reserve=900)
        policy = make_policy({"X": 50})
        snapshot = ledger.snapshot()

        trades = engine.execute(engine.compute_deltas(snapshot, policy), policy, snapshot)

        assert trades[0].clamped
        assert trades[0].spent_amount == 100
        assert ledger.balance_of("SOL") == 0
        assert ledger.balance_of("X") == 50
        assert ledger.liquid_reserve == 900

    def test_add_liquidity_for_pool_asset(self) -> None:
        engine, ledger, venue, _ = build_engine({"SOL": 1, "X": 1, "LP": 10}, {"SOL": 1000, "X": 0, "LP": 0})
        venue.pools[("SOL", "X")] = "LP"
        policy = make_policy({"LP": 20}, liquidity_pools={"LP": ["SOL", "X"]})

        engine.rebalance(policy)

        assert venue.calls == [("add_liquidity", "SOL", "X", 200)]
        assert ledger.balance_of("LP") == 20
        assert ledger.balance_of("SOL") == 800

    def test_venue_failure_carries_resume_context(self) -> None:
        """Отказ на шаге k: шаги до k зафиксированы, контекст в details"""
        engine, ledger, venue, _ = build_engine({"SOL": 1, "X": 2, "Y": 5}, {"SOL": 1000, "X": 0, "Y": 0})
        venue.fail_assets = {"Y"}
        policy = make_policy({"X": 30, "Y": 30})

        with pytest.raises(VenueCallFailed) as exc_info:
            engine.rebalance(policy)

        error = exc_info.value
        assert error.step_index == 1
        assert error.details["asset_id"] == "Y"
        assert error.details["amount"] == 60
        assert error.details["executed_steps"] == 1
        assert ledger.balance_of("X") == 150
        assert ledger.balance_of("SOL") == 700

    def test_rerun_converges_after_failure(self) -> None:
        """Повторный rebalance не повторяет исполненные шаги"""
        engine, ledger, venue, _ = build_engine({"SOL": 1, "X": 2, "Y": 5}, {"SOL": 1000, "X": 0, "Y": 0})
        venue.fail_assets = {"Y"}
        policy = make_policy({"X": 30, "Y": 30})
        with pytest.raises(VenueCallFailed):
            engine.rebalance(policy)

        venue.fail_assets = set()
        venue.calls.clear()
        report = engine.rebalance(policy)

        assert venue.calls == [("swap", "SOL", "Y", 300)]
        assert [d.asset_id for d in report.deltas] == ["Y"]
        assert ledger.balance_of("X") == 150
        assert ledger.balance_of("Y") == 60
        assert ledger.balance_of("SOL") == 400

    def test_slippage_exceeded_after_recording_trade(self) -> None:
        engine, ledger, venue, _ = build_engine({"SOL": 1, "X": 2}, {"SOL": 1000, "X": 0})
        venue.slippage_bps = 500
        policy = make_policy({"X": 30})

        with pytest.raises(SlippageExceeded) as exc_info:
            engine.rebalance(policy)

        assert isinstance(exc_info.value, VenueCallFailed)
        assert exc_info.value.details["min_received"] == 149
        assert ledger.balance_of("X") == 143
        assert ledger.balance_of("SOL") == 700

    def test_slippage_within_tolerance(self) -> None:
        engine, ledger, venue, _ = build_engine({"SOL": 1, "X": 2}, {"SOL": 1000, "X": 0})
        venue.slippage_bps = 50
        report = engine.rebalance(make_policy({"X": 30}))
        assert report.completed
        assert ledger.balance_of("X") == 150 - 150 * 50 // 10_000

    def test_transfer_then_trades(self) -> None:
        engine, ledger, _, _ = build_engine({"SOL": 1, "X": 2}, {"SOL": 1000, "X": 0})
        report = engine.rebalance(make_policy({"X": 50}, target=20, baseline=10))

        assert report.reserve_transfer.amount == 100
        assert [t.step_index for t in report.executed] == [0, 1]
        assert ledger.liquid_reserve == 100
        assert ledger.balance_of("SOL") == 400
        assert ledger.balance_of("X") == 250


class TestLiquidateForReserve:
    """Тесты продажи назначенных активов для погашения"""

    def test_sells_in_order_into_liquid_reserve(self) -> None:
        engine, ledger, venue, _ = build_engine({"SOL": 1, "X": 2, "Y": 5}, {"X": 500, "Y": 100})
        policy = make_policy({"X": 10, "Y": 10})

        received, trades = engine.liquidate_for_reserve(1100, policy, ledger.snapshot())

        assert received == 1100
        assert venue.calls == [("swap", "X", "SOL", 500), ("swap", "Y", "SOL", 20)]
        assert [t.step_index for t in trades] == [0, 1]
        assert ledger.liquid_reserve == 1100
        assert ledger.balance_of("X") == 0
        assert ledger.balance_of("Y") == 80

    def test_stops_when_target_reached(self) -> None:
        engine, ledger, venue, _ = build_engine({"SOL": 1, "X": 2, "Y": 5}, {"X": 500, "Y": 100})
        policy = make_policy({"X": 10, "Y": 10}, liquidation_assets=["Y", "X"])

        received, _ = engine.liquidate_for_reserve(100, policy, ledger.snapshot())

        assert received == 100
        assert venue.calls == [("swap", "Y", "SOL", 20)]

    def test_capacity_estimate(self) -> None:
        engine, ledger, _, _ = build_engine({"SOL": 2, "X": 3}, {"X": 100})
        assert engine.estimate_liquidation_capacity(ledger.snapshot(), make_policy({"X": 10})) == 150
