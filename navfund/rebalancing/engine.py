"""
RebalancingEngine — Приведение распределения фонда к целевому

Сравнивает текущие доли активов с AllocationPolicy и выпускает
buy/sell/transfer дельты, сходящиеся к цели.

Алгоритм compute_deltas (для каждого актива с весом, по возрастанию asset_id):
    target_value = total_value * weight / 100
    value_i < target_value → BUY  (target_value - value_i) / price_i
    value_i > target_value → SELL (value_i - target_value) / price_i

КРИТИЧЕСКИЕ ИНВАРИАНТЫ:
1. Детерминизм: одинаковый снапшот → одинаковая упорядоченная последовательность
2. execute() исполняет дельты последовательно; исполненные сделки сразу
   фиксируются в ledger и не откатываются (сделки площадки необратимы)
3. Отказ на шаге k → VenueCallFailed с asset_id, amount, step_index, executed_steps;
   автоматических повторов нет
4. Повторный rebalance после частичного отказа пересчитывает дельты от
   фактических балансов: идемпотентность на уровне «сходимости к цели»
"""

from typing import Sequence

from navfund.core.config import FundConfig
from navfund.core.domain.allocation_policy import AllocationPolicy
from navfund.core.domain.fund_state import ValuationSnapshot
from navfund.core.domain.rebalance import (
    Direction,
    ExecutedTrade,
    RebalanceDelta,
    RebalanceReport,
    TransferRoute,
)
from navfund.core.errors import SlippageExceeded, VenueCallFailed
from navfund.core.logger import get_logger
from navfund.core.math.fixed_point import (
    PERCENT_DENOMINATOR,
    U64_MAX,
    apply_bps,
    ceil_div,
    mul_div,
)
from navfund.ledger.holdings import BalanceChanges, HoldingsLedger
from navfund.venue.gateway import ExternalVenueGateway, call_venue

logger = get_logger(__name__)


class RebalancingEngine:
    """
    Вычисление и исполнение дельт ребалансировки.

    Покупки оплачиваются из размещённой части резервного актива;
    продажи зачисляются в неё же. Продажи для погашений
    (liquidate_for_reserve) зачисляются в ликвидный резерв.
    """

    def __init__(
        self,
        ledger: HoldingsLedger,
        venue: ExternalVenueGateway,
        config: FundConfig,
    ):
        """
        Args:
            ledger: балансы фонда
            venue: торговая площадка
            config: конфигурация фонда (slippage_tolerance_bps)
        """
        self.ledger = ledger
        self.venue = venue
        self.config = config

    @property
    def reserve_asset_id(self) -> str:
        return self.ledger.reserve_asset_id

    # -------------------------------------------------------------------------
    # ПЛАНИРОВАНИЕ
    # -------------------------------------------------------------------------

    def compute_deltas(
        self,
        snapshot: ValuationSnapshot,
        policy: AllocationPolicy,
    ) -> list[RebalanceDelta]:
        """
        Дельты для активов с настроенным весом, по возрастанию asset_id.

        Нулевые дельты не выпускаются. SELL для LP-актива пропускается:
        у площадки нет операции вывода ликвидности.
        """
        deltas: list[RebalanceDelta] = []

        for asset_id in policy.weighted_assets():
            weight = policy.per_asset_weights[asset_id]
            price = snapshot.price_of(asset_id)
            value = snapshot.value_of(asset_id)
            target_value = mul_div(snapshot.total_value, weight, PERCENT_DENOMINATOR)

            if value < target_value:
                direction = Direction.BUY
                amount = mul_div(target_value - value, 1, price)
            elif value > target_value:
                if asset_id in policy.liquidity_pools:
                    logger.debug("Skip SELL of LP asset %s: no withdraw path", asset_id)
                    continue
                direction = Direction.SELL
                amount = mul_div(value - target_value, 1, price)
            else:
                continue

            if amount == 0:
                continue
            deltas.append(RebalanceDelta(asset_id=asset_id, direction=direction, amount=amount))

        logger.debug("Computed %d deltas: %s", len(deltas), deltas)
        return deltas

    def compute_reserve_transfer(
        self,
        snapshot: ValuationSnapshot,
        policy: AllocationPolicy,
    ) -> RebalanceDelta | None:
        """
        TRANSFER между ликвидным резервом и размещённой частью резерва.

        - liquid < baseline → пополнение до baseline из размещённой части
        - liquid > max(target, baseline) → излишек возвращается в фонд
        """
        if snapshot.total_value == 0:
            return None

        baseline_units, ceiling_units = self.liquid_bounds(snapshot.total_value, snapshot.reserve_price, policy)
        liquid = snapshot.liquid_reserve

        if liquid < baseline_units:
            amount = min(baseline_units - liquid, snapshot.deployed_reserve)
            route = TransferRoute.TO_LIQUID
        elif liquid > ceiling_units:
            amount = liquid - ceiling_units
            route = TransferRoute.TO_FUND
        else:
            return None

        if amount == 0:
            return None
        return RebalanceDelta(
            asset_id=snapshot.reserve_asset_id,
            direction=Direction.TRANSFER,
            amount=amount,
            route=route,
        )

    @staticmethod
    def baseline_reserve_units(total_value: int, reserve_price: int, policy: AllocationPolicy) -> int:
        """Минимальный ликвидный резерв (единицы, округление вверх) для total_value."""
        baseline_value = mul_div(
            total_value, policy.baseline_liquid_percentage, PERCENT_DENOMINATOR, round_up=True
        )
        return ceil_div(baseline_value, reserve_price)

    @classmethod
    def liquid_bounds(cls, total_value: int, reserve_price: int, policy: AllocationPolicy) -> tuple[int, int]:
        """
        Границы ликвидного резерва в единицах резервного актива.

        Returns:
            (baseline_units, ceiling_units), ceiling = max(target, baseline)
        """
        baseline_units = cls.baseline_reserve_units(total_value, reserve_price, policy)
        target_value = mul_div(total_value, policy.target_liquid_percentage, PERCENT_DENOMINATOR)
        target_units = mul_div(target_value, 1, reserve_price)
        return baseline_units, max(target_units, baseline_units)

    def estimate_liquidation_capacity(self, snapshot: ValuationSnapshot, policy: AllocationPolicy) -> int:
        """Оценка резерва (единицы), получаемого продажей всех назначенных активов по цене оракула."""
        capacity = 0
        for asset_id in self._sellable_liquidation_assets(snapshot, policy):
            capacity += mul_div(snapshot.value_of(asset_id), 1, snapshot.reserve_price)
        return min(capacity, U64_MAX)

    # -------------------------------------------------------------------------
    # ИСПОЛНЕНИЕ
    # -------------------------------------------------------------------------

    def execute(
        self,
        deltas: Sequence[RebalanceDelta],
        policy: AllocationPolicy,
        snapshot: ValuationSnapshot | None = None,
    ) -> tuple[ExecutedTrade, ...]:
        """
        Последовательное исполнение дельт.

        Args:
            deltas: дельты в порядке исполнения
            policy: текущая политика (пулы ликвидности)
            snapshot: снапшот, по которому считались дельты; None — свежий

        Returns:
            Исполненные сделки

        Raises:
            VenueCallFailed: отказ на шаге step_index; шаги до него
                зафиксированы в ledger
            SlippageExceeded: площадка вернула меньше допустимого;
                сделка зафиксирована в ledger
        """
        if snapshot is None:
            snapshot = self.ledger.snapshot()

        executed: list[ExecutedTrade] = []
        for step_index, delta in enumerate(deltas):
            context = {
                "asset_id": delta.asset_id,
                "direction": delta.direction.value,
                "amount": delta.amount,
                "step_index": step_index,
                "executed_steps": len(executed),
            }
            if delta.direction == Direction.TRANSFER:
                trade = self._execute_transfer(step_index, delta)
            elif delta.direction == Direction.BUY:
                trade = self._execute_buy(step_index, delta, snapshot, policy, context)
            else:
                trade = self._execute_sell(step_index, delta, snapshot, context)

            if trade is not None:
                executed.append(trade)

        return tuple(executed)

    def rebalance(self, policy: AllocationPolicy) -> RebalanceReport:
        """
        Полный цикл: перемещение резерва + дельты активов.

        Raises:
            VenueCallFailed: см. execute(); повторный вызов продолжает сходимость
        """
        snapshot = self.ledger.snapshot()
        transfer = self.compute_reserve_transfer(snapshot, policy)
        deltas = self.compute_deltas(snapshot, policy)

        plan: list[RebalanceDelta] = ([transfer] if transfer else []) + deltas
        executed = self.execute(plan, policy, snapshot)

        logger.info(
            "Rebalance completed: transfer=%s deltas=%d executed=%d",
            transfer.amount if transfer else 0,
            len(deltas),
            len(executed),
        )
        return RebalanceReport(
            reserve_transfer=transfer,
            deltas=tuple(deltas),
            executed=executed,
        )

    def liquidate_for_reserve(
        self,
        target_units: int,
        policy: AllocationPolicy,
        snapshot: ValuationSnapshot,
    ) -> tuple[int, tuple[ExecutedTrade, ...]]:
        """
        Продажа назначенных активов до получения target_units резерва.

        Выручка зачисляется в ликвидный резерв. Проскальзывание не прерывает
        продажу: недобор покрывается следующим активом, итоговая недостача
        остаётся на вызывающем.

        Returns:
            (получено единиц резерва, исполненные сделки)

        Raises:
            VenueCallFailed: отказ продажи; предыдущие продажи зафиксированы
        """
        received_total = 0
        executed: list[ExecutedTrade] = []

        for asset_id in self._sellable_liquidation_assets(snapshot, policy):
            remaining = target_units - received_total
            if remaining <= 0:
                break

            price = snapshot.price_of(asset_id)
            balance = self.ledger.balance_of(asset_id)
            units = min(mul_div(remaining, snapshot.reserve_price, price, round_up=True), balance)
            if units == 0:
                continue

            step_index = len(executed)
            delta = RebalanceDelta(asset_id=asset_id, direction=Direction.SELL, amount=units)
            received = self._checked_received(
                call_venue(
                    "swap",
                    self.venue.swap,
                    asset_id,
                    self.reserve_asset_id,
                    units,
                    context={
                        "asset_id": asset_id,
                        "amount": units,
                        "step_index": step_index,
                        "executed_steps": step_index,
                        "purpose": "redemption_liquidation",
                    },
                ),
                delta,
                step_index,
            )
            self.ledger.apply(
                BalanceChanges(
                    holdings={asset_id: -units},
                    liquid_reserve=received,
                    reason=f"liquidate {asset_id} for redemption",
                )
            )
            received_total += received
            executed.append(
                ExecutedTrade(
                    step_index=step_index,
                    delta=delta,
                    spent_asset_id=asset_id,
                    spent_amount=units,
                    received_asset_id=self.reserve_asset_id,
                    received_amount=received,
                )
            )

        if received_total < target_units:
            logger.warning(
                "Liquidation raised %d of %d reserve units", received_total, target_units
            )
        return received_total, tuple(executed)

    # -------------------------------------------------------------------------
    # ШАГИ
    # -------------------------------------------------------------------------

    def _execute_transfer(self, step_index: int, delta: RebalanceDelta) -> ExecutedTrade:
        reserve = self.reserve_asset_id
        if delta.route == TransferRoute.TO_LIQUID:
            changes = BalanceChanges(
                holdings={reserve: -delta.amount}, liquid_reserve=delta.amount, reason="reserve top-up"
            )
        else:
            changes = BalanceChanges(
                holdings={reserve: delta.amount}, liquid_reserve=-delta.amount, reason="reserve sweep"
            )
        self.ledger.apply(changes)
        return ExecutedTrade(
            step_index=step_index,
            delta=delta,
            spent_asset_id=reserve,
            spent_amount=delta.amount,
            received_asset_id=reserve,
            received_amount=delta.amount,
        )

    def _execute_buy(
        self,
        step_index: int,
        delta: RebalanceDelta,
        snapshot: ValuationSnapshot,
        policy: AllocationPolicy,
        context: dict,
    ) -> ExecutedTrade | None:
        reserve = self.reserve_asset_id
        price = snapshot.price_of(delta.asset_id)
        spend = mul_div(delta.amount, price, snapshot.reserve_price)
        available = self.ledger.balance_of(reserve)
        clamped = spend > available
        if clamped:
            logger.warning(
                "BUY %s clamped: need %d reserve units, %d available", delta.asset_id, spend, available
            )
            spend = available
        if spend == 0:
            return None

        context = dict(context, spend=spend)
        pool = policy.liquidity_pools.get(delta.asset_id)
        if pool is not None:
            raw = call_venue("add_liquidity", self.venue.add_liquidity, pool[0], pool[1], spend, context=context)
        else:
            raw = call_venue("swap", self.venue.swap, reserve, delta.asset_id, spend, context=context)
        received = self._checked_received(raw, delta, step_index)

        self.ledger.apply(
            BalanceChanges(
                holdings={reserve: -spend, delta.asset_id: received},
                reason=f"buy {delta.asset_id}",
            )
        )
        trade = ExecutedTrade(
            step_index=step_index,
            delta=delta,
            spent_asset_id=reserve,
            spent_amount=spend,
            received_asset_id=delta.asset_id,
            received_amount=received,
            clamped=clamped,
        )
        expected = mul_div(spend, snapshot.reserve_price, price)
        self._check_slippage(trade, expected, context)
        return trade

    def _execute_sell(
        self,
        step_index: int,
        delta: RebalanceDelta,
        snapshot: ValuationSnapshot,
        context: dict,
    ) -> ExecutedTrade | None:
        reserve = self.reserve_asset_id
        units = min(delta.amount, self.ledger.balance_of(delta.asset_id))
        if units == 0:
            return None

        raw = call_venue("swap", self.venue.swap, delta.asset_id, reserve, units, context=context)
        received = self._checked_received(raw, delta, step_index)

        self.ledger.apply(
            BalanceChanges(
                holdings={delta.asset_id: -units, reserve: received},
                reason=f"sell {delta.asset_id}",
            )
        )
        trade = ExecutedTrade(
            step_index=step_index,
            delta=delta,
            spent_asset_id=delta.asset_id,
            spent_amount=units,
            received_asset_id=reserve,
            received_amount=received,
        )
        expected = mul_div(units, snapshot.price_of(delta.asset_id), snapshot.reserve_price)
        self._check_slippage(trade, expected, context)
        return trade

    def _check_slippage(self, trade: ExecutedTrade, expected: int, context: dict) -> None:
        min_received = expected - apply_bps(expected, self.config.slippage_tolerance_bps)
        if trade.received_amount < min_received:
            raise SlippageExceeded(
                f"step {trade.step_index}: received {trade.received_amount}, minimum {min_received}",
                details=dict(
                    context,
                    received=trade.received_amount,
                    expected=expected,
                    min_received=min_received,
                    executed_steps=context["executed_steps"] + 1,
                ),
            )

    @staticmethod
    def _checked_received(raw: object, delta: RebalanceDelta, step_index: int) -> int:
        if isinstance(raw, bool) or not isinstance(raw, int) or not 0 <= raw <= U64_MAX:
            raise VenueCallFailed(
                f"venue returned invalid amount {raw!r}",
                details={"asset_id": delta.asset_id, "amount": delta.amount, "step_index": step_index},
            )
        return raw

    def _sellable_liquidation_assets(self, snapshot: ValuationSnapshot, policy: AllocationPolicy) -> list[str]:
        return [
            asset_id
            for asset_id in policy.designated_liquidation_assets()
            if asset_id in snapshot.balances and asset_id not in policy.liquidity_pools
        ]
