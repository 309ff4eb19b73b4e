"""
ShareIssuanceEngine — Выпуск и погашение долей фонда

Deposit(amount):  RECEIVED → VALUED → ALLOCATED → SETTLED
    shares_minted = net_value * total_shares / total_value
    seed (total_shares == 0): shares_minted = net * seed_shares_per_unit

Redeem(shares):   REQUESTED → VALUED → FUNDED → SETTLED
    owed = shares * total_value / total_shares

Округление всегда вниз: участник никогда не получает больше, чем
покрывает его вклад.

КРИТИЧЕСКИЕ ИНВАРИАНТЫ:
1. Мутации ledger/supply только после успеха всех внешних вызовов операции
   (исключение: продажи площадки при финансировании погашения необратимы
   и фиксируются по мере исполнения)
2. Недостача погашения никогда не покрывается молча: PartialRedemptionShortfall
3. Комиссия удерживается из суммы самого участника, без компенсационных
   переводов из капитала фонда
4. Поведение при нарушении baseline задаётся FundConfig.baseline_mode
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from navfund.core.config import BaselineMode, FundConfig
from navfund.core.domain.allocation_policy import AllocationPolicy
from navfund.core.domain.fund_state import ShareSupply, ValuationSnapshot
from navfund.core.domain.rebalance import ExecutedTrade, RebalanceReport
from navfund.core.errors import (
    BelowBaseline,
    DivisionByZero,
    ExternalError,
    InvalidAmount,
    InvalidFundState,
    PartialRedemptionShortfall,
)
from navfund.core.logger import get_logger
from navfund.core.math.fixed_point import (
    apply_percentage,
    checked_add,
    checked_mul,
    checked_sub,
    ensure_u64,
    mul_div,
)
from navfund.fees.ledger import FeeLedger
from navfund.ledger.holdings import BalanceChanges, HoldingsLedger
from navfund.policy.store import AllocationPolicyStore
from navfund.rebalancing.engine import RebalancingEngine
from navfund.venue.gateway import TokenMovement, call_host

logger = get_logger(__name__)


# =============================================================================
# STATES & RESULTS
# =============================================================================


class DepositState(str, Enum):
    RECEIVED = "RECEIVED"
    VALUED = "VALUED"
    ALLOCATED = "ALLOCATED"
    SETTLED = "SETTLED"


class RedeemState(str, Enum):
    REQUESTED = "REQUESTED"
    VALUED = "VALUED"
    FUNDED = "FUNDED"
    SETTLED = "SETTLED"


@dataclass(frozen=True)
class DepositResult:
    """Результат депозита."""

    depositor: str
    amount: int
    fee: int
    shares_minted: int
    # Разбиение чистой суммы (единицы резервного актива)
    to_liquid: int
    to_fund: int
    total_shares: int
    total_value_before: int
    # Перевод из размещённой части в ликвидный резерв (режим TOP_UP)
    baseline_top_up: int = 0
    state: DepositState = DepositState.SETTLED
    # None если ребалансировка не требовалась
    rebalance: Optional[RebalanceReport] = None


@dataclass(frozen=True)
class RedemptionResult:
    """Результат погашения."""

    redeemer: str
    shares_burned: int
    owed: int
    fee: int
    paid: int
    total_shares: int
    total_value_before: int
    # Финансирование недостачи ликвидного резерва
    sold_for_reserve: int = 0
    transferred_from_fund: int = 0
    baseline_top_up: int = 0
    liquidation_trades: tuple[ExecutedTrade, ...] = field(default_factory=tuple)
    state: RedeemState = RedeemState.SETTLED


# =============================================================================
# ENGINE
# =============================================================================


class ShareIssuanceEngine:
    """
    Машины состояний deposit/redeem.

    Хранит ShareSupply фонда; балансы — в HoldingsLedger,
    комиссии — в FeeLedger.
    """

    def __init__(
        self,
        config: FundConfig,
        ledger: HoldingsLedger,
        policy_store: AllocationPolicyStore,
        rebalancer: RebalancingEngine,
        fee_ledger: FeeLedger,
        tokens: TokenMovement,
        supply: ShareSupply | None = None,
    ):
        self.config = config
        self.ledger = ledger
        self.policy_store = policy_store
        self.rebalancer = rebalancer
        self.fee_ledger = fee_ledger
        self.tokens = tokens
        self.supply = supply if supply is not None else ShareSupply()

    @property
    def total_shares(self) -> int:
        return self.supply.total_shares

    # -------------------------------------------------------------------------
    # ФОРМУЛЫ
    # -------------------------------------------------------------------------

    def shares_for_deposit(self, net_units: int, snapshot: ValuationSnapshot) -> int:
        """
        Доли за net_units резервного актива по текущему NAV.

        Raises:
            InvalidFundState: долей нет, а стоимость фонда ненулевая
            DivisionByZero: доли выпущены, а стоимость фонда нулевая
            ValueOverflow: результат не помещается в u64
        """
        total_shares = self.supply.total_shares
        if total_shares == 0:
            if snapshot.total_value:
                raise InvalidFundState(
                    "fund holds value but has no outstanding shares",
                    details={"total_value": snapshot.total_value},
                )
            return checked_mul(net_units, self.config.seed_shares_per_unit)

        if snapshot.total_value == 0:
            raise DivisionByZero(
                "fund has outstanding shares but zero total value",
                details={"total_shares": total_shares},
            )
        net_value = checked_mul(net_units, snapshot.reserve_price)
        return mul_div(net_value, total_shares, snapshot.total_value)

    def owed_units(self, shares: int, snapshot: ValuationSnapshot) -> int:
        """Единицы резервного актива, причитающиеся за shares."""
        owed_value = mul_div(shares, snapshot.total_value, self.supply.total_shares)
        return mul_div(owed_value, 1, snapshot.reserve_price)

    # -------------------------------------------------------------------------
    # DEPOSIT
    # -------------------------------------------------------------------------

    def deposit(self, depositor: str, amount: int) -> DepositResult:
        """
        Приём amount единиц резервного актива в обмен на доли.

        Чистая сумма заполняет ликвидный резерв до max(target, baseline),
        остаток размещается в фонде и проводится через RebalancingEngine.
        Отказ ребалансировки после расчёта не отменяет депозит и
        возвращается в DepositResult.rebalance.

        Если после распределения ликвидный резерв ниже baseline, режим TOP_UP
        добирает недостающее из размещённой части резерва в том же apply.
        Режим BLOCK депозит не отклоняет: вся чистая сумма уже направлена в
        ликвидный резерв, и депозит не может ухудшить его долю.

        Raises:
            InvalidAmount: amount == 0 или сумма слишком мала для одной доли
            PolicyUnset: политика не задана
            ValueOverflow / DivisionByZero: арифметика не представима
            InvalidFundState: долей нет, а фонд хранит стоимость
            HostCallFailed: отказ перевода/выпуска (ledger не изменён)
        """
        state = DepositState.RECEIVED
        self._require_positive(amount, "amount")
        policy = self.policy_store.current()
        reserve = self.ledger.reserve_asset_id

        snapshot = self.ledger.snapshot()
        state = self._advance("deposit", state, DepositState.VALUED)

        fee, net = self.fee_ledger.transaction_fee(amount)
        shares = self.shares_for_deposit(net, snapshot)
        if shares == 0:
            raise InvalidAmount(
                f"deposit of {amount} is too small to mint a share",
                details={"amount": amount, "fee": fee, "total_value": snapshot.total_value},
            )
        # Переполнение supply проверяется до внешних вызовов
        checked_add(self.supply.total_shares, shares)

        net_value = checked_mul(net, snapshot.reserve_price)
        total_after = checked_add(snapshot.total_value, net_value)
        baseline_units, ceiling_units = self.rebalancer.liquid_bounds(total_after, snapshot.reserve_price, policy)
        to_liquid = min(net, max(0, ceiling_units - snapshot.liquid_reserve))
        to_fund = net - to_liquid
        top_up = self._deposit_top_up(
            liquid_after=snapshot.liquid_reserve + to_liquid,
            baseline_units=baseline_units,
            deployed_available=snapshot.deployed_reserve + to_fund,
        )
        state = self._advance("deposit", state, DepositState.ALLOCATED)

        call_host("transfer", self.tokens.transfer, depositor, self.config.fund_account, amount)
        if fee:
            call_host("transfer", self.tokens.transfer, self.config.fund_account, self.config.fees.fee_destination, fee)
        call_host("mint", self.tokens.mint, self.config.fund_account, depositor, shares)

        self.ledger.apply(
            BalanceChanges(
                holdings={reserve: to_fund - top_up},
                liquid_reserve=to_liquid + top_up,
                reason=f"deposit by {depositor}",
            )
        )
        self.supply = self.supply.minted(shares)
        self.fee_ledger.record_transaction_fee(fee)
        state = self._advance("deposit", state, DepositState.SETTLED)

        logger.info(
            "Deposit settled: depositor=%s amount=%d fee=%d shares=%d liquid=+%d fund=+%d top_up=%d",
            depositor,
            amount,
            fee,
            shares,
            to_liquid,
            to_fund,
            top_up,
        )

        report = self._rebalance_after_deposit(policy) if to_fund else None

        if self.ledger.liquid_reserve < baseline_units:
            logger.warning(
                "Liquid reserve %d still below baseline %d after deposit",
                self.ledger.liquid_reserve,
                baseline_units,
            )

        return DepositResult(
            depositor=depositor,
            amount=amount,
            fee=fee,
            shares_minted=shares,
            to_liquid=to_liquid,
            to_fund=to_fund,
            baseline_top_up=top_up,
            total_shares=self.supply.total_shares,
            total_value_before=snapshot.total_value,
            state=state,
            rebalance=report,
        )

    def _rebalance_after_deposit(self, policy: AllocationPolicy) -> RebalanceReport:
        try:
            return self.rebalancer.rebalance(policy)
        except ExternalError as e:
            logger.warning("Post-deposit rebalance incomplete: %s", e)
            return RebalanceReport(
                reserve_transfer=None,
                deltas=(),
                completed=False,
                failed_step_index=e.details.get("step_index"),
                error_code=e.code,
                details=e.message,
            )

    # -------------------------------------------------------------------------
    # REDEEM
    # -------------------------------------------------------------------------

    def redeem(self, redeemer: str, shares: int) -> RedemptionResult:
        """
        Погашение shares долей в резервный актив.

        Если ликвидного резерва не хватает, недостача делится:
        shortfall_sell_percentage продаётся из назначенных активов,
        остаток переводится из размещённой части резерва.
        Разбиение фиксировано: если продажи не могут дать свою долю,
        погашение отклоняется с PartialRedemptionShortfall, даже когда
        размещённой части резерва хватило бы на всю недостачу.

        Raises:
            InvalidAmount: shares == 0, больше выпущенных или погашение
                слишком мало для выплаты
            PolicyUnset: политика не задана
            PartialRedemptionShortfall: источники не покрывают недостачу
                (до вызовов площадки) или продажа дала меньше (после)
            BelowBaseline: резерв ниже baseline в режиме BLOCK, либо
                пополнения в режиме TOP_UP не хватает
            VenueCallFailed: отказ площадки при продаже
            HostCallFailed: отказ сжигания/перевода
        """
        state = RedeemState.REQUESTED
        self._require_positive(shares, "shares")
        policy = self.policy_store.current()
        reserve = self.ledger.reserve_asset_id

        total_shares = self.supply.total_shares
        if shares > total_shares:
            raise InvalidAmount(
                f"cannot redeem {shares} of {total_shares} outstanding shares",
                details={"shares": shares, "total_shares": total_shares},
            )

        snapshot = self.ledger.snapshot()
        state = self._advance("redeem", state, RedeemState.VALUED)

        owed = self.owed_units(shares, snapshot)
        if owed == 0:
            raise InvalidAmount(
                f"redemption of {shares} shares pays nothing",
                details={"shares": shares, "total_value": snapshot.total_value},
            )
        fee, net = self.fee_ledger.transaction_fee(owed)

        shortfall = max(0, owed - snapshot.liquid_reserve)
        sell_target = apply_percentage(shortfall, policy.shortfall_sell_percentage)
        transfer_part = shortfall - sell_target
        if shortfall:
            self._check_shortfall_sources(snapshot, policy, owed, sell_target, transfer_part)

        total_after = checked_sub(snapshot.total_value, checked_mul(owed, snapshot.reserve_price))
        self._baseline_top_up(
            liquid_after=snapshot.liquid_reserve + shortfall - owed,
            total_after=total_after,
            deployed_available=snapshot.deployed_reserve - transfer_part,
            reserve_price=snapshot.reserve_price,
            policy=policy,
        )

        sold = 0
        trades: tuple[ExecutedTrade, ...] = ()
        if sell_target:
            sold, trades = self.rebalancer.liquidate_for_reserve(sell_target, policy, snapshot)
            if sold < sell_target:
                missing = sell_target - sold
                logger.warning("Redemption short by %d after liquidation", missing)
                raise PartialRedemptionShortfall(
                    missing,
                    f"liquidation raised {sold} of {sell_target} reserve units",
                    details={"owed": owed, "sold": sold, "sell_target": sell_target},
                )

        # Пересчёт по фактическим балансам после продаж
        current = self.ledger.snapshot() if trades else snapshot
        top_up = self._baseline_top_up(
            liquid_after=current.liquid_reserve + transfer_part - owed,
            total_after=checked_sub(current.total_value, checked_mul(owed, current.reserve_price)),
            deployed_available=current.deployed_reserve - transfer_part,
            reserve_price=current.reserve_price,
            policy=policy,
        )
        state = self._advance("redeem", state, RedeemState.FUNDED)

        call_host("burn", self.tokens.burn, redeemer, shares)
        call_host("transfer", self.tokens.transfer, self.config.fund_account, redeemer, net)
        if fee:
            call_host("transfer", self.tokens.transfer, self.config.fund_account, self.config.fees.fee_destination, fee)

        from_fund = transfer_part + top_up
        self.ledger.apply(
            BalanceChanges(
                holdings={reserve: -from_fund},
                liquid_reserve=from_fund - owed,
                reason=f"redemption by {redeemer}",
            )
        )
        self.supply = self.supply.burned(shares)
        self.fee_ledger.record_transaction_fee(fee)
        state = self._advance("redeem", state, RedeemState.SETTLED)

        logger.info(
            "Redemption settled: redeemer=%s shares=%d owed=%d fee=%d sold=%d transferred=%d top_up=%d",
            redeemer,
            shares,
            owed,
            fee,
            sold,
            transfer_part,
            top_up,
        )
        return RedemptionResult(
            redeemer=redeemer,
            shares_burned=shares,
            owed=owed,
            fee=fee,
            paid=net,
            total_shares=self.supply.total_shares,
            total_value_before=snapshot.total_value,
            sold_for_reserve=sold,
            transferred_from_fund=transfer_part,
            baseline_top_up=top_up,
            liquidation_trades=trades,
            state=state,
        )

    def _check_shortfall_sources(
        self,
        snapshot: ValuationSnapshot,
        policy: AllocationPolicy,
        owed: int,
        sell_target: int,
        transfer_part: int,
    ) -> None:
        capacity = self.rebalancer.estimate_liquidation_capacity(snapshot, policy)
        uncovered = max(0, sell_target - capacity) + max(0, transfer_part - snapshot.deployed_reserve)
        if uncovered:
            logger.warning(
                "Redemption of %d units cannot be funded: liquid=%d short=%d",
                owed,
                snapshot.liquid_reserve,
                uncovered,
            )
            raise PartialRedemptionShortfall(
                uncovered,
                details={
                    "owed": owed,
                    "liquid_reserve": snapshot.liquid_reserve,
                    "sell_target": sell_target,
                    "sell_capacity": capacity,
                    "transfer_part": transfer_part,
                    "deployed_reserve": snapshot.deployed_reserve,
                },
            )

    def _deposit_top_up(self, liquid_after: int, baseline_units: int, deployed_available: int) -> int:
        """Перевод в ликвидный резерв после депозита; в режиме BLOCK всегда 0."""
        if liquid_after >= baseline_units or self.config.baseline_mode != BaselineMode.TOP_UP:
            return 0
        top_up = min(baseline_units - liquid_after, deployed_available)
        logger.debug("Deposit tops up liquid reserve by %d (baseline %d)", top_up, baseline_units)
        return top_up

    def _baseline_top_up(
        self,
        liquid_after: int,
        total_after: int,
        deployed_available: int,
        reserve_price: int,
        policy: AllocationPolicy,
    ) -> int:
        """
        Пополнение ликвидного резерва, требуемое после погашения.

        Returns:
            Единицы, переводимые из размещённой части (0 если baseline соблюдён)
        """
        if total_after == 0:
            return 0
        baseline_units, _ = self.rebalancer.liquid_bounds(total_after, reserve_price, policy)
        if liquid_after >= baseline_units:
            return 0

        deficit = baseline_units - liquid_after
        details = {
            "liquid_after": liquid_after,
            "baseline_units": baseline_units,
            "mode": self.config.baseline_mode.value,
        }
        if self.config.baseline_mode == BaselineMode.BLOCK:
            raise BelowBaseline(
                f"redemption would leave {liquid_after} liquid units, baseline is {baseline_units}",
                details=details,
            )
        if deficit > deployed_available:
            raise BelowBaseline(
                f"top-up of {deficit} exceeds deployed reserve {deployed_available}",
                details=dict(details, deployed_available=deployed_available),
            )
        return deficit

    # -------------------------------------------------------------------------
    # ВСПОМОГАТЕЛЬНЫЕ
    # -------------------------------------------------------------------------

    @staticmethod
    def _require_positive(value: int, label: str) -> None:
        ensure_u64(value, label)
        if value == 0:
            raise InvalidAmount(f"{label} must be positive", details={label: value})

    @staticmethod
    def _advance(operation: str, current: Enum, nxt: Enum) -> Enum:
        logger.debug("%s: %s -> %s", operation, current.value, nxt.value)
        return nxt
