"""
HoldingsLedger — Балансы фонда и оценка NAV

Явный словарь asset_id → AssetHolding, проверенный один раз на границе
ledger (уникальные идентификаторы, резервный актив присутствует).
Поиск по ключу, без повторных сканирований списков.

Резервный актив хранится в двух частях:
- liquid_reserve: ликвидный резерв для погашений без сделки на площадке
- holdings[reserve_asset_id]: размещённая часть резерва (счёт фонда)

КРИТИЧЕСКИЕ ИНВАРИАНТЫ:
1. Баланс никогда не отрицателен
2. apply() атомарен: либо применяется весь набор изменений, либо ничего
3. total_value считается с checked-арифметикой (ValueOverflow вместо wrap)
4. Снапшот считается заново на каждый вызов, цены не кэшируются
"""

from dataclasses import dataclass, field
from typing import Iterable, Mapping

from navfund.core.domain.fund_state import ValuationSnapshot
from navfund.core.domain.holding import AssetHolding
from navfund.core.errors import InputError, InsufficientBalance, UnknownAsset, ValueOverflow
from navfund.core.logger import get_logger
from navfund.core.math.fixed_point import U64_MAX, checked_add, checked_mul, ensure_u64
from navfund.oracle.price_feed import PriceOracleAdapter

logger = get_logger(__name__)


@dataclass(frozen=True)
class BalanceChanges:
    """
    Набор знаковых изменений балансов, применяемый атомарно.

    holdings: asset_id → delta (единицы актива)
    liquid_reserve: delta ликвидного резерва (единицы резервного актива)
    """

    holdings: Mapping[str, int] = field(default_factory=dict)
    liquid_reserve: int = 0
    reason: str = ""

    def is_empty(self) -> bool:
        return self.liquid_reserve == 0 and not any(self.holdings.values())


class HoldingsLedger:
    """
    Read-only оценка фонда + атомарное применение изменений балансов.

    Все цены берутся из PriceOracleAdapter на момент вызова; отказ оракула
    пробрасывается, цена по умолчанию не подставляется.
    """

    def __init__(
        self,
        reserve_asset_id: str,
        oracle: PriceOracleAdapter,
        holdings: Iterable[AssetHolding] = (),
        liquid_reserve: int = 0,
    ):
        """
        Args:
            reserve_asset_id: резервный актив (например, нативная единица сети)
            oracle: адаптер цен
            holdings: размещённые балансы фонда
            liquid_reserve: начальный ликвидный резерв
        """
        self.reserve_asset_id = reserve_asset_id
        self.oracle = oracle

        self._holdings: dict[str, AssetHolding] = {}
        for holding in holdings:
            if holding.asset_id in self._holdings:
                raise InputError(
                    f"duplicate holding for asset {holding.asset_id}",
                    details={"asset_id": holding.asset_id},
                )
            self._holdings[holding.asset_id] = holding
        if reserve_asset_id not in self._holdings:
            self._holdings[reserve_asset_id] = AssetHolding(asset_id=reserve_asset_id, balance=0)

        self._liquid_reserve = ensure_u64(liquid_reserve, "liquid_reserve")

    # -------------------------------------------------------------------------
    # ЧТЕНИЕ
    # -------------------------------------------------------------------------

    @property
    def liquid_reserve(self) -> int:
        return self._liquid_reserve

    def asset_ids(self) -> list[str]:
        return sorted(self._holdings)

    def is_empty(self) -> bool:
        """Нет ни ликвидного резерва, ни размещённых балансов (total_value == 0 при любых ценах)."""
        return self._liquid_reserve == 0 and not any(h.balance for h in self._holdings.values())

    def holding(self, asset_id: str) -> AssetHolding:
        try:
            return self._holdings[asset_id]
        except KeyError:
            raise UnknownAsset(f"asset {asset_id} is not held by the fund", details={"asset_id": asset_id}) from None

    def balance_of(self, asset_id: str) -> int:
        return self.holding(asset_id).balance

    def snapshot(self) -> ValuationSnapshot:
        """
        Свежий снапшот оценки фонда.

        total_value = liquid_reserve * p_reserve + sum(balance_i * p_i)

        Raises:
            StaleOrMalformedFeed: Если любой фид недоступен
            ValueOverflow: Если стоимость не помещается в u64
        """
        prices: dict[str, int] = {}
        balances: dict[str, int] = {}
        values: dict[str, int] = {}

        for asset_id in self.asset_ids():
            holding = self._holdings[asset_id]
            price = self.oracle.get_price(asset_id).price
            prices[asset_id] = price
            balances[asset_id] = holding.balance
            values[asset_id] = checked_mul(holding.balance, price)

        reserve_price = prices[self.reserve_asset_id]
        liquid_value = checked_mul(self._liquid_reserve, reserve_price)

        total_value = liquid_value
        for value in values.values():
            total_value = checked_add(total_value, value)

        return ValuationSnapshot(
            reserve_asset_id=self.reserve_asset_id,
            reserve_price=reserve_price,
            liquid_reserve=self._liquid_reserve,
            liquid_value=liquid_value,
            total_value=total_value,
            balances=balances,
            prices=prices,
            per_asset_value=values,
        )

    def total_value(self) -> int:
        return self.snapshot().total_value

    def liquid_value(self) -> int:
        """Стоимость ликвидного резерва (подмножество total_value)."""
        price = self.oracle.get_price(self.reserve_asset_id).price
        return checked_mul(self._liquid_reserve, price)

    def percentage_of(self, asset_id: str) -> int:
        """Доля актива в total_value, fixed-point (RATIO_SCALE = 100%)."""
        self.holding(asset_id)
        return self.snapshot().percentage_of(asset_id)

    # -------------------------------------------------------------------------
    # МУТАЦИЯ
    # -------------------------------------------------------------------------

    def apply(self, changes: BalanceChanges) -> None:
        """
        Атомарное применение набора изменений: validate-then-commit.

        Raises:
            UnknownAsset: Изменение для актива вне ledger
            InsufficientBalance: Баланс стал бы отрицательным
            ValueOverflow: Баланс превысил бы U64_MAX
        """
        if changes.is_empty():
            return

        new_balances: dict[str, int] = {}
        for asset_id, delta in changes.holdings.items():
            current = self.holding(asset_id).balance
            new_balances[asset_id] = self._checked_balance(asset_id, current, delta)

        new_liquid = self._checked_balance(
            "liquid_reserve", self._liquid_reserve, changes.liquid_reserve
        )

        # Commit
        for asset_id, balance in new_balances.items():
            self._holdings[asset_id] = self._holdings[asset_id].with_balance(balance)
        self._liquid_reserve = new_liquid

        logger.debug(
            "Ledger applied: holdings=%s liquid_delta=%s reason=%s",
            dict(changes.holdings),
            changes.liquid_reserve,
            changes.reason,
        )

    @staticmethod
    def _checked_balance(label: str, current: int, delta: int) -> int:
        result = current + delta
        if result < 0:
            raise InsufficientBalance(
                f"{label}: balance {current} cannot absorb change {delta}",
                details={"asset_id": label, "balance": current, "delta": delta},
            )
        if result > U64_MAX:
            raise ValueOverflow(
                f"{label}: balance {current} + {delta} exceeds u64",
                details={"asset_id": label, "balance": current, "delta": delta},
            )
        return result
