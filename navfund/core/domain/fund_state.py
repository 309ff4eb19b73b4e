"""
FundState — Снапшоты и состояние фонда

Immutable Pydantic модели:
- ValuationSnapshot: производный снапшот оценки, считается заново на каждый запрос
- ShareSupply: количество выпущенных долей
- FeeState: накопленные награды и комиссии

ValuationSnapshot никогда не кэшируется между вызовами, которые могут менять
балансы: устаревший NAV ведёт к неверной эмиссии долей.
"""

from dataclasses import dataclass

from pydantic import BaseModel, Field, model_validator

from navfund.core.errors import UnknownAsset
from navfund.core.math.fixed_point import U64_MAX, checked_add, checked_sub, ratio


# =============================================================================
# PRICE QUOTE
# =============================================================================


@dataclass(frozen=True)
class PriceQuote:
    """Цена актива из оракула."""

    asset_id: str
    price: int  # стоимость одной базовой единицы
    as_of: int  # unix timestamp, секунды


# =============================================================================
# VALUATION SNAPSHOT
# =============================================================================


class ValuationSnapshot(BaseModel):
    """
    Снапшот оценки фонда.

    balances/prices/per_asset_value описывают размещённые holdings фонда
    (включая размещённую часть резервного актива). Ликвидный резерв
    учитывается отдельно: liquid_reserve (единицы) и liquid_value (стоимость).

    total_value = liquid_value + sum(per_asset_value)
    """

    reserve_asset_id: str = Field(..., min_length=1, description="Резервный актив")
    reserve_price: int = Field(..., gt=0, le=U64_MAX, description="Цена резервного актива")
    liquid_reserve: int = Field(..., ge=0, le=U64_MAX, description="Ликвидный резерв (единицы)")
    liquid_value: int = Field(..., ge=0, le=U64_MAX, description="Стоимость ликвидного резерва")
    total_value: int = Field(..., ge=0, le=U64_MAX, description="Полная стоимость фонда")
    balances: dict[str, int] = Field(default_factory=dict, description="Балансы holdings")
    prices: dict[str, int] = Field(default_factory=dict, description="Цены holdings")
    per_asset_value: dict[str, int] = Field(default_factory=dict, description="Стоимость holdings")

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_consistency(self) -> "ValuationSnapshot":
        if set(self.balances) != set(self.prices) or set(self.balances) != set(self.per_asset_value):
            raise ValueError("balances, prices and per_asset_value must cover the same assets")
        expected = self.liquid_value + sum(self.per_asset_value.values())
        if expected != self.total_value:
            raise ValueError(f"total_value {self.total_value} != components sum {expected}")
        return self

    @property
    def deployed_reserve(self) -> int:
        """Размещённая (не ликвидная) часть резервного актива, в единицах."""
        return self.balances.get(self.reserve_asset_id, 0)

    def balance_of(self, asset_id: str) -> int:
        if asset_id not in self.balances:
            raise UnknownAsset(details={"asset_id": asset_id})
        return self.balances[asset_id]

    def price_of(self, asset_id: str) -> int:
        if asset_id not in self.prices:
            raise UnknownAsset(details={"asset_id": asset_id})
        return self.prices[asset_id]

    def value_of(self, asset_id: str) -> int:
        if asset_id not in self.per_asset_value:
            raise UnknownAsset(details={"asset_id": asset_id})
        return self.per_asset_value[asset_id]

    def percentage_of(self, asset_id: str) -> int:
        """Доля актива в total_value, fixed-point (RATIO_SCALE = 100%)."""
        return ratio(self.value_of(asset_id), self.total_value)


# =============================================================================
# SHARE SUPPLY
# =============================================================================


class ShareSupply(BaseModel):
    """
    Количество выпущенных долей фонда.

    Доля даёт право на shares_owned / total_shares * total_value.
    """

    total_shares: int = Field(0, ge=0, le=U64_MAX, description="Выпущенные доли")

    model_config = {"frozen": True}

    def minted(self, shares: int) -> "ShareSupply":
        return ShareSupply(total_shares=checked_add(self.total_shares, shares))

    def burned(self, shares: int) -> "ShareSupply":
        return ShareSupply(total_shares=checked_sub(self.total_shares, shares))


# =============================================================================
# FEE STATE
# =============================================================================


class FeeState(BaseModel):
    """
    Накопленные награды и комиссии.

    Инвариант: rewards_distributed + rewards_retained == rewards_collected
    (точное разбиение, стоимость не создаётся и не уничтожается).
    """

    rewards_collected: int = Field(0, ge=0, le=U64_MAX, description="Всего собрано наград")
    rewards_distributed: int = Field(0, ge=0, le=U64_MAX, description="Отправлено reward_destination")
    rewards_retained: int = Field(0, ge=0, le=U64_MAX, description="Оставлено в фонде")
    transaction_fees_collected: int = Field(0, ge=0, le=U64_MAX, description="Транзакционные комиссии")
    collections: int = Field(0, ge=0, description="Количество сборов наград")

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def validate_partition(self) -> "FeeState":
        if self.rewards_distributed + self.rewards_retained != self.rewards_collected:
            raise ValueError(
                f"rewards partition broken: {self.rewards_distributed} + "
                f"{self.rewards_retained} != {self.rewards_collected}"
            )
        return self

    def with_collection(self, reward_amount: int, remaining: int) -> "FeeState":
        return self.model_copy(
            update={
                "rewards_collected": checked_add(self.rewards_collected, reward_amount + remaining),
                "rewards_distributed": checked_add(self.rewards_distributed, reward_amount),
                "rewards_retained": checked_add(self.rewards_retained, remaining),
                "collections": self.collections + 1,
            }
        )

    def with_transaction_fee(self, fee: int) -> "FeeState":
        return self.model_copy(
            update={"transaction_fees_collected": checked_add(self.transaction_fees_collected, fee)}
        )
