"""
AllocationPolicy — Конфигурация целевого распределения фонда

Immutable Pydantic модель. Политика заменяется целиком при каждом принятом
обновлении и никогда не мержится частично.

ИНВАРИАНТЫ:
1. Все проценты — целые в диапазоне 0..100
2. target_liquid_percentage + baseline_liquid_percentage <= 100
3. sum(per_asset_weights) <= 100
4. reward_destination не пустой
"""

from pydantic import BaseModel, Field, field_validator, model_validator

# Доля недостачи погашения, покрываемая продажей активов, по умолчанию
DEFAULT_SHORTFALL_SELL_PERCENTAGE = 50


class AllocationPolicy(BaseModel):
    """
    Целевое распределение фонда.

    Проценты — доли от total_value фонда:
    - target_liquid_percentage: доля ликвидного резерва, к которой ведёт rebalance
    - baseline_liquid_percentage: минимальная доля ликвидного резерва после операции
    - per_asset_weights: целевая доля каждого актива
    - reward_percentage: доля наград пулов ликвидности для reward_destination
    """

    target_liquid_percentage: int = Field(..., ge=0, le=100, description="Целевая доля ликвидного резерва (%)")
    baseline_liquid_percentage: int = Field(..., ge=0, le=100, description="Минимальная доля ликвидного резерва (%)")
    per_asset_weights: dict[str, int] = Field(
        default_factory=dict, description="Целевые доли активов (asset_id → %)"
    )
    reward_percentage: int = Field(..., ge=0, le=100, description="Доля наград для reward_destination (%)")
    reward_destination: str = Field(..., min_length=1, description="Получатель доли наград")

    shortfall_sell_percentage: int = Field(
        DEFAULT_SHORTFALL_SELL_PERCENTAGE,
        ge=0,
        le=100,
        description="Доля недостачи погашения, покрываемая продажей активов (%)",
    )
    liquidation_assets: list[str] | None = Field(
        None, description="Активы для продажи при недостаче (по порядку); None → активы с весами"
    )
    liquidity_pools: dict[str, list[str]] = Field(
        default_factory=dict,
        description="LP-актив → пара [asset_a, asset_b]; покупка идёт через add_liquidity",
    )

    model_config = {"frozen": True}

    @field_validator("per_asset_weights")
    @classmethod
    def validate_weights(cls, v: dict[str, int]) -> dict[str, int]:
        for asset_id, weight in v.items():
            if not asset_id:
                raise ValueError("per_asset_weights contains an empty asset_id")
            if isinstance(weight, bool) or weight < 0 or weight > 100:
                raise ValueError(f"weight for {asset_id} must be in 0..100, got {weight}")
        return v

    @field_validator("liquidity_pools")
    @classmethod
    def validate_pools(cls, v: dict[str, list[str]]) -> dict[str, list[str]]:
        for lp_asset_id, pair in v.items():
            if len(pair) != 2 or pair[0] == pair[1]:
                raise ValueError(f"liquidity pool {lp_asset_id} must name two distinct assets, got {pair}")
            if lp_asset_id in pair:
                raise ValueError(f"liquidity pool {lp_asset_id} cannot contain itself")
        return v

    @model_validator(mode="after")
    def validate_totals(self) -> "AllocationPolicy":
        liquid_total = self.target_liquid_percentage + self.baseline_liquid_percentage
        if liquid_total > 100:
            raise ValueError(
                f"target_liquid_percentage + baseline_liquid_percentage = {liquid_total} exceeds 100"
            )

        weights_total = sum(self.per_asset_weights.values())
        if weights_total > 100:
            raise ValueError(f"sum(per_asset_weights) = {weights_total} exceeds 100")

        if self.liquidation_assets is not None:
            if len(set(self.liquidation_assets)) != len(self.liquidation_assets):
                raise ValueError("liquidation_assets contains duplicates")
        return self

    def weighted_assets(self) -> list[str]:
        """Активы с настроенным весом в порядке возрастания идентификатора."""
        return sorted(self.per_asset_weights)

    def designated_liquidation_assets(self) -> list[str]:
        if self.liquidation_assets is not None:
            return list(self.liquidation_assets)
        return self.weighted_assets()

    def referenced_assets(self) -> set[str]:
        """Все asset_id, на которые ссылается политика."""
        assets = set(self.per_asset_weights)
        assets.update(self.designated_liquidation_assets())
        for lp_asset_id, pair in self.liquidity_pools.items():
            assets.add(lp_asset_id)
            assets.update(pair)
        return assets
