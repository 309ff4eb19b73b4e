"""
AssetHolding — Модель баланса актива фонда

Immutable Pydantic модель. Баланс принадлежит фонду и меняется только
через HoldingsLedger.apply (ShareIssuanceEngine, RebalancingEngine, FeeLedger).
Все изменения создают новый экземпляр.
"""

from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from navfund.core.math.fixed_point import U64_MAX


class AssetHolding(BaseModel):
    """
    Баланс одного актива фонда.

    Цена актива из оракула — стоимость одной базовой единицы баланса;
    decimals влияет только на отображение (ui_amount).
    """

    asset_id: str = Field(..., min_length=1, description="Идентификатор актива (mint)")
    balance: int = Field(..., ge=0, le=U64_MAX, description="Баланс в базовых единицах")
    decimals: int = Field(0, ge=0, le=18, description="Количество десятичных знаков актива")

    model_config = {"frozen": True}

    @field_validator("asset_id")
    @classmethod
    def validate_asset_id(cls, v: str) -> str:
        if v != v.strip():
            raise ValueError(f"asset_id {v!r} has surrounding whitespace")
        return v

    def with_balance(self, balance: int) -> "AssetHolding":
        return self.model_copy(update={"balance": balance})

    def ui_amount(self) -> Decimal:
        """Баланс в целых единицах актива (balance / 10**decimals)."""
        return Decimal(self.balance).scaleb(-self.decimals)
