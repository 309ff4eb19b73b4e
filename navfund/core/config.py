"""
Config — Конфигурация фонда

Frozen dataclasses с default-значениями. Загрузка из JSON проходит через
контракт fund_config (JSON Schema) до построения объектов.

Политика поведения при нарушении baseline — конфигурация, а не константа:
- BLOCK: погашение блокируется (BelowBaseline), депозит проходит без пополнения
- TOP_UP: резерв пополняется из фонда в той же операции (депозит и погашение)
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

from jsonschema import ValidationError

from navfund.core.contracts import validate_fund_config
from navfund.core.errors import ConfigError
from navfund.core.math.fixed_point import BPS_DENOMINATOR


class BaselineMode(str, Enum):
    BLOCK = "BLOCK"
    TOP_UP = "TOP_UP"


@dataclass(frozen=True)
class OracleConfig:
    """Границы свежести ценового фида."""

    max_age_sec: int = 60
    # Допустимое опережение часов источника
    max_future_skew_sec: int = 5

    def __post_init__(self) -> None:
        if self.max_age_sec <= 0:
            raise ConfigError(f"max_age_sec must be positive, got {self.max_age_sec}")
        if self.max_future_skew_sec < 0:
            raise ConfigError(f"max_future_skew_sec must be >= 0, got {self.max_future_skew_sec}")


@dataclass(frozen=True)
class FeeSchedule:
    """
    Транзакционная комиссия.

    Удерживается из суммы депозита и из выплаты погашения
    и отправляется fee_destination.
    """

    transaction_fee_bps: int = 0
    fee_destination: str | None = None

    def __post_init__(self) -> None:
        if not 0 <= self.transaction_fee_bps <= BPS_DENOMINATOR:
            raise ConfigError(
                f"transaction_fee_bps must be in 0..{BPS_DENOMINATOR}, got {self.transaction_fee_bps}"
            )
        if self.transaction_fee_bps > 0 and not self.fee_destination:
            raise ConfigError("fee_destination is required when transaction_fee_bps > 0")


@dataclass(frozen=True)
class FundConfig:
    """
    Конфигурация фонда.

    owner — единственный principal, которому разрешены update_policy,
    rebalance и collect_rewards. fund_account — счёт фонда у хоста,
    с которого и на который идут переводы.
    """

    owner: str
    fund_account: str
    reserve_asset_id: str
    baseline_mode: BaselineMode = BaselineMode.BLOCK
    # Доли на единицу резерва при первом депозите (total_shares == 0)
    seed_shares_per_unit: int = 1
    slippage_tolerance_bps: int = 100
    oracle: OracleConfig = field(default_factory=OracleConfig)
    fees: FeeSchedule = field(default_factory=FeeSchedule)

    def __post_init__(self) -> None:
        for name in ("owner", "fund_account", "reserve_asset_id"):
            if not getattr(self, name):
                raise ConfigError(f"{name} must be non-empty")
        if self.seed_shares_per_unit <= 0:
            raise ConfigError(f"seed_shares_per_unit must be positive, got {self.seed_shares_per_unit}")
        if not 0 <= self.slippage_tolerance_bps <= BPS_DENOMINATOR:
            raise ConfigError(
                f"slippage_tolerance_bps must be in 0..{BPS_DENOMINATOR}, got {self.slippage_tolerance_bps}"
            )


# =============================================================================
# LOADING
# =============================================================================


def fund_config_from_mapping(data: Mapping[str, Any]) -> FundConfig:
    """
    Построение FundConfig из dict (например, распарсенного JSON).

    Raises:
        ConfigError: Если данные не соответствуют контракту fund_config
    """
    payload = dict(data)
    try:
        validate_fund_config(payload)
    except ValidationError as e:
        raise ConfigError(f"fund config violates contract: {e.message}", details={"path": list(e.path)}) from e

    oracle = OracleConfig(**payload.pop("oracle", {}))
    fees = FeeSchedule(**payload.pop("fees", {}))
    if "baseline_mode" in payload:
        payload["baseline_mode"] = BaselineMode(payload["baseline_mode"])
    return FundConfig(oracle=oracle, fees=fees, **payload)


def load_fund_config(path: str | Path) -> FundConfig:
    """Загрузка FundConfig из JSON-файла."""
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"cannot read fund config {path}: {e}") from e
    return fund_config_from_mapping(data)
