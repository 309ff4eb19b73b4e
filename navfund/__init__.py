"""
navfund — движок фонда с общим пулом стоимости

NAV, контроль распределения, выпуск/погашение долей, награды и комиссии.
"""

from navfund.core.config import BaselineMode, FeeSchedule, FundConfig, OracleConfig, load_fund_config
from navfund.core.domain.allocation_policy import AllocationPolicy
from navfund.core.domain.holding import AssetHolding
from navfund.fund import FundEngine, NavReport, RewardsCollection

__version__ = "0.1.0"

__all__ = [
    "AllocationPolicy",
    "AssetHolding",
    "BaselineMode",
    "FeeSchedule",
    "FundConfig",
    "FundEngine",
    "NavReport",
    "OracleConfig",
    "RewardsCollection",
    "load_fund_config",
]
