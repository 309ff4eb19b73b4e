"""
Domain models and value objects.

Holdings, AllocationPolicy, снапшоты оценки, доли, комиссии, дельты ребалансировки.
"""

from navfund.core.domain.allocation_policy import AllocationPolicy
from navfund.core.domain.fund_state import FeeState, PriceQuote, ShareSupply, ValuationSnapshot
from navfund.core.domain.holding import AssetHolding
from navfund.core.domain.rebalance import (
    Direction,
    ExecutedTrade,
    RebalanceDelta,
    RebalanceReport,
    TransferRoute,
)

__all__ = [
    # Holdings
    "AssetHolding",
    # Policy
    "AllocationPolicy",
    # Snapshots & state
    "PriceQuote",
    "ValuationSnapshot",
    "ShareSupply",
    "FeeState",
    # Rebalancing
    "Direction",
    "TransferRoute",
    "RebalanceDelta",
    "ExecutedTrade",
    "RebalanceReport",
]
