"""Выпуск и погашение долей фонда."""

from .engine import (
    DepositResult,
    DepositState,
    RedeemState,
    RedemptionResult,
    ShareIssuanceEngine,
)

__all__ = [
    "DepositResult",
    "DepositState",
    "RedeemState",
    "RedemptionResult",
    "ShareIssuanceEngine",
]
