"""Балансы фонда и оценка NAV."""

from .holdings import BalanceChanges, HoldingsLedger

__all__ = [
    "BalanceChanges",
    "HoldingsLedger",
]
