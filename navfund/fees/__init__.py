"""Награды и комиссии фонда."""

from .ledger import FeeLedger

__all__ = ["FeeLedger"]
