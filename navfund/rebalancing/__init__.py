"""Ребалансировка фонда к целевому распределению."""

from .engine import RebalancingEngine

__all__ = ["RebalancingEngine"]
