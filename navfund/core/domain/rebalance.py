"""
Rebalance — Модели дельт и отчётов ребалансировки

Дельта — инструкция buy/sell/transfer, приближающая текущее распределение
к целевому. Последовательность дельт детерминирована: одинаковый снапшот
даёт одинаковую упорядоченную последовательность.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class Direction(str, Enum):
    """Направление дельты."""

    BUY = "BUY"
    SELL = "SELL"
    # Перемещение резервного актива между ликвидным резервом и фондом
    TRANSFER = "TRANSFER"


class TransferRoute(str, Enum):
    """Маршрут TRANSFER-дельты резервного актива."""

    TO_LIQUID = "TO_LIQUID"
    TO_FUND = "TO_FUND"


@dataclass(frozen=True)
class RebalanceDelta:
    """
    Инструкция ребалансировки.

    amount — в единицах asset_id (для BUY/SELL — единицы торгуемого актива,
    для TRANSFER — единицы резервного актива).
    """

    asset_id: str
    direction: Direction
    amount: int
    route: Optional[TransferRoute] = None


@dataclass(frozen=True)
class ExecutedTrade:
    """Исполненная дельта."""

    step_index: int
    delta: RebalanceDelta
    spent_asset_id: str
    spent_amount: int
    received_asset_id: str
    received_amount: int
    # True если BUY урезан до доступного резерва
    clamped: bool = False


@dataclass(frozen=True)
class RebalanceReport:
    """Результат ребалансировки."""

    reserve_transfer: Optional[RebalanceDelta]
    deltas: tuple[RebalanceDelta, ...]
    executed: tuple[ExecutedTrade, ...] = field(default_factory=tuple)

    # Диагностика частичного исполнения
    completed: bool = True
    failed_step_index: Optional[int] = None
    error_code: Optional[str] = None
    details: str = ""
