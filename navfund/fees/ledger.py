"""
FeeLedger — Учёт наград и транзакционных комиссий

collect(rewards, reward_percentage):
    reward_amount = floor(rewards * reward_percentage / 100)
    remaining = rewards - reward_amount

Усечение всегда в пользу фонда (remaining): повторный сбор не даёт
выигрыша на округлении получателю наград.

transaction_fee(amount):
    fee = floor(amount * transaction_fee_bps / 10_000)
    net = amount - fee

Комиссия удерживается из собственной суммы участника (депозит или выплата
погашения), поэтому сумма всех потоков остаётся нулевой.
"""

from navfund.core.config import FeeSchedule
from navfund.core.domain.fund_state import FeeState
from navfund.core.errors import InputError
from navfund.core.logger import get_logger
from navfund.core.math.fixed_point import PERCENT_DENOMINATOR, apply_bps, apply_percentage, ensure_u64

logger = get_logger(__name__)


class FeeLedger:
    """Разбиение наград и расчёт комиссий + накопленное FeeState."""

    def __init__(self, schedule: FeeSchedule | None = None, state: FeeState | None = None):
        self.schedule = schedule or FeeSchedule()
        self.state = state or FeeState()

    def split_rewards(self, rewards: int, reward_percentage: int) -> tuple[int, int]:
        """Чистое разбиение без изменения state."""
        ensure_u64(rewards, "rewards")
        if not 0 <= reward_percentage <= PERCENT_DENOMINATOR:
            raise InputError(
                f"reward_percentage must be in 0..100, got {reward_percentage}",
                details={"reward_percentage": reward_percentage},
            )
        reward_amount = apply_percentage(rewards, reward_percentage)
        return reward_amount, rewards - reward_amount

    def collect(self, rewards: int, reward_percentage: int) -> tuple[int, int]:
        """
        Разбиение собранных наград и запись в FeeState.

        Returns:
            (reward_amount, remaining); reward_amount + remaining == rewards
        """
        reward_amount, remaining = self.split_rewards(rewards, reward_percentage)
        self.state = self.state.with_collection(reward_amount, remaining)

        logger.info(
            "Rewards collected: total=%d distributed=%d retained=%d",
            rewards,
            reward_amount,
            remaining,
        )
        return reward_amount, remaining

    def transaction_fee(self, amount: int) -> tuple[int, int]:
        """(fee, net) для суммы amount; state не меняется."""
        ensure_u64(amount, "amount")
        fee = apply_bps(amount, self.schedule.transaction_fee_bps)
        return fee, amount - fee

    def record_transaction_fee(self, fee: int) -> None:
        if fee:
            self.state = self.state.with_transaction_fee(fee)
