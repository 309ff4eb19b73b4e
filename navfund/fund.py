"""
FundEngine — Точки входа операций фонда

Связывает компоненты и проверяет авторизацию:

    FeedSource → PriceOracleAdapter → HoldingsLedger ─┬→ RebalancingEngine ─→ ExternalVenueGateway
                                                      └→ ShareIssuanceEngine ─→ TokenMovement
    AllocationPolicyStore, FeeLedger

Операции:
- deposit(signer, amount)        — любой подписант, доли выпускаются ему
- redeem(signer, shares)         — любой подписант, доли сжигаются у него
- rebalance(signer)              — только владелец
- update_policy(signer, policy)  — только владелец
- collect_rewards(signer)        — только владелец
- compute_nav()                  — read-only

Каждая операция возвращает результат с итоговыми балансами/долями
либо поднимает одну из ошибок navfund.core.errors.
"""

import time
from dataclasses import dataclass
from typing import Callable, Iterable

from navfund.core.config import FundConfig
from navfund.core.domain.allocation_policy import AllocationPolicy
from navfund.core.domain.fund_state import ShareSupply, ValuationSnapshot
from navfund.core.domain.holding import AssetHolding
from navfund.core.domain.rebalance import RebalanceReport
from navfund.core.errors import HostCallFailed, InvalidFundState, Unauthorized, VenueCallFailed
from navfund.core.logger import get_logger
from navfund.core.math.fixed_point import U64_MAX, ratio
from navfund.fees.ledger import FeeLedger
from navfund.issuance.engine import DepositResult, RedemptionResult, ShareIssuanceEngine
from navfund.ledger.holdings import BalanceChanges, HoldingsLedger
from navfund.oracle.price_feed import PriceOracleAdapter
from navfund.policy.store import AllocationPolicyStore, PolicyCandidate
from navfund.rebalancing.engine import RebalancingEngine
from navfund.venue.gateway import ExternalVenueGateway, FeedSource, TokenMovement, call_host, call_venue

logger = get_logger(__name__)


@dataclass(frozen=True)
class NavReport:
    """NAV фонда на момент запроса."""

    total_value: int
    liquid_value: int
    total_shares: int
    # total_value / total_shares, fixed-point (RATIO_SCALE); 0 если долей нет
    nav_per_share: int
    snapshot: ValuationSnapshot


@dataclass(frozen=True)
class RewardsCollection:
    """Результат сбора наград."""

    rewards: int
    reward_amount: int
    remaining: int
    reward_destination: str


class FundEngine:
    """Фонд с общим пулом стоимости."""

    def __init__(
        self,
        config: FundConfig,
        feed_source: FeedSource,
        venue: ExternalVenueGateway,
        tokens: TokenMovement,
        holdings: Iterable[AssetHolding] = (),
        liquid_reserve: int = 0,
        supply: ShareSupply | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            config: конфигурация фонда
            feed_source: источник сырых ценовых записей
            venue: торговая площадка
            tokens: примитив перемещения токенов хоста
            holdings: начальные размещённые балансы
            liquid_reserve: начальный ликвидный резерв
            supply: начальное количество долей
            clock: источник текущего времени для проверки свежести цен

        Raises:
            InvalidFundState: total_shares == 0 при ненулевых балансах или наоборот
        """
        self.config = config
        self.venue = venue
        self.tokens = tokens

        self.oracle = PriceOracleAdapter(feed_source, config.oracle, clock=clock)
        self.ledger = HoldingsLedger(config.reserve_asset_id, self.oracle, holdings, liquid_reserve)
        self.policy_store = AllocationPolicyStore(
            config.owner, config.reserve_asset_id, known_assets=self.ledger.asset_ids
        )
        self.fee_ledger = FeeLedger(config.fees)
        self.rebalancer = RebalancingEngine(self.ledger, venue, config)
        self.issuance = ShareIssuanceEngine(
            config,
            self.ledger,
            self.policy_store,
            self.rebalancer,
            self.fee_ledger,
            tokens,
            supply=supply,
        )
        self._check_supply_matches_holdings()

    @property
    def total_shares(self) -> int:
        return self.issuance.total_shares

    # -------------------------------------------------------------------------
    # ОПЕРАЦИИ
    # -------------------------------------------------------------------------

    def deposit(self, signer: str, amount: int) -> DepositResult:
        self._require_signer(signer, "deposit")
        return self.issuance.deposit(signer, amount)

    def redeem(self, signer: str, shares: int) -> RedemptionResult:
        self._require_signer(signer, "redeem")
        return self.issuance.redeem(signer, shares)

    def rebalance(self, signer: str) -> RebalanceReport:
        """
        Ребалансировка по текущей политике.

        Raises:
            Unauthorized: signer не владелец
            PolicyUnset: политика не задана
            VenueCallFailed: частичное исполнение; повторный вызов продолжает
        """
        self._require_owner(signer, "rebalance")
        policy = self.policy_store.current()
        return self.rebalancer.rebalance(policy)

    def update_policy(self, signer: str, new_policy: PolicyCandidate) -> AllocationPolicy:
        return self.policy_store.update(signer, new_policy)

    def collect_rewards(self, signer: str) -> RewardsCollection:
        """
        Сбор наград площадки и разбиение по reward_percentage.

        Доля получателя переводится reward_destination, остаток
        остаётся в размещённой части резерва.

        Награды, уже полученные от площадки, учитываются всегда: при отказе
        перевода вся сумма остаётся в фонде, а HostCallFailed несёт claimed и
        undistributed для ручного повторения выплаты.
        """
        self._require_owner(signer, "collect_rewards")
        policy = self.policy_store.current()

        rewards = call_venue("claim_rewards", self.venue.claim_rewards)
        if isinstance(rewards, bool) or not isinstance(rewards, int) or not 0 <= rewards <= U64_MAX:
            raise VenueCallFailed(
                f"venue returned invalid reward amount {rewards!r}",
                details={"operation": "claim_rewards"},
            )

        reward_amount, remaining = self.fee_ledger.split_rewards(rewards, policy.reward_percentage)
        if reward_amount:
            try:
                call_host(
                    "transfer",
                    self.tokens.transfer,
                    self.config.fund_account,
                    policy.reward_destination,
                    reward_amount,
                )
            except HostCallFailed as e:
                self._retain_rewards(rewards, "rewards retained after failed distribution")
                self.fee_ledger.collect(rewards, 0)
                logger.warning("Reward distribution failed, %d claimed units retained: %s", rewards, e)
                raise HostCallFailed(
                    f"claimed {rewards} rewards but distribution of {reward_amount} failed",
                    details={
                        "claimed": rewards,
                        "undistributed": reward_amount,
                        "reward_destination": policy.reward_destination,
                    },
                ) from e

        self._retain_rewards(remaining, "retained rewards")
        self.fee_ledger.collect(rewards, policy.reward_percentage)

        return RewardsCollection(
            rewards=rewards,
            reward_amount=reward_amount,
            remaining=remaining,
            reward_destination=policy.reward_destination,
        )

    def compute_nav(self) -> NavReport:
        snapshot = self.ledger.snapshot()
        total_shares = self.issuance.total_shares
        nav_per_share = ratio(snapshot.total_value, total_shares) if total_shares else 0
        return NavReport(
            total_value=snapshot.total_value,
            liquid_value=snapshot.liquid_value,
            total_shares=total_shares,
            nav_per_share=nav_per_share,
            snapshot=snapshot,
        )

    def _retain_rewards(self, units: int, reason: str) -> None:
        self.ledger.apply(BalanceChanges(holdings={self.config.reserve_asset_id: units}, reason=reason))

    def _check_supply_matches_holdings(self) -> None:
        total_shares = self.issuance.total_shares
        if (total_shares == 0) != self.ledger.is_empty():
            raise InvalidFundState(
                f"{total_shares} outstanding shares do not match fund holdings",
                details={"total_shares": total_shares, "liquid_reserve": self.ledger.liquid_reserve},
            )

    # -------------------------------------------------------------------------
    # АВТОРИЗАЦИЯ
    # -------------------------------------------------------------------------

    def _require_signer(self, signer: str, operation: str) -> None:
        if not signer:
            raise Unauthorized(
                f"{operation} requires a signer",
                details={"operation": operation},
            )

    def _require_owner(self, signer: str, operation: str) -> None:
        if signer != self.config.owner:
            logger.warning("Rejected %s from %s", operation, signer)
            raise Unauthorized(
                f"{signer} may not {operation}",
                details={"signer": signer, "operation": operation},
            )
