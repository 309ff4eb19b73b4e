"""
AllocationPolicyStore — Хранилище и валидация политики распределения

Политика меняется только владельцем (единственный авторизованный principal)
через явную операцию update. Обновление — all-or-nothing: validate-then-commit
одним шагом, политика заменяется целиком.

Валидация кандидата (по порядку):
1. JSON Schema контракт allocation_policy (типы, диапазоны процентов)
2. Pydantic модель AllocationPolicy (суммы процентов, пары пулов)
3. Проверки уровня фонда: активы известны ledger, резервный актив не имеет веса
"""

from typing import Any, Callable, Iterable, Mapping

from jsonschema import ValidationError as ContractValidationError
from pydantic import ValidationError

from navfund.core.contracts import validate_allocation_policy
from navfund.core.domain.allocation_policy import AllocationPolicy
from navfund.core.errors import PolicyError, PolicyUnset, Unauthorized
from navfund.core.logger import get_logger

logger = get_logger(__name__)

PolicyCandidate = AllocationPolicy | Mapping[str, Any]


class AllocationPolicyStore:
    """
    Текущая AllocationPolicy фонда.

    version увеличивается на каждое принятое обновление (0 — политика не задана).
    """

    def __init__(
        self,
        owner: str,
        reserve_asset_id: str,
        known_assets: Callable[[], Iterable[str]] | None = None,
    ):
        """
        Args:
            owner: principal, которому разрешено update
            reserve_asset_id: резервный актив фонда (не может иметь веса)
            known_assets: активы ledger; None — проверка известности отключена
        """
        self.owner = owner
        self.reserve_asset_id = reserve_asset_id
        self._known_assets = known_assets
        self._policy: AllocationPolicy | None = None
        self._version = 0

    @property
    def version(self) -> int:
        return self._version

    @property
    def is_set(self) -> bool:
        return self._policy is not None

    def current(self) -> AllocationPolicy:
        """
        Raises:
            PolicyUnset: Если политика ещё не задана
        """
        if self._policy is None:
            raise PolicyUnset()
        return self._policy

    def validate(self, candidate: PolicyCandidate) -> None:
        """
        Проверка кандидата без мутации.

        Raises:
            PolicyError: Если кандидат нарушает любой инвариант
        """
        self._coerce(candidate)

    def update(self, signer: str, candidate: PolicyCandidate) -> AllocationPolicy:
        """
        Замена политики целиком.

        Raises:
            Unauthorized: signer не владелец
            PolicyError: кандидат отвергнут (политика не меняется)
        """
        if signer != self.owner:
            raise Unauthorized(
                f"{signer} may not update the allocation policy",
                details={"signer": signer, "operation": "update_policy"},
            )

        policy = self._coerce(candidate)

        self._policy = policy
        self._version += 1
        logger.info(
            "Allocation policy v%d accepted: target=%d%% baseline=%d%% weights=%s",
            self._version,
            policy.target_liquid_percentage,
            policy.baseline_liquid_percentage,
            policy.per_asset_weights,
        )
        return policy

    # -------------------------------------------------------------------------
    # ВАЛИДАЦИЯ
    # -------------------------------------------------------------------------

    def _coerce(self, candidate: PolicyCandidate) -> AllocationPolicy:
        if isinstance(candidate, AllocationPolicy):
            payload = candidate.model_dump()
        else:
            payload = dict(candidate)

        try:
            validate_allocation_policy(payload)
        except ContractValidationError as e:
            raise PolicyError(
                f"policy violates contract: {e.message}",
                details={"path": list(e.path)},
            ) from e

        try:
            policy = AllocationPolicy.model_validate(payload)
        except ValidationError as e:
            raise PolicyError(
                f"policy rejected: {e.errors()[0]['msg']}",
                details={"errors": [err["msg"] for err in e.errors()]},
            ) from e

        self._check_fund_constraints(policy)
        return policy

    def _check_fund_constraints(self, policy: AllocationPolicy) -> None:
        if self.reserve_asset_id in policy.per_asset_weights:
            raise PolicyError(
                "reserve asset is governed by liquid percentages and cannot carry a weight",
                details={"asset_id": self.reserve_asset_id},
            )
        if self.reserve_asset_id in policy.designated_liquidation_assets():
            raise PolicyError(
                "reserve asset cannot be a liquidation asset",
                details={"asset_id": self.reserve_asset_id},
            )
        for lp_asset_id, pair in policy.liquidity_pools.items():
            if pair[0] != self.reserve_asset_id:
                raise PolicyError(
                    f"liquidity pool {lp_asset_id} must be funded from the reserve asset",
                    details={"lp_asset_id": lp_asset_id, "pair": pair},
                )

        if self._known_assets is not None:
            known = set(self._known_assets())
            unknown = sorted(policy.referenced_assets() - known)
            if unknown:
                raise PolicyError(
                    f"policy references assets not held by the fund: {unknown}",
                    details={"unknown_assets": unknown},
                )
