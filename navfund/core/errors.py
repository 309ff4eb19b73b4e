"""
Errors — Иерархия исключений фонда

Каждый отказ операции возвращает различимый тип ошибки. Ни одна операция
не подставляет значение по умолчанию вместо неудачного чтения цены или баланса.

Иерархия:
    FundError (base)
    ├── InputError
    │   ├── InvalidAmount
    │   └── PolicyError
    ├── StateError
    │   ├── PolicyUnset
    │   ├── InvalidFundState
    │   ├── BelowBaseline
    │   ├── PartialRedemptionShortfall
    │   ├── InsufficientBalance
    │   └── UnknownAsset
    ├── FundArithmeticError
    │   ├── ValueOverflow
    │   └── DivisionByZero
    ├── ExternalError
    │   ├── StaleOrMalformedFeed
    │   ├── VenueCallFailed
    │   │   └── SlippageExceeded
    │   └── HostCallFailed
    ├── AuthorizationError
    │   └── Unauthorized
    └── ConfigError

Локальное восстановление:
- Arithmetic / Input ошибки прерывают операцию целиком, без частичных мутаций
- External ошибки в многошаговом rebalance несут состояние для продолжения
  (asset_id, amount, step_index) и никогда не повторяются автоматически
"""

from typing import Any


class FundError(Exception):
    """Базовое исключение для всех ошибок фонда."""

    default_message = "Fund operation failed"
    default_code = "fund_error"

    def __init__(
        self,
        message: str | None = None,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message or self.default_message
        self.code = code or self.default_code
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        parts = [self.message, f"[{self.code}]"]
        if self.details:
            parts.append(f"Details: {self.details}")
        return " ".join(parts)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code!r}, "
            f"details={self.details!r})"
        )


# =============================================================================
# INPUT ERRORS
# =============================================================================


class InputError(FundError):
    """Некорректные входные данные (проценты, нулевые знаменатели, суммы)."""

    default_message = "Invalid input"
    default_code = "input_error"


class InvalidAmount(InputError):
    """Сумма депозита/погашения вне допустимого диапазона."""

    default_message = "Invalid amount"
    default_code = "invalid_amount"


class PolicyError(InputError):
    """Кандидат AllocationPolicy нарушает инварианты."""

    default_message = "Allocation policy rejected"
    default_code = "policy_error"


# =============================================================================
# STATE ERRORS
# =============================================================================


class StateError(FundError):
    """Операция недопустима в текущем состоянии фонда."""

    default_message = "Invalid fund state"
    default_code = "state_error"


class PolicyUnset(StateError):
    default_message = "Allocation policy has not been set"
    default_code = "policy_unset"


class InvalidFundState(StateError):
    """Балансы фонда противоречат выпущенным долям (total_shares == 0 ⇔ total_value == 0)."""

    default_message = "Fund holdings and share supply are inconsistent"
    default_code = "invalid_fund_state"


class BelowBaseline(StateError):
    """Ликвидный резерв опустился бы ниже baseline_liquid_percentage."""

    default_message = "Liquid reserve would fall below baseline"
    default_code = "below_baseline"


class PartialRedemptionShortfall(StateError):
    """
    Погашение не может быть профинансировано полностью.

    shortfall — точная недостающая сумма в единицах резервного актива.
    Недостача никогда не поглощается молча и не покрывается из капитала фонда.
    """

    default_message = "Redemption cannot be fully funded"
    default_code = "partial_redemption_shortfall"

    def __init__(self, shortfall: int, message: str | None = None, details: dict[str, Any] | None = None):
        self.shortfall = shortfall
        merged = {"shortfall": shortfall}
        merged.update(details or {})
        super().__init__(message=message, details=merged)


class InsufficientBalance(StateError):
    default_message = "Balance change would make a holding negative"
    default_code = "insufficient_balance"


class UnknownAsset(StateError):
    default_message = "Asset is not held by the fund"
    default_code = "unknown_asset"


# =============================================================================
# ARITHMETIC ERRORS
# =============================================================================


class FundArithmeticError(FundError):
    """Результат не представим в u64 или знаменатель равен нулю."""

    default_message = "Arithmetic error"
    default_code = "arithmetic_error"


class ValueOverflow(FundArithmeticError):
    default_message = "Value does not fit into u64"
    default_code = "overflow"


class DivisionByZero(FundArithmeticError):
    default_message = "Division by zero"
    default_code = "division_by_zero"


# =============================================================================
# EXTERNAL ERRORS
# =============================================================================


class ExternalError(FundError):
    """Отказ внешнего коллаборатора (оракул, площадка, хост)."""

    default_message = "External collaborator failed"
    default_code = "external_error"


class StaleOrMalformedFeed(ExternalError):
    default_message = "Price feed is stale or malformed"
    default_code = "stale_or_malformed_feed"


class VenueCallFailed(ExternalError):
    """
    Отказ вызова торговой площадки.

    details содержит контекст для продолжения rebalance:
    asset_id, amount, step_index, executed_steps.
    """

    default_message = "Venue call failed"
    default_code = "venue_call_failed"

    @property
    def step_index(self) -> int | None:
        return self.details.get("step_index")


class SlippageExceeded(VenueCallFailed):
    """Площадка вернула меньше допустимого минимума (сделка уже исполнена)."""

    default_message = "Slippage tolerance exceeded"
    default_code = "slippage_exceeded"


class HostCallFailed(ExternalError):
    """Отказ примитива перемещения токенов хоста (transfer/mint/burn)."""

    default_message = "Host token movement failed"
    default_code = "host_call_failed"


# =============================================================================
# AUTHORIZATION / CONFIG
# =============================================================================


class AuthorizationError(FundError):
    default_message = "Authorization failed"
    default_code = "authorization_error"


class Unauthorized(AuthorizationError):
    default_message = "Signer is not authorized for this operation"
    default_code = "unauthorized"


class ConfigError(FundError):
    default_message = "Invalid fund configuration"
    default_code = "config_error"
