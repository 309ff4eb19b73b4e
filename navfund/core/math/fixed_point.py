"""
Fixed Point — Целочисленная арифметика с проверкой переполнения

Все суммы, балансы, цены и количества долей — беззнаковые 64-битные целые.
Проценты и доли считаются в fixed-point (масштабированные int), никогда
во float: результаты воспроизводимы бит-в-бит.

КРИТИЧЕСКИЕ ИНВАРИАНТЫ:
1. Результат вне [0, U64_MAX] → ValueOverflow (никакого wrap-around)
2. Деление на ноль → DivisionByZero (никакого fallback-значения)
3. Промежуточное произведение в mul_div ограничено U128_MAX
4. Округление по умолчанию — вниз (в пользу фонда)
"""

from typing import Final

from navfund.core.errors import DivisionByZero, ValueOverflow

# =============================================================================
# КОНСТАНТЫ
# =============================================================================

U64_MAX: Final[int] = 2**64 - 1

# Граница промежуточного произведения в mul_div
U128_MAX: Final[int] = 2**128 - 1

# 1.0 в fixed-point долях (percentage_of, NAV per share)
RATIO_SCALE: Final[int] = 10**9

PERCENT_DENOMINATOR: Final[int] = 100

BPS_DENOMINATOR: Final[int] = 10_000


# =============================================================================
# ПРОВЕРКИ ДИАПАЗОНА
# =============================================================================


def ensure_u64(value: int, label: str = "value") -> int:
    """
    Проверка, что значение — целое в диапазоне u64.

    Args:
        value: Проверяемое значение
        label: Имя величины для сообщения об ошибке

    Returns:
        value без изменений

    Raises:
        TypeError: Если value не int (bool тоже отвергается)
        ValueOverflow: Если value < 0 или value > U64_MAX
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{label} must be int, got {type(value).__name__}")
    if value < 0 or value > U64_MAX:
        raise ValueOverflow(
            f"{label}={value} outside u64 range",
            details={"label": label, "value": value},
        )
    return value


def checked_add(a: int, b: int) -> int:
    return ensure_u64(a + b, "sum")


def checked_sub(a: int, b: int) -> int:
    """a - b; отрицательный результат — ValueOverflow (underflow)."""
    return ensure_u64(a - b, "difference")


def checked_mul(a: int, b: int) -> int:
    """
    Произведение двух u64 без wrap-around.

    Examples:
        >>> checked_mul(500, 2)
        1000
        >>> checked_mul(2**63, 2)  # doctest: +SKIP
        Traceback (most recent call last):
            ...
        ValueOverflow: ...
    """
    return ensure_u64(a * b, "product")


# =============================================================================
# MUL-DIV
# =============================================================================


def mul_div(a: int, b: int, denominator: int, round_up: bool = False) -> int:
    """
    Вычисление a * b / denominator без потери точности промежуточного результата.

    Произведение считается в 128-битном диапазоне, результат обязан
    помещаться в u64.

    Args:
        a: Первый множитель (u64)
        b: Второй множитель (u64)
        denominator: Делитель (u64, > 0)
        round_up: Округлять вверх (default: вниз)

    Returns:
        floor(a * b / denominator) или ceil при round_up=True

    Raises:
        DivisionByZero: Если denominator == 0
        ValueOverflow: Если a * b > U128_MAX или результат > U64_MAX

    Examples:
        >>> mul_div(100, 1000, 2000)
        50
        >>> mul_div(1250, 1, 4)
        312
        >>> mul_div(1250, 1, 4, round_up=True)
        313
    """
    ensure_u64(a, "a")
    ensure_u64(b, "b")
    ensure_u64(denominator, "denominator")
    if denominator == 0:
        raise DivisionByZero(details={"a": a, "b": b})

    product = a * b
    if product > U128_MAX:
        raise ValueOverflow(
            "intermediate product exceeds u128",
            details={"a": a, "b": b},
        )

    quotient, remainder = divmod(product, denominator)
    if round_up and remainder:
        quotient += 1
    return ensure_u64(quotient, "mul_div result")


def ceil_div(numerator: int, denominator: int) -> int:
    return mul_div(numerator, 1, denominator, round_up=True)


# =============================================================================
# FIXED-POINT ДОЛИ
# =============================================================================


def ratio(numerator: int, denominator: int) -> int:
    """
    Доля numerator / denominator, масштабированная на RATIO_SCALE.

    ratio(500, 2000) == 250_000_000 (25%).
    """
    return mul_div(numerator, RATIO_SCALE, denominator)


def percentage_to_ratio(percentage: int) -> int:
    """Целый процент (0..100) → fixed-point доля."""
    return mul_div(percentage, RATIO_SCALE, PERCENT_DENOMINATOR)


def apply_percentage(value: int, percentage: int) -> int:
    """floor(value * percentage / 100)."""
    return mul_div(value, percentage, PERCENT_DENOMINATOR)


def apply_bps(value: int, bps: int) -> int:
    """floor(value * bps / 10_000)."""
    return mul_div(value, bps, BPS_DENOMINATOR)
