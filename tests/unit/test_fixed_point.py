"""
Tests для целочисленной u64-арифметики

Проверяет:
1. Диапазон u64 и отказ от wrap-around
2. mul_div: точность, округление, деление на ноль
3. Fixed-point доли и проценты
"""

import pytest

from navfund.core.errors import DivisionByZero, FundArithmeticError, ValueOverflow
from navfund.core.math.fixed_point import (
    RATIO_SCALE,
    U64_MAX,
    apply_bps,
    apply_percentage,
    ceil_div,
    checked_add,
    checked_mul,
    checked_sub,
    ensure_u64,
    mul_div,
    percentage_to_ratio,
    ratio,
)


class TestEnsureU64:
    """Тесты проверки диапазона"""

    def test_accepts_bounds(self) -> None:
        assert ensure_u64(0) == 0
        assert ensure_u64(U64_MAX) == U64_MAX

    def test_rejects_negative(self) -> None:
        with pytest.raises(ValueOverflow):
            ensure_u64(-1)

    def test_rejects_above_max(self) -> None:
        with pytest.raises(ValueOverflow) as exc_info:
            ensure_u64(U64_MAX + 1, "balance")
        assert exc_info.value.details["label"] == "balance"

    def test_rejects_non_int(self) -> None:
        """float и bool не являются суммами"""
        with pytest.raises(TypeError):
            ensure_u64(1.0)
        with pytest.raises(TypeError):
            ensure_u64(True)


class TestCheckedArithmetic:
    """Тесты checked add/sub/mul"""

    def test_add_overflow(self) -> None:
        assert checked_add(U64_MAX - 1, 1) == U64_MAX
        with pytest.raises(ValueOverflow):
            checked_add(U64_MAX, 1)

    def test_sub_underflow(self) -> None:
        assert checked_sub(5, 5) == 0
        with pytest.raises(ValueOverflow):
            checked_sub(5, 6)

    def test_mul_overflow(self) -> None:
        assert checked_mul(500, 2) == 1000
        with pytest.raises(ValueOverflow):
            checked_mul(2**63, 2)

    def test_overflow_is_arithmetic_error(self) -> None:
        with pytest.raises(FundArithmeticError):
            checked_mul(U64_MAX, U64_MAX)


class TestMulDiv:
    """Тесты mul_div"""

    def test_floor_by_default(self) -> None:
        assert mul_div(1250, 1, 4) == 312

    def test_round_up(self) -> None:
        assert mul_div(1250, 1, 4, round_up=True) == 313
        assert mul_div(1200, 1, 4, round_up=True) == 300

    def test_wide_intermediate(self) -> None:
        """Произведение за пределами u64 допустимо, если результат помещается"""
        assert mul_div(U64_MAX, U64_MAX, U64_MAX) == U64_MAX

    def test_result_overflow(self) -> None:
        with pytest.raises(ValueOverflow):
            mul_div(U64_MAX, 2, 1)

    def test_division_by_zero(self) -> None:
        with pytest.raises(DivisionByZero):
            mul_div(1, 1, 0)

    def test_ceil_div(self) -> None:
        assert ceil_div(10, 3) == 4
        assert ceil_div(9, 3) == 3


class TestFixedPointRatios:
    """Тесты fixed-point долей"""

    def test_ratio_quarter(self) -> None:
        assert ratio(500, 2000) == RATIO_SCALE // 4

    def test_ratio_zero_denominator(self) -> None:
        with pytest.raises(DivisionByZero):
            ratio(1, 0)

    def test_percentage_to_ratio(self) -> None:
        assert percentage_to_ratio(100) == RATIO_SCALE
        assert percentage_to_ratio(25) == 250_000_000

    def test_apply_percentage_truncates(self) -> None:
        assert apply_percentage(999, 10) == 99
        assert apply_percentage(1000, 0) == 0

    def test_apply_bps(self) -> None:
        assert apply_bps(10_000, 100) == 100
        assert apply_bps(99, 100) == 0
