"""
Core math для navfund

Целочисленная u64-арифметика с проверкой переполнения и fixed-point доли.
"""

from navfund.core.math.fixed_point import (
    BPS_DENOMINATOR,
    PERCENT_DENOMINATOR,
    RATIO_SCALE,
    U64_MAX,
    U128_MAX,
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

__all__ = [
    # Constants
    "U64_MAX",
    "U128_MAX",
    "RATIO_SCALE",
    "PERCENT_DENOMINATOR",
    "BPS_DENOMINATOR",
    # Checked arithmetic
    "ensure_u64",
    "checked_add",
    "checked_sub",
    "checked_mul",
    "mul_div",
    "ceil_div",
    # Fixed-point
    "ratio",
    "percentage_to_ratio",
    "apply_percentage",
    "apply_bps",
]
