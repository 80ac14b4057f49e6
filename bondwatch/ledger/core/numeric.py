"""
Fixed-point percentage and pro-rata arithmetic.

Mirrors the contracts' MathUtils: integers only, multiply before divide,
floor division. Results must match on-chain truncation exactly.
"""
from decimal import Decimal
from typing import Union
from ...protocol.config.params import DECIMALS, PERC_DIVISOR


def perc_of(amount: int, perc: int, denominator: int = PERC_DIVISOR) -> int:
    """amount * perc / denominator"""
    return amount * perc // denominator


def perc_of_with_denom(amount: int, numerator: int, denominator: int) -> int:
    """amount * (numerator / denominator), 0 when the denominator is 0."""
    if denominator == 0:
        return 0
    return amount * numerator // denominator


def perc_points(numerator: int, denominator: int, perc_divisor: int = PERC_DIVISOR) -> int:
    """Fraction expressed in parts of perc_divisor."""
    if denominator == 0:
        return 0
    return numerator * perc_divisor // denominator


def to_wei(amount: Union[str, int, Decimal]) -> int:
    """Converts a token amount ("1.5") to base units. Sub-unit dust is truncated."""
    return int(Decimal(str(amount)) * (Decimal(10) ** DECIMALS))


def from_wei(amount: int) -> Decimal:
    return Decimal(amount) / (Decimal(10) ** DECIMALS)
