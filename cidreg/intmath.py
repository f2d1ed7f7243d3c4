"""
Integer square root over unsigned 64-bit magnitudes.

Uses binary digit-by-digit extraction so that no floating point is
involved and every intermediate stays within the 64-bit input range:

    bit = highest power of four <= x
    while bit:
        if x >= result + bit:
            x -= result + bit
            result = (result >> 1) + bit
        else:
            result >>= 1
        bit >>= 2

The loop visits each 2-bit group of the input from the most significant
down, so it runs at most 32 times.
"""

from __future__ import annotations


U64_MAX = (1 << 64) - 1


def isqrt(x: int) -> int:
    """
    Return the largest ``r`` such that ``r * r <= x``.

    Args:
        x: Unsigned 64-bit integer

    Raises:
        TypeError: If x is not an integer
        ValueError: If x is negative or wider than 64 bits
    """
    if isinstance(x, bool) or not isinstance(x, int):
        raise TypeError(f"isqrt expects an int, got {type(x).__name__}")
    if x < 0 or x > U64_MAX:
        raise ValueError(f"isqrt input out of u64 range: {x}")

    remainder = x
    result = 0

    # Start at the most significant 2-bit group that is populated
    bit = 1 << 62
    while bit > remainder:
        bit >>= 2

    while bit != 0:
        candidate = result + bit
        if remainder >= candidate:
            remainder -= candidate
            result = (result >> 1) + bit
        else:
            result >>= 1
        bit >>= 2

    return result
