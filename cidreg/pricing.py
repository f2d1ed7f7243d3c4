"""Registration pricing curve.

The price of a registration (or renewal) does not depend on which CID is
chosen or for how long; every purchase grants the same fixed validity.
Instead the price grows with the wall-clock time elapsed since genesis:

    months     = floor(elapsed / SECONDS_PER_MONTH) + 1
    multiplier = isqrt(months * SCALE) / isqrt(SCALE)
    price      = base_price * isqrt(months * SCALE) // isqrt(SCALE)

Older comments around this system called the curve "exponential". It is a
square-root curve; the formula above is authoritative.
"""

from __future__ import annotations

from dataclasses import dataclass

from cidreg.duration import seconds_to_months
from cidreg.intmath import isqrt


SCALE = 1_000_000


@dataclass(frozen=True)
class PriceQuote:
    """Breakdown of a computed registration price."""
    elapsed_seconds: int
    months: int
    multiplier_numerator: int
    multiplier_denominator: int
    base_price: int
    price: int

    def to_dict(self) -> dict:
        return {
            "elapsed_seconds": self.elapsed_seconds,
            "months": self.months,
            "multiplier_numerator": self.multiplier_numerator,
            "multiplier_denominator": self.multiplier_denominator,
            "base_price": self.base_price,
            "price": self.price,
        }


def quote_registration(elapsed_seconds: int, base_price: int) -> PriceQuote:
    """Compute the full price breakdown for a registration at ``elapsed_seconds``."""
    if elapsed_seconds < 0:
        raise ValueError(f"elapsed time cannot be negative: {elapsed_seconds}")
    if base_price < 0:
        raise ValueError(f"base price cannot be negative: {base_price}")

    # "+1" keeps the multiplier at 1 (not 0) during the first month
    months = seconds_to_months(elapsed_seconds) + 1
    numerator = isqrt(months * SCALE)
    denominator = isqrt(SCALE)

    return PriceQuote(
        elapsed_seconds=elapsed_seconds,
        months=months,
        multiplier_numerator=numerator,
        multiplier_denominator=denominator,
        base_price=base_price,
        price=base_price * numerator // denominator,
    )


def price_for_registration(elapsed_seconds: int, base_price: int) -> int:
    return quote_registration(elapsed_seconds, base_price).price
