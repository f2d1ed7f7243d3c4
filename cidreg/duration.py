"""Fixed-length duration arithmetic.

Registrations are measured in 30-day "months". There is no calendar
awareness: a month is always exactly ``SECONDS_PER_MONTH`` seconds and all
conversions truncate.
"""

from __future__ import annotations


SECONDS_PER_MONTH = 60 * 60 * 24 * 30

VALIDITY_MONTHS = 24
RENEWAL_WINDOW_MONTHS = 6


def months_to_seconds(months: int) -> int:
    return months * SECONDS_PER_MONTH


def seconds_to_months(seconds: int) -> int:
    """Whole months contained in ``seconds`` (floor division)."""
    return seconds // SECONDS_PER_MONTH


def validity_duration() -> int:
    """Seconds of validity granted by every registration or renewal."""
    return months_to_seconds(VALIDITY_MONTHS)


def renewal_window() -> int:
    """Seconds before expiration from which a CID may be renewed."""
    return months_to_seconds(RENEWAL_WINDOW_MONTHS)
