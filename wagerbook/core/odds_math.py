"""Fixed odds and payout arithmetic — the single source of truth.

Every function here is **pure**: no I/O, no logging, no side effects.
Placement and settlement both import :func:`winnable` from this module so
the bookmaker's reserved exposure and the amount paid out on a win are
computed by exactly the same code.

Odds representation
-------------------
An :class:`Odd` is a decimal multiplier split into an integer part and a
fractional part expressed in hundredths::

    Odd(2, 50)  →  2.50×
    Odd(1, 5)   →  1.05×

Keeping both parts as integers means the payout is computed in exact
integer arithmetic on the balance type; no float ever touches a balance.

Saturation
----------
Balances are unsigned and bounded (``2**128 - 1`` by default, see
:class:`~wagerbook.core.config.LedgerConfig`).  Arithmetic never raises on
overflow: each intermediate product and sum is clamped to the bound, in
the same order the payout formula is written.  A clamped exposure is then
simply unreservable, so the bet is rejected by the balance check rather
than by an arithmetic error.

Run tests with::

    pytest tests/test_odds_math.py -v
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Final

from wagerbook.core.errors import InvalidOddFraction, InvalidOddInteger

# ---------------------------------------------------------------------------
# Module-level constants
# ---------------------------------------------------------------------------

#: Largest value of the default balance type (unsigned 128-bit).
MAX_BALANCE: Final[int] = 2**128 - 1

#: Largest value of an unsigned 32-bit field (event ids, scores, odd parts).
MAX_U32: Final[int] = 2**32 - 1

#: Denominator of :attr:`Odd.fraction`; the fraction must stay strictly below it.
FRACTION_BASE: Final[int] = 100


# ---------------------------------------------------------------------------
# Odd
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Odd:
    """Decimal payout multiplier ``integer + fraction / 100``.

    Attributes:
        integer: Whole part of the multiplier.  Must be ≥ 1.
        fraction: Hundredths of the multiplier, in ``[0, 100)``.
    """

    integer: int
    fraction: int

    def validate(self) -> "Odd":
        """Return ``self`` if both parts are in range.

        The fraction bound is checked before the integer bound, so
        ``Odd(0, 100)`` reports :class:`InvalidOddFraction`.

        Raises:
            InvalidOddFraction: ``fraction`` is negative or ≥ 100.
            InvalidOddInteger: ``integer`` is 0 (or negative).
        """
        if not 0 <= self.fraction < FRACTION_BASE:
            raise InvalidOddFraction(
                f"Odd fraction {self.fraction!r} must be in [0, {FRACTION_BASE})"
            )
        if self.integer <= 0 or self.integer > MAX_U32:
            raise InvalidOddInteger(
                f"Odd integer part {self.integer!r} must be in [1, {MAX_U32}]"
            )
        return self

    def as_decimal(self) -> Decimal:
        """Multiplier as a :class:`~decimal.Decimal`, for display only."""
        return Decimal(self.integer) + Decimal(self.fraction) / FRACTION_BASE

    def __str__(self) -> str:
        return f"{self.integer}.{self.fraction:02d}"


def validate_odds(*odds: Odd) -> None:
    """Validate several odds in argument order; the first bad one raises."""
    for odd in odds:
        odd.validate()


# ---------------------------------------------------------------------------
# Saturating arithmetic
# ---------------------------------------------------------------------------


def saturating_add(a: int, b: int, bound: int = MAX_BALANCE) -> int:
    """``a + b`` clamped to ``bound``."""
    return min(a + b, bound)


def saturating_mul(a: int, b: int, bound: int = MAX_BALANCE) -> int:
    """``a * b`` clamped to ``bound``."""
    return min(a * b, bound)


# ---------------------------------------------------------------------------
# Exposure / payout
# ---------------------------------------------------------------------------


def winnable(amount: int, odd: Odd, bound: int = MAX_BALANCE) -> int:
    """Bookmaker's maximum liability for a stake at the given odd.

    Formula::

        winnable = floor(amount * fraction / 100) + amount * integer

    Each step saturates at ``bound``.  For any valid odd (integer ≥ 1) the
    result is ≥ ``amount`` unless the bound itself is below ``amount``.

    Examples::

        winnable(100, Odd(2, 0))   → 200
        winnable(100, Odd(2, 50))  → 250
        winnable(3, Odd(1, 33))    → 3     (floor(0.99) = 0)

    Args:
        amount: Stake, a non-negative integer balance.
        odd: Snapshot of the odd the bet was placed at.
        bound: Maximum value of the balance type.

    Returns:
        Exposure in the same unit as ``amount``.
    """
    fractional_part = saturating_mul(amount, odd.fraction, bound) // FRACTION_BASE
    integer_part = saturating_mul(amount, odd.integer, bound)
    return saturating_add(fractional_part, integer_part, bound)
