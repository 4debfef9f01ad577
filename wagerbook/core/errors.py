"""Error taxonomy for the wagering ledger.

Every failure an operation can report is a subclass of :class:`WagerError`
and carries a stable ``code`` (``"MatchNotFound"``, ``"PayoffFailure"`` ...)
that the HTTP layer returns verbatim.  The intermediate classes group the
codes by kind so callers can catch a whole family at once::

    try:
        engine.place_bet(bettor, match_index, Prediction.HOMEWIN, 100)
    except InsufficientBalanceError:
        ...  # either party could not collateralise the bet

Nothing in this module imports from ``wagerbook.services``.
"""

from __future__ import annotations


class WagerError(Exception):
    """Base class for every error raised by a ledger operation."""

    code: str = "WagerError"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


# ---------------------------------------------------------------------------
# Validation: caller input malformed
# ---------------------------------------------------------------------------


class ValidationError(WagerError):
    code = "ValidationError"


class InvalidOddFraction(ValidationError):
    code = "InvalidOddFraction"


class InvalidOddInteger(ValidationError):
    code = "InvalidOddInteger"


class SameMatchOwner(ValidationError):
    code = "SameMatchOwner"


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------


class NotFoundError(WagerError):
    code = "NotFound"


class MatchNotFound(NotFoundError):
    code = "MatchNotFound"


class BetNotFound(NotFoundError):
    code = "BetNotFound"


# ---------------------------------------------------------------------------
# Lifecycle: operation invalid for the current status
# ---------------------------------------------------------------------------


class LifecycleError(WagerError):
    code = "LifecycleError"


class MatchClosed(LifecycleError):
    code = "MatchClosed"


class MatchAlreadyClosed(LifecycleError):
    code = "MatchAlreadyClosed"


class MatchStillOpen(LifecycleError):
    code = "MatchStillOpen"


class BetAlreadyClosed(LifecycleError):
    code = "BetAlreadyClosed"


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------


class InsufficientBalanceError(WagerError):
    code = "InsufficientBalance"


class BettorInsufficientBalance(InsufficientBalanceError):
    code = "BettorInsufficientBalance"


class BookmakerInsufficientBalance(InsufficientBalanceError):
    code = "BookmakerInsufficientBalance"


# ---------------------------------------------------------------------------
# Settlement integrity
# ---------------------------------------------------------------------------


class PayoffFailure(WagerError):
    """A fund movement on already-reserved balances did not complete.

    Raised out of ``LedgerBackend.atomic()``, which every backend must
    implement, so balances are exactly as they were before the claim.
    """

    code = "PayoffFailure"


class LedgerError(Exception):
    """Malformed call against a ledger backend (negative amount, unknown account)."""
