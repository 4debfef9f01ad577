"""
In-memory account ledger with free and reserved balances.

Implements :class:`~wagerbook.core.interfaces.LedgerBackend` over two
plain dicts.  ``atomic()`` snapshots both dicts and restores them if the
block raises, which is what makes settlement all-or-nothing.

Host-level helpers (``deposit``, ``accounts``) exist so a host or a test can
fund accounts; the core never calls them.
"""

import contextlib
import logging
from typing import Dict, Iterator, List, Optional

from wagerbook.core.errors import LedgerError
from wagerbook.core.interfaces import BalanceStatus, LedgerBackend
from wagerbook.core.odds_math import MAX_BALANCE

logger = logging.getLogger(__name__)


class InMemoryLedger(LedgerBackend):
    """Dict-backed ledger.  Unknown accounts have zero balances."""

    def __init__(self, max_balance: int = MAX_BALANCE, balances: Optional[Dict[str, int]] = None):
        self.max_balance = max_balance
        self._free: Dict[str, int] = {}
        self._reserved: Dict[str, int] = {}
        for account, amount in (balances or {}).items():
            self.deposit(account, amount)

    # ------------------------------------------------------------------
    # Host helpers
    # ------------------------------------------------------------------

    def deposit(self, account: str, amount: int) -> int:
        """Credit ``amount`` to the free balance; returns the new free balance."""
        _check_amount(amount)
        new_free = self._free.get(account, 0) + amount
        if new_free > self.max_balance:
            raise LedgerError(f"Deposit would overflow the balance of {account!r}")
        self._free[account] = new_free
        return new_free

    def accounts(self) -> List[str]:
        return sorted(set(self._free) | set(self._reserved))

    # ------------------------------------------------------------------
    # LedgerBackend
    # ------------------------------------------------------------------

    def free_balance(self, account: str) -> int:
        return self._free.get(account, 0)

    def reserved_balance(self, account: str) -> int:
        return self._reserved.get(account, 0)

    def can_reserve(self, account: str, amount: int) -> bool:
        return 0 <= amount <= self.free_balance(account)

    def reserve(self, account: str, amount: int) -> bool:
        _check_amount(amount)
        if not self.can_reserve(account, amount):
            return False
        self._free[account] = self.free_balance(account) - amount
        self._reserved[account] = self.reserved_balance(account) + amount
        return True

    def unreserve(self, account: str, amount: int) -> int:
        _check_amount(amount)
        moved = min(amount, self.reserved_balance(account))
        self._reserved[account] = self.reserved_balance(account) - moved
        self._free[account] = self.free_balance(account) + moved
        return amount - moved

    def repatriate_reserved(
        self,
        slashed: str,
        beneficiary: str,
        amount: int,
        status: BalanceStatus,
    ) -> int:
        _check_amount(amount)
        if slashed == beneficiary:
            # Same account: the closest equivalent is an unreserve (or a no-op).
            if status == BalanceStatus.FREE:
                return self.unreserve(slashed, amount)
            return amount - min(amount, self.reserved_balance(slashed))

        moved = min(amount, self.reserved_balance(slashed))
        target = self._free if status == BalanceStatus.FREE else self._reserved
        if target.get(beneficiary, 0) + moved > self.max_balance:
            return amount
        self._reserved[slashed] = self.reserved_balance(slashed) - moved
        target[beneficiary] = target.get(beneficiary, 0) + moved
        return amount - moved

    @contextlib.contextmanager
    def atomic(self) -> Iterator[None]:
        free, reserved = dict(self._free), dict(self._reserved)
        try:
            yield
        except BaseException:
            self._free, self._reserved = free, reserved
            logger.debug("Ledger transaction rolled back")
            raise


def _check_amount(amount: int) -> None:
    if amount < 0:
        raise LedgerError(f"Amount must be non-negative, got {amount!r}")
