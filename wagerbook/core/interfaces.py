"""Dependency-injection interfaces for the ledger's external collaborators.

The registries and the settlement engine never import a concrete
accounting backend, randomness source, notification channel or store.
They receive objects satisfying the contracts below.  This enables:

* **Unit testing** — inject a ledger whose ``repatriate_reserved`` fails,
  or a randomness source that replays a fixed sequence of draws.
* **Backend substitution** — the in-memory ledger and the SQLAlchemy
  ledger are interchangeable; so are the repositories.
* **Host integration** — a host can route notifications to a log, a
  database table or a message bus without touching the core.

Design choices
--------------
* Contracts are abstract base classes rather than ``typing.Protocol`` so
  that implementers inherit the documented semantics and ``isinstance``
  checks work at construction time.
* Lifecycle events are frozen dataclasses so a sink may queue them and
  deliver them later without copying.
* Ledger methods follow the usual reservable-currency conventions: the
  movement methods return the part of the requested amount they could
  *not* move, so ``0`` means complete success.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, ContextManager

from wagerbook.core.domain import AccountId, Balance, Bet, BetIndex, Match, MatchIndex


class BalanceStatus(str, Enum):
    """Which balance of the beneficiary receives repatriated funds."""

    FREE = "free"
    RESERVED = "reserved"


# ---------------------------------------------------------------------------
# Account ledger
# ---------------------------------------------------------------------------


class LedgerBackend(ABC):
    """Free/reserved balances per account.

    Implementations must keep ``free + reserved`` per account consistent
    across every method, and must never let either balance go negative.
    """

    @abstractmethod
    def free_balance(self, account: AccountId) -> Balance:
        """Spendable balance; ``0`` for an unknown account."""

    @abstractmethod
    def reserved_balance(self, account: AccountId) -> Balance:
        """Earmarked balance; ``0`` for an unknown account."""

    @abstractmethod
    def can_reserve(self, account: AccountId, amount: Balance) -> bool:
        """True when ``reserve(account, amount)`` would succeed."""

    @abstractmethod
    def reserve(self, account: AccountId, amount: Balance) -> bool:
        """Move ``amount`` from free to reserved.  All or nothing.

        Returns:
            ``True`` on success, ``False`` (and no change) otherwise.
        """

    @abstractmethod
    def unreserve(self, account: AccountId, amount: Balance) -> Balance:
        """Move up to ``amount`` from reserved back to free.

        Returns:
            The part of ``amount`` that could not be unreserved.
        """

    @abstractmethod
    def repatriate_reserved(
        self,
        slashed: AccountId,
        beneficiary: AccountId,
        amount: Balance,
        status: BalanceStatus,
    ) -> Balance:
        """Move up to ``amount`` from ``slashed``'s reserved balance into
        ``beneficiary``'s free or reserved balance.

        Returns:
            The part of ``amount`` that could not be moved.
        """

    @abstractmethod
    def deposit(self, account: AccountId, amount: Balance) -> Balance:
        """Credit ``amount`` to the free balance (host funding, not used by the core)."""

    @abstractmethod
    def atomic(self) -> ContextManager[None]:
        """Context manager grouping several movements: an exception raised
        inside it must leave every balance as it was on entry.

        Settlement relies on this to keep its two fund movements
        all-or-nothing, so every backend has to provide it.
        """


# ---------------------------------------------------------------------------
# Randomness
# ---------------------------------------------------------------------------


class RandomnessSource(ABC):
    """Deterministic-per-subject source of unsigned 32-bit integers."""

    @abstractmethod
    def random_u32(self, subject: bytes) -> int:
        """Return an integer in ``[0, 2**32)`` for ``subject``."""

    def advance(self) -> None:
        """Called by the host after each committed operation, like a new block.

        Sources whose output depends on ledger progress override this.
        """


# ---------------------------------------------------------------------------
# Lifecycle notifications
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerEvent:
    """Base of every lifecycle notification; ``index`` is a match or bet index."""

    name: ClassVar[str] = "LedgerEvent"
    index: int


@dataclass(frozen=True)
class MatchCreated(LedgerEvent):
    name: ClassVar[str] = "MatchCreated"


@dataclass(frozen=True)
class BetPlaced(LedgerEvent):
    name: ClassVar[str] = "BetPlaced"


@dataclass(frozen=True)
class MatchClosed(LedgerEvent):
    name: ClassVar[str] = "MatchClosed"


@dataclass(frozen=True)
class BetClaimed(LedgerEvent):
    name: ClassVar[str] = "BetClaimed"


class NotificationSink(ABC):
    """Fire-and-forget receiver of lifecycle events, in completion order."""

    @abstractmethod
    def publish(self, event: LedgerEvent) -> None:
        """Deliver ``event``.  Must not block on a slow consumer."""


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


class MatchRepository(ABC):
    """MatchIndex → Match."""

    @abstractmethod
    def get(self, index: MatchIndex) -> Match | None: ...

    @abstractmethod
    def insert(self, index: MatchIndex, match: Match) -> None:
        """Store ``match`` under ``index``, replacing any previous record."""

    @abstractmethod
    def contains(self, index: MatchIndex) -> bool: ...


class BetRepository(ABC):
    """BetIndex → Bet, with a secondary lookup by match."""

    @abstractmethod
    def get(self, index: BetIndex) -> Bet | None: ...

    @abstractmethod
    def insert(self, index: BetIndex, bet: Bet) -> None:
        """Store ``bet`` under ``index``, replacing any previous record."""

    @abstractmethod
    def contains(self, index: BetIndex) -> bool: ...

    @abstractmethod
    def indexes_for_match(self, match_index: MatchIndex) -> list[BetIndex]:
        """Bet indexes placed on ``match_index``, ascending."""


class CounterStore(ABC):
    """Monotonic counters (``match_count``, ``bet_count``)."""

    @abstractmethod
    def get(self, name: str) -> int: ...

    @abstractmethod
    def put(self, name: str, value: int) -> None: ...
