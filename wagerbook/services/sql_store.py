"""
SQLAlchemy implementations of the ledger, repositories and notification sink.

Public API:
  SqlStore(session)          → one Session shared by everything below
  SqlStore.transaction()     → commit on success, roll back on any error
  SqlStore.context()         → LedgerContext over the SQL repositories
  SqlLedgerBackend           → LedgerBackend over the ``accounts`` table
  SqlNotificationSink        → appends to ``ledger_events``

All objects share the store's Session, so a ledger movement, a bet status
write and the emitted event commit (or roll back) together.
"""

import contextlib
import logging
from typing import Iterator, List, Optional

from sqlalchemy.orm import Session

from wagerbook.core.domain import Bet, BetStatus, Match, MatchStatus, Prediction
from wagerbook.core.errors import LedgerError
from wagerbook.core.interfaces import (
    BalanceStatus,
    BetRepository,
    CounterStore,
    LedgerBackend,
    LedgerEvent,
    MatchRepository,
    NotificationSink,
)
from wagerbook.core.odds_math import MAX_BALANCE, Odd
from wagerbook.models import Account, BetRecord, Counter, LedgerEventRecord, MatchRecord
from wagerbook.services.repositories import LedgerContext

logger = logging.getLogger(__name__)

_ODD_FIELDS = ("odd_homewin", "odd_awaywin", "odd_draw", "odd_under", "odd_over")


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------

class SqlLedgerBackend(LedgerBackend):
    """Balances in the ``accounts`` table.  Missing rows read as zero."""

    def __init__(self, session: Session, max_balance: int = MAX_BALANCE):
        self.session = session
        self.max_balance = max_balance

    def _row(self, account: str, create: bool = False) -> Optional[Account]:
        row = self.session.get(Account, account)
        if row is None and create:
            row = Account(account_id=account, free=0, reserved=0)
            self.session.add(row)
        return row

    def deposit(self, account: str, amount: int) -> int:
        """Credit ``amount`` to the free balance; returns the new free balance."""
        _check_amount(amount)
        row = self._row(account, create=True)
        if row.free + amount > self.max_balance:
            raise LedgerError(f"Deposit would overflow the balance of {account!r}")
        row.free = row.free + amount
        self.session.flush()
        return row.free

    def free_balance(self, account: str) -> int:
        row = self._row(account)
        return row.free if row is not None else 0

    def reserved_balance(self, account: str) -> int:
        row = self._row(account)
        return row.reserved if row is not None else 0

    def can_reserve(self, account: str, amount: int) -> bool:
        return 0 <= amount <= self.free_balance(account)

    def reserve(self, account: str, amount: int) -> bool:
        _check_amount(amount)
        if not self.can_reserve(account, amount):
            return False
        row = self._row(account, create=True)
        row.free = row.free - amount
        row.reserved = row.reserved + amount
        return True

    def unreserve(self, account: str, amount: int) -> int:
        _check_amount(amount)
        row = self._row(account)
        if row is None:
            return amount
        moved = min(amount, row.reserved)
        row.reserved = row.reserved - moved
        row.free = row.free + moved
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
            if status == BalanceStatus.FREE:
                return self.unreserve(slashed, amount)
            return amount - min(amount, self.reserved_balance(slashed))

        source = self._row(slashed)
        if source is None:
            return amount
        moved = min(amount, source.reserved)
        target = self._row(beneficiary, create=True)
        attr = "free" if status == BalanceStatus.FREE else "reserved"
        if getattr(target, attr) + moved > self.max_balance:
            return amount
        source.reserved = source.reserved - moved
        setattr(target, attr, getattr(target, attr) + moved)
        return amount - moved

    @contextlib.contextmanager
    def atomic(self) -> Iterator[None]:
        with self.session.begin_nested():
            yield


def _check_amount(amount: int) -> None:
    if amount < 0:
        raise LedgerError(f"Amount must be non-negative, got {amount!r}")


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------

def _match_from_record(record: MatchRecord) -> Match:
    odds = {
        name: Odd(getattr(record, f"{name}_integer"), getattr(record, f"{name}_fraction"))
        for name in _ODD_FIELDS
    }
    return Match(
        owner=record.owner,
        external_event_id=record.external_event_id,
        status=MatchStatus(record.status),
        home_score=record.home_score,
        away_score=record.away_score,
        **odds,
    )


def _bet_from_record(record: BetRecord) -> Bet:
    return Bet(
        owner=record.owner,
        match_index=record.match_index,
        prediction=Prediction(record.prediction),
        odd=Odd(record.odd_integer, record.odd_fraction),
        amount=record.amount,
        status=BetStatus(record.status),
    )


class SqlMatchRepository(MatchRepository):
    def __init__(self, session: Session):
        self.session = session

    def get(self, index: int) -> Optional[Match]:
        record = self.session.get(MatchRecord, index)
        return _match_from_record(record) if record is not None else None

    def insert(self, index: int, match: Match) -> None:
        record = self.session.get(MatchRecord, index)
        if record is None:
            record = MatchRecord(match_index=index)
            self.session.add(record)
        record.owner = match.owner
        record.external_event_id = match.external_event_id
        record.status = match.status.value
        record.home_score = match.home_score
        record.away_score = match.away_score
        for name in _ODD_FIELDS:
            odd = getattr(match, name)
            setattr(record, f"{name}_integer", odd.integer)
            setattr(record, f"{name}_fraction", odd.fraction)
        self.session.flush()

    def contains(self, index: int) -> bool:
        return self.session.get(MatchRecord, index) is not None


class SqlBetRepository(BetRepository):
    def __init__(self, session: Session):
        self.session = session

    def get(self, index: int) -> Optional[Bet]:
        record = self.session.get(BetRecord, index)
        return _bet_from_record(record) if record is not None else None

    def insert(self, index: int, bet: Bet) -> None:
        record = self.session.get(BetRecord, index)
        if record is None:
            record = BetRecord(bet_index=index)
            self.session.add(record)
        record.owner = bet.owner
        record.match_index = bet.match_index
        record.prediction = bet.prediction.value
        record.odd_integer = bet.odd.integer
        record.odd_fraction = bet.odd.fraction
        record.amount = bet.amount
        record.status = bet.status.value
        self.session.flush()

    def contains(self, index: int) -> bool:
        return self.session.get(BetRecord, index) is not None

    def indexes_for_match(self, match_index: int) -> List[int]:
        rows = (
            self.session.query(BetRecord.bet_index)
            .filter(BetRecord.match_index == match_index)
            .order_by(BetRecord.bet_index.asc())
            .all()
        )
        return [row.bet_index for row in rows]


class SqlCounterStore(CounterStore):
    def __init__(self, session: Session):
        self.session = session

    def get(self, name: str) -> int:
        row = self.session.get(Counter, name)
        return row.value if row is not None else 0

    def put(self, name: str, value: int) -> None:
        row = self.session.get(Counter, name)
        if row is None:
            self.session.add(Counter(name=name, value=value))
        else:
            row.value = value
        self.session.flush()


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------

class SqlNotificationSink(NotificationSink):
    def __init__(self, session: Session):
        self.session = session

    def publish(self, event: LedgerEvent) -> None:
        self.session.add(LedgerEventRecord(event_type=event.name, index_value=event.index))

    def recent(self, limit: int = 50) -> List[LedgerEventRecord]:
        return (
            self.session.query(LedgerEventRecord)
            .order_by(LedgerEventRecord.id.desc())
            .limit(limit)
            .all()
        )


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class SqlStore:
    """Everything the engine needs, over one Session."""

    def __init__(self, session: Session, max_balance: int = MAX_BALANCE):
        self.session = session
        self.ledger = SqlLedgerBackend(session, max_balance)
        self.sink = SqlNotificationSink(session)

    def context(self) -> LedgerContext:
        return LedgerContext(
            matches=SqlMatchRepository(self.session),
            bets=SqlBetRepository(self.session),
            counters=SqlCounterStore(self.session),
        )

    @contextlib.contextmanager
    def transaction(self) -> Iterator[None]:
        try:
            yield
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def close(self) -> None:
        self.session.close()
