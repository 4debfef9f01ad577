"""
Tests for the SQLAlchemy-backed ledger, repositories and event sink
Run with: pytest tests/test_sql_store.py -v
"""

import pytest
from sqlalchemy import inspect
from sqlalchemy.orm import sessionmaker

from wagerbook.core.domain import BetStatus, MatchStatus, Prediction
from wagerbook.core.errors import LedgerError, PayoffFailure
from wagerbook.core.interfaces import BalanceStatus
from wagerbook.core.odds_math import MAX_BALANCE, Odd
from wagerbook.core.random_outcome import SequenceRandomnessSource
from wagerbook.models import (
    Account,
    BetRecord,
    LedgerEventRecord,
    MatchRecord,
    init_db,
    make_engine,
)
from wagerbook.services.engine import WagerEngine
from wagerbook.services.sql_store import SqlLedgerBackend, SqlStore

ODDS = (Odd(2, 0), Odd(3, 50), Odd(3, 10), Odd(1, 80), Odd(2, 5))


@pytest.fixture
def db():
    eng = make_engine("sqlite://")
    init_db(bind=eng)
    yield sessionmaker(bind=eng)
    eng.dispose()


@pytest.fixture
def store(db):
    store = SqlStore(db())
    yield store
    store.close()


def _engine(store, draws=()):
    return WagerEngine(
        ledger=store.ledger,
        randomness=SequenceRandomnessSource(draws),
        sink=store.sink,
        context=store.context(),
        unit_of_work=store.transaction,
    )


def _funded(store, draws=()):
    engine = _engine(store, draws)
    engine.deposit("bookie", 1_000)
    engine.deposit("alice", 500)
    return engine


class FlakySqlLedger(SqlLedgerBackend):
    """Second repatriation of every claim moves nothing."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.calls = 0

    def repatriate_reserved(self, slashed, beneficiary, amount, status):
        self.calls += 1
        if self.calls % 2 == 0:
            return amount
        return super().repatriate_reserved(slashed, beneficiary, amount, status)


# ---------------------------------------------------------------------------
# Ledger backend
# ---------------------------------------------------------------------------

class TestSqlLedgerBackend:
    def test_missing_account_reads_zero(self, store):
        assert store.ledger.free_balance("nobody") == 0
        assert store.ledger.reserved_balance("nobody") == 0
        assert store.ledger.unreserve("nobody", 5) == 5

    def test_reserve_and_repatriate(self, store):
        ledger = store.ledger
        ledger.deposit("bookie", 500)
        assert ledger.reserve("bookie", 200)
        assert not ledger.reserve("bookie", 301)
        assert ledger.repatriate_reserved("bookie", "alice", 250, BalanceStatus.FREE) == 50
        assert ledger.free_balance("alice") == 200
        assert ledger.free_balance("bookie") == 300
        assert ledger.reserved_balance("bookie") == 0

    def test_savepoint_rollback(self, store):
        ledger = store.ledger
        ledger.deposit("alice", 100)
        store.session.commit()

        with pytest.raises(RuntimeError):
            with ledger.atomic():
                ledger.reserve("alice", 40)
                ledger.repatriate_reserved("alice", "bob", 40, BalanceStatus.FREE)
                raise RuntimeError("boom")

        assert ledger.free_balance("alice") == 100
        assert ledger.reserved_balance("alice") == 0
        assert ledger.free_balance("bob") == 0

    def test_u128_balance_survives_round_trip(self, db):
        store = SqlStore(db())
        store.ledger.deposit("whale", MAX_BALANCE)
        store.session.commit()
        with pytest.raises(LedgerError):
            store.ledger.deposit("whale", 1)
        store.close()

        session = db()
        try:
            assert session.get(Account, "whale").free == MAX_BALANCE
        finally:
            session.close()


# ---------------------------------------------------------------------------
# Engine over SQL
# ---------------------------------------------------------------------------

class TestEngineOverSql:
    def test_won_scenario_commits(self, db, store):
        engine = _funded(store, draws=[3, 1])
        match_index = engine.create_match("bookie", 77, *ODDS)
        bet_index = engine.place_bet("alice", match_index, Prediction.HOMEWIN, 100)
        engine.close_match_with_result(match_index)
        assert engine.claim_bet("alice", bet_index) == BetStatus.WON
        store.close()

        # A fresh store over the same database sees every committed write.
        reopened = SqlStore(db())
        try:
            context = reopened.context()
            assert context.match_count == 1
            assert context.bet_count == 1
            match = context.matches.get(match_index)
            assert match.status == MatchStatus.CLOSED
            assert (match.home_score, match.away_score) == (3, 1)
            assert match.odd_awaywin == Odd(3, 50)
            assert context.bets.get(bet_index).status == BetStatus.WON
            assert reopened.ledger.free_balance("alice") == 600
            assert reopened.ledger.free_balance("bookie") == 900
            assert reopened.ledger.reserved_balance("bookie") == 0
        finally:
            reopened.close()

    def test_failed_unit_of_work_rolls_back(self, store):
        engine = _funded(store)
        with pytest.raises(RuntimeError):
            with store.transaction():
                store.ledger.deposit("alice", 50)
                engine.context.allocate_match_index()
                raise RuntimeError("boom")
        assert engine.context.match_count == 0
        assert engine.balances("alice") == (500, 0)

    def test_payoff_failure_leaves_bet_open(self, store):
        store.ledger = FlakySqlLedger(store.session)
        engine = _funded(store, draws=[3, 1])
        match_index = engine.create_match("bookie", 1, *ODDS)
        bet_index = engine.place_bet("alice", match_index, Prediction.HOMEWIN, 100)
        engine.close_match_with_result(match_index)

        with pytest.raises(PayoffFailure):
            engine.claim_bet("alice", bet_index)

        assert engine.get_bet(bet_index).status == BetStatus.OPEN
        assert engine.balances("alice") == (400, 100)
        assert engine.balances("bookie") == (800, 200)

    def test_events_persisted_in_order(self, store):
        engine = _funded(store, draws=[0, 0])
        match_index = engine.create_match("bookie", 1, *ODDS)
        bet_index = engine.place_bet("alice", match_index, Prediction.DRAW, 10)
        engine.close_match_with_result(match_index)
        engine.claim_bet("alice", bet_index)

        recent = list(reversed(store.sink.recent()))
        assert [(e.event_type, e.index_value) for e in recent] == [
            ("MatchCreated", 0), ("BetPlaced", 0), ("MatchClosed", 0), ("BetClaimed", 0),
        ]
        assert store.session.query(LedgerEventRecord).count() == 4

    def test_settle_match_and_bet_listing(self, store):
        engine = _funded(store, draws=[1, 2])
        engine.deposit("bob", 500)
        match_index = engine.create_match("bookie", 1, *ODDS)
        b0 = engine.place_bet("alice", match_index, Prediction.AWAYWIN, 10)
        b1 = engine.place_bet("bob", match_index, Prediction.HOMEWIN, 10)

        assert engine.bets_for_match(match_index) == [b0, b1]
        engine.close_match_with_result(match_index)

        assert engine.settle_match("user1", match_index) == {
            b0: BetStatus.WON, b1: BetStatus.LOST,
        }
        assert engine.balances("bookie")[1] == 0

    def test_settle_match_keeps_claims_committed_before_a_failure(self, db, store):
        store.ledger = FlakySqlLedger(store.session)
        engine = _funded(store, draws=[2, 0])
        engine.deposit("bob", 500)
        match_index = engine.create_match("bookie", 1, *ODDS)
        b0 = engine.place_bet("alice", match_index, Prediction.DRAW, 10)
        b1 = engine.place_bet("bob", match_index, Prediction.AWAYWIN, 10)
        engine.close_match_with_result(match_index)

        with pytest.raises(PayoffFailure):
            engine.settle_match("user1", match_index)
        store.close()

        reopened = SqlStore(db())
        try:
            bets = reopened.context().bets
            assert bets.get(b0).status == BetStatus.LOST
            assert bets.get(b1).status == BetStatus.OPEN
            assert reopened.ledger.reserved_balance("bob") == 10
            assert reopened.ledger.reserved_balance("bookie") == 35
        finally:
            reopened.close()


def test_bets_reference_matches_by_column_only():
    assert not inspect(MatchRecord).relationships
    assert not inspect(BetRecord).relationships
    (fk,) = BetRecord.__table__.c.match_index.foreign_keys
    assert fk.target_fullname == "matches.match_index"
