"""
Database models for the Wagerbook ledger
SQLAlchemy ORM; SQLite by default, PostgreSQL via DATABASE_URL
"""

from sqlalchemy import (
    create_engine,
    event,
    Column,
    Integer,
    BigInteger,
    String,
    DateTime,
    ForeignKey,
    TypeDecorator,
)
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from datetime import datetime
import os
from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./wagerbook.db")


def make_engine(url: str = DATABASE_URL):
    """
    Engine for ``url``.

    SQLite gets the driver-level fixes SAVEPOINT needs (settlement runs its
    fund movements in one), and in-memory databases share one connection.
    """
    if not url.startswith("sqlite"):
        return create_engine(url, pool_pre_ping=True, echo=False)

    kwargs = {"connect_args": {"check_same_thread": False}}
    if url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool
    sqlite_engine = create_engine(url, echo=False, **kwargs)

    @event.listens_for(sqlite_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return sqlite_engine


engine = make_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


# Dependency for FastAPI
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


class BalanceColumn(TypeDecorator):
    """Unsigned 128-bit balance stored as a decimal string.

    Integer columns stop at 64 bits and NUMERIC is lossy on SQLite, so the
    exact digits are stored instead.
    """

    impl = String(40)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(int(value))

    def process_result_value(self, value, dialect):
        return None if value is None else int(value)


class Account(Base):
    """Free and reserved balance of one account"""

    __tablename__ = "accounts"

    account_id = Column(String(128), primary_key=True)
    free = Column(BalanceColumn, nullable=False, default=0)
    reserved = Column(BalanceColumn, nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class MatchRecord(Base):
    """A published match with its five fixed odds"""

    __tablename__ = "matches"

    match_index = Column(BigInteger, primary_key=True, autoincrement=False)
    owner = Column(String(128), nullable=False, index=True)
    external_event_id = Column(BigInteger, nullable=False, index=True)
    status = Column(String(16), nullable=False, default="Open")  # Open | Closed | Postponed

    # Results (written once, when the match is closed)
    home_score = Column(Integer, nullable=False, default=0)
    away_score = Column(Integer, nullable=False, default=0)

    # Odds: integer part and hundredths
    odd_homewin_integer = Column(BigInteger, nullable=False)
    odd_homewin_fraction = Column(Integer, nullable=False)
    odd_awaywin_integer = Column(BigInteger, nullable=False)
    odd_awaywin_fraction = Column(Integer, nullable=False)
    odd_draw_integer = Column(BigInteger, nullable=False)
    odd_draw_fraction = Column(Integer, nullable=False)
    odd_under_integer = Column(BigInteger, nullable=False)
    odd_under_fraction = Column(Integer, nullable=False)
    odd_over_integer = Column(BigInteger, nullable=False)
    odd_over_fraction = Column(Integer, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class BetRecord(Base):
    """A stake against one prediction of one match"""

    __tablename__ = "bets"

    bet_index = Column(BigInteger, primary_key=True, autoincrement=False)
    owner = Column(String(128), nullable=False, index=True)
    match_index = Column(BigInteger, ForeignKey("matches.match_index"), nullable=False, index=True)
    prediction = Column(String(16), nullable=False)  # Homewin | Awaywin | Draw | Under | Over

    # Odd snapshot at placement
    odd_integer = Column(BigInteger, nullable=False)
    odd_fraction = Column(Integer, nullable=False)

    amount = Column(BalanceColumn, nullable=False)
    status = Column(String(16), nullable=False, default="Open")  # Open | Won | Lost

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Counter(Base):
    """Monotonic counters: match_count, bet_count"""

    __tablename__ = "counters"

    name = Column(String(32), primary_key=True)
    value = Column(BigInteger, nullable=False, default=0)


class LedgerEventRecord(Base):
    """Lifecycle notifications, in emission order"""

    __tablename__ = "ledger_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_type = Column(String(32), nullable=False, index=True)  # MatchCreated | BetPlaced | ...
    index_value = Column(BigInteger, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)


# Create all tables
def init_db(bind=None):
    """Initialize database tables"""
    Base.metadata.create_all(bind=bind or engine)
