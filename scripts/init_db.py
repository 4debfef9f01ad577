#!/usr/bin/env python3
"""
Create the Wagerbook tables and optionally fund demo accounts.

    python scripts/init_db.py                 # create missing tables
    python scripts/init_db.py --seed          # ... and fund user1..user3
    python scripts/init_db.py --drop --yes    # rebuild from scratch
    python scripts/init_db.py --check         # connectivity only
"""

import argparse
import logging
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from sqlalchemy import inspect, text

from wagerbook.models import Base, SessionLocal, engine, init_db
from wagerbook.services.sql_store import SqlStore

logger = logging.getLogger(__name__)

# Admin bankroll plus a bookmaker and a bettor.
DEMO_BALANCES = {"user1": 1_000_000, "user2": 10_000, "user3": 10_000}


def create_tables(bind=engine, drop_existing: bool = False) -> list:
    """Create every ledger table; returns the table names now present."""
    if drop_existing:
        logger.warning("Dropping all ledger tables")
        Base.metadata.drop_all(bind=bind)
    init_db(bind=bind)
    tables = sorted(inspect(bind).get_table_names())
    logger.info("Tables: %s", ", ".join(tables))
    return tables


def seed_demo_accounts(session_factory=SessionLocal, balances=DEMO_BALANCES) -> dict:
    """
    Deposit ``balances`` in one transaction.

    Returns each account's free balance afterwards.  A deposit that would
    overflow an account raises ``LedgerError`` and nothing is committed.
    """
    store = SqlStore(session_factory())
    try:
        with store.transaction():
            funded = {account: store.ledger.deposit(account, amount)
                      for account, amount in balances.items()}
    finally:
        store.close()
    logger.info("Funded %s", ", ".join(f"{a}={b}" for a, b in funded.items()))
    return funded


def check_connection(bind=engine) -> bool:
    try:
        with bind.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as exc:
        logger.error("Database connection failed: %s", exc)
        return False
    logger.info("Database connection OK (%s)", bind.url.render_as_string(hide_password=True))
    return True


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Initialize the Wagerbook database")
    parser.add_argument("--drop", action="store_true", help="drop existing tables first")
    parser.add_argument("--yes", action="store_true", help="confirm --drop")
    parser.add_argument("--seed", action="store_true", help="fund the demo accounts")
    parser.add_argument("--check", action="store_true", help="only check the connection")
    args = parser.parse_args(argv)

    if not check_connection():
        return 1
    if args.check:
        return 0
    if args.drop and not args.yes:
        parser.error("--drop deletes every match, bet and balance; pass --yes to confirm")

    create_tables(drop_existing=args.drop)
    if args.seed:
        seed_demo_accounts()
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    sys.exit(main())
