"""
Single entry point for every ledger operation.

:class:`WagerEngine` wires the registries and the settlement engine over
one :class:`LedgerContext` and runs every public operation under one lock,
so operations are totally ordered even when the host calls from several
threads.  After each committed operation the randomness source is advanced,
like a ledger moving to its next block.

Write operations run inside ``unit_of_work()``.  In memory that is a no-op;
the SQL host passes ``SqlStore.transaction`` so each operation commits on
success and rolls back on any error.
"""

import contextlib
import logging
import threading
from typing import Callable, ContextManager, Dict, List, Optional, Tuple

from wagerbook.core.config import LedgerConfig
from wagerbook.core.domain import Bet, BetStatus, Match, Prediction
from wagerbook.core.interfaces import LedgerBackend, NotificationSink, RandomnessSource
from wagerbook.core.odds_math import Odd
from wagerbook.core.random_outcome import HashRandomnessSource, RandomOutcomeGenerator
from wagerbook.services.bet_registry import BetRegistry
from wagerbook.services.ledger import InMemoryLedger
from wagerbook.services.match_registry import MatchRegistry
from wagerbook.services.notifications import LoggingNotificationSink
from wagerbook.services.repositories import LedgerContext
from wagerbook.services.settlement import SettlementEngine

logger = logging.getLogger(__name__)


class WagerEngine:
    """Serialised facade over match creation, betting, closing and claiming."""

    def __init__(
        self,
        ledger: Optional[LedgerBackend] = None,
        randomness: Optional[RandomnessSource] = None,
        sink: Optional[NotificationSink] = None,
        context: Optional[LedgerContext] = None,
        config: Optional[LedgerConfig] = None,
        unit_of_work: Callable[[], ContextManager] = contextlib.nullcontext,
    ):
        self.config = config or LedgerConfig.default()
        self.unit_of_work = unit_of_work
        self.ledger = ledger if ledger is not None else InMemoryLedger(self.config.max_balance)
        self.randomness = randomness or HashRandomnessSource(self.config.random_seed)
        self.sink = sink or LoggingNotificationSink()
        self.context = context or LedgerContext()

        self.generator = RandomOutcomeGenerator(self.randomness, self.config)
        self.matches = MatchRegistry(self.context, self.generator, self.sink)
        self.bets = BetRegistry(self.context, self.ledger, self.sink, self.config)
        self.settlement = SettlementEngine(
            self.matches, self.bets, self.ledger, self.sink, self.config,
        )
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def create_match(
        self,
        caller: str,
        external_event_id: int,
        odd_homewin: Odd,
        odd_awaywin: Odd,
        odd_draw: Odd,
        odd_under: Odd,
        odd_over: Odd,
    ) -> int:
        with self._lock, self.unit_of_work():
            index = self.matches.create_match(
                caller, external_event_id,
                odd_homewin, odd_awaywin, odd_draw, odd_under, odd_over,
            )
            self.randomness.advance()
            return index

    def place_bet(self, caller: str, match_index: int, prediction: Prediction, amount: int) -> int:
        with self._lock, self.unit_of_work():
            index = self.bets.place_bet(caller, match_index, prediction, amount)
            self.randomness.advance()
            return index

    def close_match_with_result(self, match_index: int) -> Tuple[int, int]:
        with self._lock, self.unit_of_work():
            scores = self.matches.close_match_with_result(match_index)
            self.randomness.advance()
            return scores

    def claim_bet(self, caller: str, bet_index: int) -> BetStatus:
        with self._lock, self.unit_of_work():
            status = self.settlement.claim_bet(caller, bet_index)
            self.randomness.advance()
            return status

    def settle_match(self, caller: str, match_index: int) -> Dict[int, BetStatus]:
        with self._lock:
            results = self.settlement.settle_match(caller, match_index, self.unit_of_work)
            self.randomness.advance()
            return results

    def deposit(self, account: str, amount: int) -> int:
        """Fund ``account``; returns its new free balance."""
        with self._lock, self.unit_of_work():
            free = self.ledger.deposit(account, amount)
            logger.info("Deposited %d to %s (free now %d)", amount, account, free)
            return free

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_match(self, match_index: int) -> Match:
        with self._lock:
            return self.matches.get_match(match_index)

    def get_bet(self, bet_index: int) -> Bet:
        with self._lock:
            return self.bets.get_bet(bet_index)

    def bets_for_match(self, match_index: int) -> List[int]:
        with self._lock:
            return self.bets.bets_for_match(match_index)

    def balances(self, account: str) -> Tuple[int, int]:
        """``(free, reserved)`` for ``account``."""
        with self._lock:
            return self.ledger.free_balance(account), self.ledger.reserved_balance(account)
