"""
Match and bet storage plus the explicit ledger context.

The in-memory repositories are ordered dicts keyed by index.  The SQL
equivalents live in ``sql_store.py``; both satisfy the interfaces in
``wagerbook.core.interfaces``.

:class:`LedgerContext` bundles the two repositories and the two counters so
every registry receives its whole mutable state explicitly.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from wagerbook.core.domain import Bet, Match
from wagerbook.core.interfaces import BetRepository, CounterStore, MatchRepository

MATCH_COUNT = "match_count"
BET_COUNT = "bet_count"


class InMemoryMatchRepository(MatchRepository):
    def __init__(self):
        self._matches: Dict[int, Match] = {}

    def get(self, index: int) -> Optional[Match]:
        return self._matches.get(index)

    def insert(self, index: int, match: Match) -> None:
        self._matches[index] = match

    def contains(self, index: int) -> bool:
        return index in self._matches

    def __len__(self) -> int:
        return len(self._matches)


class InMemoryBetRepository(BetRepository):
    def __init__(self):
        self._bets: Dict[int, Bet] = {}
        self._by_match: Dict[int, List[int]] = {}

    def get(self, index: int) -> Optional[Bet]:
        return self._bets.get(index)

    def insert(self, index: int, bet: Bet) -> None:
        if index not in self._bets:
            self._by_match.setdefault(bet.match_index, []).append(index)
        self._bets[index] = bet

    def contains(self, index: int) -> bool:
        return index in self._bets

    def indexes_for_match(self, match_index: int) -> List[int]:
        return sorted(self._by_match.get(match_index, []))

    def __len__(self) -> int:
        return len(self._bets)


class InMemoryCounterStore(CounterStore):
    def __init__(self):
        self._values: Dict[str, int] = {}

    def get(self, name: str) -> int:
        return self._values.get(name, 0)

    def put(self, name: str, value: int) -> None:
        self._values[name] = value


@dataclass
class LedgerContext:
    """All mutable ledger state: two repositories and two counters."""

    matches: MatchRepository = field(default_factory=InMemoryMatchRepository)
    bets: BetRepository = field(default_factory=InMemoryBetRepository)
    counters: CounterStore = field(default_factory=InMemoryCounterStore)

    @property
    def match_count(self) -> int:
        return self.counters.get(MATCH_COUNT)

    @property
    def bet_count(self) -> int:
        return self.counters.get(BET_COUNT)

    def allocate_match_index(self) -> int:
        """Return the next match index and advance the counter by one."""
        index = self.match_count
        self.counters.put(MATCH_COUNT, index + 1)
        return index

    def allocate_bet_index(self) -> int:
        """Return the next bet index and advance the counter by one."""
        index = self.bet_count
        self.counters.put(BET_COUNT, index + 1)
        return index
