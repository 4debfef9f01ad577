"""Match and bet records plus their status enums.

Records are frozen: a status change is a new record written back through a
repository (``repo.insert(index, replace(match, status=...))``), so nothing
held by a caller can be mutated behind the registry's back.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from wagerbook.core.odds_math import Odd

AccountId = str
MatchIndex = int
BetIndex = int
Balance = int


class MatchStatus(str, Enum):
    OPEN = "Open"
    CLOSED = "Closed"
    # Accepted by settlement like CLOSED; no operation produces it yet.
    POSTPONED = "Postponed"

    @property
    def is_final(self) -> bool:
        return self in (MatchStatus.CLOSED, MatchStatus.POSTPONED)


class Prediction(str, Enum):
    HOMEWIN = "Homewin"
    AWAYWIN = "Awaywin"
    DRAW = "Draw"
    UNDER = "Under"
    OVER = "Over"


class BetStatus(str, Enum):
    OPEN = "Open"
    LOST = "Lost"
    WON = "Won"


@dataclass(frozen=True)
class Match:
    """A bookmaker's published match with its five fixed odds."""

    owner: AccountId
    external_event_id: int
    odd_homewin: Odd
    odd_awaywin: Odd
    odd_draw: Odd
    odd_under: Odd
    odd_over: Odd
    status: MatchStatus = MatchStatus.OPEN
    home_score: int = 0
    away_score: int = 0

    def odd_for(self, prediction: Prediction) -> Odd:
        """Odd offered for ``prediction``; every prediction has exactly one."""
        return {
            Prediction.HOMEWIN: self.odd_homewin,
            Prediction.AWAYWIN: self.odd_awaywin,
            Prediction.DRAW: self.odd_draw,
            Prediction.UNDER: self.odd_under,
            Prediction.OVER: self.odd_over,
        }[prediction]


@dataclass(frozen=True)
class Bet:
    """A bettor's stake against one prediction of one match.

    ``odd`` is the match odd at placement time; settlement pays from it.
    """

    owner: AccountId
    match_index: MatchIndex
    prediction: Prediction
    odd: Odd
    amount: Balance
    status: BetStatus = BetStatus.OPEN
