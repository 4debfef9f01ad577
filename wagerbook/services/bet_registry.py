"""
Bet placement with full collateralisation of both parties.

Every bet reserves the bettor's stake *and* the bookmaker's whole exposure
for that stake, independently of any other bet on the match.  A bookmaker
therefore needs free balance for the sum of the exposures of all the bets
it accepts at the same time.

All preconditions are checked before the first reservation.  The two
reservations then run inside one ledger transaction.
"""

import logging
from dataclasses import replace
from typing import List, Optional

from wagerbook.core.config import LedgerConfig
from wagerbook.core.domain import Bet, BetStatus, MatchStatus, Prediction
from wagerbook.core.errors import (
    BetNotFound,
    BettorInsufficientBalance,
    BookmakerInsufficientBalance,
    MatchClosed,
    MatchNotFound,
    SameMatchOwner,
)
from wagerbook.core.interfaces import BetPlaced, LedgerBackend, NotificationSink
from wagerbook.core.odds_math import winnable
from wagerbook.services.notifications import LoggingNotificationSink, deliver
from wagerbook.services.repositories import LedgerContext

logger = logging.getLogger(__name__)


class BetRegistry:
    """Owns bet records and the Open → Won/Lost status write."""

    def __init__(
        self,
        context: LedgerContext,
        ledger: LedgerBackend,
        sink: Optional[NotificationSink] = None,
        config: Optional[LedgerConfig] = None,
    ):
        self.context = context
        self.ledger = ledger
        self.sink = sink or LoggingNotificationSink()
        self.config = config or LedgerConfig.default()

    def get_bet(self, bet_index: int) -> Bet:
        bet = self.context.bets.get(bet_index)
        if bet is None:
            raise BetNotFound(f"Bet {bet_index} does not exist")
        return bet

    def bets_for_match(self, match_index: int) -> List[int]:
        """Indexes of every bet placed on ``match_index``, in placement order."""
        if not self.context.matches.contains(match_index):
            raise MatchNotFound(f"Match {match_index} does not exist")
        return self.context.bets.indexes_for_match(match_index)

    def exposure(self, bet: Bet) -> int:
        """Bookmaker liability for ``bet``, from its snapshotted odd."""
        return winnable(bet.amount, bet.odd, self.config.max_balance)

    def place_bet(self, caller: str, match_index: int, prediction: Prediction, amount: int) -> int:
        """
        Stake ``amount`` on ``prediction`` against the match's bookmaker.

        Checks, first failure wins, nothing changed on failure:
          MatchNotFound → SameMatchOwner → MatchClosed →
          BettorInsufficientBalance → BookmakerInsufficientBalance
        """
        match = self.context.matches.get(match_index)
        if match is None:
            raise MatchNotFound(f"Match {match_index} does not exist")
        if caller == match.owner:
            raise SameMatchOwner(f"{caller} owns match {match_index} and cannot bet on it")
        if match.status != MatchStatus.OPEN:
            raise MatchClosed(f"Match {match_index} is {match.status.value}; no new bets")
        if not self.ledger.can_reserve(caller, amount):
            raise BettorInsufficientBalance(
                f"{caller} cannot reserve a stake of {amount}"
            )

        odd = match.odd_for(prediction)
        exposure = winnable(amount, odd, self.config.max_balance)
        if not self.ledger.can_reserve(match.owner, exposure):
            raise BookmakerInsufficientBalance(
                f"Bookmaker {match.owner} cannot reserve an exposure of {exposure}"
            )

        with self.ledger.atomic():
            if not self.ledger.reserve(caller, amount):
                raise BettorInsufficientBalance(f"{caller} cannot reserve a stake of {amount}")
            if not self.ledger.reserve(match.owner, exposure):
                raise BookmakerInsufficientBalance(
                    f"Bookmaker {match.owner} cannot reserve an exposure of {exposure}"
                )

        bet = Bet(
            owner=caller,
            match_index=match_index,
            prediction=prediction,
            odd=odd,
            amount=amount,
        )
        index = self.context.allocate_bet_index()
        self.context.bets.insert(index, bet)

        logger.info(
            "Bet %d placed by %s on match %d: %s @ %s, stake %d, exposure %d",
            index, caller, match_index, prediction.value, odd, amount, exposure,
        )
        deliver(self.sink, BetPlaced(index))
        return index

    def set_status(self, bet_index: int, status: BetStatus) -> Bet:
        """Write the settled status of an Open bet."""
        bet = replace(self.get_bet(bet_index), status=status)
        self.context.bets.insert(bet_index, bet)
        return bet
