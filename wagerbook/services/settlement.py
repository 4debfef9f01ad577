"""
Bet settlement: outcome determination and fund movement.

    claim_bet(caller, bet_index)       settle one bet of a closed match
    settle_match(caller, match_index)  settle every still-open bet of a match

Fund movement per outcome (``winnable`` recomputed from the bet's odd):

    Won   bookmaker reserved --winnable--> bettor free
          bettor reserved    --amount----> bookmaker free
    Lost  bettor reserved    --amount----> bookmaker free
          bookmaker reserved --winnable--> bookmaker free   (unreserve)

The stake goes to the bookmaker on both paths; on a win the bettor's gain
is the whole ``winnable`` amount.  Both movements of a path run inside one
ledger transaction: a shortfall on either rolls both back and surfaces as
``PayoffFailure`` with the bet still Open.
"""

import contextlib
import logging
from typing import Callable, ContextManager, Dict, Optional

from wagerbook.core.config import LedgerConfig
from wagerbook.core.domain import Bet, BetStatus, Match, Prediction
from wagerbook.core.errors import BetAlreadyClosed, MatchStillOpen, PayoffFailure
from wagerbook.core.interfaces import BalanceStatus, BetClaimed, LedgerBackend, NotificationSink
from wagerbook.services.bet_registry import BetRegistry
from wagerbook.services.match_registry import MatchRegistry
from wagerbook.services.notifications import LoggingNotificationSink, deliver

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Outcome calculation (pure function, no ledger)
# ---------------------------------------------------------------------------

def determine_outcome(
    prediction: Prediction,
    home_score: int,
    away_score: int,
    goals_threshold: int = 3,
) -> BetStatus:
    """
    Won or Lost for ``prediction`` against a final score.  There is no push:
    a total equal to ``goals_threshold`` loses both Under and Over.
    """
    total = home_score + away_score
    won = {
        Prediction.HOMEWIN: home_score > away_score,
        Prediction.AWAYWIN: home_score < away_score,
        Prediction.DRAW: home_score == away_score,
        Prediction.OVER: total > goals_threshold,
        Prediction.UNDER: total < goals_threshold,
    }[prediction]
    return BetStatus.WON if won else BetStatus.LOST


# ---------------------------------------------------------------------------
# Settlement engine
# ---------------------------------------------------------------------------

class SettlementEngine:
    def __init__(
        self,
        matches: MatchRegistry,
        bets: BetRegistry,
        ledger: LedgerBackend,
        sink: Optional[NotificationSink] = None,
        config: Optional[LedgerConfig] = None,
    ):
        self.matches = matches
        self.bets = bets
        self.ledger = ledger
        self.sink = sink or LoggingNotificationSink()
        self.config = config or LedgerConfig.default()

    def claim_bet(self, caller: str, bet_index: int) -> BetStatus:
        """
        Settle an Open bet whose match is Closed or Postponed.

        Any account may claim; ``caller`` is only logged.

        Raises:
            BetNotFound, BetAlreadyClosed, MatchNotFound, MatchStillOpen:
                precondition failures, nothing changed.
            PayoffFailure: the ledger could not complete a movement; the
                transaction was rolled back and the bet is still Open.
        """
        bet = self.bets.get_bet(bet_index)
        if bet.status != BetStatus.OPEN:
            raise BetAlreadyClosed(f"Bet {bet_index} is already {bet.status.value}")
        match = self.matches.get_match(bet.match_index)
        if not match.status.is_final:
            raise MatchStillOpen(f"Match {bet.match_index} has no result yet")

        status = determine_outcome(
            bet.prediction, match.home_score, match.away_score, self.config.goals_threshold,
        )
        exposure = self.bets.exposure(bet)

        try:
            with self.ledger.atomic():
                if status == BetStatus.WON:
                    self._pay_won(bet_index, bet, match, exposure)
                else:
                    self._pay_lost(bet_index, bet, match, exposure)
        except PayoffFailure as exc:
            logger.error(
                "PayoffFailure on bet %d (match %d, %s, stake %d, exposure %d): %s",
                bet_index, bet.match_index, status.value, bet.amount, exposure, exc,
            )
            raise

        self.bets.set_status(bet_index, status)
        logger.info(
            "%s: bet %d (%s @ %s on %d – %d) claimed by %s | stake %d, exposure %d",
            status.value.upper(), bet_index, bet.prediction.value, bet.odd,
            match.home_score, match.away_score, caller, bet.amount, exposure,
        )
        deliver(self.sink, BetClaimed(bet_index))
        return status

    def settle_match(
        self,
        caller: str,
        match_index: int,
        unit_of_work: Callable[[], ContextManager] = contextlib.nullcontext,
    ) -> Dict[int, BetStatus]:
        """
        Claim every Open bet on a Closed/Postponed match, in bet order.

        Each claim runs in its own ``unit_of_work()``.  Stops at the first
        PayoffFailure; bets settled before it stay settled.
        """
        match = self.matches.get_match(match_index)
        if not match.status.is_final:
            raise MatchStillOpen(f"Match {match_index} has no result yet")

        results: Dict[int, BetStatus] = {}
        for bet_index in self.bets.bets_for_match(match_index):
            if self.bets.get_bet(bet_index).status != BetStatus.OPEN:
                continue
            with unit_of_work():
                results[bet_index] = self.claim_bet(caller, bet_index)

        logger.info(
            "settle_match %d done: %d won, %d lost",
            match_index,
            sum(1 for s in results.values() if s == BetStatus.WON),
            sum(1 for s in results.values() if s == BetStatus.LOST),
        )
        return results

    # ------------------------------------------------------------------
    # Fund movement, called inside ledger.atomic()
    # ------------------------------------------------------------------

    def _pay_won(self, bet_index: int, bet: Bet, match: Match, exposure: int) -> None:
        self._repatriate(bet_index, match.owner, bet.owner, exposure)
        self._repatriate(bet_index, bet.owner, match.owner, bet.amount)

    def _pay_lost(self, bet_index: int, bet: Bet, match: Match, exposure: int) -> None:
        self._repatriate(bet_index, bet.owner, match.owner, bet.amount)
        remaining = self.ledger.unreserve(match.owner, exposure)
        if remaining:
            raise PayoffFailure(
                f"Bet {bet_index}: could not release {remaining} of {exposure} "
                f"reserved by {match.owner}"
            )

    def _repatriate(self, bet_index: int, slashed: str, beneficiary: str, amount: int) -> None:
        remaining = self.ledger.repatriate_reserved(
            slashed, beneficiary, amount, BalanceStatus.FREE,
        )
        if remaining:
            raise PayoffFailure(
                f"Bet {bet_index}: moved only {amount - remaining} of {amount} "
                f"from {slashed} to {beneficiary}"
            )
