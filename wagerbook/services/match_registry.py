"""
Match lifecycle: creation with fixed odds, and closing with a result.

    create_match(...)               Open, zero scores, odds validated
    close_match_with_result(index)  Open → Closed, scores drawn once

A bookmaker is not asked to fund anything at creation; collateral is
reserved bet by bet in ``bet_registry.py``.
"""

import logging
from dataclasses import replace
from typing import Optional, Tuple

from wagerbook.core.domain import Match, MatchStatus
from wagerbook.core.errors import MatchAlreadyClosed, MatchNotFound
from wagerbook.core.interfaces import MatchClosed, MatchCreated, NotificationSink
from wagerbook.core.odds_math import Odd, validate_odds
from wagerbook.core.random_outcome import RandomOutcomeGenerator
from wagerbook.services.notifications import LoggingNotificationSink, deliver
from wagerbook.services.repositories import LedgerContext

logger = logging.getLogger(__name__)

HOME_SEED_DIFF = 0
AWAY_SEED_DIFF = 1


class MatchRegistry:
    """Owns match records and their Open → Closed transition."""

    def __init__(
        self,
        context: LedgerContext,
        generator: RandomOutcomeGenerator,
        sink: Optional[NotificationSink] = None,
    ):
        self.context = context
        self.generator = generator
        self.sink = sink or LoggingNotificationSink()

    def get_match(self, match_index: int) -> Match:
        match = self.context.matches.get(match_index)
        if match is None:
            raise MatchNotFound(f"Match {match_index} does not exist")
        return match

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
        """
        Publish a new Open match owned by ``caller``.

        Raises:
            InvalidOddFraction / InvalidOddInteger: for the first bad odd,
                in argument order.
        """
        validate_odds(odd_homewin, odd_awaywin, odd_draw, odd_under, odd_over)

        match = Match(
            owner=caller,
            external_event_id=external_event_id,
            odd_homewin=odd_homewin,
            odd_awaywin=odd_awaywin,
            odd_draw=odd_draw,
            odd_under=odd_under,
            odd_over=odd_over,
        )
        index = self.context.allocate_match_index()
        self.context.matches.insert(index, match)

        logger.info(
            "Match %d created by %s for event %d (H %s / A %s / D %s / U %s / O %s)",
            index, caller, external_event_id,
            odd_homewin, odd_awaywin, odd_draw, odd_under, odd_over,
        )
        deliver(self.sink, MatchCreated(index))
        return index

    def close_match_with_result(self, match_index: int) -> Tuple[int, int]:
        """
        Draw the final score and close the match.

        Raises:
            MatchNotFound: no match under ``match_index``.
            MatchAlreadyClosed: the match is not Open; scores are never redrawn.
        """
        match = self.get_match(match_index)
        if match.status != MatchStatus.OPEN:
            raise MatchAlreadyClosed(
                f"Match {match_index} is already {match.status.value}"
            )

        home_score = self.generator.generate_score(HOME_SEED_DIFF)
        away_score = self.generator.generate_score(AWAY_SEED_DIFF)

        self.context.matches.insert(
            match_index,
            replace(
                match,
                status=MatchStatus.CLOSED,
                home_score=home_score,
                away_score=away_score,
            ),
        )

        logger.info("Match %d closed: %d – %d", match_index, home_score, away_score)
        deliver(self.sink, MatchClosed(match_index))
        return home_score, away_score
