"""
Pydantic request/response schemas for the Wagerbook API.

Odd bounds are checked by the core, so the API reports the
same ``InvalidOddFraction`` / ``InvalidOddInteger`` codes as any other host;
the schemas only reject values that cannot be represented at all.
"""

from __future__ import annotations

from typing import Dict, Optional

from pydantic import BaseModel, Field, field_validator

from wagerbook.core.domain import Bet, BetStatus, Match, MatchStatus, Prediction
from wagerbook.core.odds_math import MAX_U32, Odd


# ---------------------------------------------------------------------------
# Odds
# ---------------------------------------------------------------------------

class OddSchema(BaseModel):
    """Decimal multiplier ``integer + fraction / 100``."""

    integer: int = Field(..., ge=0, le=MAX_U32, description="Whole part, must be ≥ 1")
    fraction: int = Field(..., ge=0, le=MAX_U32, description="Hundredths, must be < 100")

    def to_odd(self) -> Odd:
        return Odd(self.integer, self.fraction)

    @classmethod
    def from_odd(cls, odd: Odd) -> "OddSchema":
        return cls(integer=odd.integer, fraction=odd.fraction)


# ---------------------------------------------------------------------------
# Matches
# ---------------------------------------------------------------------------

class MatchCreate(BaseModel):
    """
    Payload for POST /api/matches.

    The authenticated account becomes the match owner (bookmaker).
    """

    external_event_id: int = Field(..., ge=0, le=MAX_U32, description="Id of the real-world event")
    odd_homewin: OddSchema
    odd_awaywin: OddSchema
    odd_draw: OddSchema
    odd_under: OddSchema
    odd_over: OddSchema

    model_config = {
        "json_schema_extra": {
            "example": {
                "external_event_id": 1001,
                "odd_homewin": {"integer": 2, "fraction": 0},
                "odd_awaywin": {"integer": 3, "fraction": 50},
                "odd_draw": {"integer": 3, "fraction": 10},
                "odd_under": {"integer": 1, "fraction": 80},
                "odd_over": {"integer": 2, "fraction": 5},
            }
        }
    }


class MatchResponse(BaseModel):
    match_index: int
    owner: str
    external_event_id: int
    status: MatchStatus
    home_score: int
    away_score: int
    odd_homewin: OddSchema
    odd_awaywin: OddSchema
    odd_draw: OddSchema
    odd_under: OddSchema
    odd_over: OddSchema

    @classmethod
    def from_match(cls, match_index: int, match: Match) -> "MatchResponse":
        return cls(
            match_index=match_index,
            owner=match.owner,
            external_event_id=match.external_event_id,
            status=match.status,
            home_score=match.home_score,
            away_score=match.away_score,
            odd_homewin=OddSchema.from_odd(match.odd_homewin),
            odd_awaywin=OddSchema.from_odd(match.odd_awaywin),
            odd_draw=OddSchema.from_odd(match.odd_draw),
            odd_under=OddSchema.from_odd(match.odd_under),
            odd_over=OddSchema.from_odd(match.odd_over),
        )


class MatchCreatedResponse(BaseModel):
    message: str
    match_index: int


class MatchResultResponse(BaseModel):
    match_index: int
    home_score: int
    away_score: int


class SettleMatchResponse(BaseModel):
    match_index: int
    results: Dict[int, BetStatus]


# ---------------------------------------------------------------------------
# Bets
# ---------------------------------------------------------------------------

class BetCreate(BaseModel):
    """Payload for POST /api/bets.  The authenticated account is the bettor."""

    match_index: int = Field(..., ge=0)
    prediction: Prediction
    amount: int = Field(..., ge=0, description="Stake, in the ledger's smallest unit")

    @field_validator("prediction", mode="before")
    @classmethod
    def normalise_prediction(cls, v):
        # Accept "homewin", "HOMEWIN" and "Homewin" alike.
        if isinstance(v, str):
            return v.strip().capitalize()
        return v


class BetResponse(BaseModel):
    bet_index: int
    owner: str
    match_index: int
    prediction: Prediction
    odd: OddSchema
    amount: int
    status: BetStatus

    @classmethod
    def from_bet(cls, bet_index: int, bet: Bet) -> "BetResponse":
        return cls(
            bet_index=bet_index,
            owner=bet.owner,
            match_index=bet.match_index,
            prediction=bet.prediction,
            odd=OddSchema.from_odd(bet.odd),
            amount=bet.amount,
            status=bet.status,
        )


class BetPlacedResponse(BaseModel):
    message: str
    bet_index: int


class ClaimResponse(BaseModel):
    bet_index: int
    status: BetStatus


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------

class DepositRequest(BaseModel):
    amount: int = Field(..., gt=0)


class BalanceResponse(BaseModel):
    account: str
    free: int
    reserved: int


class ErrorResponse(BaseModel):
    error: str
    detail: Optional[str] = None
