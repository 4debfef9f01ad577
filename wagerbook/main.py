"""
FastAPI application for the Wagerbook escrow ledger
REST surface over WagerEngine: matches, bets, settlement, balances
"""

from fastapi import FastAPI, Depends, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from contextlib import asynccontextmanager
from datetime import datetime
import logging
import os

from wagerbook.auth import verify_api_key, verify_admin_api_key
from wagerbook.core.config import LedgerConfig
from wagerbook.core.errors import (
    InsufficientBalanceError,
    LedgerError,
    LifecycleError,
    NotFoundError,
    PayoffFailure,
    ValidationError,
    WagerError,
)
from wagerbook.core.random_outcome import HashRandomnessSource
from wagerbook.models import SessionLocal, engine as db_engine, init_db
from wagerbook.schemas import (
    BalanceResponse,
    BetCreate,
    BetPlacedResponse,
    BetResponse,
    ClaimResponse,
    DepositRequest,
    ErrorResponse,
    MatchCreate,
    MatchCreatedResponse,
    MatchResponse,
    MatchResultResponse,
    SettleMatchResponse,
)
from wagerbook.services.engine import WagerEngine
from wagerbook.services.notifications import FanoutNotificationSink, LoggingNotificationSink
from wagerbook.services.sql_store import SqlStore

# Logging setup
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

APP_VERSION = "1.0"

# WagerError family → HTTP status; checked in order, most specific first.
ERROR_STATUS = (
    (PayoffFailure, 500),
    (ValidationError, 422),
    (NotFoundError, 404),
    (LifecycleError, 409),
    (InsufficientBalanceError, 402),
)

# Documented on every route; bodies come from the handlers below.
ERROR_RESPONSES = {code: {"model": ErrorResponse} for _, code in ERROR_STATUS}


def build_engine(backend: str, config: LedgerConfig):
    """Return ``(engine, store)``; ``store`` is None for the in-memory backend."""
    randomness = HashRandomnessSource(config.random_seed or os.urandom(32))
    if backend == "sql":
        init_db()
        store = SqlStore(SessionLocal(), config.max_balance)
        wager_engine = WagerEngine(
            ledger=store.ledger,
            randomness=randomness,
            sink=FanoutNotificationSink([store.sink, LoggingNotificationSink()]),
            context=store.context(),
            config=config,
            unit_of_work=store.transaction,
        )
        return wager_engine, store
    if backend != "memory":
        raise ValueError(f"Unknown WAGERBOOK_BACKEND {backend!r}; use 'memory' or 'sql'")
    return WagerEngine(randomness=randomness, config=config), None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    backend = os.getenv("WAGERBOOK_BACKEND", "memory").lower()
    config = LedgerConfig.from_env()
    logger.info("Starting Wagerbook (%s backend)", backend)

    app.state.backend = backend
    app.state.engine, app.state.store = build_engine(backend, config)

    yield

    logger.info("Shutting down Wagerbook")
    if app.state.store is not None:
        app.state.store.close()


app = FastAPI(
    title="Wagerbook",
    description="Peer-to-peer wagering escrow ledger",
    version=APP_VERSION,
    lifespan=lifespan,
    responses=ERROR_RESPONSES,
)

# CORS (adjust origins for production)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_engine(request: Request) -> WagerEngine:
    return request.app.state.engine


# ============================================================================
# ERROR HANDLING
# ============================================================================

@app.exception_handler(WagerError)
async def wager_error_handler(request: Request, exc: WagerError):
    status_code = next(code for cls, code in ERROR_STATUS + ((WagerError, 400),) if isinstance(exc, cls))
    if status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status_code, content={"error": exc.code, "detail": exc.message})


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    return JSONResponse(status_code=400, content={"error": "LedgerError", "detail": str(exc)})


# ============================================================================
# PUBLIC ENDPOINTS
# ============================================================================

@app.get("/")
async def root():
    """Health check"""
    return {
        "app": "Wagerbook",
        "version": APP_VERSION,
        "status": "operational",
        "timestamp": datetime.utcnow().isoformat(),
    }


@app.get("/health")
async def health_check(request: Request):
    """Health check endpoint"""
    health = {"status": "healthy", "backend": request.app.state.backend}

    if request.app.state.store is not None:
        health["database"] = "connected"
        try:
            with db_engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            logger.error(f"Health check database error: {e}")
            health["status"] = "degraded"
            health["database"] = f"error: {str(e)}"

    return health


# ============================================================================
# AUTHENTICATED ENDPOINTS - MATCHES
# ============================================================================

@app.post("/api/matches", response_model=MatchCreatedResponse)
async def create_match(
    payload: MatchCreate,
    caller: str = Depends(verify_api_key),
    wager_engine: WagerEngine = Depends(get_engine),
):
    """Publish a match; the caller becomes its bookmaker."""
    match_index = wager_engine.create_match(
        caller,
        payload.external_event_id,
        payload.odd_homewin.to_odd(),
        payload.odd_awaywin.to_odd(),
        payload.odd_draw.to_odd(),
        payload.odd_under.to_odd(),
        payload.odd_over.to_odd(),
    )
    return MatchCreatedResponse(message="Match created", match_index=match_index)


@app.get("/api/matches/{match_index}", response_model=MatchResponse)
async def get_match(
    match_index: int,
    caller: str = Depends(verify_api_key),
    wager_engine: WagerEngine = Depends(get_engine),
):
    return MatchResponse.from_match(match_index, wager_engine.get_match(match_index))


@app.get("/api/matches/{match_index}/bets", response_model=list[BetResponse])
async def get_match_bets(
    match_index: int,
    caller: str = Depends(verify_api_key),
    wager_engine: WagerEngine = Depends(get_engine),
):
    """All bets placed on a match, in placement order."""
    return [
        BetResponse.from_bet(bet_index, wager_engine.get_bet(bet_index))
        for bet_index in wager_engine.bets_for_match(match_index)
    ]


# ============================================================================
# AUTHENTICATED ENDPOINTS - BETS
# ============================================================================

@app.post("/api/bets", response_model=BetPlacedResponse)
async def place_bet(
    payload: BetCreate,
    caller: str = Depends(verify_api_key),
    wager_engine: WagerEngine = Depends(get_engine),
):
    """Stake on a prediction; both stake and bookmaker exposure are reserved."""
    bet_index = wager_engine.place_bet(caller, payload.match_index, payload.prediction, payload.amount)
    return BetPlacedResponse(message="Bet placed", bet_index=bet_index)


@app.get("/api/bets/{bet_index}", response_model=BetResponse)
async def get_bet(
    bet_index: int,
    caller: str = Depends(verify_api_key),
    wager_engine: WagerEngine = Depends(get_engine),
):
    return BetResponse.from_bet(bet_index, wager_engine.get_bet(bet_index))


@app.post("/api/bets/{bet_index}/claim", response_model=ClaimResponse)
async def claim_bet(
    bet_index: int,
    caller: str = Depends(verify_api_key),
    wager_engine: WagerEngine = Depends(get_engine),
):
    """Settle a bet whose match has a result."""
    status = wager_engine.claim_bet(caller, bet_index)
    return ClaimResponse(bet_index=bet_index, status=status)


# ============================================================================
# AUTHENTICATED ENDPOINTS - ACCOUNTS
# ============================================================================

@app.get("/api/accounts/me", response_model=BalanceResponse)
async def get_my_balance(
    caller: str = Depends(verify_api_key),
    wager_engine: WagerEngine = Depends(get_engine),
):
    free, reserved = wager_engine.balances(caller)
    return BalanceResponse(account=caller, free=free, reserved=reserved)


# ============================================================================
# ADMIN ENDPOINTS
# ============================================================================

@app.post("/admin/matches/{match_index}/close", response_model=MatchResultResponse)
async def close_match(
    match_index: int,
    user: str = Depends(verify_admin_api_key),
    wager_engine: WagerEngine = Depends(get_engine),
):
    """Draw the result of a match and close it to new bets."""
    home_score, away_score = wager_engine.close_match_with_result(match_index)
    return MatchResultResponse(match_index=match_index, home_score=home_score, away_score=away_score)


@app.post("/admin/matches/{match_index}/settle", response_model=SettleMatchResponse)
async def settle_match(
    match_index: int,
    user: str = Depends(verify_admin_api_key),
    wager_engine: WagerEngine = Depends(get_engine),
):
    """Claim every open bet of a closed match."""
    results = wager_engine.settle_match(user, match_index)
    return SettleMatchResponse(match_index=match_index, results=results)


@app.post("/admin/accounts/{account_id}/deposit", response_model=BalanceResponse)
async def deposit(
    account_id: str,
    payload: DepositRequest,
    user: str = Depends(verify_admin_api_key),
    wager_engine: WagerEngine = Depends(get_engine),
):
    if not account_id.strip():
        raise HTTPException(status_code=422, detail="account_id must not be blank")
    wager_engine.deposit(account_id, payload.amount)
    free, reserved = wager_engine.balances(account_id)
    return BalanceResponse(account=account_id, free=free, reserved=reserved)


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": type(exc).__name__},
    )
