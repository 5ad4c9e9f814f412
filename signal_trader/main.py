"""FastAPI application — bot control API."""

from __future__ import annotations

from typing import Literal

import uvicorn
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ValidationError

from signal_trader.config import settings
from signal_trader.database import close_db
from signal_trader.engine.trading_engine import TradingEngine
from signal_trader.services.account_session import AccountSession
from signal_trader.services.decision_loop import DecisionLoop
from signal_trader.services.event_logger import recent_events
from signal_trader.services.llm_service import LLMService
from signal_trader.services.market_feed import SyntheticMarketFeed
from signal_trader.services.paper_broker import BrokerError, PaperBroker
from signal_trader.services.scheduler import BotScheduler
from signal_trader.services.trade_journal import TradeJournal
from signal_trader.utils.logger import logger

app = FastAPI(
    title="Signal Trader",
    description="LLM-signal trading bot with Kelly sizing and a loss circuit breaker",
    version="0.1.0",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Models ──────────────────────────────────────────────────────────
class SettingsUpdateRequest(BaseModel):
    max_stake: float | None = None
    confidence_threshold: int | None = None
    max_consecutive_losses: int | None = None
    trade_duration_minutes: int | None = None
    risk_limit: float | None = None
    trading_interval_seconds: float | None = None
    settlement_poll_seconds: float | None = None


class SettleRequest(BaseModel):
    outcome: Literal["won", "lost"]
    payout: float | None = None


# ── Singleton services ──────────────────────────────────────────────
engine = TradingEngine()
broker = PaperBroker(seed=settings.RANDOM_SEED)
session = AccountSession(broker, engine)
journal = TradeJournal(lambda: session.account_id)
engine.subscribe(journal)

decision_loop = DecisionLoop(
    engine=engine,
    session=session,
    feed=SyntheticMarketFeed(seed=settings.RANDOM_SEED),
    broker=broker,
)
scheduler = BotScheduler(decision_loop)


@app.on_event("shutdown")
async def _shutdown() -> None:
    scheduler.shutdown()
    close_db()


# ══════════════════════════════════════════════════════════════════════
# HEALTH
# ══════════════════════════════════════════════════════════════════════


@app.get("/api/health")
async def health() -> dict:
    """Detailed health check including inference status."""
    llm = LLMService()
    llm_status = await llm.health_check()
    return {
        "api": "ok",
        "llm": llm_status,
        "config": settings.get_llm_config(),
    }


# ══════════════════════════════════════════════════════════════════════
# ACCOUNTS
# ══════════════════════════════════════════════════════════════════════


@app.get("/api/accounts")
async def list_accounts() -> dict:
    try:
        accounts = await session.list_accounts()
    except BrokerError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    current = session.current()
    return {
        "accounts": [a.model_dump() for a in accounts],
        "selected": current.id if current else None,
    }


@app.post("/api/accounts/{account_id}/select")
async def select_account(account_id: str) -> dict:
    try:
        account = await session.select(account_id)
    except KeyError as e:
        raise HTTPException(status_code=404, detail=f"Unknown account {account_id}") from e
    return {"account": account.model_dump(), "stats": engine.stats.model_dump()}


# ══════════════════════════════════════════════════════════════════════
# BOT CONTROL
# ══════════════════════════════════════════════════════════════════════


@app.post("/api/bot/start")
async def bot_start() -> dict:
    result = scheduler.start()
    if result["status"] == "no_account":
        raise HTTPException(status_code=400, detail="Please select an account first")
    return result


@app.post("/api/bot/pause")
async def bot_pause() -> dict:
    return scheduler.pause()


@app.post("/api/bot/logout")
async def bot_logout() -> dict:
    return await scheduler.logout()


@app.post("/api/bot/tick")
async def bot_tick() -> dict:
    """Run one decision tick now, regardless of the timer."""
    result = await scheduler.run_tick_now()
    return result.model_dump()


@app.get("/api/bot/status")
async def bot_status() -> dict:
    return scheduler.get_status()


# ══════════════════════════════════════════════════════════════════════
# STATS & TRADES
# ══════════════════════════════════════════════════════════════════════


@app.get("/api/stats")
async def get_stats() -> dict:
    state = engine.snapshot()
    return state.model_dump()


@app.get("/api/trades")
async def get_trades(limit: int = Query(default=50, ge=1, le=1000)) -> dict:
    trades = engine.trades(limit=limit)
    return {"count": len(trades), "trades": [t.model_dump(mode="json") for t in trades]}


@app.get("/api/trades/history")
async def get_trade_history(limit: int = Query(default=50, ge=1, le=1000)) -> dict:
    """Persisted trade history (survives restarts)."""
    rows = journal.recent(limit=limit)
    return {"count": len(rows), "trades": rows}


@app.post("/api/trades/{trade_id}/settle")
async def settle_trade(trade_id: str, req: SettleRequest) -> dict:
    """Apply a caller-supplied terminal outcome to a pending trade."""
    existing = engine.get_trade(trade_id)
    settled = engine.settle(trade_id, req.outcome, req.payout)
    if settled is None:
        if existing is None:
            raise HTTPException(status_code=404, detail=f"Unknown trade {trade_id}")
        raise HTTPException(
            status_code=409,
            detail=f"Trade {trade_id} already settled as {existing.status.value}",
        )
    return {"trade": settled.model_dump(mode="json"), "stats": engine.stats.model_dump()}


# ══════════════════════════════════════════════════════════════════════
# SETTINGS
# ══════════════════════════════════════════════════════════════════════


@app.get("/api/settings")
async def get_settings() -> dict:
    return {
        "trading": settings.get_trading_settings().model_dump(),
        "confidence_floor": settings.CONFIDENCE_FLOOR,
        "llm": settings.get_llm_config(),
    }


@app.put("/api/settings")
async def update_settings(req: SettingsUpdateRequest) -> dict:
    data = {k: v for k, v in req.model_dump().items() if v is not None}
    try:
        updated = settings.update_trading_settings(data)
    except ValidationError as e:
        raise HTTPException(
            status_code=422, detail=e.errors(include_url=False, include_context=False),
        ) from e
    scheduler.apply_settings()
    logger.info("Trading settings updated: %s", updated.model_dump())
    return {"status": "updated", "trading": updated.model_dump()}


# ══════════════════════════════════════════════════════════════════════
# ACTIVITY LOG
# ══════════════════════════════════════════════════════════════════════


@app.get("/api/events")
async def get_events(
    limit: int = Query(default=200, ge=1, le=1000),
    phase: str | None = Query(default=None),
    session_id: str | None = Query(default=None),
) -> dict:
    events = recent_events(limit=limit, phase=phase, session_id=session_id)
    return {"count": len(events), "events": events}


def run() -> None:
    """Console entry point."""
    uvicorn.run("signal_trader.main:app", host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
