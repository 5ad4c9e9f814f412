"""Bot Scheduler — APScheduler-driven decision ticks and settlements.

Two interval jobs share one asyncio loop:
  - Decision tick (every ``trading_interval_seconds``): one DecisionLoop pass
  - Settlement pump (every ``settlement_poll_seconds``): settles due trades

Pausing removes only the tick job.  Pending trades keep settling after a
pause or a logout; on logout the broker session is closed once the last
pending trade has settled.
"""

from __future__ import annotations

from collections.abc import Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from signal_trader.config import settings as app_settings
from signal_trader.models.trading import TickResult, TradingSettings
from signal_trader.services.decision_loop import DecisionLoop
from signal_trader.services.event_logger import end_session, log_event, start_session
from signal_trader.services.llm_service import aclose_shared_client
from signal_trader.utils.logger import logger

TICK_JOB = "decision_tick"
PUMP_JOB = "settlement_pump"


class BotScheduler:
    """Runs the decision loop on a timer and drains settlements."""

    def __init__(
        self,
        decision_loop: DecisionLoop,
        trading_settings: Callable[[], TradingSettings] | None = None,
    ) -> None:
        self._loop = decision_loop
        self._settings = trading_settings or app_settings.get_trading_settings
        self._scheduler: AsyncIOScheduler | None = None
        self._close_broker_when_drained = False
        self.is_running = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> dict:
        """Start (or resume) periodic decision ticks."""
        if self.is_running:
            return {"status": "already_running"}

        if self._loop.session.current() is None:
            logger.warning("[Scheduler] ❌ Please select an account first")
            return {"status": "no_account"}

        cfg = self._settings()
        scheduler = self._ensure_scheduler()
        scheduler.add_job(
            self._tick_job,
            IntervalTrigger(seconds=cfg.trading_interval_seconds),
            id=TICK_JOB,
            name="Decision Tick",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        self._close_broker_when_drained = False
        self.is_running = True
        session_id = start_session()
        logger.info(
            "[Scheduler] ▶️  Bot started — tick every %.1fs", cfg.trading_interval_seconds,
        )
        log_event("session", "bot_started", "Bot started", metadata={"session_id": session_id})
        return {"status": "started", "jobs": len(scheduler.get_jobs())}

    def pause(self) -> dict:
        """Stop new ticks. Pending trades still settle."""
        if not self.is_running:
            return {"status": "not_running"}

        if self._scheduler is not None and self._scheduler.get_job(TICK_JOB):
            self._scheduler.remove_job(TICK_JOB)
        self.is_running = False
        pending = len(self._loop.engine.pending_trades())
        logger.info("[Scheduler] ⏸️  Bot paused (%d trades still pending)", pending)
        log_event(
            "session", "bot_paused", f"Bot paused with {pending} pending trades",
        )
        return {"status": "paused", "pending_trades": pending}

    async def logout(self) -> dict:
        """Pause, drop the account and tear down collaborator sessions.

        The settlement pump stays alive until every pending trade has
        settled into the ledger; only then is the broker closed.
        """
        self.pause()
        self._loop.session.clear()
        await aclose_shared_client()

        pending = len(self._loop.engine.pending_trades())
        if pending:
            self._close_broker_when_drained = True
            self._ensure_scheduler()
            logger.info(
                "[Scheduler] Logout: %d pending trades will settle before the "
                "broker session closes", pending,
            )
        else:
            await self._loop.broker.close()

        log_event("session", "logout", f"Logged out ({pending} pending trades)")
        end_session()
        return {"status": "logged_out", "pending_trades": pending}

    def shutdown(self) -> dict:
        """Stop every job, including the settlement pump (process exit)."""
        if self._scheduler is None:
            return {"status": "not_running"}
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        self.is_running = False
        logger.info("[Scheduler] Stopped — all jobs removed")
        return {"status": "stopped"}

    def apply_settings(self) -> None:
        """Re-time running jobs after a settings change."""
        if self._scheduler is None:
            return
        cfg = self._settings()
        if self._scheduler.get_job(TICK_JOB):
            self._scheduler.reschedule_job(
                TICK_JOB, trigger=IntervalTrigger(seconds=cfg.trading_interval_seconds),
            )
        if self._scheduler.get_job(PUMP_JOB):
            self._scheduler.reschedule_job(
                PUMP_JOB, trigger=IntervalTrigger(seconds=cfg.settlement_poll_seconds),
            )
        logger.info(
            "[Scheduler] Jobs re-timed: tick %.1fs, settlement poll %.1fs",
            cfg.trading_interval_seconds, cfg.settlement_poll_seconds,
        )

    def _ensure_scheduler(self) -> AsyncIOScheduler:
        if self._scheduler is None:
            self._scheduler = AsyncIOScheduler()
            self._scheduler.start()
        if not self._scheduler.get_job(PUMP_JOB):
            self._scheduler.add_job(
                self._pump_job,
                IntervalTrigger(seconds=self._settings().settlement_poll_seconds),
                id=PUMP_JOB,
                name="Settlement Pump",
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
        return self._scheduler

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_status(self) -> dict:
        """Return scheduler + engine state for the control API."""
        jobs = []
        if self._scheduler is not None:
            for job in self._scheduler.get_jobs():
                next_run = job.next_run_time
                jobs.append({
                    "id": job.id,
                    "name": job.name,
                    "next_run": next_run.isoformat() if next_run else None,
                })

        state = self._loop.engine.snapshot()
        account = self._loop.session.current()
        last = self._loop.last_result
        return {
            "is_running": self.is_running,
            "jobs": jobs,
            "job_count": len(jobs),
            "account": account.model_dump() if account else None,
            "ticks": self._loop.ticks,
            "last_tick": last.model_dump() if last else None,
            "stats": state.stats.model_dump(),
            "consecutive_losses": state.consecutive_losses,
            "pending_trades": state.pending_trades,
            "closing_after_drain": self._close_broker_when_drained,
        }

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def run_tick_now(self) -> TickResult:
        """Manually trigger one decision tick.

        The settlement pump is armed first so a trade opened here settles
        even when the bot was never started.
        """
        self._ensure_scheduler()
        return await self._loop.run_tick()

    async def _tick_job(self) -> None:
        try:
            await self._loop.run_tick()
        except Exception:
            logger.exception("[Scheduler] Decision tick failed")

    async def _pump_job(self) -> None:
        try:
            settled = await self._loop.settle_due()
            if settled:
                logger.info("[Scheduler] Settled %d trades", len(settled))
        except Exception:
            logger.exception("[Scheduler] Settlement pump failed")
            return

        if (
            self._close_broker_when_drained
            and self._loop.session.current() is None
            and not self._loop.engine.has_pending()
        ):
            self._close_broker_when_drained = False
            await self._loop.broker.close()
            logger.info("[Scheduler] All pending trades settled — broker session closed")
