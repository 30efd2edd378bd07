"""SLA Scheduler - Periodic SLA sweep

Each server runs its own scheduler instance. Overlapping sweeps are safe:
task claims are compare-and-set and resumes take the execution lock, so a
piece of overdue work is acted on by exactly one sweep.
"""
import asyncio
import os
import socket
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config.settings import settings
from ..engine.engine import WorkflowEngine
from ..engine.sla_sweep import SlaSweep
from ..utils.logger import get_logger, set_correlation_id
from ..utils.idgen import generate_correlation_id, generate_id
from ..utils.time import utc_now

logger = get_logger(__name__)


class SlaScheduler:
    """
    APScheduler wrapper that runs the SLA sweep on an interval

    The sweep itself is synchronous (pymongo), so each run is pushed to a
    worker thread to keep the event loop free.
    """

    def __init__(self, engine: Optional[WorkflowEngine] = None, interval_seconds: Optional[int] = None):
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.sweep = SlaSweep(engine or WorkflowEngine())
        self.interval_seconds = interval_seconds or settings.sla_sweep_interval_seconds
        self._is_running = False
        self._server_id = self._generate_server_id()
        self._run_count = 0

    def _generate_server_id(self) -> str:
        hostname = socket.gethostname()
        pid = os.getpid()
        return f"{hostname}-{pid}-{generate_id()[:8]}"

    def start(self) -> None:
        """Start the scheduler"""
        if self._is_running:
            logger.warning("Scheduler already running")
            return

        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            self.run_sweep,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id="sla_sweep",
            name="Escalate expired tasks and resume elapsed delays",
            replace_existing=True,
            max_instances=1,
            coalesce=True
        )
        self.scheduler.start()
        self._is_running = True
        logger.info(
            "SLA scheduler started",
            extra={"server_id": self._server_id, "interval_seconds": self.interval_seconds}
        )

    def stop(self) -> None:
        """Stop the scheduler"""
        if self.scheduler:
            self.scheduler.shutdown(wait=False)
            self._is_running = False
            logger.info("SLA scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._is_running

    async def run_sweep(self) -> None:
        """One scheduled sweep; failures are logged and the next interval retries"""
        set_correlation_id(generate_correlation_id())
        start_time = utc_now()
        try:
            report = await asyncio.to_thread(self.sweep.run)
        except Exception as e:
            logger.exception(
                f"Error in SLA sweep job: {e}",
                extra={"error_type": type(e).__name__, "server_id": self._server_id}
            )
            return

        self._run_count += 1
        duration_ms = (utc_now() - start_time).total_seconds() * 1000
        logger.debug(
            "SLA sweep cycle complete",
            extra={
                "escalated": len(report.escalated),
                "expired": len(report.expired),
                "resumed": len(report.resumed),
                "skipped": len(report.skipped),
                "duration_ms": round(duration_ms, 2),
                "server_id": self._server_id,
                "total_runs": self._run_count
            }
        )


# Global scheduler instance
_scheduler: Optional[SlaScheduler] = None


def get_scheduler() -> SlaScheduler:
    """Get or create scheduler instance"""
    global _scheduler
    if _scheduler is None:
        _scheduler = SlaScheduler()
    return _scheduler


def start_scheduler() -> None:
    """Start the global scheduler"""
    get_scheduler().start()


def stop_scheduler() -> None:
    """Stop the global scheduler"""
    global _scheduler
    if _scheduler:
        _scheduler.stop()
        _scheduler = None
