"""
Scheduler for the daily sync + question assembly job.

Implements:
- Daily incremental sync of new podcast episodes
- Question assembly for the episodes that sync just cached
"""

import logging
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

import schedule

from src.pm_dojo.core.config import DB_PATH, SCHEDULER_DAILY_TIME
from src.pm_dojo.core.db import get_connection, init_db
from src.pm_dojo.core.logging_utils import configure_logging
from src.pm_dojo.core.metrics import increment, start_timer, stop_timer
from src.pm_dojo.core.utils import CancelToken
from src.pm_dojo.pipeline.__main__ import run_sync_job
from src.pm_dojo.pipeline.llm_client import ModelGateway

logger = logging.getLogger(__name__)

SCHEDULE_TAG = "pm-dojo"


class DojoScheduler:
    """
    Runs the sync job once a day on a background thread.

    A run that is still going when stop() is called is cancelled between
    episodes; work it already committed stays cached.
    """

    def __init__(
        self,
        daily_time: str = SCHEDULER_DAILY_TIME,
        db_path: Path = DB_PATH,
        assemble_questions: bool = True,
        max_episodes: Optional[int] = None,
        gateway_factory: Callable[[], ModelGateway] = ModelGateway,
    ):
        """
        Args:
            daily_time: Time of the daily run (HH:MM, local time)
            db_path: SQLite database path
            assemble_questions: Generate bank questions for newly cached episodes
            max_episodes: Cap on new episodes per run (None: all)
            gateway_factory: Builds the model gateway for each run
        """
        self.daily_time = daily_time
        self.db_path = Path(db_path)
        self.assemble_questions = assemble_questions
        self.max_episodes = max_episodes
        self.gateway_factory = gateway_factory

        self._running = False
        self._scheduler_thread: Optional[threading.Thread] = None
        self._cancel: Optional[CancelToken] = None
        self._last_run: Optional[datetime] = None
        self._last_result: Optional[dict] = None

    def run_sync(self) -> dict:
        """Run one sync (+ assembly) pass and return its summary."""
        timer_id = start_timer("scheduled_sync")
        logger.info("=" * 60)
        logger.info("[SCHEDULER] Starting daily sync...")
        logger.info("=" * 60)

        self._cancel = CancelToken()
        conn = get_connection(self.db_path)
        try:
            init_db(conn)
            sync_result, assembly_result = run_sync_job(
                conn,
                gateway=self.gateway_factory(),
                max_episodes=self.max_episodes,
                assemble_after=self.assemble_questions,
                cancel=self._cancel,
            )
        except Exception as e:
            stop_timer("scheduled_sync", timer_id=timer_id)
            increment("scheduled_sync_runs", labels={"status": "error"})
            logger.error(f"[SCHEDULER] ✗ Daily sync failed: {e}", exc_info=True)
            raise
        finally:
            conn.close()
            self._cancel = None

        duration = stop_timer("scheduled_sync", timer_id=timer_id)
        status = "stopped" if sync_result.stopped_reason else "success"
        increment("scheduled_sync_runs", labels={"status": status})

        summary = {
            "newly_processed": sync_result.newly_processed,
            "failed": len(sync_result.failed),
            "remaining": sync_result.remaining,
            "questions_generated": assembly_result.generated if assembly_result else 0,
            "stopped_reason": sync_result.stopped_reason
            or (assembly_result.stopped_reason if assembly_result else None),
        }
        self._last_run = datetime.now()
        self._last_result = summary

        logger.info(f"[SCHEDULER] ✓ Daily sync complete in {duration or 0:.2f}s")
        logger.info(f"[SCHEDULER]   New episodes: {summary['newly_processed']}")
        logger.info(f"[SCHEDULER]   Questions generated: {summary['questions_generated']}")
        if summary["stopped_reason"]:
            logger.warning(f"[SCHEDULER]   Stopped early: {summary['stopped_reason']}")
        return summary

    def _scheduled_job(self) -> None:
        # Keeps the scheduler thread alive; run_sync already logged the traceback
        try:
            self.run_sync()
        except Exception as e:
            logger.warning(f"[SCHEDULER] Next attempt at {self.daily_time} ({type(e).__name__})")

    def _scheduler_loop(self):
        """Main scheduler loop."""
        logger.info("[SCHEDULER] Starting scheduler loop...")

        while self._running:
            schedule.run_pending()
            time.sleep(60)  # Check every minute

    def start(self, run_initial: bool = False):
        """
        Start the scheduler.

        Args:
            run_initial: If True, run a sync immediately on start
        """
        if self._running:
            logger.warning("[SCHEDULER] Scheduler already running")
            return

        self._running = True

        schedule.every().day.at(self.daily_time).do(self._scheduled_job).tag(SCHEDULE_TAG)
        logger.info(f"[SCHEDULER] Daily sync scheduled at {self.daily_time}")

        if run_initial:
            logger.info("[SCHEDULER] Running initial sync...")
            self._scheduled_job()

        self._scheduler_thread = threading.Thread(target=self._scheduler_loop, daemon=True)
        self._scheduler_thread.start()

        logger.info("[SCHEDULER] Scheduler started")

    def stop(self):
        """Stop the scheduler."""
        self._running = False
        if self._cancel is not None:
            self._cancel.cancel()
        if self._scheduler_thread:
            self._scheduler_thread.join(timeout=5)
        schedule.clear(SCHEDULE_TAG)
        logger.info("[SCHEDULER] Scheduler stopped")

    def get_status(self) -> dict:
        """Get current scheduler status."""
        return {
            "running": self._running,
            "daily_time": self.daily_time,
            "assemble_questions": self.assemble_questions,
            "last_run": self._last_run.isoformat() if self._last_run else None,
            "last_result": self._last_result,
            "next_jobs": [str(job) for job in schedule.get_jobs(SCHEDULE_TAG)[:5]],
        }


# CLI entry point
def main():
    """CLI entry point for the scheduler."""
    import argparse

    parser = argparse.ArgumentParser(description="PM Dojo Sync Scheduler")
    parser.add_argument(
        "--mode",
        choices=["scheduler", "sync-once"],
        default="scheduler",
        help="Run mode: scheduler (daily, continuous) or sync-once (single run)",
    )
    parser.add_argument(
        "--time",
        default=SCHEDULER_DAILY_TIME,
        help=f"Time for the daily sync (default: {SCHEDULER_DAILY_TIME})",
    )
    parser.add_argument(
        "--max-episodes",
        type=int,
        default=None,
        help="Maximum new episodes per run (default: all)",
    )
    parser.add_argument(
        "--no-assemble",
        action="store_true",
        help="Disable question assembly after sync",
    )
    parser.add_argument(
        "--run-initial",
        action="store_true",
        help="Run a sync immediately on scheduler start",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )

    args = parser.parse_args()
    configure_logging(args.log_level)

    scheduler = DojoScheduler(
        daily_time=args.time,
        assemble_questions=not args.no_assemble,
        max_episodes=args.max_episodes,
    )

    if args.mode == "sync-once":
        scheduler.run_sync()
        return

    scheduler.start(run_initial=args.run_initial)

    # Keep main thread alive
    try:
        while True:
            time.sleep(60)
            logger.debug(f"Scheduler status: {scheduler.get_status()}")
    except KeyboardInterrupt:
        logger.info("Shutting down scheduler...")
        scheduler.stop()


if __name__ == "__main__":
    main()
