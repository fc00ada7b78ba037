"""
Keeper Worker

Periodic trigger for the open rebalance entry point:
- Optionally refreshes yields first
- Calls rebalance(); a cooldown skip is a normal outcome
- Counts consecutive failures and halts after the limit

The engine itself never schedules anything; this worker is the
off-engine caller that keeps allocations current.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Optional

import schedule

from utils.config import CONFIG

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

MAX_CONSECUTIVE_FAILURES = 3


class KeeperWorker:
    """
    Keeper that calls rebalance() on an interval.

    Usage:
        keeper = KeeperWorker(engine, caller="keeper")
        keeper.run_schedule()  # Run continuously on schedule
        keeper.run_once()      # Run one iteration now
    """

    def __init__(
        self,
        engine,
        caller: str = "keeper",
        interval_seconds: Optional[int] = None,
        refresh_first: bool = False,
        metrics=None,
        max_failures: int = MAX_CONSECUTIVE_FAILURES
    ):
        self.engine = engine
        self.caller = caller
        self.interval_seconds = interval_seconds or CONFIG.KEEPER_INTERVAL
        self.refresh_first = refresh_first
        self.metrics = metrics
        self.max_failures = max_failures

        self.scheduler = schedule.Scheduler()

        # State
        self.runs = 0
        self.consecutive_failures = 0
        self.halted = False
        self.halt_reason: Optional[str] = None
        self.last_result: Optional[dict] = None

        logger.info(f"KeeperWorker initialized for {caller}")
        logger.info(f"Rebalance interval: {self.interval_seconds}s")

    def run_once(self) -> dict:
        """
        Execute one keeper iteration.
        Returns execution result.
        """
        result = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "action": None,
            "status": None,
            "moved": 0,
            "error": None
        }

        if self.halted:
            logger.warning(f"Keeper halted: {self.halt_reason}")
            result["action"] = "BLOCKED"
            result["status"] = "halted"
            result["error"] = self.halt_reason
            self.last_result = result
            return result

        self.runs += 1

        try:
            if self.refresh_first:
                self.engine.refresh_yields(self.caller)

            if self.metrics is not None:
                with self.metrics.time_operation("rebalance"):
                    outcome = self.engine.rebalance(self.caller)
            else:
                outcome = self.engine.rebalance(self.caller)

            if outcome.executed:
                result["action"] = "REBALANCE"
                result["status"] = "executed"
                result["moved"] = outcome.total_moved
                logger.info(f"Rebalance executed: moved {outcome.total_moved} "
                            f"in {len(outcome.moves)} moves")
            else:
                result["action"] = "SKIP"
                result["status"] = outcome.skipped_reason
                if self.metrics is not None:
                    self.metrics.record_rebalance(outcome.skipped_reason)
                logger.info(f"Rebalance skipped: {outcome.skipped_reason}")

            self.consecutive_failures = 0

        except Exception as e:
            logger.error(f"Keeper run failed: {e}")
            self.consecutive_failures += 1
            result["action"] = "ERROR"
            result["status"] = "failed"
            result["error"] = str(e)

            if self.consecutive_failures >= self.max_failures:
                self.halt(f"{self.consecutive_failures} consecutive failures: {e}")

        self.last_result = result
        return result

    def halt(self, reason: str):
        self.halted = True
        self.halt_reason = reason
        self.scheduler.clear()
        logger.critical(f"KEEPER HALTED: {reason}")

    def reset(self):
        """Clear a halt (requires manual confirmation in production)."""
        self.halted = False
        self.halt_reason = None
        self.consecutive_failures = 0
        logger.info("Keeper halt cleared")

    def schedule_jobs(self):
        """Register the rebalance job; returns it."""
        return self.scheduler.every(self.interval_seconds).seconds.do(self.run_once)

    def run_schedule(self, poll_seconds: float = 1.0):
        """Run on schedule until halted."""
        self.schedule_jobs()

        logger.info(f"Scheduler started. Rebalancing every {self.interval_seconds}s")

        while not self.halted:
            self.scheduler.run_pending()
            time.sleep(poll_seconds)


def main():
    """CLI entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Run rebalance keeper against the reference world")
    parser.add_argument("--caller", default="keeper", help="Keeper identity")
    parser.add_argument("--interval", type=int, default=None, help="Seconds between runs")
    parser.add_argument("--refresh", action="store_true", help="Refresh yields before rebalancing")
    parser.add_argument("--once", action="store_true", help="Run once and exit")

    args = parser.parse_args()

    from .aggregator_service import AppState

    state = AppState()
    keeper = KeeperWorker(
        state.engine,
        caller=args.caller,
        interval_seconds=args.interval,
        refresh_first=args.refresh,
        metrics=state.metrics
    )

    if args.once:
        result = keeper.run_once()
        print(f"Result: {result}")
    else:
        keeper.run_schedule()


if __name__ == "__main__":
    main()
