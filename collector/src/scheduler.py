"""
Background jobs: retention sweep and alert sweep.
"""
import logging
import time
from typing import Callable

from apscheduler.schedulers.background import BackgroundScheduler

from shared.constants import ALERT_SWEEP_SECONDS, CLEANUP_INTERVAL_HOURS, DATA_RETENTION_DAYS
from .alerts import AlertEvaluator
from .errors import FleetMonitorError
from .store import TimeSeriesStore

logger = logging.getLogger(__name__)


class RetentionSweep:
    """Deletes samples older than the retention horizon."""

    def __init__(self, store: TimeSeriesStore, days: int = DATA_RETENTION_DAYS, clock: Callable[[], float] = time.time):
        self.store = store
        self.days = days
        self.clock = clock

    def cutoff(self) -> int:
        return int(self.clock()) - self.days * 24 * 60 * 60

    def run(self) -> int:
        try:
            return self.store.purge_older_than(self.cutoff())
        except FleetMonitorError as e:
            logger.error(f"Error cleaning up old metrics: {e}")
            return 0


class CollectorScheduler:
    """Runs the periodic collector jobs on a background thread."""

    def __init__(
        self,
        retention: RetentionSweep,
        evaluator: AlertEvaluator,
        retention_interval_hours: float = CLEANUP_INTERVAL_HOURS,
        alert_interval_seconds: float = ALERT_SWEEP_SECONDS,
    ):
        self.retention = retention
        self.evaluator = evaluator
        self.scheduler = BackgroundScheduler()

        # One run of each job at a time; late runs collapse into one
        self.scheduler.add_job(
            retention.run,
            trigger="interval",
            hours=retention_interval_hours,
            id="retention_sweep",
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.add_job(
            evaluator.sweep,
            trigger="interval",
            seconds=alert_interval_seconds,
            id="alert_sweep",
            max_instances=1,
            coalesce=True,
        )

    def start(self):
        self.scheduler.start()
        logger.info("Background scheduler started")

    def shutdown(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Background scheduler stopped")
