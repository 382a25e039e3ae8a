"""SLA Monitor - Periodic scan that flags overdue incidents

Runs on an APScheduler background thread. Each scan is a single bulk
update, so overlapping or repeated scans never double-mark an incident.
"""
from typing import Any, Callable, Dict, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..repositories.incident_repo import IncidentRepository
from ..utils.idgen import generate_correlation_id
from ..utils.logger import get_logger, set_correlation_id
from ..utils.time import Clock, utc_now, format_iso

logger = get_logger(__name__)

JOB_ID = "check_sla_breaches"


class SlaMonitor:
    """
    Background SLA breach detector

    start() and stop() are idempotent; the scan itself can also be called
    directly (tests, admin tooling).
    """

    def __init__(
        self,
        incident_repo: Optional[IncidentRepository] = None,
        interval_seconds: int = 300,
        clock: Clock = utc_now,
        scheduler_factory: Callable[[], Any] = BackgroundScheduler
    ):
        self.incident_repo = incident_repo or IncidentRepository()
        self.interval_seconds = interval_seconds
        self._clock = clock
        self._scheduler_factory = scheduler_factory
        self.scheduler: Optional[Any] = None
        self._is_running = False
        self._last_run_at = None
        self._last_marked = 0

    def start(self) -> None:
        """Start the scheduler; first scan runs immediately"""
        if self._is_running:
            logger.warning("SLA monitor already running")
            return

        self.scheduler = self._scheduler_factory()
        self.scheduler.add_job(
            self.check_sla_breaches,
            trigger=IntervalTrigger(seconds=self.interval_seconds),
            id=JOB_ID,
            name="Check SLA breaches",
            next_run_time=self._clock(),
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
        self.scheduler.start()
        self._is_running = True
        logger.info(f"SLA monitor started (interval {self.interval_seconds}s)")

    def stop(self) -> None:
        """Stop the scheduler without waiting for an in-flight scan"""
        if not self._is_running:
            return
        if self.scheduler:
            self.scheduler.shutdown(wait=False)
        self.scheduler = None
        self._is_running = False
        logger.info("SLA monitor stopped")

    @property
    def is_running(self) -> bool:
        return self._is_running

    def status(self) -> Dict[str, Any]:
        return {
            "running": self._is_running,
            "interval_seconds": self.interval_seconds,
            "last_run_at": format_iso(self._last_run_at) if self._last_run_at else None,
            "last_marked": self._last_marked,
        }

    def check_sla_breaches(self) -> int:
        """
        Mark overdue incidents as breached

        Returns:
            Number of incidents newly marked in this scan
        """
        set_correlation_id(generate_correlation_id())
        now = self._clock()
        marked = self.incident_repo.mark_sla_breached(now)
        self._last_run_at = now
        self._last_marked = marked

        if marked:
            logger.warning(f"Marked {marked} incident(s) as SLA breached", extra={"marked": marked})
        else:
            logger.debug("SLA scan found no new breaches")

        try:
            stats = self.incident_repo.get_stats()
            logger.info(
                f"Incident stats: total={stats.total} open={stats.open} "
                f"in_progress={stats.in_progress} sla_breached={stats.sla_breached}"
            )
        except Exception as e:
            logger.error(f"Failed to collect incident stats: {e}")

        return marked
