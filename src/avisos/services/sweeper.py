"""Recycle-bin expiry sweep and its background scheduler."""

import logging
import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional

from avisos import observability
from avisos.config import config
from avisos.exceptions import AvisosError, SweepError
from avisos.services.lifecycle import DeletionLifecycleManager

logger = logging.getLogger(__name__)


class SweepOutcome(str, Enum):
    """What the scheduler should do after a sweep run."""

    SUCCESS = "success"
    RETRY = "retry"


class CleanupExpiredNotesJob:
    """Purges recycle-bin notes older than the retention window.

    ``run()`` never raises: failures are logged and reported as RETRY.
    """

    def __init__(
        self,
        lifecycle: DeletionLifecycleManager,
        retention_days: Optional[int] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.lifecycle = lifecycle
        self.retention_days = retention_days or config.retention_days
        self._clock = clock
        self.last_purged: Optional[int] = None
        self.last_error: Optional[SweepError] = None

    def run(self) -> SweepOutcome:
        now = self._clock() if self._clock else None
        try:
            purged = self.lifecycle.purge_expired(self.retention_days, now=now)
        except AvisosError as e:
            self.last_error = SweepError(
                f"Expiry sweep failed: {e.message}",
                retention_days=self.retention_days,
                original_error=e,
            )
            logger.error(str(self.last_error))
            return SweepOutcome.RETRY
        except Exception as e:
            self.last_error = SweepError(
                "Expiry sweep failed unexpectedly",
                retention_days=self.retention_days,
                original_error=e,
            )
            logger.error(str(self.last_error), exc_info=True)
            return SweepOutcome.RETRY

        self.last_purged = purged
        self.last_error = None
        logger.info(f"Expiry sweep purged {purged} note(s)")
        return SweepOutcome.SUCCESS


class SweepScheduler:
    """Runs the expiry sweep periodically on a daemon timer thread.

    After a successful run the next one is scheduled ``interval_hours``
    later; after a failed run it is retried ``retry_seconds`` later until
    it succeeds.
    """

    def __init__(
        self,
        job: CleanupExpiredNotesJob,
        interval_hours: Optional[float] = None,
        retry_seconds: Optional[float] = None,
    ):
        self.job = job
        self.interval_seconds = (interval_hours or config.sweep_interval_hours) * 3600
        self.retry_seconds = retry_seconds or config.sweep_retry_seconds
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None
        self._stopped = threading.Event()
        self.run_count = 0
        self.failure_count = 0
        self.consecutive_failures = 0
        self.last_run_time: Optional[datetime] = None
        self.last_outcome: Optional[SweepOutcome] = None

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._timer is not None and not self._stopped.is_set()

    def start(self, initial_delay: float = 0.0) -> None:
        """Start sweeping; the first run happens after ``initial_delay`` seconds."""
        self._stopped.clear()
        self._schedule(initial_delay)
        logger.info(
            f"Sweep scheduler started (every {self.interval_seconds / 3600:g}h, "
            f"retry after {self.retry_seconds:g}s)"
        )

    def stop(self) -> None:
        self._stopped.set()
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        logger.info("Sweep scheduler stopped")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until ``stop()`` is called. Returns True if stopped."""
        return self._stopped.wait(timeout)

    def run_once(self) -> SweepOutcome:
        """Run the job now and record the outcome, without rescheduling."""
        outcome = self.job.run()
        with self._lock:
            self.run_count += 1
            self.last_run_time = datetime.now(timezone.utc)
            self.last_outcome = outcome
            if outcome is SweepOutcome.SUCCESS:
                self.consecutive_failures = 0
            else:
                self.failure_count += 1
                self.consecutive_failures += 1
        return outcome

    def get_status(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "run_count": self.run_count,
                "failure_count": self.failure_count,
                "consecutive_failures": self.consecutive_failures,
                "last_run_time": (
                    self.last_run_time.isoformat() if self.last_run_time else None
                ),
                "last_outcome": self.last_outcome.value if self.last_outcome else None,
                "purge_timings": observability.metrics.get_operation("purge_expired"),
            }

    def _schedule(self, delay: float) -> None:
        with self._lock:
            if self._stopped.is_set():
                return
            self._timer = threading.Timer(delay, self._tick)
            self._timer.daemon = True
            self._timer.start()

    def _tick(self) -> None:
        outcome = self.run_once()
        if outcome is SweepOutcome.SUCCESS:
            self._schedule(self.interval_seconds)
        else:
            logger.warning(
                f"Expiry sweep will retry in {self.retry_seconds:g}s "
                f"({self.consecutive_failures} consecutive failure(s))"
            )
            self._schedule(self.retry_seconds)
