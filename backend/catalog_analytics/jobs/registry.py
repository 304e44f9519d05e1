"""
Job registry: the scheduler state for one process.

Each named job is either Idle or Running. A job that is still Running when
its timer fires again, or when it is triggered by hand, is skipped with a
warning rather than queued. Errors raised inside a job are logged here and
never escape, so a failing job cannot take the host down or stop its own
future runs.

Timers are APScheduler interval jobs on a BackgroundScheduler. Stopping the
registry removes the timers but lets a run that is already in progress
finish.
"""
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, TypedDict

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from catalog_analytics.utils.timing import elapsed_ms, format_interval, now_ms

logger = logging.getLogger(__name__)

JobHandler = Callable[[], object]

# Delay before the first run of a run_immediately job, so it does not race host startup
DEFAULT_WARMUP_SECONDS = 5.0


@dataclass(frozen=True)
class JobDefinition:
    name: str
    interval: timedelta
    handler: JobHandler
    run_immediately: bool = False
    description: str = ""


class JobStatus(TypedDict):
    running: bool
    last_run: Optional[datetime]
    last_duration_ms: Optional[float]
    last_succeeded: Optional[bool]


def _build_scheduler() -> BackgroundScheduler:
    return BackgroundScheduler(
        timezone="UTC",
        job_defaults={
            "coalesce": True,  # Combine missed firings into one
            "max_instances": 1,
        },
    )


class JobRegistry:
    def __init__(
        self,
        scheduler: Optional[BackgroundScheduler] = None,
        warmup_seconds: float = DEFAULT_WARMUP_SECONDS,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self._scheduler = scheduler or _build_scheduler()
        self.warmup_seconds = warmup_seconds
        self._clock = clock
        self._definitions: Dict[str, JobDefinition] = {}
        self._running: set = set()
        self._last_run: Dict[str, datetime] = {}
        self._last_duration_ms: Dict[str, float] = {}
        self._last_succeeded: Dict[str, bool] = {}
        # Guards only the check-and-mark on _running, never held while a job runs
        self._lock = threading.Lock()
        self.scheduled = False

    # ----------------------------
    # Registration
    # ----------------------------
    def register(self, definition: JobDefinition) -> None:
        self._definitions[definition.name] = definition

    def register_all(self, definitions: Iterable[JobDefinition]) -> None:
        for definition in definitions:
            self.register(definition)

    def is_registered(self, name: str) -> bool:
        return name in self._definitions

    @property
    def job_names(self) -> List[str]:
        return list(self._definitions)

    def is_running(self, name: str) -> bool:
        with self._lock:
            return name in self._running

    # ----------------------------
    # Execution
    # ----------------------------
    def run_job(self, name: str, handler: JobHandler) -> bool:
        """
        Run `handler` as job `name` unless that job is already running.

        Returns True if the run happened (whatever its outcome), False if it
        was skipped because a previous run is still in progress.
        """
        with self._lock:
            if name in self._running:
                logger.warning(f"Job {name} is already running, skipping")
                return False
            self._running.add(name)

        start = now_ms()
        started_at = self._clock()
        succeeded = False
        try:
            logger.info(f"Starting job: {name}")
            handler()
            succeeded = True
            logger.info(f"Completed job: {name} ({elapsed_ms(start):.0f}ms)")
        except Exception:
            logger.exception(f"Job {name} failed after {elapsed_ms(start):.0f}ms")
        finally:
            with self._lock:
                self._last_run[name] = started_at
                self._last_duration_ms[name] = elapsed_ms(start)
                self._last_succeeded[name] = succeeded
                self._running.discard(name)
        return True

    def trigger_job(self, name: str) -> bool:
        """
        Run a registered job now, in the calling thread.

        Returns whether `name` is a known job. Whether it actually ran, or
        succeeded, is only visible in the logs and in get_job_status().
        """
        definition = self._definitions.get(name)
        if definition is None:
            logger.error(f"Unknown job: {name}")
            return False

        self.run_job(definition.name, definition.handler)
        return True

    # ----------------------------
    # Scheduling
    # ----------------------------
    def schedule_job(self, definition: JobDefinition) -> None:
        """Register `definition` and fire it every `interval` from now on."""
        self.register(definition)

        add_job_kwargs = {}
        if definition.run_immediately:
            add_job_kwargs["next_run_time"] = datetime.now(self._scheduler.timezone) + timedelta(
                seconds=self.warmup_seconds
            )

        self._scheduler.add_job(
            self.run_job,
            trigger=IntervalTrigger(seconds=definition.interval.total_seconds(), timezone="UTC"),
            args=[definition.name, definition.handler],
            id=definition.name,
            name=definition.description or definition.name,
            replace_existing=True,
            **add_job_kwargs,
        )
        logger.info(f"Scheduled job: {definition.name} (every {format_interval(definition.interval)})")

    def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()
        self.scheduled = True

    def stop_jobs(self) -> None:
        """
        Cancel every timer. Runs already in progress are not interrupted.

        A shut down scheduler's executor refuses new work, so a fresh scheduler
        takes its place and the registry can be scheduled and started again.
        """
        logger.info("Stopping background jobs...")
        self._scheduler.remove_all_jobs()
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            self._scheduler = _build_scheduler()
        self.scheduled = False
        logger.info("Background jobs stopped")

    def scheduled_job_ids(self) -> List[str]:
        return [job.id for job in self._scheduler.get_jobs()]

    def next_run_time(self, name: str) -> Optional[datetime]:
        job = self._scheduler.get_job(name)
        # Pending jobs (scheduler not started yet) have no next_run_time attribute
        return getattr(job, "next_run_time", None) if job else None

    # ----------------------------
    # Status
    # ----------------------------
    def get_job_status(self) -> Dict[str, JobStatus]:
        with self._lock:
            return {
                name: JobStatus(
                    running=name in self._running,
                    last_run=self._last_run.get(name),
                    last_duration_ms=self._last_duration_ms.get(name),
                    last_succeeded=self._last_succeeded.get(name),
                )
                for name in self._definitions
            }
