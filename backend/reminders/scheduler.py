"""Scheduled reminder sweeps.

The ReminderScheduler owns a registry of named recurring jobs. Each job is an
asyncio task that sleeps until the next cron fire time (UTC) and then starts a
sweep: StalenessScanner -> ReminderAggregator -> RoomRouter.

Failure model:
    - An invalid cron expression is logged and the job is not registered;
      the service keeps running without reminders.
    - Any error inside a sweep is logged and reported in the SweepResult;
      the job stays registered and the next firing proceeds normally.

Sweeps run as independent tasks, so a manual trigger may overlap a scheduled
firing (duplicate reminders are possible, errors are not) and ``stop_all``
only prevents future firings; it does not cancel a sweep in flight.

Usage:
    >>> scheduler = ReminderScheduler(
    ...     scanner, aggregator, router,
    ...     enabled=True, schedule="0 8 * * *", threshold_hours=24,
    ... )
    >>> scheduler.initialize()          # inside a running event loop
    >>> result = await scheduler.trigger_now()
    >>> scheduler.status()
    >>> scheduler.stop_all()
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import StrEnum

import structlog
from croniter import croniter

from errors import ScheduleConfigError, SweepError
from events.rooms import RoomRouter
from events.types import AdminTaskRemindersEvent, UserTaskRemindersEvent
from models.schemas import JobStatus
from reminders.aggregator import ReminderAggregator, ReminderBatch
from reminders.scanner import StalenessScanner

logger = structlog.get_logger(__name__)

TASK_REMINDER_JOB = "task_reminder"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def validate_schedule(schedule: str) -> None:
    """Raise ScheduleConfigError unless ``schedule`` is a valid cron expression."""
    if not schedule or not croniter.is_valid(schedule):
        raise ScheduleConfigError(f"Invalid cron schedule: {schedule!r}")


def next_fire_time(schedule: str, after: datetime) -> datetime:
    """Return the first fire time of ``schedule`` strictly after ``after``."""
    return croniter(schedule, after).get_next(datetime)


class SweepStatus(StrEnum):
    """Outcome of one sweep."""

    COMPLETED = "completed"
    NO_STALE_TASKS = "no_stale_tasks"
    FAILED = "failed"


@dataclass
class SweepResult:
    """Summary of one sweep invocation.

    Attributes:
        status: Outcome of the sweep.
        started_at: When the sweep began.
        finished_at: When the sweep ended.
        stale_count: Number of stale tasks found.
        user_count: Number of distinct owners reminded.
        error: Failure description when status is FAILED.
    """

    status: SweepStatus
    started_at: datetime
    finished_at: datetime
    stale_count: int = 0
    user_count: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status != SweepStatus.FAILED


@dataclass
class ReminderJob:
    """One registered recurring sweep."""

    name: str
    display_name: str
    schedule: str
    last_status: SweepStatus | None = None
    last_run_at: datetime | None = None
    timer: "asyncio.Task[None] | None" = field(default=None, repr=False)

    @property
    def running(self) -> bool:
        return self.timer is not None and not self.timer.done()


class ReminderScheduler:
    """Runs the stale-task reminder pipeline on a cron schedule.

    Attributes:
        scanner: Finds stale tasks.
        aggregator: Groups and enriches stale tasks into payloads.
        router: Delivers the payloads.
        enabled: Whether recurring jobs are registered at all.
        schedule: Cron expression for the reminder job.
        threshold_hours: Staleness threshold.
    """

    def __init__(
        self,
        scanner: StalenessScanner,
        aggregator: ReminderAggregator,
        router: RoomRouter,
        *,
        enabled: bool,
        schedule: str,
        threshold_hours: int,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.scanner = scanner
        self.aggregator = aggregator
        self.router = router
        self.enabled = enabled
        self.schedule = schedule
        self.threshold_hours = threshold_hours
        self._clock = clock
        self._jobs: dict[str, ReminderJob] = {}
        self._inflight: set[asyncio.Task[SweepResult]] = set()

    # -----------------------------------------------------------------
    # Job registry
    # -----------------------------------------------------------------

    def initialize(self) -> None:
        """Register the reminder job if enabled and the schedule is valid.

        Must be called from within a running event loop.
        """
        if not self.enabled:
            logger.warning("reminders_disabled")
            return

        try:
            validate_schedule(self.schedule)
        except ScheduleConfigError as e:
            logger.error("reminder_schedule_invalid", schedule=self.schedule, error=str(e))
            return

        if TASK_REMINDER_JOB in self._jobs:
            logger.debug("reminder_job_already_registered", job=TASK_REMINDER_JOB)
            return

        job = ReminderJob(
            name=TASK_REMINDER_JOB,
            display_name="Task Reminder",
            schedule=self.schedule,
        )
        job.timer = asyncio.create_task(self._timer_loop(job), name=f"cron_{job.name}")
        self._jobs[job.name] = job
        logger.info(
            "reminder_job_scheduled",
            job=job.name,
            schedule=job.schedule,
            threshold_hours=self.threshold_hours,
        )

    async def _timer_loop(self, job: ReminderJob) -> None:
        last_fire_at: datetime | None = None
        while True:
            try:
                now = self._clock()
                # The wall clock may lag the sleep deadline; never reuse a fire time
                after = now if last_fire_at is None else max(now, last_fire_at)
                fire_at = next_fire_time(job.schedule, after)
                await asyncio.sleep(max((fire_at - now).total_seconds(), 0.0))
                last_fire_at = fire_at
                logger.info("reminder_job_fired", job=job.name, fire_at=fire_at.isoformat())
                self._start_sweep(trigger="scheduled")
            except asyncio.CancelledError:
                logger.info("reminder_job_timer_stopped", job=job.name)
                return
            except Exception as e:
                logger.error("reminder_job_timer_error", job=job.name, error=str(e))
                # Avoid a hot loop if the schedule computation keeps failing
                await asyncio.sleep(1.0)

    def _start_sweep(self, trigger: str) -> None:
        sweep = asyncio.create_task(self.run_sweep(trigger=trigger))
        self._inflight.add(sweep)
        sweep.add_done_callback(self._inflight.discard)

    def status(self) -> list[JobStatus]:
        """Name, schedule and running flag of every registered job."""
        return [
            JobStatus(
                name=job.display_name,
                schedule=job.schedule,
                running=job.running,
                last_status=str(job.last_status) if job.last_status else None,
                last_run_at=job.last_run_at,
            )
            for job in self._jobs.values()
        ]

    def stop_all(self) -> None:
        """Cancel every registered job. Safe to call more than once."""
        for name, job in list(self._jobs.items()):
            if job.timer is not None and not job.timer.done():
                job.timer.cancel()
            logger.info("reminder_job_stopped", job=name)
        self._jobs.clear()

    # -----------------------------------------------------------------
    # Sweep pipeline
    # -----------------------------------------------------------------

    async def trigger_now(self) -> SweepResult:
        """Run a sweep immediately, outside the schedule."""
        logger.info("reminder_sweep_manual_trigger")
        return await self.run_sweep(trigger="manual")

    async def run_sweep(self, trigger: str = "scheduled") -> SweepResult:
        """Scan, aggregate and notify. Never raises."""
        started_at = self._clock()
        logger.info(
            "reminder_sweep_started",
            trigger=trigger,
            threshold_hours=self.threshold_hours,
        )

        try:
            stale = await self.scanner.find_stale(timedelta(hours=self.threshold_hours))
            if not stale:
                logger.info("reminder_sweep_no_stale_tasks", trigger=trigger)
                result = SweepResult(
                    status=SweepStatus.NO_STALE_TASKS,
                    started_at=started_at,
                    finished_at=self._clock(),
                )
            else:
                batch = await self.aggregator.aggregate(
                    stale, self.threshold_hours, self._clock()
                )
                self._log_reminders(batch)
                self._deliver(batch)
                result = SweepResult(
                    status=SweepStatus.COMPLETED,
                    started_at=started_at,
                    finished_at=self._clock(),
                    stale_count=batch.total_tasks,
                    user_count=batch.total_users,
                )
                logger.info(
                    "reminder_sweep_completed",
                    trigger=trigger,
                    stale_count=result.stale_count,
                    user_count=result.user_count,
                )
        except Exception as e:
            error = SweepError(f"{type(e).__name__}: {e}")
            logger.error("reminder_sweep_failed", trigger=trigger, error=str(error))
            result = SweepResult(
                status=SweepStatus.FAILED,
                started_at=started_at,
                finished_at=self._clock(),
                error=str(error),
            )

        job = self._jobs.get(TASK_REMINDER_JOB)
        if job is not None:
            job.last_status = result.status
            job.last_run_at = started_at
        return result

    def _log_reminders(self, batch: ReminderBatch) -> None:
        logger.info(
            "task_reminders_summary",
            total_tasks=batch.total_tasks,
            total_users=batch.total_users,
            threshold_hours=self.threshold_hours,
        )
        for item in batch.admin_summary.all_tasks:
            logger.info(
                "task_reminder",
                task_id=item.task_id,
                user=item.user_email,
                title=item.title,
                created_at=item.created_at.isoformat(),
                age=item.age,
                status="incomplete",
            )

    def _deliver(self, batch: ReminderBatch) -> None:
        for reminder in batch.user_reminders:
            self.router.emit_to_user(
                reminder.user_id, UserTaskRemindersEvent(data=reminder.payload)
            )
            logger.info(
                "user_reminder_sent",
                user_id=reminder.user_id,
                email=reminder.email,
                task_count=reminder.payload.count,
            )
        self.router.emit_to_admins(AdminTaskRemindersEvent(data=batch.admin_summary))
