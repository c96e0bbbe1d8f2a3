"""
Cron Scheduler Service using APScheduler.
Keeps exactly one cron job per recurring task and computes next fire times.
"""
import re
import threading
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.jobstores.base import JobLookupError

from constants import CRON_JOB_PREFIX, MAX_INTERVAL_SECONDS, MIN_INTERVAL_SECONDS
from core.errors import InvalidCronExpression
from core.logging import get_logger

logger = get_logger(__name__)

FireCallback = Callable[[str], Awaitable[object]]

# Standard cron weekday numbers (0 and 7 are Sunday) -> APScheduler names
_WEEKDAY_NAMES = {0: 'sun', 1: 'mon', 2: 'tue', 3: 'wed', 4: 'thu', 5: 'fri', 6: 'sat', 7: 'sun'}
_WEEKDAY_RANGE = re.compile(r"^(\d+)-(\d+)$")


def _weekday_name(token: str) -> str:
    value = int(token)
    if value not in _WEEKDAY_NAMES:
        raise ValueError(f"day of week out of range: {token}")
    return _WEEKDAY_NAMES[value]


def _expand_stepped(base: str, step: str) -> List[str]:
    """Expand ``base/step`` into the weekday names it selects.

    ``*`` and a bare start number run up to 7, as in cron; ``a-b`` runs
    up to ``b``. Sunday appears once even when both 0 and 7 are hit.
    """
    if base == '*':
        first, last = 0, 7
    elif base.isdigit():
        first, last = int(base), 7
    else:
        match = _WEEKDAY_RANGE.match(base)
        if not match:
            return [f"{base}/{step}"]
        first, last = int(match.group(1)), int(match.group(2))

    interval = int(step)
    if interval < 1:
        raise ValueError(f"step must be positive: {step}")
    if first > last:
        raise ValueError(f"day of week range is reversed: {base}")

    names: List[str] = []
    for value in range(first, last + 1, interval):
        name = _weekday_name(str(value))
        if name not in names:
            names.append(name)
    return names


def _translate_day_of_week(field: str) -> str:
    """Rewrite numeric weekdays using cron numbering (Sunday=0) as names.

    APScheduler numbers weekdays from Monday=0, so numbers are converted to
    names before the trigger is built. Stepped fields are expanded into
    explicit day lists.
    """
    parts = []
    for part in field.split(','):
        if '/' in part:
            base, step = part.split('/', 1)
            parts.extend(_expand_stepped(base, step))
            continue
        if part.isdigit():
            parts.append(_weekday_name(part))
            continue
        match = _WEEKDAY_RANGE.match(part)
        if match:
            first, last = int(match.group(1)), int(match.group(2))
            if first == 0 and last >= 1:
                # Sunday sorts last in APScheduler, so split it off
                parts.append('sun')
                first = 1
            if first == last:
                parts.append(_weekday_name(str(first)))
            else:
                parts.append(f"{_weekday_name(str(first))}-{_weekday_name(str(last))}")
            continue
        parts.append(part)
    return ','.join(parts)


def parse_cron(cron_expression: Optional[str], tz: str = "UTC") -> CronTrigger:
    """Build a CronTrigger from a standard 5-field cron expression.

    Raises:
        InvalidCronExpression: for a missing expression, a wrong field
            count or an out-of-range field value
    """
    if not cron_expression or not cron_expression.strip():
        raise InvalidCronExpression(cron_expression, "expression is empty")

    fields = cron_expression.split()
    if len(fields) != 5:
        raise InvalidCronExpression(cron_expression, f"expected 5 fields, got {len(fields)}")

    minute, hour, day, month, day_of_week = fields
    try:
        return CronTrigger(
            second='0',
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=_translate_day_of_week(day_of_week),
            timezone=tz,
        )
    except ValueError as e:
        raise InvalidCronExpression(cron_expression, str(e))


def next_fire_time(cron_expression: str, now: Optional[datetime] = None, tz: str = "UTC") -> datetime:
    """First fire time strictly after ``now`` (default: current UTC time)."""
    trigger = parse_cron(cron_expression, tz)
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    fire_time = trigger.get_next_fire_time(None, now)
    if fire_time is not None and fire_time <= now:
        fire_time = trigger.get_next_fire_time(fire_time, fire_time + timedelta(seconds=1))
    if fire_time is None:
        raise InvalidCronExpression(cron_expression, "expression never fires")
    return fire_time.astimezone(timezone.utc)


def interval_to_cron(interval_seconds: int) -> str:
    """Convert a repeat interval to a 5-field cron expression.

    Args:
        interval_seconds: Whole minutes between 60 and 86400 seconds

    Returns:
        ``*/N * * * *`` for minute intervals, ``0 */H * * *`` for hour
        intervals, ``0 0 * * *`` for a day

    Raises:
        InvalidCronExpression: if the interval cannot be expressed
    """
    if interval_seconds < MIN_INTERVAL_SECONDS or interval_seconds > MAX_INTERVAL_SECONDS:
        raise InvalidCronExpression(
            None, f"interval must be between {MIN_INTERVAL_SECONDS} and {MAX_INTERVAL_SECONDS} seconds"
        )
    if interval_seconds % 60:
        raise InvalidCronExpression(None, "interval must be a whole number of minutes")

    minutes = interval_seconds // 60
    if minutes == 1440:
        return "0 0 * * *"
    if minutes % 60 == 0:
        return f"0 */{minutes // 60} * * *"
    if minutes < 60:
        return f"*/{minutes} * * * *"
    raise InvalidCronExpression(None, f"interval of {minutes} minutes is not cron-expressible")


class CronScheduler:
    """Owns the task -> cron job registry on top of an AsyncIOScheduler."""

    def __init__(self, timezone: str = "UTC", misfire_grace_time: int = 60,
                 scheduler: Optional[AsyncIOScheduler] = None):
        self.timezone = timezone
        self.misfire_grace_time = misfire_grace_time
        self._scheduler = scheduler or AsyncIOScheduler(timezone=timezone)
        self._jobs: Dict[str, str] = {}
        self._lock = threading.RLock()
        self._on_fire: Optional[FireCallback] = None

    def set_fire_callback(self, callback: FireCallback) -> None:
        """Set the coroutine run with the task id when a job fires."""
        self._on_fire = callback

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def start(self) -> None:
        """Start the scheduler if not already running."""
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("[Scheduler] Started", timezone=self.timezone)

    def shutdown(self) -> None:
        """Shutdown the scheduler gracefully."""
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("[Scheduler] Shutdown")

    def next_fire_time(self, cron_expression: str, now: Optional[datetime] = None) -> datetime:
        return next_fire_time(cron_expression, now, self.timezone)

    def schedule(self, task_id: str, cron_expression: str) -> str:
        """Arm a cron job for a task, replacing any existing one.

        Returns:
            The job id

        Raises:
            InvalidCronExpression: if the expression does not parse
        """
        trigger = parse_cron(cron_expression, self.timezone)
        job_id = f"{CRON_JOB_PREFIX}{task_id}"

        with self._lock:
            self.unschedule(task_id)
            self._scheduler.add_job(
                self._fire,
                trigger=trigger,
                id=job_id,
                args=[task_id],
                replace_existing=True,
                max_instances=1,
                coalesce=True,
                misfire_grace_time=self.misfire_grace_time,
            )
            self._jobs[task_id] = job_id

        logger.info("[Scheduler] Registered cron job", task_id=task_id, job_id=job_id,
                    cron_expression=cron_expression)
        return job_id

    def unschedule(self, task_id: str) -> bool:
        """Remove a task's cron job.

        Returns:
            True if a job was removed, False if none was registered
        """
        with self._lock:
            job_id = self._jobs.pop(task_id, None)
            if job_id is None:
                return False
            try:
                self._scheduler.remove_job(job_id)
            except JobLookupError:
                logger.warning("[Scheduler] Job not found", task_id=task_id, job_id=job_id)
                return False

        logger.info("[Scheduler] Removed cron job", task_id=task_id, job_id=job_id)
        return True

    def is_scheduled(self, task_id: str) -> bool:
        with self._lock:
            return task_id in self._jobs

    def scheduled_task_ids(self) -> List[str]:
        with self._lock:
            return list(self._jobs)

    def get_job_info(self, task_id: str) -> Optional[Dict]:
        """
        Get information about a task's scheduled job.

        Returns:
            Dict with job info or None if the task has no job
        """
        with self._lock:
            job_id = self._jobs.get(task_id)
        if job_id is None:
            return None
        job = self._scheduler.get_job(job_id)
        if job is None:
            return None
        next_run = getattr(job, "next_run_time", None)
        if next_run is None:
            next_run = job.trigger.get_next_fire_time(None, datetime.now(timezone.utc))
        return {
            "id": job.id,
            "task_id": task_id,
            "next_run_time": next_run.isoformat() if next_run else None,
            "trigger": str(job.trigger),
        }

    async def _fire(self, task_id: str) -> None:
        logger.info("[Scheduler] Cron fired", task_id=task_id)
        if self._on_fire is None:
            logger.warning("[Scheduler] No fire callback registered", task_id=task_id)
            return
        try:
            await self._on_fire(task_id)
        except Exception as e:
            logger.error("[Scheduler] Scheduled run failed", task_id=task_id, error=str(e))
