"""Scheduling utilities for prayer reminders and daily refreshes."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger

from prayer_times import PrayerInfo

LOGGER = logging.getLogger(__name__)


class PrayerScheduler:
    """Wrap APScheduler to manage one-off prayer reminder jobs."""

    def __init__(self, timezone: str) -> None:
        self._scheduler = BackgroundScheduler(timezone=timezone)
        self._jobs: List[str] = []
        self._refresh_job_id: Optional[str] = None

    def start(self) -> None:
        if not self._scheduler.running:
            LOGGER.info("Starting background scheduler")
            self._scheduler.start()

    def shutdown(self) -> None:
        if self._scheduler.running:
            LOGGER.info("Stopping background scheduler")
            self._scheduler.shutdown(wait=False)

    @property
    def timezone(self) -> str:
        tzinfo = self._scheduler.timezone
        zone = getattr(tzinfo, "zone", None) or getattr(tzinfo, "key", None)
        return str(zone or tzinfo)

    @property
    def job_ids(self) -> List[str]:
        return list(self._jobs)

    def schedule_prayers(
        self,
        prayers: Iterable[PrayerInfo],
        callback: Callable[[str, datetime], None],
        reminder_minutes: int = 0,
        now: Optional[datetime] = None,
    ) -> int:
        """Schedule *callback* ``reminder_minutes`` before each prayer that is still ahead.

        Returns the number of reminders scheduled.
        """
        self._clear_prayer_jobs()

        now = now or datetime.now(self._scheduler.timezone)
        advance = timedelta(minutes=reminder_minutes)
        for info in prayers:
            run_date = info.time - advance
            if run_date <= now:
                LOGGER.debug("Skipping %s reminder at %s; already passed", info.name, run_date)
                continue
            trigger = DateTrigger(run_date=run_date)
            job = self._scheduler.add_job(callback, trigger=trigger, args=[info.name, info.time])
            LOGGER.debug("Scheduled %s reminder job %s at %s", info.name, job.id, run_date)
            self._jobs.append(job.id)
        LOGGER.info("Scheduled %d prayer reminders (%d minutes ahead)", len(self._jobs), reminder_minutes)
        return len(self._jobs)

    def schedule_refresh(self, next_run: datetime, refresh_callback: Callable[[], None]) -> None:
        """Schedule a single refresh job, replacing any existing one."""
        if self._refresh_job_id:
            LOGGER.debug("Removing existing refresh job %s", self._refresh_job_id)
            with suppress_not_found():
                self._scheduler.remove_job(self._refresh_job_id)
            self._refresh_job_id = None

        trigger = DateTrigger(run_date=next_run)
        job = self._scheduler.add_job(refresh_callback, trigger=trigger)
        LOGGER.debug("Scheduled refresh job %s at %s", job.id, next_run)
        self._refresh_job_id = job.id

    def pending_run_dates(self) -> List[datetime]:
        return sorted(job.trigger.run_date for job in self._scheduler.get_jobs() if job.id in self._jobs)

    def _clear_prayer_jobs(self) -> None:
        for job_id in self._jobs:
            with suppress_not_found():
                self._scheduler.remove_job(job_id)
        self._jobs.clear()


class suppress_not_found:
    """Context manager that suppresses APScheduler job lookup errors."""

    def __enter__(self) -> None:  # pragma: no cover - trivial
        return None

    def __exit__(self, exc_type, exc, tb) -> bool:  # pragma: no cover - trivial
        if exc_type is None:
            return False
        return isinstance(exc, JobLookupError)
