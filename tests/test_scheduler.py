from datetime import datetime, timedelta

import pytz

from prayer_times import PrayerInfo
from scheduler import PrayerScheduler

NOW = pytz.utc.localize(datetime(2024, 6, 21, 12, 0))


def build_prayers():
    offsets = [-6, -1, 2, 5, 8]
    names = ["Fajr", "Dhuhr", "Asr", "Maghrib", "Isha"]
    return [PrayerInfo(name=name, time=NOW + timedelta(hours=offset)) for name, offset in zip(names, offsets)]


def noop(*_args):
    return None


def test_only_future_reminders_are_scheduled():
    scheduler = PrayerScheduler("UTC")
    count = scheduler.schedule_prayers(build_prayers(), noop, reminder_minutes=5, now=NOW)
    assert count == 3
    expected = [NOW + timedelta(hours=hours, minutes=-5) for hours in (2, 5, 8)]
    assert scheduler.pending_run_dates() == expected


def test_reminder_already_due_is_skipped():
    scheduler = PrayerScheduler("UTC")
    prayers = [PrayerInfo(name="Asr", time=NOW + timedelta(minutes=3))]
    assert scheduler.schedule_prayers(prayers, noop, reminder_minutes=5, now=NOW) == 0


def test_rescheduling_replaces_previous_jobs():
    scheduler = PrayerScheduler("UTC")
    scheduler.schedule_prayers(build_prayers(), noop, now=NOW)
    first_ids = scheduler.job_ids
    scheduler.schedule_prayers(build_prayers(), noop, now=NOW)
    assert len(scheduler.job_ids) == 3
    assert not set(first_ids) & set(scheduler.job_ids)


def test_single_refresh_job():
    scheduler = PrayerScheduler("UTC")
    scheduler.schedule_refresh(NOW + timedelta(hours=12), noop)
    scheduler.schedule_refresh(NOW + timedelta(hours=13), noop)
    assert len(scheduler._scheduler.get_jobs()) == 1


def test_timezone_name():
    assert PrayerScheduler("Europe/London").timezone == "Europe/London"
