import json
from dataclasses import replace
from datetime import date, datetime, timedelta

import pytest
import pytz
import responses

import main
from location import IPINFO_URL
from main import PrayerApp

NY_TZ = pytz.timezone("America/New_York")


@pytest.fixture
def config_path(tmp_path):
    def write(**overrides):
        config = {
            "auto_location": False,
            "location": {
                "city": "New York",
                "country": "US",
                "latitude": 40.7128,
                "longitude": -74.006,
                "timezone": "America/New_York",
            },
            "calculation": {"method": "NorthAmerica"},
            "notifications": {"enabled": False},
            "cache": {"path": str(tmp_path / "cache.json")},
        }
        config.update(overrides)
        path = tmp_path / "config.json"
        path.write_text(json.dumps(config), encoding="utf-8")
        return path

    return write


def test_missing_config_falls_back_to_default_location(tmp_path):
    app = PrayerApp(tmp_path / "absent.json")
    assert app.method == "MuslimWorldLeague"
    assert app.advance_minutes == 5
    assert app.resolve_location().city == "New York"


def test_auto_location_failure_uses_configured_location(config_path):
    app = PrayerApp(config_path(auto_location=True, location={
        "city": "Casablanca", "country": "MA", "latitude": 33.5731, "longitude": -7.5898, "timezone": "Africa/Casablanca",
    }))
    with responses.RequestsMock() as mock:
        mock.add(responses.GET, IPINFO_URL, status=500)
        resolved = app.resolve_location()
    assert resolved.city == "Casablanca"


def test_prayer_times_are_served_from_cache(config_path, monkeypatch):
    app = PrayerApp(config_path())
    location = app.resolve_location()
    now = NY_TZ.localize(datetime(2024, 6, 21, 9, 0))
    calls = []
    original = main.compute_prayer_times

    def counting(*args, **kwargs):
        calls.append(args)
        return original(*args, **kwargs)

    monkeypatch.setattr(main, "compute_prayer_times", counting)
    first = app.prayer_times_for(location, date(2024, 6, 21), now)
    second = app.prayer_times_for(location, date(2024, 6, 21), now)
    assert len(calls) == 1
    assert first == second
    assert first.method == "NorthAmerica"


def test_cached_result_navigation_follows_now(config_path):
    app = PrayerApp(config_path())
    location = app.resolve_location()
    morning = NY_TZ.localize(datetime(2024, 6, 21, 9, 0))
    evening = NY_TZ.localize(datetime(2024, 6, 21, 19, 0))
    assert app.prayer_times_for(location, date(2024, 6, 21), morning).next_prayer.name == "Dhuhr"
    assert app.prayer_times_for(location, date(2024, 6, 21), evening).next_prayer.name == "Maghrib"


def test_unknown_method_falls_back_to_default(config_path):
    app = PrayerApp(config_path(calculation={"method": "Atlantis"}))
    result = app.prayer_times_for(app.resolve_location(), date(2024, 6, 21))
    assert result.method == "MuslimWorldLeague"


def test_overrides_from_config_are_applied(config_path):
    standard = PrayerApp(config_path())
    hanafi = PrayerApp(config_path(calculation={"method": "NorthAmerica", "overrides": {"asr_factor": 2}}))
    assert standard.cache.path == hanafi.cache.path
    day = date(2024, 6, 21)
    assert (
        hanafi.prayer_times_for(hanafi.resolve_location(), day).prayer("Asr").time
        > standard.prayer_times_for(standard.resolve_location(), day).prayer("Asr").time
    )


def test_changed_overrides_bypass_the_cached_schedule(config_path):
    app = PrayerApp(config_path())
    location = app.resolve_location()
    day = date(2024, 6, 21)
    standard_asr = app.prayer_times_for(location, day).prayer("Asr").time
    app.overrides = {"asr_factor": 2}
    hanafi_asr = app.prayer_times_for(location, day).prayer("Asr").time
    assert hanafi_asr > standard_asr
    app.overrides = {}
    assert app.prayer_times_for(location, day).prayer("Asr").time == standard_asr


def test_changed_timezone_bypasses_the_cached_schedule(config_path):
    app = PrayerApp(config_path())
    location = app.resolve_location()
    day = date(2024, 6, 21)
    app.prayer_times_for(location, day)
    chicago = app.prayer_times_for(replace(location, timezone="America/Chicago"), day)
    assert all(getattr(info.time.tzinfo, "zone", None) == "America/Chicago" for info in chicago.prayers)


def test_apia_today_rolls_over_to_the_next_local_morning(config_path):
    app = PrayerApp(config_path(location={
        "city": "Apia", "country": "WS", "latitude": -13.8333, "longitude": -171.7667, "timezone": "Pacific/Apia",
    }))
    apia = pytz.timezone("Pacific/Apia")
    result = app.today(now=apia.localize(datetime(2024, 6, 21, 23, 30)))
    assert result.date == date(2024, 6, 21)
    assert all(info.time.date() == date(2024, 6, 21) for info in result.prayers)
    assert result.next_prayer.name == "Fajr"
    assert result.next_prayer.time.date() == date(2024, 6, 22)
    assert result.time_until_next.startswith("6h")


def test_today_rolls_over_to_tomorrows_fajr(config_path):
    app = PrayerApp(config_path())
    now = NY_TZ.localize(datetime(2024, 6, 21, 23, 50))
    result = app.today(now=now)
    assert result.date == date(2024, 6, 21)
    assert result.current_prayer == "Isha"
    assert result.next_prayer.name == "Fajr"
    assert result.next_prayer.time.date() == date(2024, 6, 22)
    assert result.time_until_next.startswith("3h") or result.time_until_next.startswith("4h")


def test_today_uses_local_calendar_day(config_path):
    app = PrayerApp(config_path())
    # 02:30 UTC on the 22nd is still the evening of the 21st in New York.
    now = pytz.utc.localize(datetime(2024, 6, 22, 2, 30))
    assert app.today(now=now).date == date(2024, 6, 21)


def test_notifications_disabled_schedules_nothing(config_path):
    app = PrayerApp(config_path())
    result = app.today(now=NY_TZ.localize(datetime(2024, 6, 21, 9, 0)))
    assert app.schedule_notifications(result) == 0
    assert app.scheduler is None


def test_notifications_schedule_upcoming_prayers(config_path):
    app = PrayerApp(config_path(notifications={"enabled": True, "advance_minutes": 10}))
    now = NY_TZ.localize(datetime(2024, 6, 21, 14, 0))
    result = app.today(now=now)
    try:
        assert app.schedule_notifications(result, now=now) == 3
        run_dates = app.scheduler.pending_run_dates()
        assert run_dates[0] == result.prayer("Asr").time - timedelta(minutes=10)
    finally:
        app.shutdown()


def test_cli_prints_schedule(config_path, capsys):
    exit_code = main.main([
        "--config", str(config_path()),
        "--lat", "21.4225",
        "--lng", "39.8262",
        "--timezone", "Asia/Riyadh",
        "--date", "2024-06-21",
        "--method", "UmmAlQura",
        "--qibla",
    ])
    output = capsys.readouterr().out
    assert exit_code == 0
    for name in ("Fajr", "Dhuhr", "Asr", "Maghrib", "Isha"):
        assert name in output
    assert "Friday, June 21, 2024" in output
    assert "Qibla bearing" in output


def test_cli_rejects_invalid_coordinates(config_path, capsys):
    exit_code = main.main(["--config", str(config_path()), "--lat", "95", "--lng", "0"])
    assert exit_code == 2
    assert "Latitude" in capsys.readouterr().err


def test_cli_reports_non_numeric_override(config_path, capsys):
    path = config_path(calculation={"method": "NorthAmerica", "overrides": {"fajr_angle": "dawn"}})
    exit_code = main.main(["--config", str(path), "--date", "2024-06-21"])
    assert exit_code == 2
    assert "fajr_angle" in capsys.readouterr().err
