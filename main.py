"""Entry point for the prayer times companion: config, location, cache and reminders."""
from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from datetime import date, datetime, time as time_module, timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytz
import requests

from cache import PrayerTimesCache, cache_key
from calculation_methods import DEFAULT_METHOD, UnknownMethodError
from location import (
    DEFAULT_LOCATION,
    LocationInfo,
    build_location_from_config,
    detect_location_from_ip,
)
from prayer_times import PrayerTimesResult, compute_prayer_times, compute_qibla_bearing, resolve_timezone
from scheduler import PrayerScheduler

APP_ROOT = Path(__file__).parent
CONFIG_PATH = APP_ROOT / "config.json"
DEFAULT_CACHE_PATH = APP_ROOT / "cache" / "prayer_times.json"
DEFAULT_ADVANCE_MINUTES = 5

LOGGER = logging.getLogger(__name__)


class PrayerApp:
    """Coordinates location lookup, prayer time computation, caching and reminders."""

    def __init__(self, config_path: Path = CONFIG_PATH, cache: Optional[PrayerTimesCache] = None) -> None:
        self._config = self._load_json(Path(config_path), default={})
        LOGGER.debug("Loaded config keys: %s", list(self._config.keys()))

        calc_cfg = self._section("calculation")
        self.method = str(calc_cfg.get("method", DEFAULT_METHOD))
        overrides = calc_cfg.get("overrides", {})
        self.overrides: Dict[str, Any] = dict(overrides) if isinstance(overrides, dict) else {}

        notify_cfg = self._section("notifications")
        self.notifications_enabled = bool(notify_cfg.get("enabled", True))
        self.advance_minutes = int(notify_cfg.get("advance_minutes", DEFAULT_ADVANCE_MINUTES))

        if cache is None:
            cache_cfg = self._section("cache")
            cache_path = Path(cache_cfg.get("path", DEFAULT_CACHE_PATH))
            ttl = timedelta(hours=float(cache_cfg.get("ttl_hours", 24)))
            cache = PrayerTimesCache(cache_path, ttl=ttl)
        self.cache = cache
        self.scheduler: Optional[PrayerScheduler] = None
        LOGGER.debug(
            "Initial state -> method=%s overrides=%s notifications=%s advance=%s",
            self.method,
            self.overrides,
            self.notifications_enabled,
            self.advance_minutes,
        )

    # ------------------------------------------------------------------
    def resolve_location(self) -> LocationInfo:
        if bool(self._config.get("auto_location", False)):
            LOGGER.debug("Attempting automatic location detection via IP lookup")
            try:
                return detect_location_from_ip()
            except (requests.RequestException, ValueError):
                LOGGER.warning("Automatic location detection failed; falling back to saved location", exc_info=True)

        configured = build_location_from_config(self._config)
        if configured:
            LOGGER.debug("Using configured location: %s", configured)
            return configured
        LOGGER.info("No location configured; using default %s, %s", DEFAULT_LOCATION.city, DEFAULT_LOCATION.country)
        return DEFAULT_LOCATION

    def prayer_times_for(
        self,
        location: LocationInfo,
        target_date: date,
        now: Optional[datetime] = None,
    ) -> PrayerTimesResult:
        """Return the schedule for *target_date*, served from cache when possible.

        A cached schedule is reused only if it was computed with the current
        method, overrides and timezone.
        """
        coordinates = location.coordinates()
        tzinfo = resolve_timezone(location.timezone)
        now = now or datetime.now(tzinfo)
        key = cache_key(coordinates.latitude, coordinates.longitude, target_date)
        settings = self._settings(location)

        cached = self.cache.get(key)
        if cached is not None:
            if isinstance(cached, dict) and cached.get("settings") == settings:
                try:
                    return PrayerTimesResult.from_dict(cached["result"], now)
                except (KeyError, TypeError, ValueError):
                    LOGGER.warning("Ignoring malformed cache entry %s", key, exc_info=True)
            else:
                LOGGER.debug("Cache entry %s was computed with other settings; recomputing", key)

        try:
            result = self._compute(location, target_date, self.method, now)
        except UnknownMethodError as exc:
            LOGGER.warning("%s; falling back to %s", exc, DEFAULT_METHOD)
            result = self._compute(location, target_date, DEFAULT_METHOD, now)
        self.cache.set(key, {"settings": settings, "result": result.to_dict()})
        return result

    def today(self, location: Optional[LocationInfo] = None, now: Optional[datetime] = None) -> PrayerTimesResult:
        """Today's schedule, with tomorrow's Fajr as next prayer once Isha has passed."""
        location = location or self.resolve_location()
        tzinfo = resolve_timezone(location.timezone)
        now = now or datetime.now(tzinfo)
        local_now = now.astimezone(tzinfo)

        result = self.prayer_times_for(location, local_now.date(), now)
        if result.next_prayer is None:
            LOGGER.debug("All prayers passed for %s; looking up tomorrow's Fajr", result.date)
            tomorrow = self.prayer_times_for(location, local_now.date() + timedelta(days=1), now)
            result = result.with_next_from(tomorrow, now)
        LOGGER.info(
            "Prayer times for %s, %s on %s: current=%s next=%s",
            location.city,
            location.country,
            result.date,
            result.current_prayer,
            result.next_prayer.name if result.next_prayer else None,
        )
        return result

    def schedule_notifications(self, result: PrayerTimesResult, now: Optional[datetime] = None) -> int:
        if not self.notifications_enabled:
            LOGGER.info("Notifications disabled; nothing scheduled")
            return 0
        timezone_name = _zone_name(result.prayers[0].time.tzinfo)
        self._ensure_scheduler(timezone_name)
        assert self.scheduler is not None
        count = self.scheduler.schedule_prayers(
            result.prayers,
            self._on_prayer_reminder,
            reminder_minutes=self.advance_minutes,
            now=now,
        )
        self.scheduler.schedule_refresh(self._next_refresh_time(result.prayers[0].time), self._refresh)
        return count

    def shutdown(self) -> None:
        if self.scheduler:
            self.scheduler.shutdown()

    # ------------------------------------------------------------------
    def _compute(self, location: LocationInfo, target_date: date, method: str, now: datetime) -> PrayerTimesResult:
        return compute_prayer_times(
            location.latitude,
            location.longitude,
            target_date,
            method,
            self.overrides,
            timezone=location.timezone,
            now=now,
        )

    def _settings(self, location: LocationInfo) -> Dict[str, Any]:
        # Round-tripped through JSON so it compares equal to what the cache file returns.
        return json.loads(json.dumps({"method": self.method, "overrides": self.overrides, "timezone": location.timezone}))

    def _refresh(self) -> None:
        LOGGER.debug("Daily refresh triggered")
        self.cache.cleanup()
        result = self.today()
        self.schedule_notifications(result)

    def _on_prayer_reminder(self, prayer_name: str, prayer_time: datetime) -> None:
        LOGGER.info("%s prayer at %s (in %d minutes)", prayer_name, prayer_time.strftime("%H:%M"), self.advance_minutes)

    def _ensure_scheduler(self, timezone: str) -> None:
        if self.scheduler and self.scheduler.timezone == timezone:
            LOGGER.debug("Scheduler already configured for timezone %s", timezone)
            return
        if self.scheduler:
            LOGGER.debug("Shutting down existing scheduler for timezone %s", self.scheduler.timezone)
            self.scheduler.shutdown()
        self.scheduler = PrayerScheduler(timezone)
        self.scheduler.start()
        LOGGER.debug("Started scheduler for timezone %s", timezone)

    @staticmethod
    def _next_refresh_time(reference: datetime) -> datetime:
        tzinfo = reference.tzinfo or pytz.UTC
        next_day = reference.date() + timedelta(days=1)
        refresh_naive = datetime.combine(next_day, time_module(hour=0, minute=5))
        if hasattr(tzinfo, "localize"):
            return tzinfo.localize(refresh_naive)
        return refresh_naive.replace(tzinfo=tzinfo)

    def _section(self, name: str) -> Dict[str, Any]:
        section = self._config.get(name, {}) if isinstance(self._config, dict) else {}
        return section if isinstance(section, dict) else {}

    @staticmethod
    def _load_json(path: Path, default: Dict[str, Any]) -> Dict[str, Any]:
        if not path.exists():
            return default
        with path.open("r", encoding="utf-8") as handle:
            return json.load(handle)


def _zone_name(tzinfo: Any) -> str:
    return str(getattr(tzinfo, "zone", None) or tzinfo)


def render_schedule(result: PrayerTimesResult) -> List[str]:
    lines = [result.gregorian_date, result.hijri_date, ""]
    for info in result.prayers:
        marker = "  <- next" if info.is_next else ""
        lines.append(f"{info.name:<8} {info.time.strftime('%H:%M')}{marker}")
    lines.append("")
    lines.append(f"Current prayer: {result.current_prayer}")
    if result.next_prayer:
        lines.append(f"Next prayer:    {result.next_prayer.name} in {result.time_until_next}")
    return lines


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Show prayer times for a location.")
    parser.add_argument("--lat", type=float, help="Latitude in degrees")
    parser.add_argument("--lng", type=float, help="Longitude in degrees")
    parser.add_argument("--timezone", help="IANA timezone name, e.g. Europe/London")
    parser.add_argument("--date", type=date.fromisoformat, help="Date as YYYY-MM-DD (default: today)")
    parser.add_argument("--method", help="Calculation method name")
    parser.add_argument("--config", type=Path, default=CONFIG_PATH, help="Path to config.json")
    parser.add_argument("--qibla", action="store_true", help="Also print the Qibla bearing")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    app = PrayerApp(args.config)
    if args.method:
        app.method = args.method

    location = app.resolve_location()
    if args.lat is not None and args.lng is not None:
        location = LocationInfo(
            city="",
            country="",
            latitude=args.lat,
            longitude=args.lng,
            timezone=args.timezone or location.timezone,
        )
    elif args.timezone:
        location = replace(location, timezone=args.timezone)

    try:
        if args.date:
            result = app.prayer_times_for(location, args.date)
        else:
            result = app.today(location)
    except ValueError as exc:
        LOGGER.error("Unable to compute prayer times: %s", exc)
        print(f"error: {exc}", file=sys.stderr)
        return 2

    print("\n".join(render_schedule(result)))
    if args.qibla:
        print(f"Qibla bearing:  {compute_qibla_bearing(location.latitude, location.longitude):.1f} deg")
    return 0


if __name__ == "__main__":
    sys.exit(main())
