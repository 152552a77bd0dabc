"""Compute daily prayer times, the Qibla bearing and the Hijri date for a location."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from datetime import date, datetime, time as time_module, timedelta, tzinfo as TzInfo
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import pytz

import navigator
from astronomy import (
    J2000,
    SUNRISE_SUNSET_DEPRESSION,
    NoSolutionError,
    asr_shadow_angle,
    hour_angle,
    julian_date,
    solar_declination,
    solar_noon,
    sun_position,
)
from calculation_methods import DEFAULT_METHOD, CalculationParameters, HighLatitudeRule, build_parameters
from location import Coordinates

LOGGER = logging.getLogger(__name__)

PRAYER_ORDER = ["Fajr", "Dhuhr", "Asr", "Maghrib", "Isha"]
KAABA_LATITUDE = 21.4225
KAABA_LONGITUDE = 39.8262
# Nearest latitude at which the sun still rises and sets on every day of the year.
POLAR_FALLBACK_LATITUDE = 65.0
J2000_EPOCH = datetime(2000, 1, 1, 12, tzinfo=pytz.utc)

HIJRI_EPOCH_JD = 1948439.5
LUNAR_YEAR_DAYS = 354.367
LUNAR_MONTH_DAYS = 29.530588
HIJRI_MONTHS = [
    "Muharram",
    "Safar",
    "Rabi al-Awwal",
    "Rabi al-Thani",
    "Jumada al-Awwal",
    "Jumada al-Thani",
    "Rajab",
    "Sha'ban",
    "Ramadan",
    "Shawwal",
    "Dhu al-Qi'dah",
    "Dhu al-Hijjah",
]

TimezoneArg = Union[str, TzInfo, None]


class DegenerateScheduleError(RuntimeError):
    """Raised when computed prayer times are not strictly increasing."""


@dataclass(frozen=True)
class PrayerInfo:
    name: str
    time: datetime
    is_next: bool = False


@dataclass(frozen=True)
class PrayerTimesResult:
    """Prayer schedule for one location and calendar day, plus its state relative to ``now``."""

    coordinates: Coordinates
    date: date
    method: str
    prayers: Tuple[PrayerInfo, ...]
    current_prayer: str
    next_prayer: Optional[PrayerInfo]
    time_until_next: Optional[str]
    hijri_date: str
    gregorian_date: str

    @classmethod
    def build(
        cls,
        coordinates: Coordinates,
        day: date,
        method: str,
        prayers: Sequence[PrayerInfo],
        now: datetime,
    ) -> "PrayerTimesResult":
        upcoming = navigator.next_prayer(prayers, now)
        upcoming_name = upcoming.name if upcoming else None
        marked = tuple(replace(info, is_next=info.name == upcoming_name) for info in prayers)
        return cls(
            coordinates=coordinates,
            date=day,
            method=method,
            prayers=marked,
            current_prayer=navigator.current_prayer(marked, now),
            next_prayer=replace(upcoming, is_next=True) if upcoming else None,
            time_until_next=navigator.format_time_until(upcoming.time, now) if upcoming else None,
            hijri_date=hijri_date(day),
            gregorian_date=format_gregorian_date(day),
        )

    def prayer(self, name: str) -> PrayerInfo:
        for info in self.prayers:
            if info.name == name:
                return info
        raise KeyError(name)

    def with_navigation(self, now: datetime) -> "PrayerTimesResult":
        """Re-derive current/next prayer for a different ``now``."""
        return self.build(self.coordinates, self.date, self.method, self.prayers, now)

    def with_next_from(self, following_day: "PrayerTimesResult", now: datetime) -> "PrayerTimesResult":
        """Use the following day's Fajr as the next prayer once today's schedule is exhausted."""
        if self.next_prayer is not None:
            return self
        fajr = replace(following_day.prayers[0], is_next=True)
        return replace(self, next_prayer=fajr, time_until_next=navigator.format_time_until(fajr.time, now))

    def to_dict(self) -> Dict[str, Any]:
        tzinfo = self.prayers[0].time.tzinfo
        return {
            "latitude": self.coordinates.latitude,
            "longitude": self.coordinates.longitude,
            "date": self.date.isoformat(),
            "method": self.method,
            "timezone": getattr(tzinfo, "zone", None),
            "prayers": [{"name": info.name, "time": info.time.isoformat()} for info in self.prayers],
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any], now: datetime) -> "PrayerTimesResult":
        zone = payload.get("timezone")
        tzinfo = pytz.timezone(zone) if zone else None
        prayers = []
        for entry in payload["prayers"]:
            moment = datetime.fromisoformat(entry["time"])
            if tzinfo is not None:
                moment = moment.astimezone(tzinfo)
            prayers.append(PrayerInfo(name=entry["name"], time=moment))
        return cls.build(
            Coordinates(payload["latitude"], payload["longitude"]),
            date.fromisoformat(payload["date"]),
            payload["method"],
            prayers,
            now,
        )


def compute_prayer_times(
    latitude: float,
    longitude: float,
    target_date: Union[date, datetime],
    method_name: str = DEFAULT_METHOD,
    overrides: Optional[Dict[str, Any]] = None,
    *,
    timezone: TimezoneArg = None,
    now: Optional[datetime] = None,
) -> PrayerTimesResult:
    """Compute the five prayer times for *target_date* at the given coordinates.

    An aware ``datetime`` carries its own zone; a plain ``date`` is interpreted
    in *timezone* (IANA name or tzinfo) and is rejected without one. The day
    runs midnight to midnight in that zone. ``now`` only affects the derived
    current/next prayer fields, never the instants themselves.
    """
    coordinates = Coordinates(latitude, longitude)
    day, tzinfo = resolve_day(target_date, timezone)
    parameters = build_parameters(method_name, overrides)
    LOGGER.debug(
        "Computing prayer times for lat=%s lon=%s date=%s tz=%s method=%s",
        coordinates.latitude,
        coordinates.longitude,
        day,
        tzinfo,
        parameters.method,
    )
    prayers = calculate_prayer_times(coordinates, day, parameters, tzinfo)
    now = now or datetime.now(tzinfo)
    return PrayerTimesResult.build(coordinates, day, parameters.method, prayers, now)


def calculate_prayer_times(
    coordinates: Coordinates,
    day: date,
    parameters: CalculationParameters,
    tzinfo: TzInfo = pytz.utc,
) -> List[PrayerInfo]:
    """Return the ordered prayer instants for *day*, localized to *tzinfo*."""
    base_jd = solar_midnight(day, coordinates.longitude, tzinfo)
    try:
        hours = _daily_hours(coordinates.latitude, coordinates.longitude, base_jd, parameters)
    except NoSolutionError:
        fallback_latitude = math.copysign(POLAR_FALLBACK_LATITUDE, coordinates.latitude)
        LOGGER.warning(
            "No sunrise/sunset at latitude %s on %s; using latitude %s instead",
            coordinates.latitude,
            day,
            fallback_latitude,
        )
        hours = _daily_hours(fallback_latitude, coordinates.longitude, base_jd, parameters)

    prayers = [
        PrayerInfo(name=name, time=_instant(base_jd, hours[name]).astimezone(tzinfo))
        for name in PRAYER_ORDER
    ]
    _validate_order(prayers)
    return prayers


def solar_midnight(day: date, longitude: float, tzinfo: TzInfo) -> float:
    """Julian day of the mean solar midnight opening the solar day nearest noon of *day* in *tzinfo*.

    Anchoring on the zone's clock noon keeps every event on the requested
    calendar day even where the zone offset is far from local solar time
    (Pacific/Apia, Pacific/Kiritimati).
    """
    noon_utc = _localize(tzinfo, datetime.combine(day, time_module(12))).astimezone(pytz.utc)
    noon_jd = julian_date(noon_utc.date()) + (noon_utc.hour + noon_utc.minute / 60.0) / 24.0
    # Mean solar midnights fall at 0h UT shifted by the longitude, one per day.
    days = round(noon_jd - 1.0 + longitude / 360.0)
    return days + 0.5 - longitude / 360.0


def _localize(tzinfo: TzInfo, moment: datetime) -> datetime:
    if hasattr(tzinfo, "localize"):
        return tzinfo.localize(moment)
    return moment.replace(tzinfo=tzinfo)


def _instant(base_jd: float, hours: float) -> datetime:
    seconds = (base_jd - J2000) * 86400.0 + hours * 3600.0
    return J2000_EPOCH + timedelta(seconds=round(seconds))


def _daily_hours(
    latitude: float,
    longitude: float,
    base_jd: float,
    parameters: CalculationParameters,
) -> Dict[str, float]:
    """Prayer times as local mean solar hours after the solar midnight *base_jd*."""

    def local_noon(jd: float) -> float:
        return solar_noon(jd, longitude) + longitude / 15.0

    def sun_angle_time(angle: float, guess: float, after_noon: bool) -> float:
        jd = base_jd + guess / 24.0
        declination, _ = sun_position(jd)
        offset = hour_angle(latitude, declination, angle)
        return local_noon(jd) + offset if after_noon else local_noon(jd) - offset

    dhuhr = local_noon(base_jd + 0.5)
    sunrise = sun_angle_time(SUNRISE_SUNSET_DEPRESSION, 6.0, after_noon=False)
    sunset = sun_angle_time(SUNRISE_SUNSET_DEPRESSION, 18.0, after_noon=True)
    asr_elevation = asr_shadow_angle(latitude, solar_declination(base_jd + 13.0 / 24.0), parameters.asr_factor)
    asr = sun_angle_time(-asr_elevation, 13.0, after_noon=True)
    night = 24.0 - (sunset - sunrise)
    rule = parameters.high_latitude_rule

    try:
        fajr: Optional[float] = sun_angle_time(parameters.fajr_angle, 5.0, after_noon=False)
    except NoSolutionError:
        LOGGER.debug("Fajr angle %s unreachable at latitude %s", parameters.fajr_angle, latitude)
        fajr = None
    fajr = _adjust_for_high_latitude(fajr, sunrise, parameters.fajr_angle, night, rule, before_base=True)

    if parameters.uses_isha_interval:
        isha = sunset + parameters.isha_interval / 60.0
    else:
        try:
            isha_angle_time: Optional[float] = sun_angle_time(parameters.isha_angle, 18.0, after_noon=True)
        except NoSolutionError:
            LOGGER.debug("Isha angle %s unreachable at latitude %s", parameters.isha_angle, latitude)
            isha_angle_time = None
        isha = _adjust_for_high_latitude(isha_angle_time, sunset, parameters.isha_angle, night, rule, before_base=False)

    return {"Fajr": fajr, "Dhuhr": dhuhr, "Asr": asr, "Maghrib": sunset, "Isha": isha}


def _adjust_for_high_latitude(
    time: Optional[float],
    base: float,
    angle: float,
    night: float,
    rule: HighLatitudeRule,
    before_base: bool,
) -> float:
    """Clamp an angle-based time to the rule's portion of the night measured from *base*."""
    if rule is HighLatitudeRule.NONE:
        if time is not None:
            return time
        LOGGER.warning("High latitude rule disabled but angle %s is unreachable; using middle of night", angle)
        rule = HighLatitudeRule.MIDDLE_OF_NIGHT

    portion = rule.night_portion(angle) * night
    limit = base - portion if before_base else base + portion
    if time is None:
        return limit
    distance = base - time if before_base else time - base
    if distance > portion:
        LOGGER.debug("Clamping angle %s time by %s rule", angle, rule.value)
        return limit
    return time


def _validate_order(prayers: Sequence[PrayerInfo]) -> None:
    for earlier, later in zip(prayers, prayers[1:]):
        if not earlier.time < later.time:
            LOGGER.error(
                "Prayer schedule out of order: %s (%s) is not before %s (%s)",
                earlier.name,
                earlier.time,
                later.name,
                later.time,
            )
            raise DegenerateScheduleError(f"{earlier.name} at {earlier.time} is not before {later.name} at {later.time}")


def resolve_day(target_date: Union[date, datetime], timezone: TimezoneArg = None) -> Tuple[date, TzInfo]:
    """Split the caller's date into a calendar day and the zone that defines its boundaries."""
    if isinstance(target_date, datetime):
        if target_date.tzinfo is not None:
            return target_date.date(), target_date.tzinfo
        target_date = target_date.date()
    if timezone is None:
        raise ValueError(f"No timezone given for {target_date.isoformat()}; pass an aware datetime or a timezone")
    return target_date, resolve_timezone(timezone)


def resolve_timezone(timezone: TimezoneArg) -> TzInfo:
    if timezone is None:
        return pytz.utc
    if isinstance(timezone, str):
        try:
            return pytz.timezone(timezone)
        except pytz.UnknownTimeZoneError:
            raise ValueError(f"Unknown timezone '{timezone}'") from None
    return timezone


def compute_qibla_bearing(latitude: float, longitude: float) -> float:
    """Initial great-circle bearing from the given point to the Kaaba, in [0, 360)."""
    coordinates = Coordinates(latitude, longitude)
    phi1 = math.radians(coordinates.latitude)
    phi2 = math.radians(KAABA_LATITUDE)
    delta_lambda = math.radians(KAABA_LONGITUDE - coordinates.longitude)

    y = math.sin(delta_lambda) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(delta_lambda)
    bearing = math.degrees(math.atan2(y, x)) % 360.0
    return 0.0 if bearing >= 360.0 else bearing


def hijri_date(day: date) -> str:
    """Approximate Islamic calendar date using mean lunar year and month lengths.

    This can drift a day or two from the observed calendar.
    """
    elapsed = julian_date(day) - HIJRI_EPOCH_JD
    year = int(elapsed // LUNAR_YEAR_DAYS) + 1
    day_of_year = elapsed - (year - 1) * LUNAR_YEAR_DAYS
    month = min(int(day_of_year // LUNAR_MONTH_DAYS), 11)
    day_of_month = int(day_of_year - month * LUNAR_MONTH_DAYS) + 1
    return f"{day_of_month} {HIJRI_MONTHS[month]} {year} AH"


def format_gregorian_date(day: date) -> str:
    return f"{day:%A}, {day:%B} {day.day}, {day.year}"
