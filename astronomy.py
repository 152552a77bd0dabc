"""Low-precision solar position math used by the prayer time calculator."""
from __future__ import annotations

import math
from datetime import date
from typing import Tuple

SUNRISE_SUNSET_DEPRESSION = 0.833
J2000 = 2451545.0


class NoSolutionError(ValueError):
    """Raised when the sun never reaches the requested angle on a given day."""

    def __init__(self, latitude: float, declination: float, angle: float) -> None:
        super().__init__(
            f"Sun does not reach {angle:.3f} deg below the horizon at latitude {latitude:.4f} "
            f"(declination {declination:.4f})"
        )
        self.latitude = latitude
        self.declination = declination
        self.angle = angle


def _sin(degrees: float) -> float:
    return math.sin(math.radians(degrees))


def _cos(degrees: float) -> float:
    return math.cos(math.radians(degrees))


def _tan(degrees: float) -> float:
    return math.tan(math.radians(degrees))


def _fix(value: float, mode: float) -> float:
    value -= mode * math.floor(value / mode)
    return value + mode if value < 0 else value


def julian_date(target: date) -> float:
    """Return the Julian Day at 0h UT for a Gregorian calendar date."""
    year, month, day = target.year, target.month, target.day
    if month <= 2:
        year -= 1
        month += 12
    century = math.floor(year / 100)
    correction = 2 - century + math.floor(century / 4)
    return (
        math.floor(365.25 * (year + 4716))
        + math.floor(30.6001 * (month + 1))
        + day
        + correction
        - 1524.5
    )


def sun_position(jd: float) -> Tuple[float, float]:
    """Return ``(declination in degrees, equation of time in minutes)`` for *jd*."""
    days = jd - J2000
    mean_anomaly = _fix(357.529 + 0.98560028 * days, 360.0)
    mean_longitude = _fix(280.459 + 0.98564736 * days, 360.0)
    ecliptic_longitude = _fix(
        mean_longitude + 1.915 * _sin(mean_anomaly) + 0.020 * _sin(2 * mean_anomaly),
        360.0,
    )
    obliquity = 23.439 - 0.00000036 * days

    right_ascension = math.degrees(
        math.atan2(_cos(obliquity) * _sin(ecliptic_longitude), _cos(ecliptic_longitude))
    ) / 15.0
    equation_hours = mean_longitude / 15.0 - _fix(right_ascension, 24.0)
    # Wrap so the result stays within a few minutes of zero.
    equation_hours = (equation_hours + 12.0) % 24.0 - 12.0
    declination = math.degrees(math.asin(_sin(obliquity) * _sin(ecliptic_longitude)))
    return declination, equation_hours * 60.0


def solar_declination(jd: float) -> float:
    return sun_position(jd)[0]


def equation_of_time(jd: float) -> float:
    """Difference between apparent and mean solar time, in minutes."""
    return sun_position(jd)[1]


def solar_noon(jd: float, longitude: float) -> float:
    """Hours after 0h UT at which the sun transits the meridian at *longitude*."""
    return 12.0 - longitude / 15.0 - equation_of_time(jd) / 60.0


def hour_angle(latitude: float, declination: float, angle: float) -> float:
    """Hours between solar noon and the moment the sun sits *angle* degrees below the horizon.

    Negative angles describe an elevation above the horizon (used for Asr).
    """
    numerator = -_sin(angle) - _sin(declination) * _sin(latitude)
    denominator = _cos(declination) * _cos(latitude)
    cosine = numerator / denominator
    if cosine < -1.0 or cosine > 1.0:
        raise NoSolutionError(latitude, declination, angle)
    return math.degrees(math.acos(cosine)) / 15.0


def asr_shadow_angle(latitude: float, declination: float, shadow_factor: int) -> float:
    """Solar elevation at which a shadow equals ``shadow_factor`` times the object plus its noon shadow."""
    return math.degrees(math.atan(1.0 / (shadow_factor + _tan(abs(latitude - declination)))))
