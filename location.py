"""Location models and the IP-based location provider."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

import pytz
import requests
from tzlocal import get_localzone_name

LOGGER = logging.getLogger(__name__)

IPINFO_URL = "https://ipinfo.io/json"


class InvalidCoordinatesError(ValueError):
    """Raised when latitude or longitude fall outside their valid range."""


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        try:
            latitude = float(self.latitude)
            longitude = float(self.longitude)
        except (TypeError, ValueError):
            raise InvalidCoordinatesError(
                f"Coordinates must be numeric, got ({self.latitude!r}, {self.longitude!r})"
            ) from None
        if not -90.0 <= latitude <= 90.0:
            raise InvalidCoordinatesError(f"Latitude {latitude} outside [-90, 90]")
        if not -180.0 <= longitude <= 180.0:
            raise InvalidCoordinatesError(f"Longitude {longitude} outside [-180, 180]")
        object.__setattr__(self, "latitude", latitude)
        object.__setattr__(self, "longitude", longitude)


@dataclass
class LocationInfo:
    city: str
    country: str
    latitude: Optional[float]
    longitude: Optional[float]
    timezone: Optional[str]

    def coordinates(self) -> Coordinates:
        if self.latitude is None or self.longitude is None:
            raise InvalidCoordinatesError(f"Location {self.city}, {self.country} has no coordinates")
        return Coordinates(self.latitude, self.longitude)


DEFAULT_LOCATION = LocationInfo(
    city="New York",
    country="US",
    latitude=40.7128,
    longitude=-74.0060,
    timezone="America/New_York",
)


def detect_location_from_ip(timeout: int = 5) -> LocationInfo:
    """Attempt to detect approximate location using the ipinfo.io service."""
    LOGGER.debug("Requesting IP-based location from ipinfo.io (timeout=%s)", timeout)
    response = requests.get(IPINFO_URL, timeout=timeout)
    LOGGER.debug("ipinfo.io response status: %s", response.status_code)
    response.raise_for_status()
    payload = response.json()

    loc_token = payload.get("loc", "")
    try:
        latitude, longitude = map(float, loc_token.split(","))
    except ValueError:
        raise ValueError(f"ipinfo.io returned unusable coordinates: {loc_token!r}") from None
    LOGGER.debug("Parsed coordinates from ipinfo.io: lat=%s lon=%s", latitude, longitude)

    timezone = _validated_timezone(payload.get("timezone")) or _local_timezone()
    return LocationInfo(
        city=payload.get("city", ""),
        country=payload.get("country", ""),
        latitude=latitude,
        longitude=longitude,
        timezone=timezone,
    )


def build_location_from_config(config: Dict[str, object]) -> Optional[LocationInfo]:
    """Create a LocationInfo instance if the config contains the required data."""
    location_cfg = config.get("location") if isinstance(config, dict) else None
    if not isinstance(location_cfg, dict):
        return None

    latitude = _safe_float(location_cfg.get("latitude"))
    longitude = _safe_float(location_cfg.get("longitude"))
    if latitude is None or longitude is None:
        LOGGER.debug("Configured location is missing coordinates: %s", location_cfg)
        return None

    timezone = location_cfg.get("timezone")
    return LocationInfo(
        city=str(location_cfg.get("city", "")),
        country=str(location_cfg.get("country", "")),
        latitude=latitude,
        longitude=longitude,
        timezone=_validated_timezone(timezone) or _local_timezone(),
    )


def _validated_timezone(name: Optional[object]) -> Optional[str]:
    if not name:
        return None
    try:
        pytz.timezone(str(name))
    except pytz.UnknownTimeZoneError:
        LOGGER.warning("Ignoring unknown timezone %s", name)
        return None
    return str(name)


def _local_timezone() -> str:
    try:
        return _validated_timezone(get_localzone_name()) or "UTC"
    except Exception:  # pragma: no cover - platform dependent
        LOGGER.warning("Unable to determine local timezone; defaulting to UTC", exc_info=True)
        return "UTC"


def _safe_float(value: Optional[object]) -> Optional[float]:
    try:
        if value in (None, ""):
            return None
        return float(value)
    except (TypeError, ValueError):
        return None
