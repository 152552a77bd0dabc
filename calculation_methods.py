"""Named calculation method presets for the prayer time calculator."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Union

LOGGER = logging.getLogger(__name__)

DEFAULT_METHOD = "MuslimWorldLeague"
STANDARD = 1
HANAFI = 2


class UnknownMethodError(KeyError):
    """Raised when a calculation method name is not in the registry."""

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"Unknown calculation method '{self.name}'"


class InvalidParametersError(ValueError):
    """Raised when calculation parameters fail validation."""


class HighLatitudeRule(str, Enum):
    NONE = "None"
    ANGLE_BASED = "AngleBased"
    ONE_SEVENTH = "OneSeventh"
    MIDDLE_OF_NIGHT = "NightMiddle"

    def night_portion(self, angle: float) -> float:
        """Fraction of the night used in place of an angle-based offset."""
        if self is HighLatitudeRule.ANGLE_BASED:
            return angle / 60.0
        if self is HighLatitudeRule.ONE_SEVENTH:
            return 1.0 / 7.0
        return 0.5


@dataclass(frozen=True)
class CalculationParameters:
    """Angles and juristic settings that drive one prayer time calculation.

    Isha is defined either by ``isha_angle`` or, when ``isha_interval`` is set,
    as a fixed number of minutes after Maghrib.
    """

    method: str
    fajr_angle: float
    isha_angle: Optional[float] = None
    isha_interval: Optional[float] = None
    asr_factor: int = STANDARD
    high_latitude_rule: HighLatitudeRule = HighLatitudeRule.MIDDLE_OF_NIGHT

    def __post_init__(self) -> None:
        rule = self.high_latitude_rule
        if not isinstance(rule, HighLatitudeRule):
            try:
                object.__setattr__(self, "high_latitude_rule", HighLatitudeRule(rule))
            except ValueError:
                raise InvalidParametersError(f"Unknown high latitude rule: {rule!r}") from None
        for name in ("fajr_angle", "isha_angle", "isha_interval", "asr_factor"):
            object.__setattr__(self, name, _as_number(name, getattr(self, name)))
        self.validate()
        object.__setattr__(self, "asr_factor", int(self.asr_factor))

    def validate(self) -> None:
        if self.fajr_angle is None or self.fajr_angle <= 0:
            raise InvalidParametersError(f"Fajr angle must be positive, got {self.fajr_angle!r}")
        if self.isha_interval is not None:
            if self.isha_interval <= 0:
                raise InvalidParametersError(f"Isha interval must be positive, got {self.isha_interval!r}")
        elif self.isha_angle is None or self.isha_angle <= 0:
            raise InvalidParametersError(f"Isha angle must be positive, got {self.isha_angle!r}")
        if self.asr_factor not in (STANDARD, HANAFI):
            raise InvalidParametersError(f"Asr factor must be 1 (Standard) or 2 (Hanafi), got {self.asr_factor!r}")

    @property
    def uses_isha_interval(self) -> bool:
        return self.isha_interval is not None

    def with_overrides(self, **overrides: Any) -> "CalculationParameters":
        """Return a validated copy with the given fields replaced."""
        if not overrides:
            return self
        known = {field.name for field in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise InvalidParametersError(f"Unknown calculation parameter(s): {', '.join(unknown)}")
        # An explicit Isha angle switches an interval-based method back to angles.
        if overrides.get("isha_angle") is not None and "isha_interval" not in overrides:
            overrides["isha_interval"] = None
        LOGGER.debug("Applying overrides to %s: %s", self.method, overrides)
        return replace(self, **overrides)


def _as_number(name: str, value: Any) -> Optional[float]:
    """Coerce JSON-ish override values ("18", 18) to float; ``None`` passes through."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidParametersError(f"{name} must be a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidParametersError(f"{name} must be a number, got {value!r}") from None
    if not math.isfinite(number):
        raise InvalidParametersError(f"{name} must be finite, got {value!r}")
    return number


_METHODS: Dict[str, CalculationParameters] = {
    params.method: params
    for params in (
        CalculationParameters("MuslimWorldLeague", fajr_angle=18.0, isha_angle=17.0),
        CalculationParameters("NorthAmerica", fajr_angle=15.0, isha_angle=15.0),
        CalculationParameters("Egyptian", fajr_angle=19.5, isha_angle=17.5),
        CalculationParameters("UmmAlQura", fajr_angle=18.5, isha_interval=90.0),
        CalculationParameters("Karachi", fajr_angle=18.0, isha_angle=18.0),
        CalculationParameters("Dubai", fajr_angle=18.2, isha_angle=18.2),
        CalculationParameters("Kuwait", fajr_angle=18.0, isha_angle=17.5),
        CalculationParameters("Qatar", fajr_angle=18.0, isha_interval=90.0),
        CalculationParameters("Singapore", fajr_angle=20.0, isha_angle=18.0),
        CalculationParameters("Tehran", fajr_angle=17.7, isha_angle=14.0),
        CalculationParameters("Turkey", fajr_angle=18.0, isha_angle=17.0),
    )
}
_METHODS_BY_KEY = {name.lower(): params for name, params in _METHODS.items()}


def available_methods() -> List[str]:
    return list(_METHODS)


def resolve(method_name: str) -> CalculationParameters:
    """Return the preset registered under *method_name* (case-insensitive)."""
    params = _METHODS_BY_KEY.get(str(method_name or "").strip().lower())
    if params is None:
        LOGGER.debug("Calculation method %r not found in registry", method_name)
        raise UnknownMethodError(method_name)
    return params


def build_parameters(
    method_name: str,
    overrides: Optional[Dict[str, Union[float, int, str, None]]] = None,
) -> CalculationParameters:
    """Resolve a preset and apply caller overrides in one step."""
    return resolve(method_name).with_overrides(**dict(overrides or {}))
