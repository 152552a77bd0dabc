import pytest

from calculation_methods import (
    DEFAULT_METHOD,
    HANAFI,
    CalculationParameters,
    HighLatitudeRule,
    InvalidParametersError,
    UnknownMethodError,
    available_methods,
    build_parameters,
    resolve,
)


def test_resolve_north_america():
    params = resolve("NorthAmerica")
    assert params.fajr_angle == 15.0
    assert params.isha_angle == 15.0
    assert params.asr_factor == 1
    assert params.high_latitude_rule is HighLatitudeRule.MIDDLE_OF_NIGHT


def test_resolve_is_case_insensitive():
    assert resolve("northamerica") is resolve("NorthAmerica")


def test_default_method_is_registered():
    assert DEFAULT_METHOD in available_methods()


def test_unknown_method_raises():
    with pytest.raises(UnknownMethodError) as excinfo:
        resolve("Atlantis")
    assert excinfo.value.name == "Atlantis"
    assert "Atlantis" in str(excinfo.value)


def test_overrides_return_new_instance():
    original = resolve("MuslimWorldLeague")
    adjusted = original.with_overrides(fajr_angle=16.5, asr_factor=HANAFI)
    assert adjusted.fajr_angle == 16.5
    assert adjusted.asr_factor == 2
    assert original.fajr_angle == 18.0
    assert original.asr_factor == 1


def test_high_latitude_rule_accepts_string_values():
    params = build_parameters("Karachi", {"high_latitude_rule": "OneSeventh"})
    assert params.high_latitude_rule is HighLatitudeRule.ONE_SEVENTH


def test_isha_angle_override_replaces_interval():
    umm_al_qura = resolve("UmmAlQura")
    assert umm_al_qura.uses_isha_interval
    switched = umm_al_qura.with_overrides(isha_angle=18.0)
    assert not switched.uses_isha_interval
    assert switched.isha_angle == 18.0


@pytest.mark.parametrize(
    "overrides",
    [
        {"asr_factor": 3},
        {"fajr_angle": 0},
        {"fajr_angle": -12.0},
        {"isha_angle": -1.0},
        {"high_latitude_rule": "Sideways"},
        {"sunrise_angle": 1.0},
        {"fajr_angle": "eighteen"},
        {"isha_angle": [17]},
        {"isha_interval": "nan"},
        {"asr_factor": True},
        {"asr_factor": 1.5},
    ],
)
def test_invalid_overrides_are_rejected(overrides):
    with pytest.raises(InvalidParametersError):
        build_parameters("MuslimWorldLeague", overrides)


def test_isha_requires_angle_or_interval():
    with pytest.raises(InvalidParametersError):
        CalculationParameters("Custom", fajr_angle=18.0)


def test_night_portions():
    assert HighLatitudeRule.MIDDLE_OF_NIGHT.night_portion(18.0) == 0.5
    assert HighLatitudeRule.ONE_SEVENTH.night_portion(18.0) == pytest.approx(1 / 7)
    assert HighLatitudeRule.ANGLE_BASED.night_portion(18.0) == pytest.approx(0.3)


def test_numeric_strings_from_json_are_coerced():
    params = build_parameters("MuslimWorldLeague", {"fajr_angle": "16.5", "asr_factor": "2"})
    assert params.fajr_angle == 16.5
    assert params.asr_factor == HANAFI
    assert isinstance(params.asr_factor, int)
