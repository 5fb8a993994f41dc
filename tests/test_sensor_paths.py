import re

import pytest

from hwsensors.sensor_paths import (
    UNIT_AMPERES,
    UNIT_CFM,
    UNIT_DEGREES_C,
    UNIT_JOULES,
    UNIT_METERS,
    UNIT_PASCALS,
    UNIT_PERCENT,
    UNIT_RPMS,
    UNIT_VOLTS,
    UNIT_WATTS,
    escape_path_for_dbus,
    get_path_for_units,
)


@pytest.mark.parametrize(
    "short, full, expected",
    [
        ("DegreesC", UNIT_DEGREES_C, "temperature"),
        ("RPMS", UNIT_RPMS, "fan_tach"),
        ("Volts", UNIT_VOLTS, "voltage"),
        ("Meters", UNIT_METERS, "altitude"),
        ("Amperes", UNIT_AMPERES, "current"),
        ("Watts", UNIT_WATTS, "power"),
        ("Joules", UNIT_JOULES, "energy"),
        ("Percent", UNIT_PERCENT, "Utilization"),
    ],
)
def test_path_for_units(short, full, expected):
    assert get_path_for_units(short) == expected
    assert get_path_for_units(full) == expected


@pytest.mark.parametrize("units", [UNIT_CFM, UNIT_PASCALS, "CFM", "", "degreesc"])
def test_unknown_units_give_empty_path(units):
    assert get_path_for_units(units) == ""


def test_escape_replaces_space():
    assert escape_path_for_dbus("test fan") == "test_fan"


def test_escape_collapses_runs():
    assert escape_path_for_dbus("a  -- b") == "a_b"


def test_escape_keeps_legal_text():
    text = "/xyz/openbmc_project/sensors/fan_tach/Fan_1"
    assert escape_path_for_dbus(text) == text


@pytest.mark.parametrize("name", ["CPU 1 Temp", "P3V3-Rail", "x.y:z", "ü"])
def test_escape_result_only_legal_characters(name):
    result = escape_path_for_dbus(name)
    assert re.fullmatch(r"[A-Za-z0-9_/]*", result)
    assert escape_path_for_dbus(result) == result