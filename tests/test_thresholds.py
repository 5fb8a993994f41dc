import pytest

from hwsensors.bus import ObjectServer
from hwsensors.thresholds import (
    Direction,
    Level,
    Threshold,
    ThresholdTimer,
    assert_thresholds,
    check_thresholds,
    check_thresholds_power_delay,
    direction_to_bus_value,
    has_critical_interface,
    has_warning_interface,
    level_to_bus_value,
    parse_thresholds_from_attr,
    parse_thresholds_from_config,
    persist_threshold,
    update_thresholds,
)

NAMES = {
    (Level.WARNING, Direction.HIGH): ("WarningHigh", "WarningAlarmHigh"),
    (Level.WARNING, Direction.LOW): ("WarningLow", "WarningAlarmLow"),
    (Level.CRITICAL, Direction.HIGH): ("CriticalHigh", "CriticalAlarmHigh"),
    (Level.CRITICAL, Direction.LOW): ("CriticalLow", "CriticalAlarmLow"),
}


class FakeSensor:
    def __init__(self, thresholds, value, hysteresis=1.0, good=True):
        self.name = "fan1"
        self.value = value
        self.raw_value = value
        self.thresholds = thresholds
        self.hysteresis_trigger = hysteresis
        self.good = good
        server = ObjectServer()
        path = "/xyz/openbmc_project/sensors/fan_tach/fan1"
        self.threshold_interface_warning = None
        self.threshold_interface_critical = None
        if has_warning_interface(thresholds):
            self.threshold_interface_warning = server.add_interface(
                path, "xyz.openbmc_project.Sensor.Threshold.Warning"
            )
        if has_critical_interface(thresholds):
            self.threshold_interface_critical = server.add_interface(
                path, "xyz.openbmc_project.Sensor.Threshold.Critical"
            )
        for t in thresholds:
            iface = (
                self.threshold_interface_critical
                if t.level == Level.CRITICAL
                else self.threshold_interface_warning
            )
            level_name, alarm_name = NAMES[(t.level, t.direction)]
            iface.register_property(level_name, t.value)
            iface.register_property(alarm_name, False)

    def reading_state_good(self):
        return self.good


class ManualScheduler:
    def __init__(self):
        self.pending = []

    def __call__(self, delay, callback):
        handle = _Handle(delay, callback)
        self.pending.append(handle)
        return handle

    def fire_all(self):
        handles, self.pending = self.pending, []
        for handle in handles:
            if not handle.cancelled:
                handle.callback()


class _Handle:
    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


def test_bus_values():
    assert level_to_bus_value(Level.WARNING) == 0
    assert level_to_bus_value(Level.CRITICAL) == 1
    assert direction_to_bus_value(Direction.LOW) == "less than"
    assert direction_to_bus_value(Direction.HIGH) == "greater than"


def test_threshold_equality_ignores_writeable():
    a = Threshold(Level.CRITICAL, Direction.LOW, 80, writeable=False)
    b = Threshold(Level.CRITICAL, Direction.LOW, 80)
    assert a == b
    assert a != Threshold(Level.WARNING, Direction.LOW, 80)


def test_parse_from_config():
    data = {
        "xyz.openbmc_project.Configuration.TMP75.Thresholds1": {
            "Direction": "greater than",
            "Severity": 0,
            "Value": 80,
        },
        "xyz.openbmc_project.Configuration.TMP75.Thresholds0": {
            "Direction": "less than",
            "Severity": 1,
            "Value": 5.5,
        },
        "xyz.openbmc_project.Configuration.TMP75": {"Name": "x"},
    }
    result = parse_thresholds_from_config(data)
    assert result == [
        Threshold(Level.CRITICAL, Direction.LOW, 5.5),
        Threshold(Level.WARNING, Direction.HIGH, 80),
    ]


def test_parse_from_config_label_and_index():
    data = {
        "a.Thresholds0": {"Direction": "less than", "Severity": 0, "Value": 1, "Label": "vin"},
        "a.Thresholds1": {"Direction": "less than", "Severity": 0, "Value": 2, "Label": "vout"},
        "a.Thresholds2": {"Direction": "greater than", "Severity": 1, "Value": 3, "Index": 2},
    }
    labelled = parse_thresholds_from_config(data, match_label="vout")
    assert labelled == [Threshold(Level.WARNING, Direction.LOW, 2)]
    first = parse_thresholds_from_config(data, sensor_index=1)
    assert [t.value for t in first] == [1, 2]
    second = parse_thresholds_from_config(data, sensor_index=2)
    assert second == [Threshold(Level.CRITICAL, Direction.HIGH, 3)]


def test_parse_from_config_malformed():
    with pytest.raises(ValueError):
        parse_thresholds_from_config({"a.Thresholds0": {"Direction": "less than", "Value": 1}})


def _write(path, text):
    path.write_text(text)
    return path


def test_parse_from_attr(tmp_path):
    input_path = _write(tmp_path / "temp1_input", "28\n")
    _write(tmp_path / "temp1_min", "5\n")
    _write(tmp_path / "temp1_max", "80\n")
    _write(tmp_path / "temp1_crit", "90\n")
    result = parse_thresholds_from_attr(str(input_path), 1.0)
    assert result == [
        Threshold(Level.WARNING, Direction.LOW, 5),
        Threshold(Level.WARNING, Direction.HIGH, 80),
        Threshold(Level.CRITICAL, Direction.HIGH, 90),
    ]


def test_parse_from_attr_offset_applies_to_crit_only(tmp_path):
    input_path = _write(tmp_path / "temp1_input", "28\n")
    _write(tmp_path / "temp1_max", "80\n")
    _write(tmp_path / "temp1_crit", "90\n")
    plain = parse_thresholds_from_attr(str(input_path), 1.0)
    shifted = parse_thresholds_from_attr(str(input_path), 1.0, 2.5)
    assert shifted[0] == plain[0]
    assert shifted[1].value - plain[1].value == pytest.approx(2.5)


def test_has_interfaces():
    warn = [Threshold(Level.WARNING, Direction.HIGH, 1)]
    crit = [Threshold(Level.CRITICAL, Direction.LOW, 1)]
    assert has_warning_interface(warn) and not has_critical_interface(warn)
    assert has_critical_interface(crit) and not has_warning_interface(crit)
    assert not has_warning_interface([])


def test_check_thresholds_critical_high_asserts():
    t = Threshold(Level.CRITICAL, Direction.HIGH, 100)
    sensor = FakeSensor([t], 150)
    assert check_thresholds(sensor) is False
    iface = sensor.threshold_interface_critical
    assert iface.get_property("CriticalAlarmHigh") is True
    assert len(iface.signals) == 1
    assert iface.signals[0].name == "ThresholdAsserted"
    assert iface.signals[0].args == (
        "fan1",
        "xyz.openbmc_project.Sensor.Threshold.Critical",
        "CriticalAlarmHigh",
        True,
        150,
    )


def test_check_thresholds_repeat_and_hysteresis():
    t = Threshold(Level.CRITICAL, Direction.LOW, 1000)
    sensor = FakeSensor([t], 500, hysteresis=100)
    iface = sensor.threshold_interface_critical
    check_thresholds(sensor)
    check_thresholds(sensor)
    assert len(iface.signals) == 1
    sensor.value = 1050
    assert check_thresholds(sensor) is True
    assert iface.get_property("CriticalAlarmLow") is True
    sensor.value = 10000
    assert check_thresholds(sensor) is True
    assert iface.get_property("CriticalAlarmLow") is False
    assert len(iface.signals) == 2


def test_warning_does_not_fail_status():
    t = Threshold(Level.WARNING, Direction.HIGH, 80)
    sensor = FakeSensor([t], 90)
    assert check_thresholds(sensor) is True
    assert sensor.threshold_interface_warning.get_property("WarningAlarmHigh") is True


def test_assert_thresholds_without_interface():
    sensor = FakeSensor([], 0)
    assert assert_thresholds(sensor, 1.0, Level.WARNING, Direction.HIGH, True) is False


def test_update_thresholds():
    t = Threshold(Level.WARNING, Direction.LOW, 10)
    sensor = FakeSensor([t], 50)
    t.value = 20
    update_thresholds(sensor)
    assert sensor.threshold_interface_warning.get_property("WarningLow") == 20


def test_persist_threshold():
    store = {
        "/cfg/fan": {
            "xyz.Fan.Thresholds0": {"Direction": "less than", "Severity": 1, "Value": 5},
            "xyz.Fan.Thresholds1": {"Direction": "greater than", "Severity": 1, "Value": 9},
        }
    }
    t = Threshold(Level.CRITICAL, Direction.HIGH, 42)
    written = persist_threshold(store, "/cfg/fan", "xyz.Fan", t, 3)
    assert written == 1
    assert store["/cfg/fan"]["xyz.Fan.Thresholds1"]["Value"] == 42
    assert store["/cfg/fan"]["xyz.Fan.Thresholds0"]["Value"] == 5


def test_persist_threshold_label_mismatch():
    store = {
        "/cfg/psu": {
            "xyz.Psu.Thresholds0": {
                "Direction": "less than",
                "Severity": 0,
                "Value": 5,
                "Label": "vin",
            }
        }
    }
    t = Threshold(Level.WARNING, Direction.LOW, 42)
    assert persist_threshold(store, "/cfg/psu", "xyz.Psu", t, 1, "vout") == 0
    assert store["/cfg/psu"]["xyz.Psu.Thresholds0"]["Value"] == 5
    assert persist_threshold(store, "/cfg/psu", "xyz.Psu", t, 1, "vin") == 1
    assert persist_threshold(store, "/missing", "xyz.Psu", t, 1) == 0


def test_power_delay_low_assert_waits_for_timer():
    scheduler = ManualScheduler()
    timer = ThresholdTimer(scheduler)
    t = Threshold(Level.CRITICAL, Direction.LOW, 1000)
    sensor = FakeSensor([t], 500)
    check_thresholds_power_delay(sensor, timer)
    iface = sensor.threshold_interface_critical
    assert iface.get_property("CriticalAlarmLow") is False
    assert timer.has_active_timer(t, True)
    assert scheduler.pending[0].delay == 5.0
    scheduler.fire_all()
    assert iface.get_property("CriticalAlarmLow") is True
    assert not timer.has_active_timer(t, True)


def test_power_delay_high_is_immediate():
    timer = ThresholdTimer(ManualScheduler())
    t = Threshold(Level.WARNING, Direction.HIGH, 10)
    sensor = FakeSensor([t], 20)
    check_thresholds_power_delay(sensor, timer)
    assert sensor.threshold_interface_warning.get_property("WarningAlarmHigh") is True
    assert timer.timers == []


def test_power_delay_skipped_when_reading_state_bad():
    scheduler = ManualScheduler()
    timer = ThresholdTimer(scheduler)
    t = Threshold(Level.WARNING, Direction.LOW, 10)
    sensor = FakeSensor([t], 5, good=False)
    check_thresholds_power_delay(sensor, timer)
    scheduler.fire_all()
    assert sensor.threshold_interface_warning.get_property("WarningAlarmLow") is False


def test_stop_timer_cancels():
    scheduler = ManualScheduler()
    timer = ThresholdTimer(scheduler)
    t = Threshold(Level.WARNING, Direction.LOW, 10)
    sensor = FakeSensor([t], 5)
    timer.start_timer(sensor, t, True, 5)
    timer.stop_timer(t, True)
    assert not timer.has_active_timer(t, True)
    assert scheduler.pending[0].cancelled
    scheduler.fire_all()
    assert sensor.threshold_interface_warning.get_property("WarningAlarmLow") is False


def test_timer_entries_reused():
    scheduler = ManualScheduler()
    timer = ThresholdTimer(scheduler)
    t = Threshold(Level.WARNING, Direction.LOW, 10)
    sensor = FakeSensor([t], 5)
    timer.start_timer(sensor, t, True, 5)
    scheduler.fire_all()
    timer.start_timer(sensor, t, False, 50)
    assert len(timer.timers) == 1
    assert timer.has_active_timer(t, False)
    assert not timer.has_active_timer(t, True)