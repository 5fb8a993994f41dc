"""Sensor thresholds: parsing, checking, alarm assertion and delayed assertion."""

from __future__ import annotations

import enum
import logging
import threading
import weakref
from collections.abc import Callable, Iterable, Mapping, MutableMapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from hwsensors.bus import Interface
from hwsensors.utils import read_file, split_file_name
from hwsensors.variants import (
    variant_to_double,
    variant_to_int,
    variant_to_string,
    variant_to_unsigned,
)

log = logging.getLogger(__name__)

THRESHOLD_TIMER_DELAY = 5.0
THRESHOLD_ASSERTED_SIGNAL = "ThresholdAsserted"
_ASSERT_LOG_COUNT = 10


class Level(enum.IntEnum):
    """Severity of a threshold."""

    WARNING = 0
    CRITICAL = 1


class Direction(enum.Enum):
    """Which side of a threshold counts as crossed."""

    HIGH = "greater than"
    LOW = "less than"


@dataclass
class Threshold:
    """One threshold of a sensor; equality ignores ``writeable``."""

    level: Level
    direction: Direction
    value: float
    writeable: bool = field(default=True, compare=False)


class ThresholdSensor(Protocol):
    """What threshold handling needs from a sensor."""

    name: str
    value: float
    raw_value: float
    thresholds: list[Threshold]
    hysteresis_trigger: float
    threshold_interface_warning: Interface | None
    threshold_interface_critical: Interface | None

    def reading_state_good(self) -> bool: ...


class Cancellable(Protocol):
    def cancel(self) -> None: ...


Scheduler = Callable[[float, Callable[[], None]], Cancellable]


def _thread_scheduler(delay: float, callback: Callable[[], None]) -> Cancellable:
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer


def level_to_bus_value(level: Level) -> int:
    """Return the configuration severity number for a level."""
    return int(Level(level))


def direction_to_bus_value(direction: Direction) -> str:
    """Return the configuration direction text for a direction."""
    return Direction(direction).value


_PROPERTY_NAMES = {
    (Level.WARNING, Direction.HIGH): ("WarningHigh", "WarningAlarmHigh"),
    (Level.WARNING, Direction.LOW): ("WarningLow", "WarningAlarmLow"),
    (Level.CRITICAL, Direction.HIGH): ("CriticalHigh", "CriticalAlarmHigh"),
    (Level.CRITICAL, Direction.LOW): ("CriticalLow", "CriticalAlarmLow"),
}


def _interface_for(sensor: ThresholdSensor, level: Level) -> Interface | None:
    if level == Level.CRITICAL:
        return sensor.threshold_interface_critical
    return sensor.threshold_interface_warning


def parse_thresholds_from_config(
    sensor_data: Mapping[str, Mapping[str, Any]],
    match_label: str | None = None,
    sensor_index: int | None = None,
) -> list[Threshold]:
    """Collect thresholds from configuration interfaces named ``*Thresholds*``.

    With ``match_label`` only entries of that Label are taken; with
    ``sensor_index`` only entries of that Index, a missing Index counting
    as index 1.  Raises ValueError on an entry lacking Direction, Severity
    or Value.
    """
    found: list[Threshold] = []
    for name, item in sorted(sensor_data.items()):
        if "Thresholds" not in name:
            continue
        if match_label is not None:
            if "Label" not in item or variant_to_string(item["Label"]) != match_label:
                continue
        if sensor_index is not None:
            if "Index" not in item:
                if sensor_index != 1:
                    continue
            elif variant_to_int(item["Index"]) != sensor_index:
                continue
        if not all(key in item for key in ("Direction", "Severity", "Value")):
            log.error("Malformed threshold on configuration interface %s", name)
            raise ValueError(f"Malformed threshold on configuration interface {name}")
        level = Level.WARNING if variant_to_unsigned(item["Severity"]) == 0 else Level.CRITICAL
        direction = (
            Direction.LOW
            if variant_to_string(item["Direction"]) == Direction.LOW.value
            else Direction.HIGH
        )
        found.append(Threshold(level, direction, variant_to_double(item["Value"])))
    return found


def parse_thresholds_from_attr(
    input_path: str, scale_factor: float, offset: float = 0.0
) -> list[Threshold]:
    """Read thresholds from the hwmon attribute files beside ``input_path``."""
    attributes: dict[str, list[tuple[str, Level, Direction, float]]] = {
        "average": [
            ("average_min", Level.WARNING, Direction.LOW, 0.0),
            ("average_max", Level.WARNING, Direction.HIGH, 0.0),
        ],
        "input": [
            ("min", Level.WARNING, Direction.LOW, 0.0),
            ("max", Level.WARNING, Direction.HIGH, 0.0),
            ("lcrit", Level.CRITICAL, Direction.LOW, 0.0),
            ("crit", Level.CRITICAL, Direction.HIGH, offset),
        ],
    }
    parts = split_file_name(input_path)
    if parts is None:
        return []
    item = parts[2]
    found: list[Threshold] = []
    for suffix, level, direction, extra in attributes.get(item, []):
        attr_path = input_path.replace(item, suffix)
        value = read_file(attr_path, scale_factor)
        if value is not None:
            value += extra
            log.debug("Threshold: %s: %s", attr_path, value)
            found.append(Threshold(level, direction, value))
    return found


def has_critical_interface(thresholds: Iterable[Threshold]) -> bool:
    """Return whether any threshold is critical."""
    return any(t.level == Level.CRITICAL for t in thresholds)


def has_warning_interface(thresholds: Iterable[Threshold]) -> bool:
    """Return whether any threshold is a warning."""
    return any(t.level == Level.WARNING for t in thresholds)


def persist_threshold(
    config_store: Mapping[str, Mapping[str, MutableMapping[str, Any]]],
    path: str,
    base_interface: str,
    threshold: Threshold,
    threshold_count: int,
    label: str = "",
) -> int:
    """Write a threshold's value back into the matching configuration entries.

    ``config_store`` maps object paths to interfaces to their properties.
    Interfaces ``<base_interface>.Thresholds<n>`` for ``n`` below
    ``threshold_count`` are examined; those whose severity and direction
    (and Label, if ``label`` is given) match get their Value replaced.
    Returns the number of entries written.
    """
    interfaces = config_store.get(path, {})
    written = 0
    for index in range(threshold_count):
        properties = interfaces.get(f"{base_interface}.Thresholds{index}")
        if properties is None:
            continue
        if label:
            if "Label" not in properties:
                log.error("No label in threshold configuration")
                continue
            if variant_to_string(properties["Label"]) != label:
                continue
        if not all(key in properties for key in ("Direction", "Severity", "Value")):
            log.error("Malformed threshold in configuration")
            continue
        level = variant_to_unsigned(properties["Severity"])
        direction = variant_to_string(properties["Direction"])
        if (
            level_to_bus_value(threshold.level) != level
            or direction_to_bus_value(threshold.direction) != direction
        ):
            continue
        properties["Value"] = threshold.value
        written += 1
    return written


def update_thresholds(sensor: ThresholdSensor) -> None:
    """Publish every threshold value of ``sensor`` on its interfaces."""
    for threshold in sensor.thresholds:
        interface = _interface_for(sensor, threshold.level)
        if interface is None:
            continue
        prop, _ = _PROPERTY_NAMES[(threshold.level, threshold.direction)]
        interface.set_property(prop, threshold.value)


@dataclass(frozen=True)
class _Change:
    threshold: Threshold
    asserted: bool
    assert_value: float


_assert_log_counts = {Direction.HIGH: 0, Direction.LOW: 0}


def _log_assert(sensor: ThresholdSensor, threshold: Threshold, value: float) -> None:
    _assert_log_counts[threshold.direction] += 1
    if _assert_log_counts[threshold.direction] < _ASSERT_LOG_COUNT:
        side = "high" if threshold.direction == Direction.HIGH else "low"
        log.warning(
            "Sensor %s %s threshold %s assert: value %s raw data %s",
            sensor.name,
            side,
            threshold.value,
            value,
            sensor.raw_value,
        )


def _changes(sensor: ThresholdSensor, value: float) -> list[_Change]:
    # Schmitt trigger: assert at once, deassert only past the hysteresis band.
    changes: list[_Change] = []
    for threshold in sensor.thresholds:
        if threshold.direction == Direction.HIGH:
            if value >= threshold.value:
                changes.append(_Change(threshold, True, value))
                _log_assert(sensor, threshold, value)
            elif value < threshold.value - sensor.hysteresis_trigger:
                changes.append(_Change(threshold, False, value))
        else:
            if value <= threshold.value:
                changes.append(_Change(threshold, True, value))
                _log_assert(sensor, threshold, value)
            elif value > threshold.value + sensor.hysteresis_trigger:
                changes.append(_Change(threshold, False, value))
    return changes


def assert_thresholds(
    sensor: ThresholdSensor,
    assert_value: float,
    level: Level,
    direction: Direction,
    asserted: bool,
) -> bool:
    """Set an alarm property; on a change emit ThresholdAsserted.

    Returns whether the signal was sent.
    """
    _, prop = _PROPERTY_NAMES[(Level(level), Direction(direction))]
    interface = _interface_for(sensor, Level(level))
    if interface is None:
        log.info("trying to set uninitialized interface")
        return False
    try:
        changed = interface.set_property(prop, asserted)
    except KeyError:
        log.error("alarm property %s not registered", prop)
        return False
    if not changed:
        return False
    interface.emit_signal(
        THRESHOLD_ASSERTED_SIGNAL,
        sensor.name,
        interface.interface_name,
        prop,
        asserted,
        assert_value,
    )
    return True


def check_thresholds(sensor: ThresholdSensor) -> bool:
    """Apply threshold changes; return False if a critical one is asserted."""
    status = True
    for change in _changes(sensor, sensor.value):
        assert_thresholds(
            sensor,
            change.assert_value,
            change.threshold.level,
            change.threshold.direction,
            change.asserted,
        )
        if change.threshold.level == Level.CRITICAL and change.asserted:
            status = False
    return status


@dataclass
class _TimerEntry:
    used: bool = False
    level: Level = Level.WARNING
    direction: Direction = Direction.HIGH
    asserted: bool = False
    generation: int = 0
    handle: Cancellable | None = None


def _reference(sensor: Any) -> Callable[[], Any]:
    try:
        return weakref.ref(sensor)
    except TypeError:
        return lambda: sensor


class ThresholdTimer:
    """Delays threshold assertions so that transient crossings can be dropped."""

    def __init__(
        self, scheduler: Scheduler | None = None, delay: float = THRESHOLD_TIMER_DELAY
    ) -> None:
        self._schedule = scheduler or _thread_scheduler
        self._delay = delay
        self._lock = threading.RLock()
        self.timers: list[_TimerEntry] = []

    def _matches(self, entry: _TimerEntry, threshold: Threshold, asserted: bool) -> bool:
        return (
            entry.used
            and entry.level == threshold.level
            and entry.direction == threshold.direction
            and entry.asserted == asserted
        )

    def has_active_timer(self, threshold: Threshold, asserted: bool) -> bool:
        """Return whether a pending timer exists for this threshold and state."""
        with self._lock:
            return any(self._matches(entry, threshold, asserted) for entry in self.timers)

    def stop_timer(self, threshold: Threshold, asserted: bool) -> None:
        """Cancel pending timers for this threshold and state."""
        with self._lock:
            for entry in self.timers:
                if self._matches(entry, threshold, asserted):
                    entry.generation += 1
                    if entry.handle is not None:
                        entry.handle.cancel()
                        entry.handle = None
                    entry.used = False

    def start_timer(
        self,
        sensor: ThresholdSensor,
        threshold: Threshold,
        asserted: bool,
        assert_value: float,
    ) -> None:
        """Assert the threshold after the delay if the sensor still reads well."""
        sensor_ref = _reference(sensor)
        with self._lock:
            entry = next((e for e in self.timers if not e.used), None)
            if entry is None:
                entry = _TimerEntry()
                self.timers.append(entry)
            entry.used = True
            entry.level = threshold.level
            entry.direction = threshold.direction
            entry.asserted = asserted
            entry.generation += 1
            generation = entry.generation
            level, direction = threshold.level, threshold.direction

            def fire() -> None:
                target = sensor_ref()
                if target is None:
                    return
                with self._lock:
                    if entry.generation != generation:
                        return
                    entry.used = False
                    entry.handle = None
                if target.reading_state_good():
                    assert_thresholds(target, assert_value, level, direction, asserted)

            entry.handle = self._schedule(self._delay, fire)


def check_thresholds_power_delay(sensor: ThresholdSensor, timer: ThresholdTimer) -> None:
    """Apply threshold changes, delaying low events that may come from power-off.

    Low assertions are always delayed; low deassertions are delayed when an
    assertion timer is pending; everything else is applied at once.
    """
    for change in _changes(sensor, sensor.value):
        if change.threshold.direction == Direction.LOW and (
            change.asserted or timer.has_active_timer(change.threshold, not change.asserted)
        ):
            timer.start_timer(sensor, change.threshold, change.asserted, change.assert_value)
            continue
        assert_thresholds(
            sensor,
            change.assert_value,
            change.threshold.level,
            change.threshold.direction,
            change.asserted,
        )