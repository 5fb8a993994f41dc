"""The sensor base: value publishing, override handling, errors and availability."""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterable, Mapping, MutableMapping
from dataclasses import dataclass
from typing import Any

from hwsensors import thresholds as thresholds_mod
from hwsensors.bus import Interface, ObjectServer, PropertyAccessDenied, create_association
from hwsensors.power import PowerMonitor
from hwsensors.sensor_paths import escape_path_for_dbus
from hwsensors.thresholds import Direction, Level, Threshold
from hwsensors.utils import PowerState

log = logging.getLogger(__name__)

SENSOR_FAILED_POLL_TIME_MS = 5000
ERROR_THRESHOLD = 5

SENSOR_VALUE_INTERFACE = "xyz.openbmc_project.Sensor.Value"
AVAILABLE_INTERFACE_NAME = "xyz.openbmc_project.State.Decorator.Availability"
OPERATIONAL_INTERFACE_NAME = "xyz.openbmc_project.State.Decorator.OperationalStatus"

_NAN = float("nan")

_THRESHOLD_PROPERTIES = {
    (Level.CRITICAL, Direction.HIGH): ("CriticalHigh", "CriticalAlarmHigh"),
    (Level.CRITICAL, Direction.LOW): ("CriticalLow", "CriticalAlarmLow"),
    (Level.WARNING, Direction.HIGH): ("WarningHigh", "WarningAlarmHigh"),
    (Level.WARNING, Direction.LOW): ("WarningLow", "WarningAlarmLow"),
}


@dataclass
class SensorInstrumentation:
    """Reading statistics kept for debugging."""

    num_collects_good: int = 0
    num_collects_miss: int = 0
    num_streak_greats: int = 0
    num_streak_misses: int = 0
    min_collected: float = 0.0
    max_collected: float = 0.0


class Sensor:
    """A sensor publishing one reading with thresholds on an object server.

    Subclasses create ``sensor_interface`` (and the threshold and
    association interfaces they need) before calling
    ``set_initial_properties``.
    """

    def __init__(
        self,
        name: str,
        thresholds: Iterable[Threshold],
        configuration_path: str,
        object_type: str,
        is_settable: bool,
        max_value: float,
        min_value: float,
        *,
        object_server: ObjectServer | None = None,
        power: PowerMonitor | None = None,
        read_state: PowerState = PowerState.ALWAYS,
        config_store: Mapping[str, Mapping[str, MutableMapping[str, Any]]] | None = None,
        insecure_override: bool = False,
        instrumentation: bool = False,
    ) -> None:
        self.name = escape_path_for_dbus(name)
        self.configuration_path = configuration_path
        self.object_type = object_type
        self.is_sensor_settable = is_settable
        self.max_value = max_value
        self.min_value = min_value
        self.thresholds: list[Threshold] = list(thresholds)
        self.hysteresis_trigger = (max_value - min_value) * 0.01
        self.hysteresis_publish = (max_value - min_value) * 0.0001
        self.object_server = object_server
        self.power = power
        self.read_state = read_state
        self.config_store = config_store
        self.insecure_override = insecure_override

        self.sensor_interface: Interface | None = None
        self.threshold_interface_warning: Interface | None = None
        self.threshold_interface_critical: Interface | None = None
        self.association: Interface | None = None
        self.available_interface: Interface | None = None
        self.operational_interface: Interface | None = None

        self.value = _NAN
        self.raw_value = _NAN
        self.overridden_state = False
        self.internal_set = False
        self.err_count = 0
        self.instrumentation = SensorInstrumentation() if instrumentation else None
        self.external_set_hook: Callable[[], None] | None = None

    def check_thresholds(self) -> None:
        """Check the current value against the thresholds."""
        thresholds_mod.check_thresholds(self)

    def update_instrumentation(self, read_value: float) -> None:
        """Record a reading in the debugging statistics, if they are kept."""
        inst = self.instrumentation
        if inst is None:
            return
        if inst.num_collects_good == 0 and inst.num_collects_miss == 0:
            log.info(
                "Sensor %s: Configuration min=%s, max=%s, type=%s, path=%s",
                self.name, self.min_value, self.max_value,
                self.object_type, self.configuration_path,
            )
        if not math.isfinite(read_value):
            if inst.num_streak_misses == 0:
                log.info(
                    "Sensor %s: Missing reading, Reading counts good=%d, miss=%d, "
                    "Prior good streak=%d",
                    self.name, inst.num_collects_good,
                    inst.num_collects_miss, inst.num_streak_greats,
                )
            inst.num_streak_greats = 0
            inst.num_collects_miss += 1
            inst.num_streak_misses += 1
            return
        if inst.num_streak_greats == 0 and inst.num_collects_good != 0:
            log.info(
                "Sensor %s: Recovered reading, Reading counts good=%d, miss=%d, "
                "Prior miss streak=%d",
                self.name, inst.num_collects_good,
                inst.num_collects_miss, inst.num_streak_misses,
            )
        if inst.num_collects_good == 0:
            log.info("Sensor %s: First reading=%s", self.name, read_value)
            inst.min_collected = read_value
            inst.max_collected = read_value
        inst.num_streak_misses = 0
        inst.num_collects_good += 1
        inst.num_streak_greats += 1
        if read_value < inst.min_collected:
            log.info("Sensor %s: Lowest reading=%s", self.name, read_value)
            inst.min_collected = read_value
        if read_value > inst.max_collected:
            log.info("Sensor %s: Highest reading=%s", self.name, read_value)
            inst.max_collected = read_value

    def _manufacturing_mode(self) -> bool:
        return self.power is not None and self.power.manufacturing_mode

    def set_sensor_value(self, new_value: float) -> float:
        """Handle a set of the Value property; return the value to store.

        An outside set overrides the sensor's own readings from then on.
        Raises PropertyAccessDenied when the sensor may not be overridden.
        """
        if not self.internal_set:
            if (
                not self.insecure_override
                and not self.is_sensor_settable
                and not self._manufacturing_mode()
            ):
                raise PropertyAccessDenied("Not allow set property value.")
            self.overridden_state = True
            self.value = new_value
            self.check_thresholds()
            if self.external_set_hook is not None:
                self.external_set_hook()
            return new_value
        if not self.overridden_state:
            return new_value
        return self.value

    def _threshold_setter(
        self, threshold: Threshold, label: str, size: int
    ) -> Callable[[Any, Any], Any]:
        def setter(request: float, _old: float) -> float:
            threshold.value = request
            if self.config_store is not None:
                thresholds_mod.persist_threshold(
                    self.config_store,
                    self.configuration_path,
                    self.object_type,
                    threshold,
                    size,
                    label,
                )
            # New thresholds get checked on the next regular update.
            self.value = _NAN
            return request

        return setter

    def _available_setter(self, requested: bool, old: bool) -> bool:
        if requested == old:
            return old
        if not requested:
            self.update_value(_NAN)
        return requested

    def set_initial_properties(
        self, unit: str, label: str = "", threshold_size: int = 0
    ) -> None:
        """Register and publish the value, threshold and status properties."""
        if self.sensor_interface is None:
            raise RuntimeError(f"sensor {self.name} has no value interface")
        if self.read_state in (PowerState.ON, PowerState.BIOS_POST):
            if self.power is None:
                raise RuntimeError("Power Match Not Created")
            self.power.setup()

        create_association(self.association, self.configuration_path)

        iface = self.sensor_interface
        iface.register_property("Unit", unit)
        iface.register_property("MaxValue", self.max_value)
        iface.register_property("MinValue", self.min_value)
        iface.register_property(
            "Value", self.value, lambda requested, _old: self.set_sensor_value(requested)
        )

        size = len(self.thresholds) if not label else threshold_size
        for threshold in self.thresholds:
            level_prop, alarm_prop = _THRESHOLD_PROPERTIES[
                (threshold.level, threshold.direction)
            ]
            target = (
                self.threshold_interface_critical
                if threshold.level == Level.CRITICAL
                else self.threshold_interface_warning
            )
            if target is None:
                log.info("trying to set uninitialized interface")
                continue
            try:
                target.register_property(
                    level_prop,
                    threshold.value,
                    self._threshold_setter(threshold, label, size),
                )
                target.register_property(alarm_prop, False)
            except ValueError as exc:
                log.error("error registering threshold property: %s", exc)

        for interface, what in (
            (self.sensor_interface, "value"),
            (self.threshold_interface_warning, "warning threshold"),
            (self.threshold_interface_critical, "critical threshold"),
        ):
            if interface is None:
                continue
            try:
                interface.initialize()
            except RuntimeError:
                log.error("error initializing %s interface", what)

        if self.available_interface is None and self.object_server is not None:
            self.available_interface = self.object_server.add_interface(
                iface.object_path, AVAILABLE_INTERFACE_NAME
            )
            self.available_interface.register_property(
                "Available", True, self._available_setter
            )
            self.available_interface.initialize()
        if self.operational_interface is None and self.object_server is not None:
            self.operational_interface = self.object_server.add_interface(
                iface.object_path, OPERATIONAL_INTERFACE_NAME
            )
            self.operational_interface.register_property("Functional", True)
            self.operational_interface.initialize()

    def reading_state_good(self) -> bool:
        """Return whether the power state allows meaningful readings."""
        if self.read_state == PowerState.ALWAYS:
            return True
        if self.power is None:
            raise RuntimeError("Power Match Not Created")
        if self.read_state == PowerState.ON and not self.power.is_power_on():
            return False
        if self.read_state == PowerState.BIOS_POST and (
            not self.power.has_bios_post() or not self.power.is_power_on()
        ):
            return False
        return True

    def mark_functional(self, is_functional: bool) -> None:
        """Publish whether the sensor works; a failed sensor reads NaN."""
        if self.operational_interface is not None:
            self.operational_interface.set_property("Functional", is_functional)
        if is_functional:
            self.err_count = 0
        else:
            self.update_value(_NAN)

    def mark_available(self, is_available: bool) -> None:
        """Publish whether a reading is available."""
        if self.available_interface is not None:
            self.available_interface.set_property("Available", is_available)
            self.err_count = 0

    def increment_error(self) -> None:
        """Count a failed read; mark the sensor failed at the error threshold."""
        if not self.reading_state_good():
            self.mark_available(False)
            return
        if self.err_count >= ERROR_THRESHOLD:
            return
        self.err_count += 1
        if self.err_count == ERROR_THRESHOLD:
            log.error("Sensor %s reading error!", self.name)
            self.mark_functional(False)

    def update_value(self, new_value: float) -> None:
        """Publish a new reading and check thresholds, unless overridden."""
        if self.overridden_state:
            return
        if not self.reading_state_good():
            self.mark_available(False)
            self._update_value_property(_NAN)
            return
        self._update_value_property(new_value)
        self.update_instrumentation(new_value)
        self.check_thresholds()
        if not math.isnan(new_value):
            self.mark_functional(True)
            self.mark_available(True)

    def requires_update(self, old_value: float, new_value: float) -> bool:
        """Return whether a change is large enough to publish."""
        if math.isnan(old_value) or math.isnan(new_value):
            return True
        return abs(old_value - new_value) > self.hysteresis_publish

    def _update_value_property(self, new_value: float) -> None:
        self.internal_set = True
        try:
            if self.requires_update(self.value, new_value):
                self.value = new_value
                if self.sensor_interface is not None:
                    try:
                        self.sensor_interface.set_property("Value", new_value)
                    except KeyError:
                        log.error("error setting property Value to %s", new_value)
        finally:
            self.internal_set = False