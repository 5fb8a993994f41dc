"""Fan tachometer sensors with optional presence detection, redundancy and LEDs."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping, MutableMapping
from typing import Any

from hwsensors import thresholds as thresholds_mod
from hwsensors.bus import Interface, ObjectServer, create_association
from hwsensors.power import PowerMonitor
from hwsensors.sensor import SENSOR_FAILED_POLL_TIME_MS, SENSOR_VALUE_INTERFACE, Sensor
from hwsensors.sensor_paths import UNIT_RPMS
from hwsensors.thresholds import Threshold
from hwsensors.utils import ASSOCIATION_INTERFACE, PowerState, read_file

log = logging.getLogger(__name__)

PWM_POLL_MS = 500

FAN_TACH_PATH = "/xyz/openbmc_project/sensors/fan_tach/"
INVENTORY_ROOT = "/xyz/openbmc_project/inventory/"
INVENTORY_ITEM_INTERFACE = "xyz.openbmc_project.Inventory.Item"
WARNING_INTERFACE = "xyz.openbmc_project.Sensor.Threshold.Warning"
CRITICAL_INTERFACE = "xyz.openbmc_project.Sensor.Threshold.Critical"
REDUNDANCY_PATH = "/xyz/openbmc_project/control/FanRedundancy/Tach"
REDUNDANCY_INTERFACE = "xyz.openbmc_project.Control.FanRedundancy"

REDUNDANCY_FULL = "Full"
REDUNDANCY_DEGRADED = "Degraded"
REDUNDANCY_FAILED = "Failed"

LedSetter = Callable[[str, bool], None]


def _log_event(message: str, message_id: str, device: str | None = None) -> None:
    extra: dict[str, Any] = {"redfish_message_id": message_id}
    if device is not None:
        extra["redfish_message_args"] = device
    log.error(message, extra=extra)


def log_fan_inserted(device: str) -> None:
    _log_event("Fan Inserted", "OpenBMC.0.1.FanInserted", device)


def log_fan_removed(device: str) -> None:
    _log_event("Fan Removed", "OpenBMC.0.1.FanRemoved", device)


def log_fan_redundancy_lost() -> None:
    _log_event("Fan Inserted", "OpenBMC.0.1.FanRedundancyLost")


def log_fan_redundancy_restored() -> None:
    _log_event("Fan Removed", "OpenBMC.0.1.FanRedundancyRegained")


class PresenceSensor:
    """Tracks whether a fan is plugged in from the level of its presence line.

    ``level`` is the line's initial raw level, or None when the line could
    not be found, in which case the fan counts as absent.  With
    ``inverted`` the line is active-low.
    """

    def __init__(self, name: str, level: bool | None = None, inverted: bool = False) -> None:
        self.name = name
        self.inverted = inverted
        if level is None:
            log.error("Error requesting gpio for presence sensor %s", name)
            self._status = False
        else:
            self._status = bool(level) != inverted

    def update(self, present: bool) -> None:
        """Record an edge on the line; ``present`` is its new raw level."""
        self._status = bool(present) != self.inverted
        if self._status:
            log_fan_inserted(self.name)
        else:
            log_fan_removed(self.name)

    def get_value(self) -> bool:
        """Return whether the fan is present."""
        return self._status


class RedundancySensor:
    """Publishes fan redundancy: Full, Degraded, or Failed past ``count`` failures."""

    def __init__(
        self,
        count: int,
        children: Iterable[str],
        object_server: ObjectServer,
        sensor_configuration: str,
    ) -> None:
        self.count = count
        self.state = REDUNDANCY_FULL
        self.object_server = object_server
        self.statuses: dict[str, bool] = {}
        self.iface: Interface = object_server.add_interface(REDUNDANCY_PATH, REDUNDANCY_INTERFACE)
        self.association: Interface = object_server.add_interface(
            REDUNDANCY_PATH, ASSOCIATION_INTERFACE
        )
        create_association(self.association, sensor_configuration)
        self.iface.register_property("Collection", list(children))
        self.iface.register_property("Status", REDUNDANCY_FULL)
        self.iface.register_property("AllowedFailures", count % 256)
        self.iface.initialize()

    def update(self, name: str, failed: bool) -> None:
        """Record whether the fan ``name`` has failed and recompute the state."""
        self.statuses[name] = failed
        failed_count = sum(1 for status in self.statuses.values() if status)
        if failed_count > self.count:
            new_state = REDUNDANCY_FAILED
        elif failed_count:
            new_state = REDUNDANCY_DEGRADED
        else:
            new_state = REDUNDANCY_FULL
        if new_state == self.state:
            return
        if self.state == REDUNDANCY_FULL:
            log_fan_redundancy_lost()
        elif new_state == REDUNDANCY_FULL:
            log_fan_redundancy_restored()
        self.state = new_state
        self.iface.set_property("Status", new_state)

    def close(self) -> None:
        """Remove the redundancy interfaces from the object server."""
        self.object_server.remove_interface(self.association)
        self.object_server.remove_interface(self.iface)


class TachSensor(Sensor):
    """A fan speed sensor reading RPM from a hwmon file.

    ``limits`` is ``(min, max)``.  Call ``poll`` repeatedly, waiting the
    number of milliseconds it returns between calls; it returns None once
    the input file is gone.
    """

    def __init__(
        self,
        path: str,
        object_type: str,
        object_server: ObjectServer,
        fan_name: str,
        thresholds: Iterable[Threshold],
        sensor_configuration: str,
        limits: tuple[float, float],
        *,
        presence: PresenceSensor | None = None,
        redundancy: RedundancySensor | None = None,
        power: PowerMonitor | None = None,
        power_state: PowerState = PowerState.ALWAYS,
        led: str | None = None,
        led_setter: LedSetter | None = None,
        config_store: Mapping[str, Mapping[str, MutableMapping[str, Any]]] | None = None,
    ) -> None:
        super().__init__(
            fan_name.replace(" ", "_"),
            thresholds,
            sensor_configuration,
            object_type,
            False,
            limits[1],
            limits[0],
            object_server=object_server,
            power=power,
            read_state=power_state,
            config_store=config_store,
        )
        self.path = path
        self.presence = presence
        self.redundancy = redundancy
        self.led = led
        self.led_setter = led_setter
        self.led_state = False
        self.item_iface: Interface | None = None
        self.item_assoc: Interface | None = None

        object_path = FAN_TACH_PATH + self.name
        self.sensor_interface = object_server.add_interface(object_path, SENSOR_VALUE_INTERFACE)
        if thresholds_mod.has_warning_interface(self.thresholds):
            self.threshold_interface_warning = object_server.add_interface(
                object_path, WARNING_INTERFACE
            )
        if thresholds_mod.has_critical_interface(self.thresholds):
            self.threshold_interface_critical = object_server.add_interface(
                object_path, CRITICAL_INTERFACE
            )
        self.association = object_server.add_interface(object_path, ASSOCIATION_INTERFACE)

        if presence is not None:
            inventory_path = INVENTORY_ROOT + self.name
            self.item_iface = object_server.add_interface(inventory_path, INVENTORY_ITEM_INTERFACE)
            self.item_iface.register_property("PrettyName", "")
            self.item_iface.register_property("Present", True)
            self.item_iface.initialize()
            self.item_assoc = object_server.add_interface(inventory_path, ASSOCIATION_INTERFACE)
            self.item_assoc.register_property(
                "associations", [("sensors", "inventory", object_path)]
            )
            self.item_assoc.initialize()

        self.set_initial_properties(UNIT_RPMS)

    @property
    def object_path(self) -> str:
        """The object path of this sensor."""
        return FAN_TACH_PATH + self.name

    def poll(self) -> int | None:
        """Take one reading; return the delay in ms before the next, or None to stop."""
        missing = False
        poll_time = PWM_POLL_MS
        if self.presence is not None:
            if not self.presence.get_value():
                self.mark_available(False)
                missing = True
                poll_time = SENSOR_FAILED_POLL_TIME_MS
            if self.item_iface is not None:
                self.item_iface.set_property("Present", not missing)

        if not missing:
            reading = read_file(self.path, 1.0)
            if reading is None:
                self.increment_error()
                poll_time = SENSOR_FAILED_POLL_TIME_MS
            else:
                self.raw_value = reading
                self.update_value(reading)

        try:
            with open(self.path, "rb"):
                pass
        except OSError:
            return None
        return poll_time

    def check_thresholds(self) -> None:
        """Check thresholds, report to redundancy and drive the fault LED."""
        status = thresholds_mod.check_thresholds(self)
        if self.redundancy is not None:
            self.redundancy.update(self.object_path, not status)
        cur_led = not status
        if self.led is not None and self.led_state != cur_led:
            self.led_state = cur_led
            if self.led_setter is not None:
                try:
                    self.led_setter(self.led, cur_led)
                except Exception as exc:  # the setter is supplied by the caller
                    log.error("Failed to set LED %s: %s", self.led, exc)

    def close(self) -> None:
        """Remove this sensor's interfaces from the object server."""
        server = self.object_server
        if server is None:
            return
        for interface in (
            self.threshold_interface_warning,
            self.threshold_interface_critical,
            self.sensor_interface,
            self.association,
            self.item_iface,
            self.item_assoc,
            self.available_interface,
            self.operational_interface,
        ):
            server.remove_interface(interface)