"""An in-process object server holding sensor interfaces and their properties.

Each interface lives at an object path under an interface name and carries
named properties.  Properties are set in two ways:

* ``set_property`` is the owner updating its own value.  It never calls a
  setter.
* ``request_set`` is an outside client asking for a change.  It goes
  through the property's setter, which may adjust the value or refuse it.
"""

from __future__ import annotations

import logging
import math
import posixpath
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any

log = logging.getLogger(__name__)

Association = tuple[str, str, str]
Setter = Callable[[Any, Any], Any]


class PropertyAccessDenied(PermissionError):
    """Raised when an outside client may not set a property."""


@dataclass(frozen=True)
class Signal:
    """A signal emitted from an interface."""

    path: str
    interface: str
    name: str
    args: tuple[Any, ...]


def _same(old: Any, new: Any) -> bool:
    if isinstance(old, float) and isinstance(new, float):
        if math.isnan(old) and math.isnan(new):
            return True
    return bool(old == new)


class Interface:
    """A named set of properties at one object path."""

    def __init__(self, object_path: str, interface_name: str) -> None:
        self.object_path = object_path
        self.interface_name = interface_name
        self.initialized = False
        self.signals: list[Signal] = []
        self._values: dict[str, Any] = {}
        self._setters: dict[str, Setter] = {}

    def __repr__(self) -> str:
        return f"Interface({self.object_path!r}, {self.interface_name!r})"

    @property
    def properties(self) -> dict[str, Any]:
        """A copy of the current property values."""
        return dict(self._values)

    def register_property(self, name: str, value: Any, setter: Setter | None = None) -> None:
        """Add a property.

        ``setter`` is called as ``setter(requested, current)`` for outside
        set requests and returns the value to store.  A property without a
        setter is read-only to outside clients.
        """
        if self.initialized:
            raise RuntimeError(f"{self.interface_name} is already initialized")
        if name in self._values:
            raise ValueError(f"property {name} already registered on {self.interface_name}")
        self._values[name] = value
        if setter is not None:
            self._setters[name] = setter

    def get_property(self, name: str) -> Any:
        """Return the current value of a property."""
        try:
            return self._values[name]
        except KeyError:
            raise KeyError(f"no property {name} on {self.interface_name}") from None

    def set_property(self, name: str, value: Any) -> bool:
        """Store a new value; return True if it differs from the old one."""
        if name not in self._values:
            raise KeyError(f"no property {name} on {self.interface_name}")
        changed = not _same(self._values[name], value)
        self._values[name] = value
        return changed

    def request_set(self, name: str, value: Any) -> Any:
        """Handle an outside request to set a property; return the stored value."""
        if name not in self._values:
            raise KeyError(f"no property {name} on {self.interface_name}")
        setter = self._setters.get(name)
        if setter is None:
            raise PropertyAccessDenied(f"property {name} is read-only")
        stored = setter(value, self._values[name])
        self._values[name] = stored
        return stored

    def initialize(self) -> None:
        """Publish the interface; no properties may be added afterwards."""
        if self.initialized:
            raise RuntimeError(f"{self.interface_name} is already initialized")
        self.initialized = True

    def emit_signal(self, signal: str, *args: Any) -> Signal:
        """Record and return a signal sent from this interface."""
        record = Signal(self.object_path, self.interface_name, signal, args)
        self.signals.append(record)
        return record


class ObjectServer:
    """Holds interfaces keyed by object path and interface name."""

    def __init__(self) -> None:
        self._interfaces: dict[tuple[str, str], Interface] = {}

    def __iter__(self) -> Iterator[Interface]:
        return iter(list(self._interfaces.values()))

    def __len__(self) -> int:
        return len(self._interfaces)

    def add_interface(self, path: str, name: str) -> Interface:
        """Create an interface; raise ValueError if one already exists there."""
        key = (path, name)
        if key in self._interfaces:
            raise ValueError(f"interface {name} already exists at {path}")
        interface = Interface(path, name)
        self._interfaces[key] = interface
        return interface

    def remove_interface(self, interface: Interface | None) -> bool:
        """Remove an interface; return False if it was not held here."""
        if interface is None:
            return False
        key = (interface.object_path, interface.interface_name)
        if self._interfaces.get(key) is not interface:
            return False
        del self._interfaces[key]
        return True

    def get_interface(self, path: str, name: str) -> Interface:
        """Return the interface at ``path`` named ``name``."""
        try:
            return self._interfaces[(path, name)]
        except KeyError:
            raise KeyError(f"no interface {name} at {path}") from None


def create_association(association: Interface | None, config_path: str) -> None:
    """Associate a sensor with the chassis that holds its configuration."""
    if association is None:
        return
    parent = posixpath.dirname(config_path)
    association.register_property("Associations", [("chassis", "all_sensors", parent)])
    association.initialize()


def set_inventory_association(
    association: Interface | None,
    path: str,
    chassis_paths: Iterable[str] = (),
) -> None:
    """Associate a sensor with its inventory item and any extra chassis."""
    if association is None:
        return
    parent = posixpath.dirname(path)
    associations: list[Association] = [
        ("inventory", "sensors", parent),
        ("chassis", "all_sensors", parent),
    ]
    associations.extend(("chassis", "all_sensors", chassis) for chassis in chassis_paths)
    association.register_property("Associations", associations)
    association.initialize()


def filter_sensor_configuration(
    managed_objects: Mapping[str, Mapping[str, Any]], sensor_type: str
) -> dict[str, Mapping[str, Any]]:
    """Return the objects having an interface whose name starts with ``sensor_type``."""
    return {
        path: interfaces
        for path, interfaces in managed_objects.items()
        if any(name.startswith(sensor_type) for name in interfaces)
    }