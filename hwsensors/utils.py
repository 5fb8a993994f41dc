"""Helpers for reading hwmon files and sensor configuration."""

from __future__ import annotations

import enum
import logging
import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from hwsensors.variants import variant_to_double, variant_to_string, variant_to_unsigned

log = logging.getLogger(__name__)

JSON_STORE = "/var/configuration/flattened.json"
INVENTORY_PATH = "/xyz/openbmc_project/inventory"
ENTITY_MANAGER_NAME = "xyz.openbmc_project.EntityManager"
CPU_INVENTORY_PATH = "/xyz/openbmc_project/inventory/system/chassis/motherboard"

MAPPER_BUS_NAME = "xyz.openbmc_project.ObjectMapper"
MAPPER_PATH = "/xyz/openbmc_project/object_mapper"
MAPPER_INTERFACE = "xyz.openbmc_project.ObjectMapper"
MAPPER_SUBTREE = "GetSubTree"

PROPERTIES_INTERFACE = "org.freedesktop.DBus.Properties"

POWER_BUS_NAME = "xyz.openbmc_project.State.Host"
POWER_INTERFACE = "xyz.openbmc_project.State.Host"
POWER_PATH = "/xyz/openbmc_project/state/host0"
POWER_PROPERTY = "CurrentHostState"

POST_BUS_NAME = "xyz.openbmc_project.State.OperatingSystem"
POST_INTERFACE = "xyz.openbmc_project.State.OperatingSystem.Status"
POST_PATH = "/xyz/openbmc_project/state/os"
POST_PROPERTY = "OperatingSystemState"

ASSOCIATION_INTERFACE = "xyz.openbmc_project.Association.Definitions"


class PowerState(enum.Enum):
    """When a sensor's readings are meaningful."""

    ON = "On"
    BIOS_POST = "BiosPost"
    ALWAYS = "Always"


_LEADING_FLOAT = re.compile(
    r"\s*([+-]?(?:inf(?:inity)?|nan|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?))",
    re.IGNORECASE,
)


def _parse_leading_float(text: str) -> float:
    """Parse the number at the start of ``text``, ignoring what follows it."""
    match = _LEADING_FLOAT.match(text)
    if match is None:
        raise ValueError(f"no number in {text!r}")
    return float(match.group(1))


def open_and_read(path: str | os.PathLike[str]) -> str | None:
    """Return the first line of a file without its newline, or None if unreadable."""
    try:
        with open(path, encoding="utf-8", errors="replace") as handle:
            line = handle.readline()
    except OSError:
        return None
    return line.rstrip("\n")


def get_full_hwmon_file_path(
    directory: str, base_name: str, permit_set: set[str] | frozenset[str]
) -> str | None:
    """Return the ``_input`` file path for ``base_name`` if it is permitted.

    An empty ``permit_set`` permits everything.  Otherwise the contents of
    the matching ``_label`` file, or the base name when there is none, must
    be in the set.
    """
    input_path = f"{directory}/{base_name}_input"
    if not permit_set:
        return input_path
    search = open_and_read(f"{directory}/{base_name}_label")
    if search is None:
        search = base_name
    return input_path if search in permit_set else None


def get_permit_set(config: Mapping[str, Any]) -> set[str]:
    """Return the labels a configuration permits; empty means all."""
    labels = config.get("Labels")
    if labels is None:
        return set()
    if not isinstance(labels, (list, tuple)) or not all(isinstance(x, str) for x in labels):
        log.error("PermitList does not contain a list, wrong variant type.")
        return set()
    return set(labels)


def find_files(
    dir_path: str | os.PathLike[str], pattern: str, symlink_depth: int = 1
) -> list[Path]:
    """Return the files below ``dir_path`` whose path matches ``pattern``.

    Directory symlinks are followed.  Directories are descended into only
    while their depth below ``dir_path`` (children being depth 0) is less
    than ``symlink_depth``.  Raises FileNotFoundError if ``dir_path`` does
    not exist.
    """
    root = Path(dir_path)
    if not root.exists():
        raise FileNotFoundError(str(root))
    search = re.compile(pattern)
    found: list[Path] = []

    def walk(directory: Path, depth: int) -> None:
        for entry in sorted(directory.iterdir()):
            if entry.is_dir():
                if depth < symlink_depth:
                    walk(entry, depth + 1)
            elif search.search(str(entry)):
                found.append(entry)

    walk(root, 0)
    return found


def split_file_name(path: str | os.PathLike[str]) -> tuple[str, str, str] | None:
    """Split a sysfs name ``<type><number>_<item>`` into its three parts."""
    name = os.path.basename(os.fspath(path))
    number_match = re.search(r"\d", name)
    number_pos = number_match.start() if number_match else len(name)
    item_pos = name.find("_")
    if item_pos < 0:
        item_pos = len(name)
    if number_pos > 0 and item_pos > number_pos and len(name) > item_pos:
        return name[:number_pos], name[number_pos:item_pos], name[item_pos + 1 :]
    return None


def read_file(path: str | os.PathLike[str], scale_factor: float) -> float | None:
    """Return the number on the first line of a file divided by ``scale_factor``."""
    line = open_and_read(path)
    if line is None:
        return None
    try:
        return _parse_leading_float(line) / scale_factor
    except ValueError:
        return None


def find_limits(
    limits: tuple[float, float], config: Mapping[str, Any] | None
) -> tuple[float, float]:
    """Return ``(min, max)`` limits, replaced by MinReading/MaxReading if present."""
    low, high = limits
    if config is None:
        return low, high
    if "MinReading" in config:
        low = variant_to_double(config["MinReading"])
    if "MaxReading" in config:
        high = variant_to_double(config["MaxReading"])
    return low, high


def load_variant(data: Mapping[str, Any], key: str, kind: type) -> Any:
    """Return ``data[key]`` converted to ``kind`` (float, int or str).

    ``int`` gives an unsigned 32-bit value.  Raises ValueError when the key
    is missing or the value cannot be converted, TypeError for other kinds.
    """
    converters = {float: variant_to_double, int: variant_to_unsigned, str: variant_to_string}
    converter = converters.get(kind)
    if converter is None:
        raise TypeError(f"Type Not Implemented: {kind!r}")
    if key not in data:
        log.error("Configuration missing %s", key)
        raise ValueError(f"Key Missing: {key}")
    return converter(data[key])


def parse_power_state(text: str, default: PowerState = PowerState.ALWAYS) -> PowerState:
    """Return the PowerState named by ``text``, or ``default`` if unknown."""
    try:
        return PowerState(text)
    except ValueError:
        return default