# hwsensors

A library that models hardware sensors the way a management controller
publishes them. It reads hwmon-style sysfs files and handles warning and
critical thresholds with hysteresis. It can delay low-threshold assertions
around power transitions. It also provides fan tachometer sensors with
presence detection, a fault LED hook and fan redundancy tracking. All
published state lives in an in-process object server that you can inspect.

The package has no dependencies outside the standard library.

## Installation

```
pip install hwsensors
```

To run the tests:

```
pip install "hwsensors[test]"
pytest
```

## Modules

### `hwsensors.variants`

Converts configuration values, which are strings, lists of strings, numbers
or booleans:

- `variant_to_double` converts to a float.
- `variant_to_int` converts to a 32-bit signed integer, truncating
  fractions.
- `variant_to_unsigned` converts to a 32-bit unsigned integer, wrapping
  negatives.
- `variant_to_string` converts to text. Integers are written in decimal,
  booleans as `1`/`0`, and floats with six decimal places.

Values that cannot be converted raise `ValueError`.

### `hwsensors.sensor_paths`

- `get_path_for_units` maps a unit such as `"RPMS"`, or its full name, to
  a path segment such as `"fan_tach"`. Unknown units give `""`.
- `escape_path_for_dbus` replaces each run of characters outside
  `[a-zA-Z0-9_/]` with `_`.
- The `UNIT_*` constants hold the full unit names.

### `hwsensors.utils`

Sysfs helpers:

- `open_and_read` returns the first line of a file, or `None`.
- `read_file` returns the leading number of the first line divided by a
  scale factor, or `None`.
- `split_file_name` splits `fan1_input` into `("fan", "1", "input")`.
- `find_files` matches a regular expression against paths below a
  directory, down to a given depth. It raises `FileNotFoundError` if the
  directory is missing.
- `get_full_hwmon_file_path` and `get_permit_set` filter sensors by their
  `Labels` configuration.

Configuration helpers:

- `load_variant(data, key, kind)` converts a value with `kind` of `float`,
  `int` or `str`.
- `find_limits` applies `MinReading`/`MaxReading` to a `(min, max)` pair.
- `parse_power_state` maps `"On"`, `"BiosPost"` or `"Always"` to the
  `PowerState` enum.

### `hwsensors.bus`

An in-process object model:

- `ObjectServer` holds `Interface` objects keyed by object path and
  interface name. It provides `add_interface`, `remove_interface` and
  `get_interface`.
- `Interface.register_property` adds a property, with an optional setter.
- `set_property` is an update by the owner. It returns whether the value
  changed.
- `request_set` is a request from an outside client. It goes through the
  setter. A property without a setter, or a setter that raises
  `PropertyAccessDenied`, refuses the request.
- `emit_signal` records a `Signal` in `Interface.signals`.
- `create_association` and `set_inventory_association` register
  association properties.
- `filter_sensor_configuration` selects the configuration objects that have
  an interface starting with a given type.

### `hwsensors.power`

`PowerMonitor` tracks host power, BIOS POST and manufacturing mode.

- Feed it state changes through `on_host_state_changed`,
  `on_post_state_changed` and `on_special_mode_changed`.
- A power-on takes effect after a delay, 10 s by default. A power-off
  takes effect at once.
- Optional query callables supply the initial states on `setup()`. A
  failing query is retried.
- `is_power_on()` and `has_bios_post()` raise `RuntimeError` before
  `setup()`.
- Delays run on daemon `threading.Timer`s unless you pass a `scheduler`.

### `hwsensors.thresholds`

Threshold types:

- `Threshold`, `Level` (`WARNING`, `CRITICAL`) and `Direction` (`HIGH`,
  `LOW`).

Parsing:

- `parse_thresholds_from_config` reads `*Thresholds*` configuration
  entries, optionally filtered by label or index. It raises `ValueError`
  on a malformed entry.
- `parse_thresholds_from_attr` reads the hwmon `min`/`max`/`lcrit`/`crit`
  (or `average_min`/`average_max`) files beside an input file.

Checking and asserting:

- `check_thresholds` applies Schmitt-trigger logic. It returns `False` if
  a critical threshold is asserted.
- `assert_thresholds` sets the alarm property and emits
  `ThresholdAsserted` when the property changes.
- `check_thresholds_power_delay` uses a `ThresholdTimer` to delay low
  assertions, by 5 s by default.

Other functions:

- `update_thresholds` republishes threshold values.
- `persist_threshold` writes a changed threshold back into a
  configuration dictionary.
- `has_warning_interface` and `has_critical_interface` report which levels
  are present.

### `hwsensors.sensor`

The `Sensor` base class covers:

- value publication with publish hysteresis (`update_value`,
  `requires_update`);
- error counting, with a sensor marked non-functional after 5 errors
  (`increment_error`);
- the availability and functional-state interfaces;
- power-state gating (`reading_state_good`);
- external overrides through the `Value` setter (`set_sensor_value`).

An external override is refused with `PropertyAccessDenied` unless one of
these holds:

- the sensor is settable;
- `insecure_override` is set;
- the `PowerMonitor` reports manufacturing mode.

`SensorInstrumentation` keeps optional reading statistics.

### `hwsensors.tach`

`TachSensor` is a fan speed sensor that reads RPM from a file.

- Call `poll()` repeatedly. It returns the delay in milliseconds before
  the next call: 500 normally, 5000 after an error or while the fan is
  absent. It returns `None` once the input file is gone.
- Threshold changes are reported to an optional `RedundancySensor`.
- Threshold changes drive an optional fault LED through a `led_setter`
  callable.
- `close()` removes the sensor's interfaces.

`PresenceSensor` holds the presence state derived from a line level. Pass
new levels to `update()`.

`RedundancySensor` publishes `Full`, `Degraded` or `Failed` depending on
how many fans have failed compared with the allowed count.

## Example

```python
from hwsensors.bus import ObjectServer
from hwsensors.tach import TachSensor
from hwsensors.thresholds import Direction, Level, Threshold

with open("fan1_input", "w") as f:
    f.write("10000\n")

server = ObjectServer()
fan = TachSensor(
    "fan1_input",
    "xyz.openbmc_project.Configuration.AspeedFan",
    server,
    "fan 1",
    [Threshold(Level.CRITICAL, Direction.LOW, 1000.0)],
    "/xyz/openbmc_project/inventory/system/board/fan_config",
    (0.0, 12000.0),
)
print(fan.poll())   # 500
print(fan.value)    # 10000.0
iface = server.get_interface(
    "/xyz/openbmc_project/sensors/fan_tach/fan_1",
    "xyz.openbmc_project.Sensor.Value",
)
print(iface.get_property("Value"))  # 10000.0
fan.close()
```

## What this package does not do

- It does not connect to a system message bus. `ObjectServer` and
  `Interface` live in the process, and signals are only recorded on the
  interface.
- It does not access GPIO lines. Presence levels are passed to
  `PresenceSensor`.
- It does not switch LEDs itself. It calls the `led_setter` you supply.
- It runs no event loop and provides no command or daemon. You call
  `poll()` and feed state changes to `PowerMonitor` yourself.
- Threshold persistence writes into a dictionary you provide, not into an
  external configuration service.