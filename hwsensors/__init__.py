"""Hardware sensor model: hwmon readings, thresholds with hysteresis, fan tachometers and redundancy."""

__version__ = "0.1.0"