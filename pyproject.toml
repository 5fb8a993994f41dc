[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "hwsensors"
version = "0.1.0"
description = "Hardware sensor model with thresholds, hysteresis, fan tachometers and redundancy tracking"
requires-python = ">=3.10"
dependencies = []
keywords = ["sensors", "hwmon", "thresholds", "fan", "tachometer", "monitoring", "bmc"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Monitoring",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["hwsensors"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
