#!/usr/bin/env python3
"""
Configuration for the fan control daemon.

Holds the validated FanConfig the controller runs with, and a
ConfigManager that loads optional settings from a YAML file so the
command line only has to override what differs.
"""

import math
import os
import re
from dataclasses import dataclass
from typing import Any, Optional

import yaml

from .errors import ConfigError

DEFAULT_INTERVAL = 30.0
DEFAULT_TARGET_TEMP = 60
DEFAULT_MIN_FAN_SPEED = 30
DEFAULT_MAX_FAN_SPEED = 100
DEFAULT_NVIDIA_SETTINGS = "nvidia-settings"

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(value: Any) -> float:
    """
    Parse a duration into seconds.

    Accepts plain numbers (seconds) and unit strings such as "30s",
    "1m30s" or "500ms". A leading sign is allowed so that negative and
    zero durations reach validation instead of failing here.
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            raise ValueError(f"invalid duration: {value!r}")
        return float(value)

    text = str(value).strip()
    sign = 1.0
    if text[:1] in ("+", "-"):
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]
    if not text:
        raise ValueError(f"invalid duration: {value!r}")

    try:
        seconds = float(text)
    except ValueError:
        pass
    else:
        if not math.isfinite(seconds):
            raise ValueError(f"invalid duration: {value!r}")
        return sign * seconds

    total = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(text):
        raise ValueError(f"invalid duration: {value!r}")
    return sign * total


@dataclass(frozen=True)
class FanConfig:
    """Validated parameters for one GPU fan.

    - display: X display the nvidia-settings tool talks to
    - xauthority: X authority file granting access to that display
    - interval: seconds between control ticks
    - target_temp: core temperature (°C) the controller steers toward
    - min_fan_speed / max_fan_speed: allowed fan speed range in percent
    """
    display: str
    xauthority: str
    interval: float = DEFAULT_INTERVAL
    target_temp: int = DEFAULT_TARGET_TEMP
    min_fan_speed: int = DEFAULT_MIN_FAN_SPEED
    max_fan_speed: int = DEFAULT_MAX_FAN_SPEED

    def validate(self) -> None:
        """Raise ConfigError describing the first constraint that fails."""
        if not self.display:
            raise ConfigError("display is required")

        if not self.xauthority:
            raise ConfigError("xauthority is required")

        if self.interval <= 0:
            raise ConfigError("incorrect value to interval")

        if self.target_temp <= 0:
            raise ConfigError("incorrect value to target temp")

        if not 0 < self.min_fan_speed <= 100:
            raise ConfigError("incorrect value to min fan speed")

        if not 0 < self.max_fan_speed <= 100:
            raise ConfigError("incorrect value to max fan speed")

        if self.min_fan_speed > self.max_fan_speed:
            raise ConfigError("max fan speed must be greater than min fan speed")


class ConfigManager:
    """
    Loads and exposes settings from an optional YAML file.
    Supports reloading configuration at runtime.
    """

    def __init__(self, config_path: Optional[str] = None):
        """Initialize the configuration manager with a config file path."""
        self.config_path = config_path
        self._config = {}

        if config_path:
            self.reload()

    def reload(self) -> None:
        """Reload configuration from YAML file."""
        if not self.config_path or not os.path.exists(self.config_path):
            raise ConfigError(f"Configuration file not found: {self.config_path}")

        try:
            with open(self.config_path, "r") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Error loading configuration: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(f"Error loading configuration: {self.config_path} must contain a mapping")
        self._config = data

    @property
    def display(self) -> str:
        """X display for nvidia-settings."""
        return self._str("display", "")

    @property
    def xauthority(self) -> str:
        """X authority file for nvidia-settings."""
        return self._str("xauthority", "")

    @property
    def interval(self) -> float:
        """Seconds between control ticks."""
        return self._duration("interval", DEFAULT_INTERVAL)

    @property
    def target_temp(self) -> int:
        """Target GPU core temperature (°C)."""
        return self._int("target_temp", DEFAULT_TARGET_TEMP)

    @property
    def min_fan_speed(self) -> int:
        """Lowest fan speed the controller will settle at (%)."""
        return self._int("min_fan_speed", DEFAULT_MIN_FAN_SPEED)

    @property
    def max_fan_speed(self) -> int:
        """Highest fan speed the controller will drive to (%)."""
        return self._int("max_fan_speed", DEFAULT_MAX_FAN_SPEED)

    @property
    def nvidia_settings(self) -> str:
        """Path or name of the nvidia-settings executable."""
        return self._str("nvidia_settings", DEFAULT_NVIDIA_SETTINGS)

    @property
    def command_timeout(self) -> Optional[float]:
        """Upper bound for a single nvidia-settings call, or None."""
        if self._config.get("command_timeout") is None:
            return None
        return self._duration("command_timeout", None)

    @property
    def log_file(self) -> Optional[str]:
        """Log file for daemon output, None for stdout only."""
        return self._str("log_file", None)

    @property
    def log_level(self) -> str:
        return self._str("log_level", "INFO")

    @property
    def restore_on_exit(self) -> bool:
        """Hand the fan back to the driver on shutdown."""
        return bool(self._config.get("restore_on_exit", False))

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by key."""
        return self._config.get(key, default)

    def _str(self, key: str, default: Optional[str]) -> Optional[str]:
        value = self._config.get(key)
        if value is None:
            return default
        if not isinstance(value, str):
            raise ConfigError(f"{key} must be a string, got {value!r}")
        return value

    def _int(self, key: str, default: int) -> int:
        value = self._config.get(key, default)
        if isinstance(value, bool):
            raise ConfigError(f"{key} must be an integer, got {value!r}")
        try:
            return int(value)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"{key} must be an integer, got {value!r}") from e

    def _duration(self, key: str, default: Optional[float]) -> Optional[float]:
        value = self._config.get(key, default)
        try:
            return parse_duration(value)
        except ValueError as e:
            raise ConfigError(f"{key}: {e}") from e
