"""
NVIDIA GPU Fan Control Package.

Keeps an NVIDIA GPU near a target temperature by stepping its fan
speed through the nvidia-settings tool.
"""

__version__ = "0.1.0"

# Core components
from .config import ConfigManager, FanConfig, parse_duration
from .errors import (
    ActuatorError, CancellationError, ConfigError, FanControlError,
    SensorError, StartupError,
)
from .sensors import NvidiaSettings
from .controller import Observation, StepController, next_fan_speed
from .scheduler import Scheduler

# Commands
from .commands import SetFanSpeedCommand, RestoreAutoControlCommand

__all__ = [
    "ConfigManager", "FanConfig", "parse_duration",
    "FanControlError", "ConfigError", "StartupError", "SensorError",
    "ActuatorError", "CancellationError",
    "NvidiaSettings",
    "Observation", "StepController", "next_fan_speed",
    "Scheduler",
    "SetFanSpeedCommand", "RestoreAutoControlCommand",
    "__version__"
]
