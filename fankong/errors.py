#!/usr/bin/env python3
"""
Exception hierarchy for the fan control daemon.

Every failure the daemon reports to the operator derives from
FanControlError, so the entry point can print the cause and exit
without a traceback.
"""


class FanControlError(Exception):
    """Base exception for fan control errors."""
    pass


class ConfigError(FanControlError):
    """Raised when a startup parameter violates a validation constraint."""
    pass


class StartupError(FanControlError):
    """Raised on command-line parsing failures or unexpected arguments."""
    pass


class SensorError(FanControlError):
    """Raised when reading temperature or fan speed from the device fails."""
    pass


class ActuatorError(FanControlError):
    """Raised when writing a fan speed to the device fails."""
    pass


class CancellationError(FanControlError):
    """Raised when the daemon was stopped by a termination signal."""

    def __init__(self, signum: int):
        super().__init__(f"received signal {signum}")
        self.signum = signum
