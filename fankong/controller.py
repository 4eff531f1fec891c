#!/usr/bin/env python3
"""
Fan control logic module.

Moves the GPU fan one percent per tick toward the target temperature,
keeping it inside the configured speed range.
"""

import logging
from dataclasses import dataclass

from .commands import SetFanSpeedCommand
from .config import FanConfig


@dataclass(frozen=True)
class Observation:
    """Readings taken at the start of a tick."""
    temperature: int
    fan_speed: int


def next_fan_speed(temperature: int, fan_speed: int, config: FanConfig) -> int:
    """
    Compute the fan speed for the next tick.

    Out-of-range speeds are pulled back to the nearest bound first,
    whatever the temperature. Inside the range the speed moves by one
    step toward the target temperature and never crosses a bound.
    """
    if fan_speed < config.min_fan_speed:
        return config.min_fan_speed
    if fan_speed > config.max_fan_speed:
        return config.max_fan_speed
    if temperature > config.target_temp and fan_speed < config.max_fan_speed:
        return fan_speed + 1
    if temperature < config.target_temp and fan_speed > config.min_fan_speed:
        return fan_speed - 1
    return fan_speed


class StepController:
    """
    Steers one GPU fan toward the target temperature.

    Holds no state between ticks: the current fan speed lives in the
    driver and is read back on every tick.
    """

    def __init__(self, config: FanConfig, device, dry_run: bool = False):
        """Initialize the controller with a validated config and a device."""
        self.config = config
        self.device = device
        self.dry_run = dry_run

    def observe(self) -> Observation:
        """Read temperature, then fan speed. A failed read skips the rest."""
        temperature = self.device.read_core_temperature()
        fan_speed = self.device.read_fan_speed()
        return Observation(temperature, fan_speed)

    def tick(self) -> None:
        """
        Run one control step.

        SensorError and ActuatorError propagate unchanged; nothing is
        written unless both reads succeeded.
        """
        obs = self.observe()
        logging.info("%d°C / %d%%", obs.temperature, obs.fan_speed)

        speed = next_fan_speed(obs.temperature, obs.fan_speed, self.config)
        if speed == obs.fan_speed:
            return

        SetFanSpeedCommand(self.device, obs.fan_speed, speed, dry_run=self.dry_run).execute()
