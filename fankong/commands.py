#!/usr/bin/env python3
"""
Command pattern implementation for fan control actions.

Defines the writes the daemon issues to the GPU.
"""

import logging
from abc import ABC, abstractmethod


class Command(ABC):
    """Base command interface for the Command pattern."""

    @abstractmethod
    def execute(self) -> None:
        """Execute the command."""
        pass


class SetFanSpeedCommand(Command):
    """Command to set the GPU fan speed."""

    def __init__(self, device, old_speed: int, new_speed: int, dry_run: bool = False):
        """
        Initialize the command.

        Args:
            device: Object providing write_fan_speed(percent)
            old_speed: Fan speed read at the start of the tick (%)
            new_speed: Fan speed to set (%)
            dry_run: If True, log the transition without touching the device
        """
        self.device = device
        self.old_speed = old_speed
        self.new_speed = new_speed
        self.dry_run = dry_run

    def execute(self) -> None:
        """Write the new speed; ActuatorError propagates to the caller."""
        if self.dry_run:
            logging.info("fan %d%% -> %d%% (dry run)", self.old_speed, self.new_speed)
            return

        self.device.write_fan_speed(self.new_speed)
        logging.info("fan %d%% -> %d%%", self.old_speed, self.new_speed)


class RestoreAutoControlCommand(Command):
    """Command to hand fan control back to the driver."""

    def __init__(self, device):
        self.device = device

    def execute(self) -> None:
        self.device.restore_auto_control()
        logging.info("Fan control returned to the driver")
