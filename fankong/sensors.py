#!/usr/bin/env python3
"""
Device access module.

Reads GPU temperature and fan speed, and sets the fan speed, by running
the nvidia-settings tool against a given X display.
"""

import logging
import os
import signal
import subprocess
import time
from typing import List, Optional

from .config import DEFAULT_NVIDIA_SETTINGS, FanConfig
from .errors import ActuatorError, CancellationError, SensorError

CORE_TEMP_ATTR = "[gpu:0]/GPUCoreTemp"
FAN_CONTROL_STATE_ATTR = "[gpu:0]/GPUFanControlState"
TARGET_FAN_SPEED_ATTR = "[fan:0]/GPUTargetFanSpeed"

# How often a running command checks for cancellation (seconds)
POLL_INTERVAL = 0.1
# Bound on the restore call, which runs after cancellation
RESTORE_TIMEOUT = 10.0


class NvidiaSettings:
    """
    Thin wrapper around the nvidia-settings command line tool.

    Every call runs the tool with DISPLAY and XAUTHORITY taken from the
    configuration, on top of the daemon's own environment. Calls block
    until the tool exits, the optional timeout expires, or `canceller`
    (an object with `cancelled` and `signum`, such as the Scheduler)
    reports a stop, in which case the tool is killed and
    CancellationError is raised.
    """

    def __init__(self, config: FanConfig, executable: str = DEFAULT_NVIDIA_SETTINGS,
                 timeout: Optional[float] = None, canceller=None):
        """Initialize the wrapper for the display named in config."""
        self.config = config
        self.executable = executable
        self.timeout = timeout
        self.canceller = canceller

    def read_core_temperature(self) -> int:
        """Return GPU 0 core temperature in °C."""
        return self._query_int(CORE_TEMP_ATTR)

    def read_fan_speed(self) -> int:
        """Return fan 0 target speed in percent."""
        return self._query_int(TARGET_FAN_SPEED_ATTR)

    def write_fan_speed(self, speed: int) -> None:
        """Enable manual fan control and set fan 0 target speed."""
        self._run(ActuatorError,
                  *self._assignments(f"{FAN_CONTROL_STATE_ATTR}=1",
                                     f"{TARGET_FAN_SPEED_ATTR}={speed}"))

    def restore_auto_control(self) -> None:
        """
        Hand fan control back to the driver.

        Runs during shutdown, so it ignores cancellation and is bounded
        by the command timeout or RESTORE_TIMEOUT instead.
        """
        self._run(ActuatorError,
                  *self._assignments(f"{FAN_CONTROL_STATE_ATTR}=0"),
                  cancellable=False,
                  timeout=self.timeout or RESTORE_TIMEOUT)

    def _query_int(self, attr: str) -> int:
        out = self._run(SensorError, "-q", attr, "-t")
        value = out.strip()
        try:
            return int(value)
        except ValueError:
            raise SensorError(f"unexpected output for {attr}: {value!r}") from None

    @staticmethod
    def _assignments(*assignments: str) -> List[str]:
        args: List[str] = []
        for assignment in assignments:
            args.extend(["-a", assignment])
        return args

    def _cancelled(self) -> bool:
        return self.canceller is not None and self.canceller.cancelled

    def _run(self, error_cls, *args: str, cancellable: bool = True,
             timeout: Optional[float] = None) -> str:
        cmd = [self.executable, *args]
        if timeout is None:
            timeout = self.timeout
        env = dict(os.environ)
        env["DISPLAY"] = self.config.display
        env["XAUTHORITY"] = self.config.xauthority

        logging.debug("Running cmd: %s", " ".join(cmd))
        try:
            proc = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE,
                                    text=True, env=env, start_new_session=True)
        except OSError as e:
            raise error_cls(f"{' '.join(cmd)}: {e}") from e

        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            wait = POLL_INTERVAL
            if deadline is not None:
                wait = max(0.0, min(wait, deadline - time.monotonic()))
            try:
                stdout, stderr = proc.communicate(timeout=wait)
                break
            except subprocess.TimeoutExpired:
                pass

            # a command that already exited is never reported as cancelled
            if cancellable and self._cancelled():
                self._kill(proc)
                logging.debug("Killed cmd on cancellation: %s", " ".join(cmd))
                raise CancellationError(self.canceller.signum)
            if deadline is not None and time.monotonic() >= deadline:
                self._kill(proc)
                raise error_cls(f"{' '.join(cmd)}: timed out after {timeout}s")

        if proc.returncode != 0:
            stderr = (stderr or "").strip()
            raise error_cls(f"{' '.join(cmd)}: {stderr or 'no error output'} "
                            f"(exit status {proc.returncode})")

        return stdout

    @staticmethod
    def _kill(proc) -> None:
        # the tool runs in its own session; take down anything it spawned
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        proc.communicate()
