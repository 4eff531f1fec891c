"""Tests for the sensors.py module."""
import os
import shutil
import signal
import subprocess
import tempfile
import threading
import time
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

from fankong.config import FanConfig
from fankong.errors import ActuatorError, CancellationError, SensorError
from fankong.scheduler import Scheduler
from fankong.sensors import NvidiaSettings


CONFIG = FanConfig(display=":1", xauthority="/run/user/1000/Xauthority")


def fake_process(stdout="", stderr="", returncode=0):
    proc = MagicMock()
    proc.communicate.return_value = (stdout, stderr)
    proc.returncode = returncode
    return proc


class TestNvidiaSettingsReads(unittest.TestCase):
    @patch("fankong.sensors.subprocess.Popen")
    def test_read_core_temperature(self, mock_popen):
        """Test reading GPU core temperature."""
        mock_popen.return_value = fake_process("65\n")

        temp = NvidiaSettings(CONFIG).read_core_temperature()
        self.assertEqual(temp, 65)

        args = mock_popen.call_args[0][0]
        self.assertEqual(args, ["nvidia-settings", "-q", "[gpu:0]/GPUCoreTemp", "-t"])

    @patch("fankong.sensors.subprocess.Popen")
    def test_read_fan_speed(self, mock_popen):
        """Test reading fan target speed."""
        mock_popen.return_value = fake_process("42\n")

        speed = NvidiaSettings(CONFIG).read_fan_speed()
        self.assertEqual(speed, 42)

        args = mock_popen.call_args[0][0]
        self.assertEqual(args, ["nvidia-settings", "-q", "[fan:0]/GPUTargetFanSpeed", "-t"])

    @patch("fankong.sensors.subprocess.Popen")
    def test_display_and_xauthority_in_env(self, mock_popen):
        mock_popen.return_value = fake_process("50\n")

        with patch.dict(os.environ, {"PATH": "/usr/bin", "DISPLAY": ":9"}):
            NvidiaSettings(CONFIG, executable="/opt/nv/nvidia-settings").read_fan_speed()

        kwargs = mock_popen.call_args[1]
        self.assertEqual(kwargs["env"]["DISPLAY"], ":1")
        self.assertEqual(kwargs["env"]["XAUTHORITY"], "/run/user/1000/Xauthority")
        self.assertEqual(kwargs["env"]["PATH"], "/usr/bin")
        self.assertEqual(mock_popen.call_args[0][0][0], "/opt/nv/nvidia-settings")

    @patch("fankong.sensors.subprocess.Popen")
    def test_non_numeric_output(self, mock_popen):
        for output in ("", "\n", "hot\n", "12.5\n"):
            mock_popen.return_value = fake_process(output)
            with self.assertRaises(SensorError):
                NvidiaSettings(CONFIG).read_core_temperature()

    @patch("fankong.sensors.subprocess.Popen")
    def test_nonzero_exit(self, mock_popen):
        mock_popen.return_value = fake_process("", "Unable to init server\n", returncode=1)

        with self.assertRaises(SensorError) as ctx:
            NvidiaSettings(CONFIG).read_fan_speed()
        self.assertIn("Unable to init server", str(ctx.exception))

    @patch("fankong.sensors.subprocess.Popen")
    def test_missing_executable(self, mock_popen):
        mock_popen.side_effect = FileNotFoundError(2, "No such file or directory")

        with self.assertRaises(SensorError):
            NvidiaSettings(CONFIG).read_core_temperature()

    @patch("fankong.sensors.os.killpg")
    @patch("fankong.sensors.subprocess.Popen")
    def test_waits_through_slow_output(self, mock_popen, mock_killpg):
        proc = fake_process()
        proc.communicate.side_effect = [
            subprocess.TimeoutExpired(["nvidia-settings"], 0.1),
            subprocess.TimeoutExpired(["nvidia-settings"], 0.1),
            ("58\n", ""),
        ]
        mock_popen.return_value = proc

        self.assertEqual(NvidiaSettings(CONFIG).read_core_temperature(), 58)
        mock_killpg.assert_not_called()


class TestNvidiaSettingsWrites(unittest.TestCase):
    @patch("fankong.sensors.subprocess.Popen")
    def test_write_fan_speed(self, mock_popen):
        """Test setting the fan speed enables manual control first."""
        mock_popen.return_value = fake_process()

        NvidiaSettings(CONFIG).write_fan_speed(55)

        args = mock_popen.call_args[0][0]
        self.assertEqual(args, [
            "nvidia-settings",
            "-a", "[gpu:0]/GPUFanControlState=1",
            "-a", "[fan:0]/GPUTargetFanSpeed=55",
        ])

    @patch("fankong.sensors.subprocess.Popen")
    def test_write_failure(self, mock_popen):
        mock_popen.return_value = fake_process(returncode=1)

        with self.assertRaises(ActuatorError):
            NvidiaSettings(CONFIG).write_fan_speed(55)

    @patch("fankong.sensors.os.killpg")
    @patch("fankong.sensors.subprocess.Popen")
    def test_finished_write_is_not_cancelled(self, mock_popen, mock_killpg):
        mock_popen.return_value = fake_process()
        scheduler = Scheduler(30)
        scheduler.cancel(signal.SIGTERM)

        NvidiaSettings(CONFIG, canceller=scheduler).write_fan_speed(55)
        mock_killpg.assert_not_called()

    @patch("fankong.sensors.subprocess.Popen")
    def test_restore_auto_control(self, mock_popen):
        mock_popen.return_value = fake_process()

        NvidiaSettings(CONFIG).restore_auto_control()

        args = mock_popen.call_args[0][0]
        self.assertEqual(args, ["nvidia-settings", "-a", "[gpu:0]/GPUFanControlState=0"])


class TestHungTool(unittest.TestCase):
    """Runs a real stand-in executable that never answers."""

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.executable = Path(self.test_dir) / "nvidia-settings"
        self.executable.write_text("#!/bin/sh\nsleep 1000\n")
        self.executable.chmod(0o755)

    def test_cancel_kills_running_tool(self):
        scheduler = Scheduler(30)
        device = NvidiaSettings(CONFIG, executable=str(self.executable), canceller=scheduler)
        timer = threading.Timer(0.3, scheduler.cancel, args=(signal.SIGINT,))
        timer.start()

        start = time.monotonic()
        with self.assertRaises(CancellationError) as ctx:
            device.read_core_temperature()
        timer.join()

        self.assertLess(time.monotonic() - start, 5)
        self.assertEqual(ctx.exception.signum, signal.SIGINT)

    def test_cancel_during_write(self):
        scheduler = Scheduler(30)
        device = NvidiaSettings(CONFIG, executable=str(self.executable), canceller=scheduler)
        timer = threading.Timer(0.3, scheduler.cancel)
        timer.start()

        with self.assertRaises(CancellationError):
            device.write_fan_speed(60)
        timer.join()

    def test_timeout_kills_running_tool(self):
        device = NvidiaSettings(CONFIG, executable=str(self.executable), timeout=0.3)

        start = time.monotonic()
        with self.assertRaises(SensorError) as ctx:
            device.read_fan_speed()

        self.assertLess(time.monotonic() - start, 5)
        self.assertIn("timed out", str(ctx.exception))

    def test_restore_ignores_cancellation_but_is_bounded(self):
        scheduler = Scheduler(30)
        scheduler.cancel()
        device = NvidiaSettings(CONFIG, executable=str(self.executable),
                                timeout=0.3, canceller=scheduler)

        with self.assertRaises(ActuatorError) as ctx:
            device.restore_auto_control()
        self.assertIn("timed out", str(ctx.exception))

    def tearDown(self):
        shutil.rmtree(self.test_dir)


if __name__ == "__main__":
    unittest.main()
