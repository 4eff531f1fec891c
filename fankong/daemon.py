#!/usr/bin/env python3
"""fankong - NVIDIA GPU fan control daemon

Samples the GPU core temperature through nvidia-settings and nudges the
fan speed one percent per interval toward a target temperature, inside a
configured speed range.

Features:
- Settings from command-line flags, an optional YAML file, or both.
- Out-of-range fan speeds are pulled back into range on the next tick.
- No write when the computed speed equals the current one.
- Clean shutdown on SIGINT/SIGTERM, optionally handing the fan back
  to the driver.

Exit status is 0 after a signal-driven shutdown and 1 on any error.
"""

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .commands import RestoreAutoControlCommand
from .config import ConfigManager, FanConfig, parse_duration
from .controller import StepController
from .errors import CancellationError, ConfigError, FanControlError, StartupError
from .scheduler import Scheduler
from .sensors import NvidiaSettings

EXIT_OK = 0
EXIT_ERROR = 1

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that raises StartupError instead of exiting with status 2."""

    def error(self, message):
        raise StartupError(message)


def _duration(value: str) -> float:
    try:
        return parse_duration(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from None


def setup_logging(log_file_path: Optional[str] = None, log_level_str: str = "INFO"):
    """Configure logging system for console and optional file output."""
    log_level = getattr(logging, log_level_str.upper(), logging.INFO)

    # stdout keeps the log in the journal when run under systemd
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file_path:
        handlers.append(logging.FileHandler(log_file_path))

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s [%(levelname)s] %(module)s: %(message)s',
        datefmt='%H:%M:%S',
        handlers=handlers,
        force=True,
    )
    logging.debug(f"Logging initialized at level {log_level_str.upper()}")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Flags left unset are None so that values from the config file can
    fill them in. Positional and unknown arguments raise StartupError.
    """
    parser = ArgumentParser(
        prog="fankong",
        description="NVIDIA GPU fan control daemon.",
    )
    parser.add_argument("--display", help="X display nvidia-settings connects to (e.g. :0).")
    parser.add_argument("--xauthority", help="X authority file for that display.")
    parser.add_argument("--interval", type=_duration,
                        help="Time between adjustments, e.g. 30s or 1m (default: 30s).")
    parser.add_argument("--target-temp", type=int,
                        help="Target GPU core temperature in °C (default: 60).")
    parser.add_argument("--min-fan-speed", type=int,
                        help="Minimum fan speed in percent (default: 30).")
    parser.add_argument("--max-fan-speed", type=int,
                        help="Maximum fan speed in percent (default: 100).")
    parser.add_argument("--config", default=None,
                        help="Path to YAML configuration file. If not provided, searches in standard locations.")
    parser.add_argument("--nvidia-settings", default=None,
                        help="nvidia-settings executable (default: nvidia-settings).")
    parser.add_argument("--command-timeout", type=_duration, default=None,
                        help="Give up on an nvidia-settings call after this long.")
    parser.add_argument("--log-file", default=None, help="Also write the log to this file.")
    parser.add_argument("--log-level", default=None, choices=LOG_LEVELS,
                        help="Set the logging level (default: INFO).")
    parser.add_argument("--dry-run", action="store_true",
                        help="Log fan speed changes without applying them.")
    parser.add_argument("--restore-on-exit", action="store_true", default=None,
                        help="Return fan control to the driver when stopped by a signal.")
    parser.add_argument("--no-restore-on-exit", dest="restore_on_exit", action="store_false", default=None,
                        help="Leave the fan under manual control on exit, overriding the config file.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    args, extra = parser.parse_known_args(argv)
    if extra:
        raise StartupError(f"cannot pass argument: {' '.join(extra)}")
    return args


def default_search_paths() -> List[Path]:
    """Config file locations tried when --config is not given, in order."""
    return [
        Path("/etc/fankong/config.yaml"),
        Path.home() / ".config/fankong/config.yaml",
    ]


def find_config_file(specified_path: Optional[str] = None,
                     search_paths: Optional[List[Path]] = None) -> Optional[str]:
    """
    Find the configuration file.

    An explicitly given path must exist. Otherwise /etc and the user's
    config directory are searched, and None means run without a file.
    """
    if specified_path:
        if not os.path.exists(specified_path):
            raise ConfigError(f"Configuration file not found: {specified_path}")
        return specified_path

    if search_paths is None:
        search_paths = default_search_paths()

    for path in search_paths:
        if path.exists():
            return str(path)

    return None


def _pick(flag, settings: ConfigManager, name: str):
    # the file value is only read when the flag is unset
    return getattr(settings, name) if flag is None else flag


def build_config(args: argparse.Namespace, settings: ConfigManager) -> FanConfig:
    """Merge flags over file settings and return a validated FanConfig."""
    config = FanConfig(
        display=_pick(args.display, settings, "display"),
        xauthority=_pick(args.xauthority, settings, "xauthority"),
        interval=_pick(args.interval, settings, "interval"),
        target_temp=_pick(args.target_temp, settings, "target_temp"),
        min_fan_speed=_pick(args.min_fan_speed, settings, "min_fan_speed"),
        max_fan_speed=_pick(args.max_fan_speed, settings, "max_fan_speed"),
    )
    config.validate()
    return config


def run(argv: Optional[List[str]] = None) -> None:
    """
    Start the daemon and block until it stops.

    Always ends by raising: CancellationError after a signal, or the
    FanControlError that stopped it. A signal that arrives while
    nvidia-settings is running kills the tool and stops the daemon
    without finishing the tick.
    """
    args = parse_args(argv)

    settings = ConfigManager(find_config_file(args.config))
    setup_logging(_pick(args.log_file, settings, "log_file"),
                  _pick(args.log_level, settings, "log_level"))
    if settings.config_path:
        logging.info(f"Using configuration from: {settings.config_path}")

    config = build_config(args, settings)
    scheduler = Scheduler(config.interval)
    device = NvidiaSettings(
        config,
        executable=_pick(args.nvidia_settings, settings, "nvidia_settings"),
        timeout=_pick(args.command_timeout, settings, "command_timeout"),
        canceller=scheduler,
    )
    controller = StepController(config, device, dry_run=args.dry_run)
    restore_on_exit = _pick(args.restore_on_exit, settings, "restore_on_exit")

    logging.info(
        "Starting fan control: display=%s target=%d°C fan=%d-%d%% interval=%gs%s",
        config.display, config.target_temp, config.min_fan_speed,
        config.max_fan_speed, config.interval, " (dry run)" if args.dry_run else "",
    )

    with scheduler:
        try:
            scheduler.run(controller.tick)
        except CancellationError:
            if restore_on_exit and not args.dry_run:
                RestoreAutoControlCommand(device).execute()
            raise


def main(argv: Optional[List[str]] = None) -> int:
    """Main application entry point; returns the process exit status."""
    try:
        run(argv)
    except CancellationError as e:
        logging.info(f"Exited cleanly ({e}).")
        return EXIT_OK
    except FanControlError as e:
        print(e, file=sys.stderr)
        return EXIT_ERROR
    except Exception as e:
        logging.critical("An unhandled exception occurred!", exc_info=True)
        print(e, file=sys.stderr)
        return EXIT_ERROR
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
