"""Configuration from /etc/default/lights-out, the environment and CLI arguments."""

import argparse
import logging
import os
from dataclasses import dataclass

from dotenv import dotenv_values

from lights_out.protocol import FanMode
from lights_out.transport import DEFAULT_TIMEOUT

DEFAULT_CONFIG_PATH = "/etc/default/lights-out"
VERBS = ("off", "fan", "daemon", "dump", "list")
FAN_MODES = tuple(mode.name.lower() for mode in FanMode)

EPILOG = """\
exit status:
  0  every device applied
  1  usage or configuration error, no device touched
  2  some devices not found, the others applied
  3  at least one device failed (transport or permission error)
"""


class UsageError(ValueError):
    """Raised for bad command-line arguments."""


class _Parser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        raise UsageError(f"{self.prog}: {message}")


def _parse_bool(raw: str) -> bool:
    return raw.strip().lower() in ("true", "1", "yes", "on")


def _parse_devices(raw: str) -> tuple[str, ...]:
    """Parse a comma-separated list of device names, dropping duplicates."""
    names = tuple(dict.fromkeys(n.strip() for n in raw.split(",") if n.strip()))
    if not names:
        raise ValueError(f"Invalid device list: '{raw}'")
    return names


def build_parser() -> argparse.ArgumentParser:
    parser = _Parser(
        prog="lights-out",
        description="Switch off RGB lighting on the cooler, fan hub and GPU",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=None,
        help="Enable debug logging",
    )
    parser.add_argument(
        "--log-level",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        help="Log level (overrides config file)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        help="Per-call device timeout in seconds",
    )

    verbs = parser.add_subparsers(dest="verb", metavar="VERB", required=True)

    off = verbs.add_parser("off", help="Switch lighting off")
    off.add_argument(
        "--device",
        action="append",
        dest="devices",
        metavar="NAME",
        help="Only this device (repeatable)",
    )
    off.add_argument(
        "--keep-lcd",
        action="store_true",
        default=None,
        help="Leave the cooler LCD on",
    )

    fan = verbs.add_parser("fan", help="Set the cooler fan mode")
    fan.add_argument("fan_mode", choices=FAN_MODES, metavar="MODE",
                     help=f"One of: {', '.join(FAN_MODES)}")

    daemon = verbs.add_parser("daemon", help="Feed CPU temperature to the cooler")
    daemon.add_argument("--smart", action="store_true", help="Set smart fan mode first")
    daemon.add_argument("--poll-interval", type=float, help="Seconds between updates")

    verbs.add_parser("dump", help="Dump the cooler LED feature report")
    verbs.add_parser("list", help="List supported devices and whether they are present")

    return parser


@dataclass
class Config:
    """Settings for one invocation."""

    verb: str = "off"
    log_level: str = "WARNING"
    debug: bool = False
    timeout: float = DEFAULT_TIMEOUT
    devices: tuple[str, ...] | None = None
    blank_lcd: bool = True
    fan_mode: str | None = None
    smart: bool = False
    poll_interval: float = 2.0

    def __post_init__(self) -> None:
        if self.verb not in VERBS:
            raise ValueError(f"Invalid verb '{self.verb}'. Must be one of: {', '.join(VERBS)}")

        if self.timeout <= 0:
            raise ValueError(f"Timeout must be positive, got {self.timeout}")

        if self.poll_interval <= 0:
            raise ValueError(f"Poll interval must be positive, got {self.poll_interval}")

        if self.fan_mode is not None and self.fan_mode not in FAN_MODES:
            raise ValueError(
                f"Invalid fan mode '{self.fan_mode}'. Must be one of: {', '.join(FAN_MODES)}"
            )
        if self.verb == "fan" and self.fan_mode is None:
            raise ValueError("The fan verb needs a mode")

        if self.debug:
            self.log_level = "DEBUG"

    @property
    def fan_mode_enum(self) -> FanMode | None:
        return FanMode[self.fan_mode.upper()] if self.fan_mode else None

    @classmethod
    def load(cls, argv: list[str] | None = None) -> "Config":
        """Load configuration from environment file, env vars, and CLI args.

        Priority (highest to lowest):
        1. CLI arguments
        2. Environment variables
        3. /etc/default/lights-out file
        4. Dataclass defaults

        Raises UsageError for bad arguments and ValueError for bad values.
        """
        args = build_parser().parse_args(argv)

        file_env = {k: v for k, v in dotenv_values(DEFAULT_CONFIG_PATH).items() if v is not None}

        def env(key: str) -> str | None:
            if key in os.environ:
                return os.environ[key]
            return file_env.get(key)

        kwargs: dict[str, object] = {"verb": args.verb}

        if (v := env("LOG_LEVEL")) is not None:
            kwargs["log_level"] = v.upper()

        if (v := env("DEBUG")) is not None:
            kwargs["debug"] = _parse_bool(v)

        if (v := env("TIMEOUT")) is not None:
            try:
                kwargs["timeout"] = float(v)
            except ValueError:
                pass

        if (v := env("DEVICES")) is not None:
            try:
                kwargs["devices"] = _parse_devices(v)
            except ValueError:
                pass

        if (v := env("COOLER_BLANK_LCD")) is not None:
            kwargs["blank_lcd"] = _parse_bool(v)

        if (v := env("POLL_INTERVAL")) is not None:
            try:
                kwargs["poll_interval"] = float(v)
            except ValueError:
                pass

        # CLI arguments override everything
        if args.log_level is not None:
            kwargs["log_level"] = args.log_level

        if args.debug is True:
            kwargs["debug"] = True

        if args.timeout is not None:
            kwargs["timeout"] = args.timeout

        if getattr(args, "devices", None):
            kwargs["devices"] = tuple(dict.fromkeys(args.devices))

        if getattr(args, "keep_lcd", None) is True:
            kwargs["blank_lcd"] = False

        if getattr(args, "fan_mode", None) is not None:
            kwargs["fan_mode"] = args.fan_mode

        if getattr(args, "smart", False):
            kwargs["smart"] = True

        if getattr(args, "poll_interval", None) is not None:
            kwargs["poll_interval"] = args.poll_interval

        return cls(**kwargs)

    def setup_logging(self) -> None:
        """Configure logging based on this config."""
        logging.basicConfig(
            level=getattr(logging, self.log_level, logging.WARNING),
            format="[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
