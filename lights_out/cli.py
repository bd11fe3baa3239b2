"""Command-line entry point: parses one verb, runs it and reports per device."""

import logging
import sys
from collections.abc import Sequence

from lights_out.config import Config, UsageError, build_parser
from lights_out.controller import Controller, DeviceResult, Outcome
from lights_out.daemon import Daemon
from lights_out.errors import DeviceNotFound, LightsOutError
from lights_out.protocol import ProtocolKind
from lights_out.registry import Registry, load_registry

log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_NOT_FOUND = 2
EXIT_FAILURE = 3

PERMISSION_HINT = "retry with elevated privileges (sudo) or install a udev rule"


def exit_code(results: Sequence[DeviceResult]) -> int:
    """0 if everything applied; transport errors outrank missing devices."""
    if any(r.failed for r in results):
        return EXIT_FAILURE
    if any(r.outcome is Outcome.NOT_FOUND for r in results):
        return EXIT_NOT_FOUND
    return EXIT_OK


def format_result(result: DeviceResult, registry: Registry) -> str:
    label = registry.get(result.name).display_name if result.name in registry else result.name
    line = f"  {label} [{result.name}]: {result.outcome.value}"
    if result.detail and result.outcome is not Outcome.NOT_FOUND:
        line += f": {result.detail}"
    if result.outcome is Outcome.PERMISSION_DENIED:
        line += f" ({PERMISSION_HINT})"
    return line


def summarize(results: Sequence[DeviceResult]) -> str:
    """One-line summary, worded by the same precedence as the exit code."""
    applied = sum(r.outcome is Outcome.APPLIED for r in results)
    total = len(results)
    if any(r.failed for r in results):
        return f"Failed: {applied} of {total} devices applied"
    if applied < total:
        return f"Partially applied: {applied} of {total} devices, the rest not found"
    return f"All devices applied ({total} of {total})"


def report(results: Sequence[DeviceResult], registry: Registry) -> int:
    if not results:
        print("No matching device selected", file=sys.stderr)
        return EXIT_USAGE
    for result in results:
        print(format_result(result, registry))
    print(summarize(results))
    return exit_code(results)


def _dump(controller: Controller) -> int:
    coolers = list(controller.registry.of_kind(ProtocolKind.COOLER))
    if not coolers:
        print("No cooler selected", file=sys.stderr)
        return EXIT_USAGE

    cooler = coolers[0]
    p = cooler.protocol
    try:
        data = controller.read_feature_report(cooler)
    except LightsOutError as e:
        print(f"{cooler.display_name}: {e}", file=sys.stderr)
        return EXIT_NOT_FOUND if isinstance(e, DeviceNotFound) else EXIT_FAILURE

    print(f"Feature report 0x{p.feature_report_id:02X} ({len(data)} bytes):")
    for row in range(0, len(data), 16):
        print(f"{row:04x}: {data[row:row + 16].hex(' ')}")
    print("\nLED area modes:")
    for offset in p.led_offsets:
        if offset < len(data):
            print(f"  Offset {offset:3}: mode = {data[offset]}")
    return EXIT_OK


def _list(controller: Controller) -> int:
    for descriptor, present in controller.probe():
        state = "present" if present else "absent"
        print(f"  {descriptor.name:<8} {descriptor.usb_id}  {descriptor.display_name}: {state}")
    return EXIT_OK


def run(config: Config, registry: Registry | None = None) -> int:
    """Run the configured verb and return the process exit code."""
    if registry is None:
        registry = load_registry()

    registry = registry.configure(ProtocolKind.COOLER, blank_lcd=config.blank_lcd)
    if config.devices:
        try:
            registry = registry.select(config.devices)
        except KeyError as e:
            print(f"Configuration error: {e.args[0]}", file=sys.stderr)
            return EXIT_USAGE

    log.debug("Running '%s' on %s", config.verb, ", ".join(registry.names))
    controller = Controller(registry, timeout=config.timeout)

    if config.verb == "off":
        print("Disabling RGB lighting...")
        return report(controller.apply_off(), registry)

    if config.verb == "fan":
        mode = config.fan_mode_enum
        print(f"Setting cooler fan mode to {config.fan_mode}...")
        return report(controller.set_fan_mode(mode), registry)  # type: ignore[arg-type]

    if config.verb == "dump":
        return _dump(controller)

    if config.verb == "list":
        return _list(controller)

    coolers = list(registry.of_kind(ProtocolKind.COOLER))
    if not coolers:
        print("No cooler selected", file=sys.stderr)
        return EXIT_USAGE
    return EXIT_OK if Daemon(config, coolers[0]).run() else EXIT_FAILURE


def main(argv: list[str] | None = None) -> None:
    """Entry point."""
    try:
        config = Config.load(argv)
    except UsageError as e:
        print(build_parser().format_usage().rstrip(), file=sys.stderr)
        print(e, file=sys.stderr)
        sys.exit(EXIT_USAGE)
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(EXIT_USAGE)

    config.setup_logging()
    sys.exit(run(config))


if __name__ == "__main__":
    main()
