"""Temperature daemon: feeds the CPU temperature to the cooler for its smart fan mode."""

import logging
import signal
import time
from typing import Any

from lights_out.config import Config
from lights_out.controller import Controller, Outcome, open_device
from lights_out.errors import DeviceNotFound, PermissionDenied, TransportError
from lights_out.protocol import FanMode
from lights_out.registry import DeviceDescriptor, Registry
from lights_out.temperature import read_cpu_temperature

log = logging.getLogger(__name__)

RECONNECT_INTERVAL = 10.0  # seconds between reconnection attempts


class Daemon:
    """Keeps the cooler open and reports the CPU temperature to it periodically."""

    def __init__(
        self, config: Config, cooler: DeviceDescriptor, opener: Any = open_device,
    ) -> None:
        self._config = config
        self._cooler = cooler
        self._opener = opener
        self._running = True

    def _on_shutdown(self, signum: int, _frame: object) -> None:
        log.info("Received %s, shutting down", signal.Signals(signum).name)
        self._running = False

    def _wait(self, seconds: float) -> None:
        """Sleep in small increments so we can respond to signals promptly."""
        end = time.monotonic() + seconds
        while self._running and time.monotonic() < end:
            time.sleep(max(0.0, min(0.5, end - time.monotonic())))

    def _report(self, handle: Any) -> None:
        """Send temperatures until stopped. Raises TransportError on write failure."""
        p = self._cooler.protocol
        while self._running:
            temp = read_cpu_temperature()
            if temp is None:
                log.warning("Could not read CPU temperature")
            else:
                log.debug("CPU temperature: %d°C", temp)
                handle.write(p.encode_cpu_status(self._cooler.report_length, temp))
            self._wait(self._config.poll_interval)

    def _set_smart_mode(self) -> None:
        controller = Controller(Registry([self._cooler]), self._config.timeout, self._opener)
        (result,) = controller.set_fan_mode(FanMode.SMART)
        if result.outcome is Outcome.APPLIED:
            log.info("Fan mode set to smart")
        else:
            log.warning("Could not set smart fan mode: %s", result.detail)

    def run(self) -> bool:
        """Main loop. Returns False if it stopped on an unrecoverable error."""
        log.info(
            "Starting temperature daemon for %s, poll_interval=%.1fs",
            self._cooler.display_name,
            self._config.poll_interval,
        )

        signal.signal(signal.SIGTERM, self._on_shutdown)
        signal.signal(signal.SIGINT, self._on_shutdown)

        if self._config.smart:
            self._set_smart_mode()

        while self._running:
            try:
                with self._opener(self._cooler, self._config.timeout) as handle:
                    log.info("Connected to %s", self._cooler.display_name)
                    self._report(handle)
            except PermissionDenied as e:
                log.error("%s, retry with elevated privileges", e)
                return False
            except DeviceNotFound as e:
                log.warning("%s, retrying in %.0f seconds", e, RECONNECT_INTERVAL)
            except (TransportError, OSError) as e:
                log.warning("%s, reconnecting in %.0f seconds", e, RECONNECT_INTERVAL)
            else:
                continue
            self._wait(RECONNECT_INTERVAL)

        log.info("Daemon stopped")
        return True
