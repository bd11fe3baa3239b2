"""Applies lighting commands to every registered device."""

import logging
import time
from collections.abc import Callable, Sequence
from contextlib import AbstractContextManager
from dataclasses import dataclass
from enum import Enum
from typing import Any

from lights_out import smbus, transport
from lights_out.errors import DeviceNotFound, PermissionDenied, TransportError
from lights_out.protocol import FanMode, FeaturePatch, ProtocolKind, Report
from lights_out.registry import Bus, DeviceDescriptor, Registry

log = logging.getLogger(__name__)

Opener = Callable[[DeviceDescriptor, float], AbstractContextManager[Any]]


class Outcome(str, Enum):
    APPLIED = "applied"
    NOT_FOUND = "not found"
    PERMISSION_DENIED = "permission denied"
    TRANSPORT_ERROR = "transport error"


@dataclass(frozen=True)
class DeviceResult:
    name: str
    outcome: Outcome
    detail: str = ""

    @property
    def failed(self) -> bool:
        """True for errors that are not plain absence."""
        return self.outcome in (Outcome.PERMISSION_DENIED, Outcome.TRANSPORT_ERROR)


def open_device(descriptor: DeviceDescriptor, timeout: float) -> AbstractContextManager[Any]:
    """Open a device on whichever bus it lives on."""
    if descriptor.bus is Bus.SMBUS:
        return smbus.open_smbus(
            descriptor.protocol, descriptor.vendor_id, descriptor.product_id, timeout
        )
    return transport.open_hid(descriptor.vendor_id, descriptor.product_id, timeout)


def is_present(descriptor: DeviceDescriptor) -> bool:
    """Check whether a device is enumerated, without opening it."""
    if descriptor.bus is Bus.SMBUS:
        return smbus.find_adapter(
            descriptor.protocol, descriptor.vendor_id, descriptor.product_id
        ) is not None
    return bool(transport.find_hid(descriptor.vendor_id, descriptor.product_id))


def send_report(handle: Any, report: Report) -> None:
    if isinstance(report, FeaturePatch):
        handle.patch_feature_report(report)
    else:
        handle.write(report)


class Controller:
    """Runs one command across the registry, one device at a time.

    A failure on one device is recorded in its result and never stops the
    devices after it.
    """

    def __init__(
        self,
        registry: Registry,
        timeout: float = transport.DEFAULT_TIMEOUT,
        opener: Opener = open_device,
    ) -> None:
        self._registry = registry
        self._timeout = timeout
        self._opener = opener

    @property
    def registry(self) -> Registry:
        return self._registry

    def _apply(self, descriptor: DeviceDescriptor, reports: Sequence[Report]) -> DeviceResult:
        """Open the device, send the reports in order and close it again."""
        name = descriptor.name
        try:
            with self._opener(descriptor, self._timeout) as handle:
                for i, report in enumerate(reports):
                    if i and descriptor.protocol.delay:
                        time.sleep(descriptor.protocol.delay)
                    send_report(handle, report)
        except DeviceNotFound as e:
            log.info("%s not found: %s", descriptor.display_name, e)
            return DeviceResult(name, Outcome.NOT_FOUND, str(e))
        except PermissionDenied as e:
            log.warning("%s: %s", descriptor.display_name, e)
            return DeviceResult(name, Outcome.PERMISSION_DENIED, str(e))
        except (TransportError, OSError) as e:
            log.warning("%s: %s", descriptor.display_name, e)
            return DeviceResult(name, Outcome.TRANSPORT_ERROR, str(e))

        log.debug("%s: %d report(s) applied", descriptor.display_name, len(reports))
        return DeviceResult(name, Outcome.APPLIED)

    def apply_off(self) -> list[DeviceResult]:
        """Switch lighting off on every device, in registry order."""
        return [self._apply(d, d.encode_off()) for d in self._registry]

    def set_fan_mode(self, mode: FanMode) -> list[DeviceResult]:
        """Set the fan mode on every cooler in the registry."""
        return [
            self._apply(d, d.protocol.encode_fan_mode(d.report_length, mode))
            for d in self._registry.of_kind(ProtocolKind.COOLER)
        ]

    def probe(self) -> list[tuple[DeviceDescriptor, bool]]:
        return [(d, is_present(d)) for d in self._registry]

    def read_feature_report(self, descriptor: DeviceDescriptor) -> bytes:
        """Read a cooler's LED feature report. Errors propagate to the caller."""
        p = descriptor.protocol
        with self._opener(descriptor, self._timeout) as handle:
            return handle.get_feature_report(p.feature_report_id, p.feature_report_length)
