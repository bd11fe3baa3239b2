"""Device registry.

The supported devices are fixed and ship with the package in devices.yaml.
Iteration follows file order so the printed summary is the same on every run.
"""

import dataclasses
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from lights_out.protocol import PROTOCOL_TYPES, FeaturePatch, ProtocolKind, Report

_DEVICES_FILE = Path(__file__).parent / "devices.yaml"


class Bus(str, Enum):
    HID = "hid"
    SMBUS = "smbus"


@dataclass(frozen=True)
class DeviceDescriptor:
    """One controllable lighting device."""

    name: str
    display_name: str
    vendor_id: int
    product_id: int
    report_length: int
    kind: ProtocolKind
    bus: Bus
    protocol: Any

    def __post_init__(self) -> None:
        for field, value in (("vendor_id", self.vendor_id), ("product_id", self.product_id)):
            if not 0 <= value <= 0xFFFF:
                raise ValueError(f"{self.name}: {field} must be 16-bit, got {value:#x}")

        expected = PROTOCOL_TYPES[self.kind]
        if not isinstance(self.protocol, expected):
            raise ValueError(
                f"{self.name}: {self.kind.value} device needs {expected.__name__}, "
                f"got {type(self.protocol).__name__}"
            )

        for report in self.encode_off():
            if isinstance(report, FeaturePatch):
                if report.length != self.protocol.feature_report_length:
                    raise ValueError(f"{self.name}: feature patch length mismatch")
            elif len(report) != self.report_length:
                raise ValueError(
                    f"{self.name}: encoder produced {len(report)} bytes, "
                    f"report length is {self.report_length}"
                )

    @property
    def usb_id(self) -> str:
        return f"{self.vendor_id:04x}:{self.product_id:04x}"

    def encode_off(self) -> tuple[Report, ...]:
        return self.protocol.encode_off(self.report_length)


class Registry:
    """Ordered, read-only collection of device descriptors."""

    def __init__(self, descriptors: Iterable[DeviceDescriptor]) -> None:
        self._by_name: dict[str, DeviceDescriptor] = {}
        for desc in descriptors:
            if desc.name in self._by_name:
                raise ValueError(f"Duplicate device name '{desc.name}'")
            self._by_name[desc.name] = desc

    def __iter__(self) -> Iterator[DeviceDescriptor]:
        return iter(self._by_name.values())

    def __len__(self) -> int:
        return len(self._by_name)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(self._by_name)

    def get(self, name: str) -> DeviceDescriptor:
        """Look up a descriptor by logical name. Raises KeyError if unknown."""
        try:
            return self._by_name[name]
        except KeyError:
            raise KeyError(
                f"Unknown device '{name}'. Available: {', '.join(self.names)}"
            ) from None

    def select(self, names: Iterable[str]) -> "Registry":
        """Return the named subset, still in registry order."""
        wanted = set(names)
        for name in wanted:
            self.get(name)
        return Registry(d for d in self if d.name in wanted)

    def of_kind(self, kind: ProtocolKind) -> "Registry":
        return Registry(d for d in self if d.kind is kind)

    def configure(self, kind: ProtocolKind, **changes: Any) -> "Registry":
        """Return a registry with updated protocol constants for one device kind."""
        return Registry(
            dataclasses.replace(d, protocol=dataclasses.replace(d.protocol, **changes))
            if d.kind is kind else d
            for d in self
        )


def _freeze(value: Any) -> Any:
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    return value


def _build(name: str, raw: dict) -> DeviceDescriptor:
    kind = ProtocolKind(raw["kind"])
    params = {k: _freeze(v) for k, v in raw["protocol"].items()}
    return DeviceDescriptor(
        name=name,
        display_name=raw.get("display_name", name),
        vendor_id=raw["vendor_id"],
        product_id=raw["product_id"],
        report_length=raw["report_length"],
        kind=kind,
        bus=Bus(raw.get("bus", "hid")),
        protocol=PROTOCOL_TYPES[kind](**params),
    )


def load_registry(path: Path = _DEVICES_FILE) -> Registry:
    """Load the device registry from YAML.

    Raises ValueError if an entry is malformed or its encoder disagrees with
    the declared report length.
    """
    with open(path) as f:
        raw = yaml.safe_load(f)
    try:
        return Registry(_build(name, entry) for name, entry in raw.items())
    except (KeyError, TypeError) as e:
        raise ValueError(f"Invalid device definition in {path}: {e}") from e
