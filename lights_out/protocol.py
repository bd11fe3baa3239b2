"""Per-vendor lighting protocols.

Each protocol dataclass holds the command constants for one device family and
encodes the reports that switch its lighting off. Constants are loaded from
devices.yaml by the registry; encoding itself is pure.

MSI CORELIQUID LED offsets and commands from reverse-engineered MSI Center captures.
Lian Li UNI FAN AL V2 commit format from OpenRGB LianLiUniHubALController.
ENE register map from OpenRGB ENESMBusController.
"""

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar


class ProtocolKind(str, Enum):
    COOLER = "cooler"
    FAN_HUB = "fanhub"
    GPU = "gpu"


class FanMode(Enum):
    """Cooler fan modes, valued as the firmware expects them."""

    SILENT = 0
    BALANCE = 1
    GAME = 2
    DEFAULT = 4
    SMART = 5


@dataclass(frozen=True)
class FeaturePatch:
    """Read-modify-write of a feature report.

    The current report is fetched, the listed offsets are overwritten and the
    result is sent back, so settings outside those offsets are preserved.
    """

    report_id: int
    length: int
    updates: tuple[tuple[int, int], ...]

    def apply(self, current: bytes) -> bytes:
        if len(current) != self.length:
            raise ValueError(
                f"Feature report 0x{self.report_id:02X} is {len(current)} bytes, "
                f"expected {self.length}"
            )
        buf = bytearray(current)
        for offset, value in self.updates:
            buf[offset] = value
        return bytes(buf)


Report = bytes | FeaturePatch


def _blank(length: int, *header: int) -> bytearray:
    buf = bytearray(length)
    buf[: len(header)] = bytes(header)
    return buf


@dataclass(frozen=True)
class CoolerProtocol:
    """MSI MPG CORELIQUID: LED table in a feature report, LCD via output report."""

    kind: ClassVar[ProtocolKind] = ProtocolKind.COOLER

    cmd_prefix: int
    cmd_lcd_disable: int
    cmd_fan_mode: tuple[int, ...]
    cmd_cpu_status: int

    feature_report_id: int
    feature_report_length: int
    led_offsets: tuple[int, ...]
    led_mode_disable: int
    fan_mode_offsets: tuple[int, ...]

    # The firmware ignores the frequency but expects the field to be filled
    cpu_freq_mhz: int = 3000

    # Two-step off: LED table first, then the LCD if enabled
    blank_lcd: bool = True

    # Delay between consecutive reports (seconds)
    delay: float = 0.0

    def build_led_off(self) -> FeaturePatch:
        """Build the patch that sets every LED area to the disabled mode."""
        updates = tuple(
            (offset, self.led_mode_disable)
            for offset in self.led_offsets
            if offset < self.feature_report_length
        )
        return FeaturePatch(self.feature_report_id, self.feature_report_length, updates)

    def build_lcd_off(self, report_length: int) -> bytes:
        return bytes(_blank(report_length, self.cmd_prefix, self.cmd_lcd_disable))

    def encode_off(self, report_length: int) -> tuple[Report, ...]:
        reports: tuple[Report, ...] = (self.build_led_off(),)
        if self.blank_lcd:
            reports += (self.build_lcd_off(report_length),)
        return reports

    def encode_fan_mode(self, report_length: int, mode: FanMode) -> tuple[Report, ...]:
        """Build the fan mode reports; the firmware wants both commands."""
        reports = []
        for cmd in self.cmd_fan_mode:
            buf = _blank(report_length, self.cmd_prefix, cmd)
            for offset in self.fan_mode_offsets:
                buf[offset] = mode.value
            reports.append(bytes(buf))
        return tuple(reports)

    def encode_cpu_status(self, report_length: int, temperature: int) -> bytes:
        """Build the CPU status report used by the smart fan mode."""
        buf = _blank(report_length, self.cmd_prefix, self.cmd_cpu_status)
        buf[2:4] = self.cpu_freq_mhz.to_bytes(2, "little")
        buf[4:6] = max(0, min(temperature, 0xFFFF)).to_bytes(2, "little")
        return bytes(buf)


@dataclass(frozen=True)
class FanHubProtocol:
    """Lian Li UNI FAN AL V2 hub: one commit report per channel and LED ring."""

    kind: ClassVar[ProtocolKind] = ProtocolKind.FAN_HUB

    transaction_id: int
    commit_base: int
    channels: int

    mode_static: int
    speed: int
    direction: int
    brightness_off: int

    delay: float = 0.02

    def build_commit(self, report_length: int, channel: int, ring: int) -> bytes:
        """Build the commit for a channel; ring 0 is the fan LEDs, 1 the edge LEDs."""
        return bytes(_blank(
            report_length,
            self.transaction_id,
            self.commit_base + ring + channel * 2,
            self.mode_static,
            self.speed,
            self.direction,
            self.brightness_off,
        ))

    def encode_off(self, report_length: int) -> tuple[Report, ...]:
        return tuple(
            self.build_commit(report_length, channel, ring)
            for channel in range(self.channels)
            for ring in (0, 1)
        )


@dataclass(frozen=True)
class GpuProtocol:
    """ENE RGB controller on the GPU's OEM i2c bus.

    A report is [register high, register low, value]; the SMBus transport
    turns it into an address-select word write followed by a data byte write.
    """

    kind: ClassVar[ProtocolKind] = ProtocolKind.GPU

    i2c_address: int
    adapter_markers: tuple[str, ...]

    smbus_cmd_addr: int
    smbus_cmd_data: int

    reg_mode: int
    reg_apply: int
    mode_off: int
    apply_value: int

    delay: float = 0.0

    @staticmethod
    def build_register_write(register: int, value: int) -> bytes:
        return bytes([(register >> 8) & 0xFF, register & 0xFF, value & 0xFF])

    def encode_off(self, report_length: int) -> tuple[Report, ...]:
        # Register writes have a fixed shape, report_length is checked by the registry
        return (
            self.build_register_write(self.reg_mode, self.mode_off),
            self.build_register_write(self.reg_apply, self.apply_value),
        )


PROTOCOL_TYPES: dict[ProtocolKind, type] = {
    ProtocolKind.COOLER: CoolerProtocol,
    ProtocolKind.FAN_HUB: FanHubProtocol,
    ProtocolKind.GPU: GpuProtocol,
}


def report_length_of(report: Report) -> int:
    if isinstance(report, FeaturePatch):
        return report.length
    return len(report)
