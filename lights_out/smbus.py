"""SMBus transport for RGB controllers that sit on an i2c bus instead of USB.

The GPU's ENE controller is reached through the AMDGPU OEM i2c adapter, which
needs the i2c-dev module loaded (and kernel >= 6.14 for the OEM bus).
"""

import fcntl
import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from lights_out.errors import DeviceNotFound, PermissionDenied, TransportError, TransportTimeout
from lights_out.protocol import GpuProtocol
from lights_out.transport import DEFAULT_TIMEOUT, call_with_timeout, is_permission_error

log = logging.getLogger(__name__)

I2C_SLAVE = 0x0703  # <linux/i2c-dev.h>

SYSFS_I2C_DEV = Path("/sys/class/i2c-dev")
DEV_DIR = Path("/dev")


def _read_id(path: Path) -> int | None:
    try:
        return int(path.read_text().strip(), 16)
    except (OSError, ValueError):
        return None


def _parent_matches(entry: Path, vendor_id: int, product_id: int) -> bool:
    """Check the adapter's parent PCI device, when sysfs exposes one."""
    parent = (entry / "device").resolve().parent
    vendor = _read_id(parent / "vendor")
    device = _read_id(parent / "device")
    if vendor is None or device is None:
        return True
    return (vendor, device) == (vendor_id, product_id)


def find_adapter(protocol: GpuProtocol, vendor_id: int, product_id: int) -> Path | None:
    """Return the /dev node of the first i2c adapter matching the protocol's markers."""
    if not SYSFS_I2C_DEV.is_dir():
        log.debug("%s missing, is the i2c-dev module loaded?", SYSFS_I2C_DEV)
        return None

    for entry in sorted(SYSFS_I2C_DEV.iterdir()):
        try:
            name = (entry / "name").read_text().strip()
        except OSError:
            continue
        if not all(marker in name for marker in protocol.adapter_markers):
            continue
        if not _parent_matches(entry, vendor_id, product_id):
            log.debug("Skipping %s (%s): parent is not %04x:%04x",
                      entry.name, name, vendor_id, product_id)
            continue
        log.debug("Found i2c adapter %s (%s)", entry.name, name)
        return DEV_DIR / entry.name

    return None


def _close_fd(fd: int, node: Path) -> None:
    try:
        os.close(fd)
    except OSError as e:
        log.debug("Closing %s failed: %s", node, e)


class SmbusHandle:
    """An i2c-dev file descriptor bound to one slave address.

    As with HID handles, a timed out write keeps the descriptor and closes it
    when it returns; the handle refuses further writes.
    """

    def __init__(self, fd: int, node: Path, protocol: GpuProtocol, timeout: float) -> None:
        self._fd = fd
        self._node = node
        self._protocol = protocol
        self._timeout = timeout
        self._abandoned = False

    @property
    def abandoned(self) -> bool:
        return self._abandoned

    def _transfer(self, data: bytes, what: str) -> None:
        if self._abandoned:
            raise TransportError(f"{what} refused: {self._node} is held by a timed out call")
        try:
            written = call_with_timeout(
                lambda: os.write(self._fd, data), self._timeout, what,
                on_abandon=lambda: _close_fd(self._fd, self._node),
            )
        except TransportTimeout:
            self._abandoned = True
            raise
        except OSError as e:
            raise TransportError(f"{what} on {self._node} failed: {e}") from e
        if written != len(data):
            raise TransportError(f"{what} on {self._node}: wrote {written} of {len(data)} bytes")

    def write(self, report: bytes) -> None:
        """Write one register: [register high, register low, value].

        The register address is sent as an SMBus word, low byte first, so the
        byte-swapped address goes out high byte first.
        """
        if len(report) != 3:
            raise TransportError(f"SMBus register write needs 3 bytes, got {len(report)}")
        p = self._protocol
        self._transfer(bytes([p.smbus_cmd_addr, report[0], report[1]]), "register select")
        self._transfer(bytes([p.smbus_cmd_data, report[2]]), "register write")
        log.debug("Wrote register 0x%02x%02x = 0x%02x on %s", *report, self._node)


@contextmanager
def open_smbus(
    protocol: GpuProtocol, vendor_id: int, product_id: int, timeout: float = DEFAULT_TIMEOUT,
) -> Iterator[SmbusHandle]:
    """Open the GPU's i2c adapter and select the RGB controller address.

    Raises DeviceNotFound, PermissionDenied or TransportError.
    """
    node = find_adapter(protocol, vendor_id, product_id)
    if node is None:
        raise DeviceNotFound(
            f"no i2c adapter named {' '.join(protocol.adapter_markers)} "
            f"for {vendor_id:04x}:{product_id:04x}"
        )

    try:
        fd = os.open(node, os.O_RDWR)
    except OSError as e:
        if is_permission_error(e):
            raise PermissionDenied(f"cannot open {node}") from e
        raise TransportError(f"failed to open {node}: {e}") from e

    handle = SmbusHandle(fd, node, protocol, timeout)
    try:
        try:
            fcntl.ioctl(fd, I2C_SLAVE, protocol.i2c_address)
        except OSError as e:
            raise TransportError(
                f"cannot select address 0x{protocol.i2c_address:02x} on {node}: {e}"
            ) from e
        yield handle
    finally:
        if handle.abandoned:
            log.debug("Leaving %s to its timed out write to close", node)
        else:
            os.close(fd)
