"""Raw USB HID transport built on hidapi."""

import errno
import logging
import os
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TypeVar

import hid

from lights_out.errors import DeviceNotFound, PermissionDenied, TransportError, TransportTimeout
from lights_out.protocol import FeaturePatch

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 0.5  # seconds per transport call

T = TypeVar("T")

_PERMISSION_ERRNOS = (errno.EACCES, errno.EPERM)


def call_with_timeout(
    func: Callable[[], T],
    timeout: float,
    what: str,
    on_abandon: Callable[[], None] | None = None,
) -> T:
    """Run a blocking call, giving up after `timeout` seconds.

    hidapi and i2c-dev writes have no timeout of their own, so the call runs on
    a daemon thread. A call that does not return in time is abandoned, not
    cancelled: once it finally returns, the worker runs `on_abandon` so that it,
    and not the caller, releases whatever the call was using.
    Raises TransportTimeout on expiry; exceptions from the call are re-raised.
    """
    lock = threading.Lock()
    outcome: dict[str, object] = {}

    def target() -> None:
        try:
            result: tuple[str, object] = ("value", func())
        except Exception as e:
            result = ("error", e)
        with lock:
            outcome[result[0]] = result[1]
            late = "abandoned" in outcome
        if late:
            log.debug("Abandoned %s returned, releasing it", what)
            if on_abandon is not None:
                on_abandon()

    worker = threading.Thread(target=target, name=f"lights-out {what}", daemon=True)
    worker.start()
    worker.join(timeout)

    with lock:
        if "value" not in outcome and "error" not in outcome:
            outcome["abandoned"] = True
            raise TransportTimeout(f"{what} timed out after {timeout * 1000:.0f} ms")
    if "error" in outcome:
        raise outcome["error"]  # type: ignore[misc]
    return outcome["value"]  # type: ignore[return-value]


def is_permission_error(error: OSError, path: str | bytes | None = None) -> bool:
    """Tell a permission problem apart from any other open failure.

    hidapi reports every open failure as a bare OSError, so the device node is
    checked directly when the error carries no errno.
    """
    if isinstance(error, PermissionError) or error.errno in _PERMISSION_ERRNOS:
        return True
    if path is None:
        return False
    node = os.fsdecode(path)
    return node.startswith("/dev/") and os.path.exists(node) and not os.access(
        node, os.R_OK | os.W_OK
    )


def close_device(device: "hid.device", path: bytes) -> None:
    try:
        device.close()
    except OSError as e:
        log.debug("Closing %s failed: %s", os.fsdecode(path), e)


class HidHandle:
    """An open HID device. Every call is bounded by the handle's timeout.

    After a call times out the handle is abandoned: the hung call still owns
    the device and closes it when it returns, and further calls are refused.
    """

    def __init__(self, device: "hid.device", path: bytes, timeout: float) -> None:
        self._device = device
        self._path = path
        self._timeout = timeout
        self._abandoned = False

    @property
    def path(self) -> str:
        return self._path.decode(errors="replace")

    @property
    def abandoned(self) -> bool:
        return self._abandoned

    def _call(self, func: Callable[[], T], what: str) -> T:
        if self._abandoned:
            raise TransportError(f"{what} refused: {self.path} is held by a timed out call")
        try:
            return call_with_timeout(
                func, self._timeout, what,
                on_abandon=lambda: close_device(self._device, self._path),
            )
        except TransportTimeout:
            self._abandoned = True
            raise
        except OSError as e:
            raise TransportError(f"{what} failed on {self.path}: {e}") from e

    def write(self, data: bytes) -> None:
        """Write one output report. Short writes are errors."""
        written = self._call(lambda: self._device.write(data), "HID write")
        if written != len(data):
            raise TransportError(
                f"HID write to {self.path}: wrote {written} of {len(data)} bytes"
            )
        log.debug("Wrote %d bytes to %s: %s", len(data), self.path, data[:8].hex(" "))

    def get_feature_report(self, report_id: int, length: int) -> bytes:
        data = self._call(
            lambda: self._device.get_feature_report(report_id, length), "feature report read"
        )
        return bytes(data)

    def send_feature_report(self, data: bytes) -> None:
        written = self._call(
            lambda: self._device.send_feature_report(data), "feature report write"
        )
        if written != len(data):
            raise TransportError(
                f"Feature report to {self.path}: wrote {written} of {len(data)} bytes"
            )

    def patch_feature_report(self, patch: FeaturePatch) -> None:
        current = self.get_feature_report(patch.report_id, patch.length)
        try:
            updated = patch.apply(current)
        except ValueError as e:
            raise TransportError(f"Protocol mismatch on {self.path}: {e}") from e
        self.send_feature_report(updated)


def find_hid(vendor_id: int, product_id: int) -> list[dict]:
    """Enumerate HID interfaces matching a vendor/product pair."""
    return hid.enumerate(vendor_id, product_id)


@contextmanager
def open_hid(
    vendor_id: int, product_id: int, timeout: float = DEFAULT_TIMEOUT,
) -> Iterator[HidHandle]:
    """Open the first enumerated device matching vendor/product and close it on exit.

    Raises DeviceNotFound, PermissionDenied or TransportError.
    """
    usb_id = f"{vendor_id:04x}:{product_id:04x}"
    infos = find_hid(vendor_id, product_id)
    if not infos:
        raise DeviceNotFound(f"no HID device {usb_id}")
    if len(infos) > 1:
        log.debug("%d interfaces match %s, using the first", len(infos), usb_id)

    path = infos[0]["path"]
    device = hid.device()
    try:
        # An open that completes after the timeout is closed by its worker
        call_with_timeout(
            lambda: device.open_path(path), timeout, "HID open",
            on_abandon=lambda: close_device(device, path),
        )
    except OSError as e:
        if is_permission_error(e, path):
            raise PermissionDenied(f"cannot open {os.fsdecode(path)} ({usb_id})") from e
        raise TransportError(f"failed to open {os.fsdecode(path)} ({usb_id}): {e}") from e

    log.debug(
        "Opened %s at %s (S/N: %s)",
        usb_id, os.fsdecode(path), infos[0].get("serial_number") or "N/A",
    )
    handle = HidHandle(device, path, timeout)
    try:
        yield handle
    finally:
        if handle.abandoned:
            log.debug("Leaving %s to its timed out call to close", os.fsdecode(path))
        else:
            close_device(device, path)
