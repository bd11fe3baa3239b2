"""Shared fakes standing in for the HID and SMBus transports."""

from collections.abc import Iterable, Iterator
from contextlib import contextmanager

import pytest

from lights_out.errors import DeviceNotFound, PermissionDenied, TransportError
from lights_out.protocol import FeaturePatch
from lights_out.registry import DeviceDescriptor


class FakeHandle:
    """Records what was sent; optionally fails every write."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.writes: list[bytes] = []
        self.patches: list[FeaturePatch] = []

    def write(self, data: bytes) -> None:
        if self.fail:
            raise TransportError("HID write failed")
        self.writes.append(data)

    def patch_feature_report(self, patch: FeaturePatch) -> None:
        if self.fail:
            raise TransportError("feature report write failed")
        self.patches.append(patch)

    def get_feature_report(self, report_id: int, length: int) -> bytes:
        return bytes([report_id]) + bytes(range(1, length)) if length < 256 else bytes(length)


class FakeBus:
    """Opener simulating which devices are present, failing or locked down."""

    def __init__(
        self,
        present: Iterable[str] = (),
        failing: Iterable[str] = (),
        denied: Iterable[str] = (),
    ) -> None:
        self.present = set(present)
        self.failing = set(failing)
        self.denied = set(denied)
        self.handles: dict[str, FakeHandle] = {}
        self.opened: list[str] = []
        self.closed: list[str] = []

    @contextmanager
    def __call__(self, descriptor: DeviceDescriptor, timeout: float) -> Iterator[FakeHandle]:
        name = descriptor.name
        self.opened.append(name)
        if name in self.denied:
            raise PermissionDenied("cannot open /dev/hidraw3")
        if name not in self.present:
            raise DeviceNotFound(f"no HID device {descriptor.usb_id}")
        handle = self.handles.setdefault(name, FakeHandle(fail=name in self.failing))
        try:
            yield handle
        finally:
            self.closed.append(name)


@pytest.fixture
def make_bus() -> type[FakeBus]:
    return FakeBus
