"""Tests for the device registry."""

import dataclasses
from pathlib import Path

import pytest

from lights_out.protocol import CoolerProtocol, GpuProtocol, ProtocolKind
from lights_out.registry import Bus, Registry, load_registry

REGISTRY = load_registry()


class TestLoadRegistry:
    def test_order_is_stable(self) -> None:
        assert REGISTRY.names == ("cooler", "fanhub", "gpu")
        assert [d.name for d in REGISTRY] == ["cooler", "fanhub", "gpu"]
        assert len(REGISTRY) == 3

    def test_cooler_ids(self) -> None:
        cooler = REGISTRY.get("cooler")
        assert cooler.vendor_id == 0x0DB0
        assert cooler.product_id == 0xB130
        assert cooler.usb_id == "0db0:b130"
        assert cooler.report_length == 65
        assert cooler.bus is Bus.HID
        assert isinstance(cooler.protocol, CoolerProtocol)

    def test_gpu_on_smbus(self) -> None:
        gpu = REGISTRY.get("gpu")
        assert gpu.kind is ProtocolKind.GPU
        assert gpu.bus is Bus.SMBUS
        assert gpu.protocol.adapter_markers == ("AMDGPU", "OEM")

    def test_lists_become_tuples(self) -> None:
        assert isinstance(REGISTRY.get("cooler").protocol.led_offsets, tuple)

    def test_malformed_file_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "devices.yaml"
        path.write_text("cooler:\n  kind: cooler\n  vendor_id: 0x0db0\n")
        with pytest.raises(ValueError, match="Invalid device definition"):
            load_registry(path)


class TestLookup:
    def test_get_unknown_raises(self) -> None:
        with pytest.raises(KeyError, match="Unknown device 'keyboard'"):
            REGISTRY.get("keyboard")

    def test_contains(self) -> None:
        assert "gpu" in REGISTRY
        assert "keyboard" not in REGISTRY

    def test_select_keeps_registry_order(self) -> None:
        assert REGISTRY.select(["gpu", "cooler"]).names == ("cooler", "gpu")

    def test_select_unknown_raises(self) -> None:
        with pytest.raises(KeyError):
            REGISTRY.select(["cooler", "keyboard"])

    def test_of_kind(self) -> None:
        assert REGISTRY.of_kind(ProtocolKind.FAN_HUB).names == ("fanhub",)

    def test_configure_only_touches_kind(self) -> None:
        changed = REGISTRY.configure(ProtocolKind.COOLER, blank_lcd=False)
        assert changed.get("cooler").protocol.blank_lcd is False
        assert changed.get("fanhub") is REGISTRY.get("fanhub")
        assert REGISTRY.get("cooler").protocol.blank_lcd is True


class TestDescriptorValidation:
    def test_report_length_mismatch_raises(self) -> None:
        with pytest.raises(ValueError, match="report length is 4"):
            dataclasses.replace(REGISTRY.get("gpu"), report_length=4)

    def test_protocol_kind_mismatch_raises(self) -> None:
        with pytest.raises(ValueError, match="needs GpuProtocol"):
            dataclasses.replace(REGISTRY.get("cooler"), kind=ProtocolKind.GPU)

    def test_vendor_id_must_be_16_bit(self) -> None:
        with pytest.raises(ValueError, match="16-bit"):
            dataclasses.replace(REGISTRY.get("fanhub"), vendor_id=0x10000)

    def test_duplicate_names_raise(self) -> None:
        gpu = REGISTRY.get("gpu")
        with pytest.raises(ValueError, match="Duplicate device name"):
            Registry([gpu, gpu])

    def test_gpu_protocol_type(self) -> None:
        assert isinstance(REGISTRY.get("gpu").protocol, GpuProtocol)
