"""Tests for hardware presence predicates against a fake /sys tree."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

from hostwatch.hardware import predicates
from hostwatch.hardware.predicates import (
    always,
    any_of,
    command_exists,
    directory_not_empty,
    intel_gpu_present,
    kernel_log_present,
    kernel_module_loaded,
    network_interface_present,
    path_readable,
    pci_device_present,
    thermal_sensor_present,
    usb_bus_present,
)


def _pci(sys_root: Path, slot: str, vendor: str, cls: str) -> None:
    dev = sys_root / "bus" / "pci" / "devices" / slot
    dev.mkdir(parents=True)
    (dev / "vendor").write_text(f"{vendor}\n")
    (dev / "class").write_text(f"{cls}\n")


class TestFilesystemPredicates:
    def test_path_readable(self, tmp_path: Path) -> None:
        f = tmp_path / "x"
        f.write_text("1")
        assert path_readable(f) is True
        assert path_readable(tmp_path / "missing") is False

    def test_directory_not_empty(self, tmp_path: Path) -> None:
        assert directory_not_empty(tmp_path) is False
        (tmp_path / "a").write_text("")
        assert directory_not_empty(tmp_path) is True
        assert directory_not_empty(tmp_path / "missing") is False

    def test_command_exists(self) -> None:
        assert command_exists("sh") is True
        assert command_exists("hostwatch-no-such-binary") is False

    def test_kernel_log_present_falls_back_to_dmesg(self) -> None:
        with (
            patch.object(predicates, "path_readable", return_value=False),
            patch.object(predicates, "command_exists", side_effect=lambda n: n == "dmesg"),
        ):
            assert kernel_log_present() is True
        with (
            patch.object(predicates, "path_readable", return_value=False),
            patch.object(predicates, "command_exists", return_value=False),
        ):
            assert kernel_log_present() is False


class TestSysPredicates:
    def test_empty_sys_is_absent(self, tmp_path: Path) -> None:
        assert thermal_sensor_present(tmp_path) is False
        assert network_interface_present(tmp_path) is False
        assert usb_bus_present(tmp_path) is False
        assert intel_gpu_present(tmp_path) is False

    def test_thermal_zone(self, tmp_path: Path) -> None:
        zone = tmp_path / "class" / "thermal" / "thermal_zone0"
        zone.mkdir(parents=True)
        (zone / "temp").write_text("45000\n")
        assert thermal_sensor_present(tmp_path) is True

    def test_hwmon(self, tmp_path: Path) -> None:
        hwmon = tmp_path / "class" / "hwmon" / "hwmon2"
        hwmon.mkdir(parents=True)
        (hwmon / "temp1_input").write_text("45000\n")
        assert thermal_sensor_present(tmp_path) is True

    def test_loopback_only_is_absent(self, tmp_path: Path) -> None:
        net = tmp_path / "class" / "net"
        (net / "lo").mkdir(parents=True)
        assert network_interface_present(tmp_path) is False
        (net / "eth0").mkdir()
        assert network_interface_present(tmp_path) is True

    def test_usb_bus(self, tmp_path: Path) -> None:
        (tmp_path / "bus" / "usb" / "devices" / "usb1").mkdir(parents=True)
        assert usb_bus_present(tmp_path) is True

    def test_kernel_module(self, tmp_path: Path) -> None:
        (tmp_path / "module" / "uas").mkdir(parents=True)
        assert kernel_module_loaded("uas", tmp_path) is True
        assert kernel_module_loaded("i915", tmp_path) is False


class TestGpuPredicates:
    def test_intel_display_controller(self, tmp_path: Path) -> None:
        _pci(tmp_path, "0000:00:02.0", "0x8086", "0x030000")
        assert pci_device_present("0x8086", "0x03", tmp_path) is True
        assert intel_gpu_present(tmp_path) is True

    def test_intel_non_display_device(self, tmp_path: Path) -> None:
        _pci(tmp_path, "0000:00:14.0", "0x8086", "0x0c0330")
        assert intel_gpu_present(tmp_path) is False

    def test_other_vendor_gpu(self, tmp_path: Path) -> None:
        _pci(tmp_path, "0000:01:00.0", "0x10de", "0x030000")
        assert intel_gpu_present(tmp_path) is False

    def test_i915_module_loaded(self, tmp_path: Path) -> None:
        (tmp_path / "module" / "i915").mkdir(parents=True)
        assert intel_gpu_present(tmp_path) is True

    def test_unreadable_device_is_skipped(self, tmp_path: Path) -> None:
        (tmp_path / "bus" / "pci" / "devices" / "0000:00:01.0").mkdir(parents=True)
        _pci(tmp_path, "0000:00:02.0", "0x8086", "0x030000")
        assert pci_device_present("0x8086", "0x03", tmp_path) is True


class TestCombinators:
    def test_any_of(self) -> None:
        assert any_of(lambda: False, always)() is True
        assert any_of(lambda: False)() is False
