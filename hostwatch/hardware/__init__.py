"""Hardware presence checks used to skip modules on absent devices."""

from hostwatch.hardware.predicates import (
    HardwarePredicate,
    always,
    any_of,
    command_exists,
    intel_gpu_present,
    kernel_module_loaded,
    network_interface_present,
    pci_device_present,
    thermal_sensor_present,
    usb_bus_present,
)

__all__ = [
    "HardwarePredicate",
    "always",
    "any_of",
    "command_exists",
    "intel_gpu_present",
    "kernel_module_loaded",
    "network_interface_present",
    "pci_device_present",
    "thermal_sensor_present",
    "usb_bus_present",
]
