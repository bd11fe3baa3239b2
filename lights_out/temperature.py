"""CPU temperature for the cooler's smart fan mode, read via psutil."""

import logging

import psutil

log = logging.getLogger(__name__)

# CPU thermal drivers, in the order they are tried
_CPU_DRIVERS = ("k10temp", "coretemp", "zenpower")

# Package/die labels preferred over per-core readings
_PACKAGE_LABELS = ("Tctl", "Tdie", "Package id 0")


def read_cpu_temperature() -> int | None:
    """Read the CPU package temperature in whole degrees Celsius.

    Returns None when no sensor reports a usable value.
    """
    try:
        temps = psutil.sensors_temperatures()
    except (AttributeError, OSError) as e:
        log.debug("psutil.sensors_temperatures() failed: %s", e)
        return None

    for driver in _CPU_DRIVERS:
        entries = [e for e in temps.get(driver, ()) if e.current > 0]
        if not entries:
            continue
        for label in _PACKAGE_LABELS:
            for entry in entries:
                if entry.label == label:
                    return int(entry.current)
        # First entry is temp1_input, the package sensor on both drivers
        return int(entries[0].current)

    readings = [e.current for entries in temps.values() for e in entries if e.current > 0]
    return int(max(readings)) if readings else None
