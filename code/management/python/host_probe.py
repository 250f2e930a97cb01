#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Read-only predicates over host state.

These decide which optional steps are eligible on this machine. Nothing here
is cached between runs; a new HostProbe is created for every invocation.
"""

# --- STANDARD LIBRARY IMPORTS ---
import logging
import shutil
from pathlib import Path
from typing import Callable, Iterable, Optional

RASPBERRY_PI_MARKER = "Raspberry Pi"
DEVICE_TREE_MODEL = Path("/proc/device-tree/model")
CPUINFO = Path("/proc/cpuinfo")


def count_pending_upgrades(simulation_output: str) -> int:
    """
    Counts the packages an apt simulation would install or upgrade.

    Takes the output of 'apt-get -s full-upgrade', where every package action
    is printed on its own line starting with 'Inst '.
    """
    return sum(
        1 for line in simulation_output.splitlines() if line.startswith("Inst ")
    )


class HostProbe:
    """Answers questions about the host without changing it."""

    def __init__(
        self,
        reboot_marker: Path = Path("/var/run/reboot-required"),
        model_paths: Iterable[Path] = (DEVICE_TREE_MODEL, CPUINFO),
        which: Callable[[str], Optional[str]] = shutil.which,
    ):
        self.reboot_marker = Path(reboot_marker)
        self.model_paths = [Path(p) for p in model_paths]
        self.which = which

    def is_raspberry_pi(self) -> bool:
        """Detects Raspberry Pi hardware from the device tree or /proc/cpuinfo."""
        for path in self.model_paths:
            try:
                content = path.read_text(errors="ignore")
            except OSError:
                continue
            if RASPBERRY_PI_MARKER in content:
                logging.debug(f"Raspberry Pi hardware detected via {path}.")
                return True
        return False

    def tool_present(self, name: str) -> bool:
        found = self.which(name) is not None
        logging.debug(f"Tool '{name}' present: {found}")
        return found

    def reboot_required(self) -> bool:
        return self.reboot_marker.exists()

    def path_exists(self, path: Path) -> bool:
        return Path(path).is_file()
