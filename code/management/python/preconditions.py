#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Checks that must pass before any maintenance step is allowed to run.

The gate only reads system state. Any failure is terminal for the run:
the entry point logs it and exits with status 1 before a single package
is touched.
"""

# --- STANDARD LIBRARY IMPORTS ---
import logging
import os
import shutil
import sys
from typing import Callable, List, Optional, Sequence

ESCALATION_MARKER = "HOMELAB_UPDATE_ESCALATED"
KB_PER_MB = 1024
KB_PER_GB = 1024 * 1024


def format_kb(kb: int) -> str:
    """Renders a size in kilobytes as a short human-readable figure, e.g. '300MB'."""
    if kb >= KB_PER_GB:
        return f"{round(kb / KB_PER_GB, 1):g}GB"
    if kb >= KB_PER_MB:
        return f"{round(kb / KB_PER_MB, 1):g}MB"
    return f"{kb}KB"


class PreconditionError(Exception):
    """Base class for failures that abort the run before any mutation."""


class InsufficientPrivilege(PreconditionError):
    def __init__(self, detail: str = "This script must be run as root."):
        super().__init__(detail)


class MissingDependency(PreconditionError):
    def __init__(self, tools: Sequence[str]):
        self.tools = list(tools)
        super().__init__(
            f"Required command(s) not installed or not in PATH: {', '.join(self.tools)}"
        )


class InsufficientDiskSpace(PreconditionError):
    def __init__(self, required_kb: int, available_kb: int):
        self.required_kb = required_kb
        self.available_kb = available_kb
        super().__init__(
            f"Insufficient disk space on /: {format_kb(available_kb)} "
            f"({available_kb} KB) available, {format_kb(required_kb)} "
            f"({required_kb} KB) required."
        )


def ensure_root(
    argv: Optional[List[str]] = None,
    geteuid: Callable[[], int] = os.geteuid,
    which: Callable[[str], Optional[str]] = shutil.which,
    execve: Callable = os.execve,
) -> None:
    """
    Re-executes this program under sudo when not already running as root.

    The replacement process keeps the same arguments and environment. It is
    marked so a failed escalation raises instead of looping.
    """
    if geteuid() == 0:
        return

    if os.environ.get(ESCALATION_MARKER) == "1":
        raise InsufficientPrivilege(
            "Privilege escalation via sudo did not yield root. Exiting."
        )

    sudo = which("sudo")
    if sudo is None:
        raise InsufficientPrivilege(
            "This script requires root privileges and 'sudo' is not available."
        )

    argv = list(sys.argv if argv is None else argv)
    print("This script requires sudo/root privileges. Attempting to re-run as sudo...")
    env = os.environ.copy()
    env[ESCALATION_MARKER] = "1"
    execve(sudo, [sudo, "-E", sys.executable, *argv], env)
    # Only reached when execve is replaced, e.g. in tests.


class PreconditionGate:
    """Validates privilege, required tools and free disk space."""

    def __init__(
        self,
        config,
        which: Callable[[str], Optional[str]] = shutil.which,
        disk_usage: Callable = shutil.disk_usage,
        geteuid: Callable[[], int] = os.geteuid,
        root: str = "/",
    ):
        self.config = config
        self.which = which
        self.disk_usage = disk_usage
        self.geteuid = geteuid
        self.root = root

    def check(self) -> None:
        """Runs every check in order; raises the first PreconditionError found."""
        logging.info("--> Checking privileges, dependencies and disk space...")
        self.check_privilege()
        self.check_dependencies()
        self.check_disk_space()
        logging.info("All preconditions satisfied.")

    def check_privilege(self) -> None:
        if self.geteuid() != 0:
            raise InsufficientPrivilege()

    def check_dependencies(self) -> None:
        missing = [
            tool for tool in self.config.required_commands if self.which(tool) is None
        ]
        if missing:
            raise MissingDependency(missing)

    def available_kb(self) -> int:
        return self.disk_usage(self.root).free // 1024

    def check_disk_space(self) -> None:
        required = self.config.required_space_kb
        available = self.available_kb()
        logging.debug(
            f"Disk space on {self.root}: {available} KB available, {required} KB required."
        )
        if available < required:
            raise InsufficientDiskSpace(required, available)
