#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
System Management Utility

This module provides a SystemManager class to handle system-level maintenance,
primarily package management with 'apt'. Each public method is the body of one
maintenance step: it runs its commands through the CommandRunner and reports a
StepResult instead of raising, so the step runner can classify the outcome.
"""

# --- STANDARD LIBRARY IMPORTS ---
import logging
import re
from typing import Dict, Iterable, List, Tuple

from command_runner import CommandRunner
from config import MaintenanceConfig
from host_probe import HostProbe, count_pending_upgrades
from steps import RunContext, StepResult

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}
# Keep locally modified config files and take the package default for the rest.
DPKG_OPTIONS = (
    "-o",
    "Dpkg::Options::=--force-confdef",
    "-o",
    "Dpkg::Options::=--force-confold",
)
KERNEL_PACKAGE_PATTERN = "linux-image-[0-9]*"
KERNEL_PREFIX = "linux-image-"


def split_kernel_release(release: str) -> Tuple[str, str]:
    """
    Splits a kernel release into its version and flavour.

    The version is the leading run of '-'-separated fields that start with a
    digit and the rest is the flavour: '6.1.0-18-amd64' gives
    ('6.1.0-18', 'amd64') and '6.6.51+rpt-rpi-v7l' gives ('6.6.51+rpt', 'rpi-v7l').
    """
    fields = release.split("-")
    count = 1
    while count < len(fields) and fields[count][:1].isdigit():
        count += 1
    return "-".join(fields[:count]), "-".join(fields[count:])


def _version_key(version: str) -> Tuple[int, ...]:
    return tuple(int(part) for part in re.findall(r"\d+", version))


def parse_installed_kernels(dpkg_output: str) -> List[str]:
    """
    Returns installed kernel image packages from 'dpkg-query' output.

    Expects lines of the form '<package> <status-abbrev>'. Only fully installed
    packages ('ii') are returned; removed-but-configured ones are ignored.
    """
    kernels = []
    for line in dpkg_output.splitlines():
        parts = line.split()
        if len(parts) >= 2 and parts[1] == "ii" and parts[0].startswith(KERNEL_PREFIX):
            kernels.append(parts[0])
    return kernels


def select_kernels_to_purge(
    installed: Iterable[str], running_release: str, keep: int
) -> List[str]:
    """
    Picks the kernel packages that are safe to purge.

    Packages are grouped by flavour (Raspberry Pi OS installs several flavours
    of one release side by side). Within each flavour the newest `keep`
    versions are retained, and every flavour of the running version is kept.
    """
    running_version, _ = split_kernel_release(running_release)
    by_flavour: Dict[str, List[Tuple[str, str]]] = {}
    for package in set(installed):
        version, flavour = split_kernel_release(package[len(KERNEL_PREFIX):])
        by_flavour.setdefault(flavour, []).append((version, package))

    to_purge = []
    for flavour in sorted(by_flavour):
        ordered = sorted(by_flavour[flavour], key=lambda item: _version_key(item[0]))
        newest = {version for version, _ in ordered[-keep:]} if keep > 0 else set()
        newest.add(running_version)
        to_purge.extend(pkg for version, pkg in ordered if version not in newest)
    return to_purge


class SystemManager:
    """
    Handles system maintenance tasks like package updates using 'apt'.
    """

    def __init__(self, runner: CommandRunner, config: MaintenanceConfig, probe: HostProbe):
        self.runner = runner
        self.config = config
        self.probe = probe
        logging.debug("SystemManager initialized.")

    def _apt(self, *args: str, ok_codes=(0,)):
        return self.runner.run("apt-get", *args, env=APT_ENV, ok_codes=ok_codes)

    def refresh_package_lists(self, ctx: RunContext) -> StepResult:
        """Updates the package lists."""
        logging.info("Updating package information...")
        return StepResult.from_command(
            self._apt("update"),
            success="Package information updated.",
            failure="Package information update failed",
        )

    def install_dependencies(self, ctx: RunContext) -> StepResult:
        """Installs the packages later steps rely on."""
        packages = self.config.dependency_packages
        if not packages:
            return StepResult(0, "No dependency packages configured.")
        logging.info(f"Ensuring dependency packages are installed: {', '.join(packages)}")
        return StepResult.from_command(
            self._apt("install", "-y", "--no-install-recommends", *DPKG_OPTIONS, *packages),
            success=f"Dependency packages present: {', '.join(packages)}.",
            failure=f"Installing {', '.join(packages)} failed",
        )

    def full_upgrade(self, ctx: RunContext) -> StepResult:
        """Performs a full upgrade of installed packages."""
        simulation = self.runner.run(
            "apt-get", "-s", "full-upgrade", env=APT_ENV, capture=True
        )
        if simulation.ok:
            pending = count_pending_upgrades(simulation.stdout)
            logging.info(f"{pending} package(s) pending upgrade.")
        else:
            pending = None
            logging.warning("Could not determine the number of pending upgrades.")

        logging.info("Performing a full upgrade of installed packages...")
        result = self._apt("-y", *DPKG_OPTIONS, "full-upgrade")
        if result.ok and pending == 0:
            return StepResult(0, "System already up to date.")
        if result.ok and pending:
            return StepResult(0, f"Full upgrade performed ({pending} package(s)).")
        return StepResult.from_command(
            result,
            success="Full upgrade of installed packages performed.",
            failure="Full upgrade failed",
        )

    def has_secondary_package_system(self, ctx: RunContext) -> bool:
        return self.probe.tool_present("snap") or self.probe.tool_present("flatpak")

    def update_secondary_packages(self, ctx: RunContext) -> StepResult:
        """Refreshes snap and flatpak packages when those systems are installed."""
        updated = []
        failures = []
        if self.probe.tool_present("snap"):
            logging.info("Refreshing snap packages...")
            result = self.runner.run("snap", "refresh")
            (updated if result.ok else failures).append(("snap", result.exit_code))
        if self.probe.tool_present("flatpak"):
            logging.info("Updating flatpak packages...")
            result = self.runner.run("flatpak", "update", "-y", "--noninteractive")
            (updated if result.ok else failures).append(("flatpak", result.exit_code))

        if failures:
            details = ", ".join(f"{name} (exit code {code})" for name, code in failures)
            return StepResult(failures[0][1], f"Secondary package update failed: {details}")
        names = ", ".join(name for name, _ in updated)
        return StepResult(0, f"Secondary packages updated: {names}.")

    def cleanup_packages(self, ctx: RunContext) -> StepResult:
        """Removes unnecessary packages and cleans the local package cache."""
        logging.info("Removing unnecessary packages...")
        autoremove = self._apt("-y", "autoremove", "--purge")
        if not autoremove.ok:
            return StepResult.from_command(autoremove, "", "Autoremove failed")

        logging.info("Cleaning up old package files...")
        return StepResult.from_command(
            self._apt("autoclean"),
            success="Unnecessary packages removed and package cache cleaned.",
            failure="Package cache cleanup failed",
        )

    def prune_old_kernels(self, ctx: RunContext) -> StepResult:
        """Purges kernel images other than the running one and the newest few."""
        release = self.runner.run("uname", "-r", capture=True)
        if not release.ok:
            return StepResult.from_command(
                release, "", "Could not determine the running kernel"
            )
        if not release.stdout.strip():
            return StepResult(1, "Could not determine the running kernel (empty output)")
        running_release = release.stdout.strip()

        # dpkg-query exits 1 when no package matches the pattern.
        listing = self.runner.run(
            "dpkg-query",
            "-W",
            "--showformat=${Package} ${db:Status-Abbrev}\\n",
            KERNEL_PACKAGE_PATTERN,
            ok_codes=(0, 1),
            capture=True,
        )
        if not listing.ok:
            return StepResult.from_command(listing, "", "Listing installed kernels failed")

        installed = parse_installed_kernels(listing.stdout)
        to_purge = select_kernels_to_purge(
            installed, running_release, self.config.kernels_to_keep
        )
        logging.info(
            f"Running kernel {running_release}; {len(installed)} kernel image(s) installed."
        )
        if not to_purge:
            return StepResult(0, "No old kernels to remove.")

        logging.info(f"Purging old kernels: {', '.join(to_purge)}")
        return StepResult.from_command(
            self._apt("-y", "purge", *to_purge),
            success=f"Removed {len(to_purge)} old kernel(s): {', '.join(to_purge)}.",
            failure="Purging old kernels failed",
        )

    def has_journalctl(self, ctx: RunContext) -> bool:
        return self.probe.tool_present("journalctl")

    def trim_journal(self, ctx: RunContext) -> StepResult:
        """Vacuums the systemd journal down to the configured retention period."""
        retention = self.config.journal_retention
        logging.info(f"Trimming journal entries older than {retention}...")
        return StepResult.from_command(
            self.runner.run("journalctl", f"--vacuum-time={retention}"),
            success=f"Journal trimmed to {retention}.",
            failure="Journal trim failed",
        )
