#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Optional hardware-specific maintenance.

Two firmware mechanisms are supported, each as its own step: 'rpi-update' for
Raspberry Pi boards and 'fwupdmgr' for LVFS-capable hardware. They share the
optional-step pattern (eligibility predicate plus confirmation) but never a
code path. The vendor script step runs a locally provided maintenance script.
"""

# --- STANDARD LIBRARY IMPORTS ---
import logging
import os
import stat

from command_runner import CommandRunner
from config import MaintenanceConfig
from host_probe import HostProbe
from steps import RunContext, StepResult

# fwupdmgr exits 2 when there is nothing to do (no devices, no updates).
FWUPD_NOTHING_TO_DO = 2


class FirmwareManager:
    """Runs firmware upgrades and the vendor maintenance script."""

    def __init__(self, runner: CommandRunner, config: MaintenanceConfig, probe: HostProbe):
        self.runner = runner
        self.config = config
        self.probe = probe

    def is_raspberry_pi(self, ctx: RunContext) -> bool:
        return self.probe.is_raspberry_pi()

    def has_fwupd(self, ctx: RunContext) -> bool:
        return self.probe.tool_present("fwupdmgr")

    def upgrade_raspberry_pi_firmware(self, ctx: RunContext) -> StepResult:
        """Upgrades the Raspberry Pi firmware with rpi-update, installing it first if needed."""
        if not self.probe.tool_present("rpi-update"):
            logging.info("rpi-update is not installed, installing it...")
            installed = self.runner.run(
                "apt-get",
                "install",
                "-y",
                "rpi-update",
                env={"DEBIAN_FRONTEND": "noninteractive"},
            )
            if not installed.ok:
                return StepResult.from_command(
                    installed, "", "Installing rpi-update failed"
                )

        logging.info("Upgrading firmware...")
        # The operator already confirmed; rpi-update's own warning prompt is redundant.
        return StepResult.from_command(
            self.runner.run("rpi-update", env={"SKIP_WARNING": "1"}),
            success="Firmware upgraded using rpi-update.",
            failure="rpi-update failed",
        )

    def upgrade_fwupd_firmware(self, ctx: RunContext) -> StepResult:
        """Refreshes LVFS metadata and applies any available firmware updates."""
        ok_codes = (0, FWUPD_NOTHING_TO_DO)

        devices = self.runner.run("fwupdmgr", "get-devices", ok_codes=ok_codes, capture=True)
        if not devices.ok:
            return StepResult.from_command(devices, "", "Listing firmware devices failed")

        refresh = self.runner.run("fwupdmgr", "refresh", "--force", ok_codes=ok_codes)
        if not refresh.ok:
            return StepResult.from_command(refresh, "", "Refreshing firmware metadata failed")

        check = self.runner.run("fwupdmgr", "get-updates", ok_codes=ok_codes)
        if check.ok and check.raw_exit_code == FWUPD_NOTHING_TO_DO:
            return StepResult(0, "Firmware already up to date.")
        if not check.ok:
            return StepResult.from_command(check, "", "Checking firmware updates failed")

        return StepResult.from_command(
            self.runner.run("fwupdmgr", "update", "-y", "--no-reboot-check", ok_codes=ok_codes),
            success="Firmware updates applied with fwupdmgr.",
            failure="fwupdmgr update failed",
        )

    def run_vendor_script(self, ctx: RunContext) -> StepResult:
        """Makes the vendor script executable and runs it with no arguments."""
        script = self.config.vendor_script
        if not self.probe.path_exists(script):
            logging.warning(f"'{script}' not found. Skipped.")
            return StepResult.skip(f"{script} not found")

        mode = os.stat(script).st_mode
        os.chmod(script, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        logging.info(f"Running {script.name}...")
        return StepResult.from_command(
            self.runner.run(str(script)),
            success=f"Executed {script.name} script.",
            failure=f"{script.name} failed",
        )
