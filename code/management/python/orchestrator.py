#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Master Orchestrator for Homelab Host Maintenance

This script is the single entry point for a maintenance run. It escalates to
root, configures logging, checks preconditions, runs every maintenance step in
a fixed order and always finishes with a summary and an optional reboot prompt.

Usage: sudo python orchestrator.py [-v] [--env-file PATH]
"""

# --- STANDARD LIBRARY IMPORTS ---
import argparse
import atexit
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

# --- LOCAL APPLICATION IMPORTS ---
from command_runner import CommandRunner
from config import ConfigError, MaintenanceConfig
from docker_manager import DockerManager
from firmware_manager import FirmwareManager
from helper_stager import HelperStager
from host_probe import HostProbe
from log_setup import setup_logging, shutdown_logging
from preconditions import (
    InsufficientPrivilege,
    PreconditionError,
    PreconditionGate,
    ensure_root,
)
from prompts import Prompter
from reporter import (
    EXIT_INTERRUPTED,
    EXIT_PRECONDITION,
    EXIT_STEP_FAILURE,
    SummaryReporter,
)
from step_runner import RunReport, StepRunner
from steps import FailureMode, MaintenanceStep, RunContext
from system_manager import SystemManager


def build_steps(
    system: SystemManager, docker: DockerManager, firmware: FirmwareManager
) -> List[MaintenanceStep]:
    """
    Returns the maintenance steps in execution order.

    Cleanup follows the upgrade so newly obsolete packages are removed, and
    the container helper is staged inside its own step before it runs.
    """
    return [
        MaintenanceStep(
            "refresh-package-lists",
            system.refresh_package_lists,
            failure_mode=FailureMode.ABORT,
        ),
        MaintenanceStep("install-dependencies", system.install_dependencies),
        MaintenanceStep(
            "full-upgrade", system.full_upgrade, failure_mode=FailureMode.ABORT
        ),
        MaintenanceStep(
            "secondary-packages",
            system.update_secondary_packages,
            eligible=system.has_secondary_package_system,
            skip_reason="no snap or flatpak installed",
        ),
        MaintenanceStep("cleanup-packages", system.cleanup_packages),
        MaintenanceStep("prune-old-kernels", system.prune_old_kernels),
        MaintenanceStep(
            "trim-journal",
            system.trim_journal,
            eligible=system.has_journalctl,
            skip_reason="journalctl not installed",
        ),
        MaintenanceStep(
            "container-maintenance",
            docker.maintain,
            eligible=docker.is_eligible,
            skip_reason=docker.skip_reason(),
        ),
        MaintenanceStep(
            "raspberry-pi-firmware",
            firmware.upgrade_raspberry_pi_firmware,
            eligible=firmware.is_raspberry_pi,
            skip_reason="not Raspberry Pi hardware",
            confirm="Do you want to run firmware update (rpi-update)?",
        ),
        MaintenanceStep(
            "fwupd-firmware",
            firmware.upgrade_fwupd_firmware,
            eligible=firmware.has_fwupd,
            skip_reason="fwupdmgr not installed",
            confirm="Do you want to apply firmware updates with fwupdmgr?",
        ),
        MaintenanceStep(
            "vendor-script",
            firmware.run_vendor_script,
            eligible=firmware.is_raspberry_pi,
            skip_reason="not Raspberry Pi hardware",
            confirm=f"Do you want to run the {firmware.config.vendor_script.name} script?",
        ),
    ]


class MaintenanceOrchestrator:
    """
    Coordinates one maintenance run by wiring the step catalogue to the runner.
    """

    def __init__(
        self,
        config: MaintenanceConfig,
        runner: CommandRunner,
        probe: HostProbe,
        stager: HelperStager,
        prompter,
    ):
        self.config = config
        self.stager = stager
        self.system = SystemManager(runner, config, probe)
        self.docker = DockerManager(runner, config, probe, stager)
        self.firmware = FirmwareManager(runner, config, probe)
        self.step_runner = StepRunner(prompter)
        self.reporter = SummaryReporter(runner, probe, prompter)

    @classmethod
    def from_config(cls, config: MaintenanceConfig) -> "MaintenanceOrchestrator":
        return cls(
            config=config,
            runner=CommandRunner(),
            probe=HostProbe(reboot_marker=config.reboot_marker),
            stager=HelperStager(config.helper_cache_dir, config.helper_cache_policy),
            prompter=Prompter(timeout=config.prompt_timeout),
        )

    def steps(self) -> List[MaintenanceStep]:
        return build_steps(self.system, self.docker, self.firmware)

    def run(self, ctx: Optional[RunContext] = None) -> int:
        """Runs every step, then always finalizes. Returns the exit code."""
        ctx = ctx if ctx is not None else RunContext(config=self.config)
        logging.info(
            f"Maintenance started on {ctx.hostname} at "
            f"{ctx.started_at.strftime('%Y-%m-%d %H:%M:%S')}."
        )
        report = None
        try:
            report = self.step_runner.run(self.steps(), ctx)
        finally:
            if report is None:
                # The runner was interrupted; summarize what was recorded.
                report = RunReport(outcomes=tuple(ctx.outcomes))
            code = self.reporter.finalize(ctx, report)
            self.stager.cleanup()
        return code


def execute(
    config: MaintenanceConfig,
    gate: PreconditionGate,
    orchestrator: MaintenanceOrchestrator,
) -> int:
    """Checks preconditions and runs the orchestrator. Logging must already be set up."""
    try:
        gate.check()
    except PreconditionError as e:
        logging.error(f"Precondition failed: {e}")
        return EXIT_PRECONDITION

    try:
        return orchestrator.run()
    except KeyboardInterrupt:
        logging.warning("Interrupted by user.")
        return EXIT_INTERRUPTED
    except Exception as e:
        logging.critical(f"An unexpected error occurred: {e}", exc_info=True)
        return EXIT_STEP_FAILURE


def _raise_on_signal(signum, frame):
    raise SystemExit(128 + signum)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Homelab host maintenance.")
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug output, including captured command output.",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Path to a .env file with configuration overrides.",
    )
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main function to parse arguments and run the maintenance sequence."""
    args = parse_args(argv)

    if sys.platform != "linux":
        print("[ERROR] This script is designed for Linux systems with 'apt'.")
        return EXIT_PRECONDITION

    try:
        ensure_root(sys.argv if argv is None else [sys.argv[0], *argv])
    except InsufficientPrivilege as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return EXIT_PRECONDITION

    try:
        config = MaintenanceConfig.from_env(args.env_file)
    except ConfigError as e:
        print(f"[ERROR] Invalid configuration: {e}", file=sys.stderr)
        return EXIT_PRECONDITION

    setup_logging(config.log_dir, config.log_file, verbose=args.verbose)

    orchestrator = MaintenanceOrchestrator.from_config(config)
    atexit.register(orchestrator.stager.cleanup)
    for signum in (signal.SIGTERM, signal.SIGHUP):
        signal.signal(signum, _raise_on_signal)

    try:
        return execute(config, PreconditionGate(config), orchestrator)
    finally:
        shutdown_logging()


if __name__ == "__main__":
    sys.exit(main())
