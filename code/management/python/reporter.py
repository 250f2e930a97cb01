#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
End-of-run summary, reboot prompt and exit status.
"""

# --- STANDARD LIBRARY IMPORTS ---
import logging
from datetime import datetime
from typing import Callable

from command_runner import CommandRunner
from host_probe import HostProbe
from step_runner import RunReport
from steps import RunContext, StepStatus

EXIT_OK = 0
EXIT_PRECONDITION = 1
EXIT_STEP_FAILURE = 2
EXIT_INTERRUPTED = 130


class SummaryReporter:
    """Renders the itemized summary and decides the process exit code."""

    def __init__(
        self,
        runner: CommandRunner,
        probe: HostProbe,
        prompter: Callable[[str], bool],
    ):
        self.runner = runner
        self.probe = probe
        self.prompter = prompter

    def render(self, ctx: RunContext, report: RunReport) -> str:
        elapsed = datetime.now() - ctx.started_at
        lines = [f"Updates Summary for {ctx.hostname} (elapsed {str(elapsed).split('.')[0]}):"]
        for outcome in report.outcomes:
            lines.append(
                f"- [{outcome.status.value.upper()}] {outcome.step}: {outcome.message}"
            )
        if not report.outcomes:
            lines.append("- No steps were run.")
        counts = report.counts
        lines.append(
            ", ".join(f"{counts[status]} {status.value}" for status in StepStatus)
        )
        if report.hard_failure is not None:
            lines.append(f"Run aborted at step '{report.hard_failure.step}'.")
        return "\n".join(lines)

    def exit_code(self, report: RunReport) -> int:
        return EXIT_STEP_FAILURE if report.failed else EXIT_OK

    def offer_reboot(self, ctx: RunContext) -> None:
        if not self.probe.reboot_required():
            logging.debug("No reboot required.")
            return

        logging.warning("A system reboot is required to complete updates.")
        if self.prompter("Reboot now?"):
            ctx.reboot_requested = True
            logging.info("Rebooting...")
            result = self.runner.run("systemctl", "reboot")
            if not result.ok:
                logging.error(f"Reboot request failed (exit code {result.exit_code}).")
        else:
            logging.info("Reboot postponed.")

    def finalize(self, ctx: RunContext, report: RunReport) -> int:
        """Logs the summary, offers a reboot if one is pending, returns the exit code."""
        logging.info("--- Updates Summary ---")
        for line in self.render(ctx, report).splitlines():
            if report.failed and line.startswith("Run aborted"):
                logging.error(line)
            else:
                logging.info(line)

        self.offer_reboot(ctx)

        code = self.exit_code(report)
        logging.info(f"--- Maintenance finished with exit code {code} ---")
        return code
