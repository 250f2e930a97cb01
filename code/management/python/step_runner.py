#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Runs the ordered maintenance steps and classifies every outcome.

For each step the runner:

1. Evaluates the eligibility predicate. An ineligible step is recorded as
   skipped and is neither prompted for nor executed.
2. Asks for confirmation if the step is interactive. A decline, timeout or
   end of input records the step as skipped.
3. Executes the step body. Exceptions raised by the body are caught and
   treated as a failed step, so no fault escapes the runner.
4. Classifies the result: exit code 0 succeeds; a nonzero exit code is a
   soft failure on continue-on-failure steps and a hard failure on
   abort-on-failure steps. A hard failure stops the run.
"""

# --- STANDARD LIBRARY IMPORTS ---
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence, Tuple

from steps import (
    FailureMode,
    MaintenanceStep,
    RunContext,
    StepOutcome,
    StepResult,
    StepStatus,
)

USER_DECLINED = "user declined"


@dataclass(frozen=True)
class RunReport:
    """Snapshot of a finished step sequence."""

    outcomes: Tuple[StepOutcome, ...]
    hard_failure: Optional[StepOutcome] = None

    @property
    def counts(self) -> Dict[StepStatus, int]:
        counts = {status: 0 for status in StepStatus}
        for outcome in self.outcomes:
            counts[outcome.status] += 1
        return counts

    @property
    def failed(self) -> bool:
        return self.hard_failure is not None


class StepRunner:
    """Executes maintenance steps strictly in order, one at a time."""

    def __init__(self, prompter: Callable[[str], bool]):
        self.prompter = prompter

    def run(self, steps: Sequence[MaintenanceStep], ctx: RunContext) -> RunReport:
        total = len(steps)
        logging.info(f"--- Starting maintenance run on {ctx.hostname} ({total} steps) ---")

        hard_failure = None
        for position, step in enumerate(steps, 1):
            logging.info(f"--> [{position}/{total}] {step.name}")
            outcome = self._run_step(step, ctx)
            ctx.record(outcome)
            self._log_outcome(outcome)

            if outcome.status is StepStatus.HARD_FAILED:
                hard_failure = outcome
                remaining = total - position
                logging.error(
                    f"Step '{step.name}' failed and is marked abort-on-failure; "
                    f"skipping the remaining {remaining} step(s)."
                )
                break

        return RunReport(outcomes=tuple(ctx.outcomes), hard_failure=hard_failure)

    def _run_step(self, step: MaintenanceStep, ctx: RunContext) -> StepOutcome:
        if step.eligible is not None and not step.eligible(ctx):
            return StepOutcome(step.name, StepStatus.SKIPPED, step.skip_reason)

        if step.confirm is not None and not self.prompter(step.confirm):
            return StepOutcome(step.name, StepStatus.SKIPPED, USER_DECLINED)

        try:
            result = step.action(ctx)
        except Exception as e:
            logging.error(
                f"Unexpected error while running step '{step.name}': {e}",
                exc_info=True,
            )
            result = StepResult(1, f"unexpected error: {e}")

        return self._classify(step, result)

    @staticmethod
    def _classify(step: MaintenanceStep, result: StepResult) -> StepOutcome:
        if result.skipped:
            return StepOutcome(step.name, StepStatus.SKIPPED, result.message)
        if result.exit_code == 0:
            return StepOutcome(step.name, StepStatus.SUCCEEDED, result.message)
        if step.failure_mode is FailureMode.ABORT:
            return StepOutcome(step.name, StepStatus.HARD_FAILED, result.message)
        return StepOutcome(step.name, StepStatus.SOFT_FAILED, result.message)

    @staticmethod
    def _log_outcome(outcome: StepOutcome) -> None:
        text = f"{outcome.step}: {outcome.status.value} - {outcome.message}"
        if outcome.status is StepStatus.HARD_FAILED:
            logging.error(text)
        elif outcome.status is StepStatus.SOFT_FAILED:
            logging.warning(text)
        else:
            logging.info(text)
