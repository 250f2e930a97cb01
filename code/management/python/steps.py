#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Data model for a maintenance run: steps, their results and the run context.
"""

# --- STANDARD LIBRARY IMPORTS ---
import socket
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional

from command_runner import CommandResult
from config import MaintenanceConfig


class FailureMode(Enum):
    ABORT = "abort-on-failure"
    CONTINUE = "continue-on-failure"


class StepStatus(Enum):
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    SOFT_FAILED = "soft-failed"
    HARD_FAILED = "hard-failed"


@dataclass(frozen=True)
class StepResult:
    """What a step body reports back to the runner."""

    exit_code: int
    message: str
    skipped: bool = False

    @classmethod
    def from_command(
        cls, result: CommandResult, success: str, failure: str
    ) -> "StepResult":
        if result.ok:
            return cls(0, success)
        return cls(result.exit_code, f"{failure} (exit code {result.exit_code})")

    @classmethod
    def skip(cls, reason: str) -> "StepResult":
        return cls(0, reason, skipped=True)


@dataclass(frozen=True)
class StepOutcome:
    """The recorded outcome of one step. Immutable once recorded."""

    step: str
    status: StepStatus
    message: str


@dataclass(frozen=True)
class MaintenanceStep:
    """A single maintenance action with its failure classification and eligibility."""

    name: str
    action: Callable[["RunContext"], StepResult]
    failure_mode: FailureMode = FailureMode.CONTINUE
    eligible: Optional[Callable[["RunContext"], bool]] = None
    skip_reason: str = "not applicable on this host"
    confirm: Optional[str] = None


@dataclass
class RunContext:
    """Process-wide state for one invocation."""

    config: MaintenanceConfig
    hostname: str = field(default_factory=socket.gethostname)
    started_at: datetime = field(default_factory=datetime.now)
    outcomes: List[StepOutcome] = field(default_factory=list)
    reboot_requested: bool = False

    def record(self, outcome: StepOutcome) -> None:
        self.outcomes.append(outcome)
