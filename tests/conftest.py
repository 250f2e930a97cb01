"""
Shared test fixtures and fakes for the maintenance orchestrator.
"""

from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

from command_runner import CommandResult
from config import MaintenanceConfig
from steps import RunContext


class FakeRunner:
    """Records commands and answers them from a table of canned results.

    Responses are keyed by a command prefix such as "apt-get -y full-upgrade";
    the longest matching prefix wins. Unmatched commands exit 0 with no output.
    """

    def __init__(self, responses: Optional[Dict[str, Tuple[int, str]]] = None):
        self.responses = dict(responses or {})
        self.calls: List[str] = []
        self.envs: List[Optional[Dict[str, str]]] = []
        self.ok_codes: List[Tuple[int, ...]] = []

    def run(self, program, *args, env=None, ok_codes=(0,), capture=False):
        command = " ".join([program, *args])
        self.calls.append(command)
        self.envs.append(env)
        self.ok_codes.append(tuple(ok_codes))
        exit_code, stdout = 0, ""
        matches = [key for key in self.responses if command.startswith(key)]
        if matches:
            exit_code, stdout = self.responses[max(matches, key=len)]
        raw_exit_code = exit_code
        if exit_code in ok_codes:
            exit_code = 0
        return CommandResult(
            command=command, exit_code=exit_code, stdout=stdout, raw_exit_code=raw_exit_code
        )

    def ran(self, prefix: str) -> bool:
        return any(call.startswith(prefix) for call in self.calls)


class FakeProbe:
    def __init__(self, tools=(), raspberry_pi=False, reboot=False, files=()):
        self.tools = set(tools)
        self.raspberry_pi = raspberry_pi
        self.reboot = reboot
        self.files = {Path(f) for f in files}
        self.queries: List[str] = []

    def is_raspberry_pi(self) -> bool:
        self.queries.append("is_raspberry_pi")
        return self.raspberry_pi

    def tool_present(self, name: str) -> bool:
        self.queries.append(f"tool_present:{name}")
        return name in self.tools

    def reboot_required(self) -> bool:
        return self.reboot

    def path_exists(self, path) -> bool:
        return Path(path) in self.files


class FakePrompter:
    def __init__(self, answer: bool = True):
        self.answer = answer
        self.questions: List[str] = []

    def __call__(self, question: str) -> bool:
        self.questions.append(question)
        return self.answer


class FakeStager:
    def __init__(self, path: Path, error: Optional[Exception] = None):
        self.path = path
        self.error = error
        self.staged: List[Tuple[str, str, str]] = []
        self.released: List[Path] = []
        self.cleaned = 0

    def stage(self, url_template, version_ref, name):
        self.staged.append((url_template, version_ref, name))
        if self.error is not None:
            raise self.error
        return self.path

    def release(self, path):
        self.released.append(path)

    def cleanup(self):
        self.cleaned += 1


@pytest.fixture
def config(tmp_path: Path) -> MaintenanceConfig:
    """A configuration pointing every filesystem touchpoint into tmp_path."""
    return MaintenanceConfig(
        log_dir=tmp_path / "log",
        helper_cache_dir=tmp_path / "cache",
        vendor_script=tmp_path / "unifi-update.sh",
        reboot_marker=tmp_path / "reboot-required",
        prompt_timeout=1,
    )


@pytest.fixture
def ctx(config: MaintenanceConfig) -> RunContext:
    return RunContext(config=config, hostname="testhost")


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()
