#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Command execution for maintenance steps.

CommandRunner wraps the 'sh' library so that every external command comes
back as a CommandResult instead of an exception. Output is streamed into the
log line by line as it arrives, and exit codes are classified by the caller.
"""

# --- STANDARD LIBRARY IMPORTS ---
import logging
import os
import sys
from dataclasses import dataclass
from typing import Dict, Iterable, Optional

# --- THIRD-PARTY LIBRARY IMPORTS ---
try:
    import sh
except ImportError:
    print("[ERROR] The 'sh' library is not installed. Please run: pip install sh")
    sys.exit(1)

EXIT_COMMAND_NOT_FOUND = 127


@dataclass(frozen=True)
class CommandResult:
    """The observable result of one external command."""

    command: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    # Exit code as returned by the process, before ok_codes are applied.
    raw_exit_code: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class CommandRunner:
    """Runs external commands, tees their output to the log and reports exit codes."""

    def __init__(self, base_env: Optional[Dict[str, str]] = None):
        self.base_env = dict(base_env) if base_env is not None else None

    def _log_output(self, line: str, source: str, capture: bool):
        """
        Logs one line of command output, distinguishing between stdout and stderr.
        """
        line = line.rstrip()
        if not line:
            return  # Avoid logging empty lines.

        log = logging.debug if capture else logging.info
        if source == "stderr":
            # Package managers write progress and warnings to stderr.
            log(f"[stderr] {line}")
        else:
            log(line)

    def _build_env(self, env: Optional[Dict[str, str]]) -> Optional[Dict[str, str]]:
        if env is None and self.base_env is None:
            return None
        merged = os.environ.copy()
        if self.base_env:
            merged.update(self.base_env)
        if env:
            logging.debug(f"Environment overrides: {env}")
            merged.update(env)
        return merged

    def run(
        self,
        program: str,
        *args: str,
        env: Optional[Dict[str, str]] = None,
        ok_codes: Iterable[int] = (0,),
        capture: bool = False,
    ) -> CommandResult:
        """
        Runs a command to completion and returns its CommandResult.

        Exit codes listed in ok_codes are reported as 0. When capture is True,
        output is still recorded in the result but only logged at DEBUG.
        """
        cmd_str = " ".join([program, *args])
        logging.info(f"Running command: {cmd_str}")

        try:
            command = sh.Command(program)
        except sh.CommandNotFound:
            logging.error(f"'{program}' command not found.")
            return CommandResult(cmd_str, EXIT_COMMAND_NOT_FOUND)

        stdout_lines = []
        stderr_lines = []

        def on_stdout(line):
            stdout_lines.append(line)
            self._log_output(line, "stdout", capture)

        def on_stderr(line):
            stderr_lines.append(line)
            self._log_output(line, "stderr", capture)

        ok_codes = list(ok_codes)
        kwargs = {
            "_ok_code": ok_codes,
            "_out": on_stdout,
            "_err": on_stderr,
            "_tty_out": False,
            "_return_cmd": True,
        }
        merged_env = self._build_env(env)
        if merged_env is not None:
            kwargs["_env"] = merged_env

        try:
            running = command(*args, **kwargs)
            exit_code = running.exit_code
        except sh.ErrorReturnCode as e:
            exit_code = e.exit_code
            if exit_code < 0:
                # Killed by a signal; report it the way a shell would.
                exit_code = 128 + abs(exit_code)
            logging.error(f"Command failed with exit code {exit_code}: {cmd_str}")
        except OSError as e:
            logging.error(f"Could not execute '{cmd_str}': {e}")
            exit_code = EXIT_COMMAND_NOT_FOUND

        raw_exit_code = exit_code
        if exit_code in ok_codes and exit_code != 0:
            logging.debug(f"Exit code {exit_code} accepted for: {cmd_str}")
            exit_code = 0
        elif exit_code == 0:
            logging.debug(f"Command '{cmd_str}' executed successfully.")

        return CommandResult(
            command=cmd_str,
            exit_code=exit_code,
            stdout="".join(stdout_lines),
            stderr="".join(stderr_lines),
            raw_exit_code=raw_exit_code,
        )
