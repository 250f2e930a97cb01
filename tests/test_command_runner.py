"""
Tests for CommandRunner against real, harmless system commands.
"""

import logging

from command_runner import EXIT_COMMAND_NOT_FOUND, CommandRunner


class TestCommandRunner:
    def test_success(self):
        result = CommandRunner().run("true")

        assert result.ok
        assert result.exit_code == 0
        assert result.command == "true"

    def test_nonzero_exit_is_returned_not_raised(self):
        result = CommandRunner().run("sh", "-c", "exit 3")

        assert not result.ok
        assert result.exit_code == 3

    def test_accepted_exit_code_reported_as_zero(self):
        result = CommandRunner().run("sh", "-c", "exit 2", ok_codes=(0, 2))

        assert result.ok

    def test_accepted_exit_code_is_not_logged_as_error(self, caplog):
        caplog.set_level(logging.DEBUG)

        result = CommandRunner().run("sh", "-c", "exit 2", ok_codes=(0, 2))

        assert result.exit_code == 0
        assert result.raw_exit_code == 2
        assert not [r for r in caplog.records if r.levelno >= logging.ERROR]

    def test_missing_program(self):
        result = CommandRunner().run("definitely-not-an-installed-tool-xyz")

        assert result.exit_code == EXIT_COMMAND_NOT_FOUND

    def test_output_is_captured_and_logged(self, caplog):
        caplog.set_level(logging.INFO)

        result = CommandRunner().run("sh", "-c", "echo hello; echo warn >&2")

        assert result.stdout == "hello\n"
        assert result.stderr == "warn\n"
        assert "hello" in caplog.text
        assert "[stderr] warn" in caplog.text

    def test_captured_output_only_logged_at_debug(self, caplog):
        caplog.set_level(logging.INFO)

        result = CommandRunner().run("echo", "quiet", capture=True)

        assert result.stdout == "quiet\n"
        assert not any(
            record.getMessage() == "quiet"
            for record in caplog.records
            if record.levelno >= logging.INFO
        )

    def test_environment_overrides_are_merged(self):
        result = CommandRunner(base_env={"BASE_VAR": "a"}).run(
            "sh", "-c", 'echo "$BASE_VAR-$EXTRA_VAR-${PATH:+path}"', env={"EXTRA_VAR": "b"}
        )

        assert result.stdout == "a-b-path\n"
