"""
Tests for the precondition gate and privilege escalation.
"""

from collections import namedtuple

import pytest

from preconditions import (
    ESCALATION_MARKER,
    InsufficientDiskSpace,
    InsufficientPrivilege,
    MissingDependency,
    PreconditionGate,
    ensure_root,
    format_kb,
)

Usage = namedtuple("Usage", "total used free")


def disk_with_free_kb(kb):
    return lambda path: Usage(total=0, used=0, free=kb * 1024)


def make_gate(config, free_kb=10 * 1024 * 1024, euid=0, present=None):
    present = set(config.required_commands) if present is None else set(present)
    return PreconditionGate(
        config,
        which=lambda name: f"/usr/bin/{name}" if name in present else None,
        disk_usage=disk_with_free_kb(free_kb),
        geteuid=lambda: euid,
    )


class TestFormatKb:
    @pytest.mark.parametrize(
        "kb, expected",
        [
            (307200, "300MB"),
            (1048576, "1GB"),
            (512000, "500MB"),
            (1572864, "1.5GB"),
            (512, "512KB"),
        ],
    )
    def test_human_figures(self, kb, expected):
        assert format_kb(kb) == expected


class TestDiskSpace:
    @pytest.mark.parametrize(
        "threshold, available",
        [(512000, 511999), (512000, 512000), (1048576, 307200), (100, 10**9), (0, 0)],
    )
    def test_aborts_iff_available_below_threshold(self, config, threshold, available):
        config.required_space_kb = threshold
        gate = make_gate(config, free_kb=available)

        if available < threshold:
            with pytest.raises(InsufficientDiskSpace) as exc:
                gate.check()
            assert str(threshold) in str(exc.value)
            assert str(available) in str(exc.value)
        else:
            gate.check()

    def test_message_names_human_figures(self, config):
        config.required_space_kb = 1048576
        gate = make_gate(config, free_kb=307200)

        with pytest.raises(InsufficientDiskSpace) as exc:
            gate.check_disk_space()

        assert "300MB" in str(exc.value)
        assert "1GB" in str(exc.value)
        assert exc.value.required_kb == 1048576
        assert exc.value.available_kb == 307200


class TestDependencies:
    def test_lists_all_missing_tools_in_configured_order(self, config):
        config.required_commands = ["apt-get", "dpkg-query", "uname", "df"]
        gate = make_gate(config, present=["apt-get", "uname"])

        with pytest.raises(MissingDependency) as exc:
            gate.check()

        assert exc.value.tools == ["dpkg-query", "df"]
        assert "dpkg-query, df" in str(exc.value)

    def test_all_present_passes(self, config):
        make_gate(config).check_dependencies()


class TestPrivilege:
    def test_non_root_fails_first(self, config):
        gate = make_gate(config, euid=1000, free_kb=0, present=[])

        with pytest.raises(InsufficientPrivilege):
            gate.check()


class TestEnsureRoot:
    def test_root_does_nothing(self):
        calls = []
        ensure_root(["prog"], geteuid=lambda: 0, execve=lambda *a: calls.append(a))
        assert calls == []

    def test_reexecs_once_under_sudo_with_same_arguments(self, monkeypatch):
        monkeypatch.delenv(ESCALATION_MARKER, raising=False)
        calls = []

        ensure_root(
            ["orchestrator.py", "-v"],
            geteuid=lambda: 1000,
            which=lambda name: "/usr/bin/sudo",
            execve=lambda path, args, env: calls.append((path, args, env)),
        )

        assert len(calls) == 1
        path, args, env = calls[0]
        assert path == "/usr/bin/sudo"
        assert args[1] == "-E"
        assert args[-2:] == ["orchestrator.py", "-v"]
        assert env[ESCALATION_MARKER] == "1"

    def test_failed_escalation_does_not_loop(self, monkeypatch):
        monkeypatch.setenv(ESCALATION_MARKER, "1")

        with pytest.raises(InsufficientPrivilege):
            ensure_root(["prog"], geteuid=lambda: 1000, execve=lambda *a: None)

    def test_missing_sudo(self, monkeypatch):
        monkeypatch.delenv(ESCALATION_MARKER, raising=False)

        with pytest.raises(InsufficientPrivilege):
            ensure_root(["prog"], geteuid=lambda: 1000, which=lambda name: None)
