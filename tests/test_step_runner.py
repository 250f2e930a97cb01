"""
Tests for step ordering, eligibility gating and outcome classification.
"""

import pytest

from conftest import FakePrompter
from step_runner import USER_DECLINED, StepRunner
from steps import FailureMode, MaintenanceStep, StepResult, StepStatus


def make_step(name, exit_code=0, failure_mode=FailureMode.CONTINUE, log=None, **kwargs):
    def action(ctx):
        if log is not None:
            log.append(name)
        return StepResult(exit_code, f"{name} exit {exit_code}")

    return MaintenanceStep(name, action, failure_mode=failure_mode, **kwargs)


class TestClassification:
    def test_all_steps_succeed_in_order(self, ctx):
        executed = []
        steps = [make_step(f"step-{i}", log=executed) for i in range(1, 5)]

        report = StepRunner(FakePrompter()).run(steps, ctx)

        assert executed == ["step-1", "step-2", "step-3", "step-4"]
        assert [o.step for o in ctx.outcomes] == executed
        assert all(o.status is StepStatus.SUCCEEDED for o in report.outcomes)
        assert not report.failed

    def test_soft_failure_continues_with_next_step(self, ctx):
        executed = []
        steps = [
            make_step("first", log=executed),
            make_step("flaky", exit_code=100, log=executed),
            make_step("next", log=executed),
        ]

        report = StepRunner(FakePrompter()).run(steps, ctx)

        assert executed == ["first", "flaky", "next"]
        assert report.outcomes[1].status is StepStatus.SOFT_FAILED
        assert report.outcomes[2].status is StepStatus.SUCCEEDED
        assert not report.failed

    @pytest.mark.parametrize("k", [1, 2, 4])
    def test_hard_failure_stops_after_step_k(self, ctx, k):
        executed = []
        steps = [
            make_step(
                f"step-{i}",
                exit_code=1 if i == k else 0,
                failure_mode=FailureMode.ABORT if i == k else FailureMode.CONTINUE,
                log=executed,
            )
            for i in range(1, 6)
        ]

        report = StepRunner(FakePrompter()).run(steps, ctx)

        assert len(ctx.outcomes) == k
        assert executed == [f"step-{i}" for i in range(1, k + 1)]
        assert ctx.outcomes[-1].status is StepStatus.HARD_FAILED
        assert report.hard_failure == ctx.outcomes[-1]
        assert report.counts[StepStatus.HARD_FAILED] == 1

    def test_exception_in_step_body_is_classified_not_raised(self, ctx):
        def explode(ctx):
            raise RuntimeError("boom")

        steps = [
            MaintenanceStep("explodes", explode),
            make_step("after"),
        ]

        report = StepRunner(FakePrompter()).run(steps, ctx)

        assert report.outcomes[0].status is StepStatus.SOFT_FAILED
        assert "boom" in report.outcomes[0].message
        assert report.outcomes[1].status is StepStatus.SUCCEEDED

    def test_exception_in_abort_step_is_hard_failure(self, ctx):
        def explode(ctx):
            raise OSError("disk gone")

        steps = [
            MaintenanceStep("core", explode, failure_mode=FailureMode.ABORT),
            make_step("never"),
        ]

        report = StepRunner(FakePrompter()).run(steps, ctx)

        assert [o.step for o in report.outcomes] == ["core"]
        assert report.failed

    def test_benign_skip_result_is_recorded_as_skipped(self, ctx):
        step = MaintenanceStep("vendor", lambda ctx: StepResult.skip("script absent"))

        report = StepRunner(FakePrompter()).run([step], ctx)

        assert report.outcomes[0].status is StepStatus.SKIPPED
        assert report.outcomes[0].message == "script absent"


class TestEligibilityAndConfirmation:
    def test_ineligible_step_is_skipped_without_prompt_or_execution(self, ctx):
        executed = []
        prompter = FakePrompter(answer=True)
        step = make_step(
            "firmware",
            log=executed,
            eligible=lambda ctx: False,
            skip_reason="not Raspberry Pi hardware",
            confirm="Upgrade firmware?",
        )

        report = StepRunner(prompter).run([step], ctx)

        assert executed == []
        assert prompter.questions == []
        assert report.outcomes[0].status is StepStatus.SKIPPED
        assert report.outcomes[0].message == "not Raspberry Pi hardware"

    def test_declined_confirmation_skips_step(self, ctx):
        executed = []
        prompter = FakePrompter(answer=False)
        step = make_step("firmware", log=executed, confirm="Upgrade firmware?")

        report = StepRunner(prompter).run([step], ctx)

        assert executed == []
        assert prompter.questions == ["Upgrade firmware?"]
        assert report.outcomes[0].status is StepStatus.SKIPPED
        assert report.outcomes[0].message == USER_DECLINED

    def test_accepted_confirmation_runs_step(self, ctx):
        executed = []
        step = make_step("firmware", log=executed, confirm="Upgrade firmware?")

        report = StepRunner(FakePrompter(answer=True)).run([step], ctx)

        assert executed == ["firmware"]
        assert report.outcomes[0].status is StepStatus.SUCCEEDED

    def test_non_interactive_step_never_prompts(self, ctx):
        prompter = FakePrompter()

        StepRunner(prompter).run([make_step("plain")], ctx)

        assert prompter.questions == []
