"""
Unit tests for the pipeline creation chain: sequence, builder and context.
"""

from unittest import mock

import pytest

from rail_ci.ci.models import FailureReason
from rail_ci.ci.pipeline.chain import DEFAULT_STEPS, ChainContext, Sequence, SequenceBuilder, Step
from rail_ci.testing import override_rail_ci_settings

pytestmark = pytest.mark.unit


class RecordingStep(Step):
    def __init__(self, name, order, calls, abort=False):
        self.name = name
        self.order = order
        self.calls = calls
        self.abort = abort

    def execute(self, ctx):
        self.calls.append(self.name)
        if self.abort:
            ctx.add_error(f"{self.name} failed")
        return ctx


class FirstStep(Step):
    order = 10
    name = "first"

    def execute(self, ctx):
        ctx.extra.setdefault("calls", []).append("first")
        return ctx


class SecondStep(Step):
    order = 20
    name = "second"

    def execute(self, ctx):
        ctx.extra.setdefault("calls", []).append("second")
        return ctx


class ReplacementStep(Step):
    order = 10
    name = "first"

    def execute(self, ctx):
        ctx.extra.setdefault("calls", []).append("replacement")
        return ctx


class AlwaysRunStep(Step):
    order = 99
    name = "always"

    def should_run(self, ctx):
        return True

    def execute(self, ctx):
        ctx.extra.setdefault("calls", []).append("always")
        return ctx


def make_context(**command_attrs):
    command = mock.Mock(save_incompleted=True, dry_run=False, **command_attrs)
    return ChainContext(pipeline=mock.Mock(), command=command)


class TestSequence:
    def test_steps_run_in_order(self):
        calls = []
        sequence = Sequence(
            [RecordingStep("c", 30, calls), RecordingStep("a", 10, calls), RecordingStep("b", 20, calls)]
        )

        ctx = sequence.execute(make_context())

        assert calls == ["a", "b", "c"]
        assert sequence.get_step_names() == ["a", "b", "c"]
        assert set(ctx.extra["step_durations"]) == {"a", "b", "c"}

    def test_error_halts_the_chain(self):
        calls = []
        sequence = Sequence(
            [RecordingStep("a", 10, calls, abort=True), RecordingStep("b", 20, calls)]
        )

        ctx = sequence.execute(make_context())

        assert calls == ["a"]
        assert ctx.should_abort
        assert ctx.errors == ["a failed"]

    def test_step_can_run_after_halt(self):
        calls = []
        sequence = Sequence([RecordingStep("a", 10, calls, abort=True), AlwaysRunStep()])

        ctx = sequence.execute(make_context())

        assert ctx.extra["calls"] == ["always"]


class TestSequenceBuilder:
    def test_default_steps(self):
        names = SequenceBuilder().build().get_step_names()

        assert names == [step.name for step in sorted(DEFAULT_STEPS, key=lambda step: step.order)]
        assert names[0] == "build"
        assert names[-1] == "metrics"

    def test_skip_and_add_steps(self):
        sequence = (
            SequenceBuilder([FirstStep, SecondStep])
            .skip_step("second")
            .add_step(AlwaysRunStep())
            .build()
        )

        assert sequence.get_step_names() == ["first", "always"]

    def test_skipped_steps_setting(self):
        with override_rail_ci_settings(pipeline_settings={"skipped_steps": ["first"]}):
            sequence = SequenceBuilder([FirstStep, SecondStep]).build()

        assert sequence.get_step_names() == ["second"]

    def test_step_overrides_setting(self):
        overrides = {"first": "tests.unit.test_chain_sequence.ReplacementStep"}
        with override_rail_ci_settings(pipeline_settings={"step_overrides": overrides}):
            sequence = SequenceBuilder([FirstStep, SecondStep]).build()

        ctx = sequence.execute(make_context())

        assert ctx.extra["calls"] == ["replacement", "second"]


class TestChainContext:
    def test_add_warning_does_not_halt(self):
        ctx = make_context()

        ctx.add_warning("deprecated keyword")

        assert not ctx.should_abort
        assert ctx.warnings == ["deprecated keyword"]
        ctx.pipeline.add_message.assert_called_once_with("deprecated keyword", severity="warning")

    def test_halt_without_error(self):
        ctx = make_context()

        ctx.halt()

        assert ctx.should_abort
        assert ctx.errors == []

    def test_config_error_drops_persisted_pipeline(self):
        ctx = make_context()

        ctx.error("jobs:rspec config should be a hash", config_error=True, drop_reason=FailureReason.CONFIG_ERROR)

        assert ctx.pipeline.yaml_errors == "jobs:rspec config should be a hash"
        ctx.pipeline.add_message.assert_called_once_with("jobs:rspec config should be a hash")
        ctx.pipeline.drop.assert_called_once_with(FailureReason.CONFIG_ERROR)
        assert ctx.errors == ["jobs:rspec config should be a hash"]

    @pytest.mark.parametrize("attrs", [{"save_incompleted": False}, {"dry_run": True}])
    def test_error_does_not_drop_unpersisted_pipeline(self, attrs):
        ctx = make_context()
        for name, value in attrs.items():
            setattr(ctx.command, name, value)

        ctx.error("Reference not found", drop_reason=FailureReason.CONFIG_ERROR)

        assert not ctx.persist_pipeline
        ctx.pipeline.drop.assert_not_called()
        assert ctx.should_abort

    def test_error_without_drop_reason(self):
        ctx = make_context()

        ctx.error("Missing CI config file")

        ctx.pipeline.drop.assert_not_called()
        assert ctx.errors == ["Missing CI config file"]
