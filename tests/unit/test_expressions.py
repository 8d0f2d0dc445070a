"""
Unit tests for variable expressions and the job inclusion rules built on them.
"""

from types import SimpleNamespace

import pytest

from rail_ci.ci.config.entries import RootEntry
from rail_ci.ci.config.expression import Expression, ExpressionError
from rail_ci.ci.models import PipelineSource
from rail_ci.ci.pipeline.chain.steps.seed import job_included

pytestmark = pytest.mark.unit


def branch_pipeline(ref="main", source=PipelineSource.PUSH):
    return SimpleNamespace(ref=ref, tag=False, source=source)


def job(**config):
    root = RootEntry({"rspec": {"script": "test", **config}}).compose()
    assert root.valid, root.errors
    return root.jobs["rspec"]


class TestExpression:
    @pytest.mark.parametrize(
        "text, variables, expected",
        [
            ("$FOO", {"FOO": "1"}, True),
            ("$FOO", {"FOO": ""}, False),
            ("$FOO", {}, False),
            ("${FOO}", {"FOO": "x"}, True),
            ('$FOO == "bar"', {"FOO": "bar"}, True),
            ("$FOO == 'bar'", {"FOO": "baz"}, False),
            ('$FOO != "bar"', {"FOO": "baz"}, True),
            ("$FOO == null", {}, True),
            ("$FOO != null", {"FOO": "x"}, True),
            ("$FOO == $BAR", {"FOO": "x", "BAR": "x"}, True),
            ("$REF =~ /^release-/", {"REF": "release-1"}, True),
            ("$REF =~ /^RELEASE/i", {"REF": "release-1"}, True),
            ("$REF !~ /^release-/", {"REF": "main"}, True),
            ("$REF =~ /^release-/", {}, False),
            ("$REF =~ $PATTERN", {"REF": "v1.0", "PATTERN": "/^v\\d/"}, True),
            ("$A && $B", {"A": "1"}, False),
            ("$A || $B", {"B": "1"}, True),
            ("$A || $B && $C", {"A": "1"}, True),
            ("($A || $B) && $C", {"A": "1"}, False),
        ],
    )
    def test_evaluate(self, text, variables, expected):
        assert Expression(text).evaluate(variables) is expected

    @pytest.mark.parametrize(
        "text", ["", "FOO", "$FOO ==", '"bar"', "$A &&", "($A", "$A $B", "$A =~ /[/", None]
    )
    def test_invalid_syntax(self, text):
        with pytest.raises(ExpressionError, match="invalid expression syntax"):
            Expression(text)


class TestJobIncluded:
    def test_default_policy(self):
        assert job_included(job(), branch_pipeline())
        assert job_included(job(), SimpleNamespace(ref="v1.0", tag=True, source=PipelineSource.PUSH))

    def test_when_never(self):
        assert not job_included(job(when="never"), branch_pipeline())

    def test_only_refs(self):
        rspec = job(only=["main", "/^release-/"])

        assert job_included(rspec, branch_pipeline("main"))
        assert job_included(rspec, branch_pipeline("release-1"))
        assert not job_included(rspec, branch_pipeline("feature"))

    def test_source_keywords(self):
        rspec = job(only=["schedules"])

        assert job_included(rspec, branch_pipeline(source=PipelineSource.SCHEDULE))
        assert not job_included(rspec, branch_pipeline())

    def test_only_variables_without_refs(self):
        rspec = job(only={"variables": ["$FOO"]})

        assert job_included(rspec, branch_pipeline(), {"FOO": "1"})
        assert not job_included(rspec, branch_pipeline(), {})

    def test_only_needs_every_spec(self):
        rspec = job(only={"refs": ["main"], "variables": ['$DEPLOY == "true"']})

        assert job_included(rspec, branch_pipeline("main"), {"DEPLOY": "true"})
        assert not job_included(rspec, branch_pipeline("feature"), {"DEPLOY": "true"})
        assert not job_included(rspec, branch_pipeline("main"), {})

    def test_except_matches_any_spec(self):
        rspec = job(**{"except": {"refs": ["tags"], "variables": ["$SKIP_TESTS"]}})

        assert job_included(rspec, branch_pipeline())
        assert not job_included(rspec, branch_pipeline(), {"SKIP_TESTS": "1"})
        assert not job_included(rspec, SimpleNamespace(ref="v1.0", tag=True, source=PipelineSource.PUSH))

    def test_job_variables_are_visible_and_pipeline_variables_win(self):
        rspec = job(variables={"MODE": "fast"}, only={"variables": ['$MODE == "fast"']})

        assert job_included(rspec, branch_pipeline())
        assert not job_included(rspec, branch_pipeline(), {"MODE": "slow"})
