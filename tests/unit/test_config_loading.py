"""
Unit tests for YAML loading, duration parsing and extends resolution.
"""

import pytest

from rail_ci.ci.config.errors import ConfigFormatError, ExtendsError
from rail_ci.ci.config.extends import ExtendsResolver
from rail_ci.ci.config.loader import dump_yaml, load_yaml, load_yaml_hash, yaml_valid
from rail_ci.ci.config.utils import (
    deep_merge,
    flatten_strings,
    parse_duration,
    string_or_nested_strings,
)

pytestmark = pytest.mark.unit


class TestLoader:
    def test_load_yaml_hash_returns_mapping(self):
        assert load_yaml_hash("rspec:\n  script: test\n") == {"rspec": {"script": "test"}}

    def test_non_string_keys_are_stringified(self):
        assert load_yaml_hash("1: one\ntrue: yes\n") == {"1": "one", "True": True}
        assert load_yaml_hash("1: one\n2.5: x\nnested:\n  3: three\n") == {
            "1": "one",
            "2.5": "x",
            "nested": {"3": "three"},
        }

    def test_anchors_and_merge_keys(self):
        content = ".base: &base\n  image: ruby\n  1: one\nrspec:\n  <<: *base\n  script: rspec\n"

        assert load_yaml_hash(content)["rspec"] == {"image": "ruby", "1": "one", "script": "rspec"}

    @pytest.mark.parametrize("content", [None, "stages: [", "key: value: other"])
    def test_invalid_yaml_raises_format_error(self, content):
        with pytest.raises(ConfigFormatError, match="Invalid configuration format"):
            load_yaml(content)

    def test_non_mapping_document_is_rejected(self):
        with pytest.raises(ConfigFormatError):
            load_yaml_hash("- just\n- a list\n")

    def test_yaml_valid(self):
        assert yaml_valid("a: 1")
        assert not yaml_valid("a: [")

    def test_dump_yaml_keeps_key_order(self):
        dumped = dump_yaml({"stages": ["test"], "include": [{"local": "ci.yml"}]})
        assert dumped.index("stages") < dumped.index("include")
        assert load_yaml_hash(dumped) == {"stages": ["test"], "include": [{"local": "ci.yml"}]}


class TestParseDuration:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (90, 90),
            ("90", 90),
            ("30 minutes", 1800),
            ("1 day 2 hours", 93600),
            ("1h 30m", 5400),
            ("2 weeks", 1209600),
            ("10 seconds", 10),
        ],
    )
    def test_valid_durations(self, value, expected):
        assert parse_duration(value) == expected

    @pytest.mark.parametrize("value", ["", "soon", "3 parsecs", None, True, ["1 hour"]])
    def test_invalid_durations(self, value):
        assert parse_duration(value) is None


class TestUtils:
    def test_deep_merge_merges_nested_dicts_without_mutating(self):
        base = {"variables": {"A": "1"}, "script": ["a"]}
        merged = deep_merge(base, {"variables": {"B": "2"}, "script": ["b"]})

        assert merged == {"variables": {"A": "1", "B": "2"}, "script": ["b"]}
        assert base == {"variables": {"A": "1"}, "script": ["a"]}

    def test_string_or_nested_strings(self):
        assert string_or_nested_strings("make")
        assert string_or_nested_strings(["a", ["b", ["c"]]])
        assert not string_or_nested_strings(["a", 1])
        assert not string_or_nested_strings({"a": "b"})

    def test_flatten_strings(self):
        assert flatten_strings([["a", "b"], "c"]) == ["a", "b", "c"]
        assert flatten_strings("make") == ["make"]
        assert flatten_strings(None) == []


class TestExtendsResolver:
    def test_job_extends_hidden_template(self):
        config = {
            ".base": {"script": "make", "variables": {"A": "1"}},
            "build": {"extends": ".base", "variables": {"B": "2"}},
        }

        resolved = ExtendsResolver(config).resolve()

        assert resolved["build"] == {"script": "make", "variables": {"A": "1", "B": "2"}}
        assert resolved[".base"] == config[".base"]

    def test_multiple_levels_and_multiple_bases(self):
        config = {
            ".a": {"script": "a", "image": "ruby"},
            ".b": {"extends": ".a", "script": "b"},
            ".c": {"tags": ["docker"]},
            "job": {"extends": [".b", ".c"], "stage": "test"},
        }

        resolved = ExtendsResolver(config).resolve()

        assert resolved["job"] == {
            "script": "b",
            "image": "ruby",
            "tags": ["docker"],
            "stage": "test",
        }

    def test_job_keys_win_over_bases(self):
        config = {".base": {"script": "base"}, "job": {"extends": ".base", "script": "own"}}

        assert ExtendsResolver(config).resolve()["job"]["script"] == "own"

    def test_circular_dependency(self):
        config = {"a": {"extends": "b", "script": "a"}, "b": {"extends": "a", "script": "b"}}

        with pytest.raises(ExtendsError, match="circular dependency detected in `extends`"):
            ExtendsResolver(config).resolve()

    def test_unknown_base(self):
        config = {"job": {"extends": ".missing", "script": "a"}}

        with pytest.raises(ExtendsError) as exc:
            ExtendsResolver(config).resolve()
        assert str(exc.value) == "job: unknown key in `extends` (.missing)"

    def test_nesting_too_deep(self):
        config = {
            ".a": {"script": "a"},
            ".b": {"extends": ".a"},
            ".c": {"extends": ".b"},
            "job": {"extends": ".c"},
        }

        with pytest.raises(ExtendsError, match="nesting too deep"):
            ExtendsResolver(config, max_nesting=2).resolve()

    @pytest.mark.parametrize("bases", [1, [".base", 2], {"name": ".base"}])
    def test_invalid_base_hash(self, bases):
        config = {".base": {"script": "a"}, "job": {"extends": bases}}

        with pytest.raises(ExtendsError, match="invalid base hash"):
            ExtendsResolver(config).resolve()
