"""
Tests for when-condition evaluation.
"""

import pytest

from bolt.engine.conditions import evaluate_condition, is_truthy, resolve_value
from bolt.engine.context import PlayContext, RegisteredResult
from bolt.engine.playbook import Play


def make_context(variables=None) -> PlayContext:
    ctx = PlayContext(play=Play(hosts="localhost"))
    ctx.vars.update(variables or {})
    return ctx


class TestComparisons:
    """Test == and != conditions."""

    def test_fact_mismatch_is_false(self):
        ctx = make_context({"facts": {"os_family": "RedHat"}})
        assert evaluate_condition("facts.os_family == 'Debian'", ctx) is False

    def test_fact_match(self):
        ctx = make_context({"facts": {"os_family": "Debian"}})
        assert evaluate_condition("facts.os_family == 'Debian'", ctx) is True

    def test_not_equal(self):
        ctx = make_context({"env_name": "prod"})
        assert evaluate_condition('env_name != "dev"', ctx) is True
        assert evaluate_condition('env_name != "prod"', ctx) is False

    def test_compares_string_forms(self):
        ctx = make_context({"port": 80, "enabled": True})
        assert evaluate_condition("port == '80'", ctx) is True
        assert evaluate_condition("enabled == true", ctx) is True

    def test_missing_dotted_side_is_empty(self):
        ctx = make_context({"facts": {}})
        assert evaluate_condition("facts.distribution == ''", ctx) is True


class TestChangedSuffix:
    """Test <name>.changed conditions."""

    def test_registered_changed(self):
        ctx = make_context()
        ctx.register("out", RegisteredResult(changed=True))
        assert evaluate_condition("out.changed", ctx) is True

    def test_registered_unchanged(self):
        ctx = make_context()
        ctx.register("out", RegisteredResult(changed=False))
        assert evaluate_condition("out.changed", ctx) is False

    def test_unregistered_is_false(self):
        assert evaluate_condition("never.changed", make_context()) is False

    def test_negated(self):
        ctx = make_context()
        ctx.register("out", RegisteredResult(changed=False))
        assert evaluate_condition("not out.changed", ctx) is True


class TestTruthiness:
    """Test bare-value conditions."""

    @pytest.mark.parametrize("value,expected", [
        (True, True),
        (False, False),
        ("yes", True),
        ("false", False),
        ("False", False),
        ("no", False),
        ("", False),
        ("0", True),
        (0, False),
        (3, True),
        ([], False),
        ([1], True),
        ({}, False),
        (None, False),
    ])
    def test_is_truthy(self, value, expected):
        assert is_truthy(value) is expected

    def test_variable_truthiness(self):
        ctx = make_context({"enabled": False, "name": "web"})
        assert evaluate_condition("enabled", ctx) is False
        assert evaluate_condition("name", ctx) is True
        assert evaluate_condition("not enabled", ctx) is True

    def test_literals(self):
        ctx = make_context()
        assert evaluate_condition("true", ctx) is True
        assert evaluate_condition("False", ctx) is False

    def test_unknown_bare_token_is_its_own_text(self):
        assert resolve_value("somevalue", make_context()) == "somevalue"
        assert evaluate_condition("somevalue", make_context()) is True


class TestResolveValue:
    """Test condition operand resolution."""

    def test_quoted_literals(self):
        ctx = make_context({"x": "var"})
        assert resolve_value("'x'", ctx) == "x"
        assert resolve_value('"x"', ctx) == "x"

    def test_variable(self):
        assert resolve_value("x", make_context({"x": 5})) == 5

    def test_dotted_missing(self):
        assert resolve_value("a.b", make_context({"a": {}})) is None
